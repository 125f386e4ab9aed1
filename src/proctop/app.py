"""proctop - Main Textual application."""

import logging
from queue import Empty, Queue

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, OptionList, Static
from textual.widgets.option_list import Option

from proctop.columns import SortOrder
from proctop.config import ProcessConfig, configure_logging, parse_args
from proctop.models import GroupedMode, ProcessForestSnapshot
from proctop.monitor import ProcessMonitor
from proctop.search import grapheme_boundaries
from proctop.widget import ProcWidget

logger = logging.getLogger(__name__)


class StatusLine(Static):
    """One-line summary of the view: mode, row count and sort column."""

    DEFAULT_CSS = """
    StatusLine {
        height: 1;
        background: $surface;
    }
    """

    def show_summary(self, proc: ProcWidget) -> None:
        mode = "Tree" if proc.is_tree_mode() else (
            "Grouped" if isinstance(proc.mode, GroupedMode) else "Normal"
        )
        column = proc.table.sort_column
        arrow = "▲" if proc.table.order is SortOrder.ASCENDING else "▼"
        sort_text = f"{column.text} {arrow}" if column is not None else "-"
        self.update(f" {mode} | {len(proc.table_data)} rows | Sort: {sort_text}")


class SearchBar(Static, can_focus=True):
    """Search box drawn from the widget's search state; handles its own keys."""

    DEFAULT_CSS = """
    SearchBar {
        height: 1;
        display: none;
        background: $panel;
    }
    """

    def __init__(self, proc: ProcWidget, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._proc = proc

    def render_search(self) -> Text:
        search = self._proc.proc_search
        query = search.current_search_query
        text = Text("Search: ")
        text.append(query[: search.cursor])

        boundaries = grapheme_boundaries(query)
        after = [b for b in boundaries if b > search.cursor]
        end = after[0] if after else len(query)
        text.append(query[search.cursor : end] or " ", style="reverse")
        text.append(query[end:])

        flags = [
            ("Case", not search.is_ignoring_case),
            ("Word", search.is_searching_whole_word),
            ("Regex", search.is_searching_with_regex),
        ]
        for label, active in flags:
            text.append(f"  [{label}]", style="bold" if active else "dim")
        if search.is_invalid_search and search.error_message:
            text.append(f"  {search.error_message}", style="red")
        return text

    def show_state(self) -> None:
        self.update(self.render_search())

    def on_key(self, event: events.Key) -> None:
        proc = self._proc
        key = event.key
        if key in ("escape", "enter"):
            self.app.action_close_search()
        elif key == "backspace":
            proc.search_backspace()
        elif key == "delete":
            proc.search_delete()
        elif key == "left":
            proc.search_walk_back()
        elif key == "right":
            proc.search_walk_forward()
        elif key == "home":
            proc.proc_search.move_to_start()
        elif key == "end":
            proc.proc_search.move_to_end()
        elif key == "ctrl+u":
            proc.clear_search()
        elif key == "f1":
            proc.toggle_ignore_case()
        elif key == "f2":
            proc.toggle_whole_word()
        elif key == "f3":
            proc.toggle_regex()
        elif event.is_printable and event.character:
            proc.search_insert(event.character)
        else:
            return
        event.stop()
        event.prevent_default()
        self.app.sync_view()


class SortMenu(OptionList):
    """Column picker for the sort column."""

    DEFAULT_CSS = """
    SortMenu {
        dock: left;
        width: 16;
        display: none;
    }
    """


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, proc: ProcWidget, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._proc = proc
        self._visible_indices: list[int] = []

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        self.rebuild_columns()

    def rebuild_columns(self) -> None:
        """Recreate the columns from the widget's visible columns."""
        table = self.query_one("#process-table", DataTable)
        proc = self._proc
        table.clear(columns=True)

        self._visible_indices = [
            index for index, col in enumerate(proc.table.columns) if not col.is_hidden
        ]
        for index in self._visible_indices:
            col = proc.table.columns[index]
            label = col.column.text
            if index == proc.table.sort_index:
                label += "▲" if proc.table.order is SortOrder.ASCENDING else "▼"
            width = col.bounds.hard_width if col.bounds is not None else None
            table.add_column(label, key=col.column.value, width=width)

    def show_rows(self) -> None:
        """Replace the table rows with the widget's current table data."""
        table = self.query_one("#process-table", DataTable)
        proc = self._proc
        table.clear()

        for row in proc.table_data:
            cells = proc.formatted_row(row)
            if row.disabled:
                table.add_row(*(Text(cell, style="dim") for cell in cells))
            else:
                table.add_row(*cells)

        if proc.table_data:
            table.move_cursor(row=proc.table.current_index)

    def column_index(self, visible_index: int) -> int | None:
        """Map the index of a visible column to its index in the widget."""
        if 0 <= visible_index < len(self._visible_indices):
            return self._visible_indices[visible_index]
        return None

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self._proc.table.current_index = event.cursor_row

    def on_data_table_header_selected(self, event: DataTable.HeaderSelected) -> None:
        index = self.column_index(event.column_index)
        if index is None:
            return
        if index == self._proc.table.sort_index:
            self._proc.toggle_sort_order()
        else:
            self._proc.select_column(index)
        self._proc.force_rerender = True
        self.app.sync_view()


class ProctopApp(App):
    """Main proctop application."""

    TITLE = "proctop"
    SUB_TITLE = "Process Viewer"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        Binding("tab", "group", "Group", priority=True),
        ("t", "tree", "Tree"),
        ("c", "collapse", "Collapse"),
        ("m", "memory", "Mem"),
        ("P", "command", "Command"),
        ("s", "sort", "Sort"),
        ("f6", "sort", "Sort"),
        ("i", "invert", "Invert"),
        ("slash", "search", "Search"),
    ]

    def __init__(self, config: ProcessConfig | None = None) -> None:
        """Initialize the ProctopApp."""
        super().__init__()
        self._config = config or ProcessConfig()
        self._proc = ProcWidget(self._config)
        self._update_queue: Queue[ProcessForestSnapshot] = Queue()
        self._monitor = ProcessMonitor(self._update_queue, poll_rate=self._config.poll_rate)
        self._snapshot: ProcessForestSnapshot | None = None

    @property
    def proc(self) -> ProcWidget:
        return self._proc

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield StatusLine(id="status-line")
        yield SortMenu(id="sort-menu")
        yield ProcessTable(self._proc)
        yield SearchBar(self._proc, id="search-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start the process monitor when the app is mounted."""
        self._monitor.start()
        self.query_one("#process-table", DataTable).focus()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Take the newest snapshot from the queue, if any, and refresh."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self.show_snapshot(snapshot)

    def show_snapshot(self, snapshot: ProcessForestSnapshot) -> None:
        """Make a snapshot the current one and redraw from it."""
        self._snapshot = snapshot
        self._proc.force_data_update()
        self.sync_view()

    def sync_view(self) -> None:
        """Apply whatever the widget's dirty flags ask for."""
        proc = self._proc
        try:
            process_table = self.query_one(ProcessTable)
            if proc.force_rerender:
                process_table.rebuild_columns()
                proc.force_rerender = False
                proc.force_update_data = True
            if proc.force_update_data and self._snapshot is not None:
                proc.refresh(self._snapshot)
                process_table.show_rows()
            self.query_one(StatusLine).show_summary(proc)
            self.query_one(SearchBar).show_state()
        except NoMatches:
            logger.debug("View not mounted yet, skipping redraw")

    def action_group(self) -> None:
        self._proc.on_tab()
        self.sync_view()

    def action_tree(self) -> None:
        self._proc.set_tree_mode(not self._proc.is_tree_mode())
        self.sync_view()

    def action_collapse(self) -> None:
        self._proc.toggle_collapse_at_cursor()
        self.sync_view()

    def action_memory(self) -> None:
        self._proc.toggle_mem_display()
        self._proc.force_rerender = True
        self.sync_view()

    def action_command(self) -> None:
        self._proc.toggle_command_display()
        self.sync_view()

    def action_invert(self) -> None:
        self._proc.toggle_sort_order()
        self._proc.force_rerender = True
        self.sync_view()

    def action_sort(self) -> None:
        """Open the sort column picker."""
        proc = self._proc
        proc.open_sort_picker()
        menu = self.query_one(SortMenu)
        menu.clear_options()
        menu.add_options(
            [Option(col.column.text, disabled=col.is_hidden) for col in proc.table.columns]
        )
        menu.highlighted = proc.sort_picker.current_index
        menu.display = True
        menu.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        proc = self._proc
        proc.sort_picker.current_index = event.option_index
        proc.apply_sort_choice_from_picker()
        menu = self.query_one(SortMenu)
        menu.display = False
        self.query_one("#process-table", DataTable).focus()
        self.notify(f"Sort: {proc.table.columns[proc.table.sort_index].column.text}")
        self.sync_view()

    def action_search(self) -> None:
        """Open the search bar."""
        self._proc.proc_search.is_enabled = True
        search_bar = self.query_one(SearchBar)
        search_bar.display = True
        search_bar.focus()
        self.sync_view()

    def action_close_search(self) -> None:
        """Hide the search bar; the query stays in effect."""
        self._proc.proc_search.is_enabled = False
        self.query_one(SearchBar).display = False
        self.query_one("#process-table", DataTable).focus()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main(argv: list[str] | None = None) -> None:
    """Entry point for proctop application."""
    config = parse_args(argv)
    configure_logging(config)
    app = ProctopApp(config)
    app.run()


if __name__ == "__main__":
    main()
