"""The process widget: view mode, search and sorting state of the process table."""

import logging

from proctop.columns import (
    ColumnWidthBounds,
    ProcColumn,
    SortColumn,
    SortOrder,
    SortTable,
)
from proctop.config import ProcessConfig
from proctop.grouping import group_records, normal_rows
from proctop.models import (
    DisplayRow,
    GroupedMode,
    NormalMode,
    ProcessForestSnapshot,
    TreeMode,
    ViewMode,
)
from proctop.search import Predicate, SearchState
from proctop.tree import build_tree_rows

logger = logging.getLogger(__name__)


def mode_from_name(name: str) -> ViewMode:
    if name == "tree":
        return TreeMode()
    if name == "grouped":
        return GroupedMode()
    return NormalMode()


class SortPicker:
    """The pop-up list used to pick the sort column."""

    def __init__(self) -> None:
        self.is_open = False
        self.current_index = 0


class ProcWidget:
    """
    Owns everything the process table shows besides the raw process data.

    ``refresh`` recomputes ``table_data`` from a snapshot; it never runs on its
    own. Mutators only change state and raise ``force_update_data`` (and
    ``force_rerender`` when the visible columns change); the caller is
    expected to check those flags and call ``refresh`` again.
    """

    PID_OR_COUNT = 0
    PROC_NAME_OR_CMD = 1
    CPU = 2
    MEM = 3
    RPS = 4
    WPS = 5
    T_READ = 6
    T_WRITE = 7
    USER = 8
    STATE = 9

    def __init__(self, config: ProcessConfig | None = None) -> None:
        config = config or ProcessConfig()
        self.mode: ViewMode = mode_from_name(config.default_mode)
        self.proc_search = SearchState(
            is_ignoring_case=not config.is_case_sensitive,
            is_searching_whole_word=config.is_match_whole_word,
            is_searching_with_regex=config.is_use_regex,
        )
        self.table = self._new_process_table(
            is_count=isinstance(self.mode, GroupedMode),
            is_command=config.is_command,
            show_memory_as_values=config.show_memory_as_values,
        )
        self.sort_picker = SortPicker()
        self.table_data: list[DisplayRow] = []
        self.id_pid_map: dict[str, list[int]] = {}
        # Collapsed pids survive leaving and re-entering the tree view.
        self._saved_collapsed_pids: set[int] = set()
        self.force_rerender = True
        self.force_update_data = False

        if isinstance(self.mode, GroupedMode):
            self._hide_column(self.USER)
            self._hide_column(self.STATE)

    def _new_process_table(
        self, is_count: bool, is_command: bool, show_memory_as_values: bool
    ) -> SortTable:
        if isinstance(self.mode, TreeMode):
            default_index, default_order = self.PID_OR_COUNT, SortOrder.ASCENDING
        else:
            default_index, default_order = self.CPU, SortOrder.DESCENDING

        name_share = 0.5 if is_command or isinstance(self.mode, TreeMode) else 0.3
        columns = [
            SortColumn(
                ProcColumn.COUNT if is_count else ProcColumn.PID,
                default_order=SortOrder.DESCENDING if is_count else SortOrder.ASCENDING,
            ),
            SortColumn(
                ProcColumn.COMMAND if is_command else ProcColumn.NAME,
                bounds=ColumnWidthBounds.soft(name_share),
            ),
            SortColumn(ProcColumn.CPU_PERCENT, default_order=SortOrder.DESCENDING),
            SortColumn(
                ProcColumn.MEMORY_VALUE if show_memory_as_values else ProcColumn.MEMORY_PERCENT,
                default_order=SortOrder.DESCENDING,
            ),
            SortColumn(
                ProcColumn.READ_PER_SECOND,
                default_order=SortOrder.DESCENDING,
                bounds=ColumnWidthBounds.hard(8),
            ),
            SortColumn(
                ProcColumn.WRITE_PER_SECOND,
                default_order=SortOrder.DESCENDING,
                bounds=ColumnWidthBounds.hard(8),
            ),
            SortColumn(
                ProcColumn.TOTAL_READ,
                default_order=SortOrder.DESCENDING,
                bounds=ColumnWidthBounds.hard(8),
            ),
            SortColumn(
                ProcColumn.TOTAL_WRITE,
                default_order=SortOrder.DESCENDING,
                bounds=ColumnWidthBounds.hard(8),
            ),
            SortColumn(ProcColumn.USER, bounds=ColumnWidthBounds.soft(0.05)),
            SortColumn(ProcColumn.STATE, bounds=ColumnWidthBounds.hard(7)),
        ]
        return SortTable(columns, sort_index=default_index, order=default_order)

    # Read accessors

    def is_using_command(self) -> bool:
        return self.table.columns[self.PROC_NAME_OR_CMD].column is ProcColumn.COMMAND

    def is_mem_percent(self) -> bool:
        return self.table.columns[self.MEM].column is ProcColumn.MEMORY_PERCENT

    def is_tree_mode(self) -> bool:
        return isinstance(self.mode, TreeMode)

    def visible_columns(self) -> list[SortColumn]:
        return [col for col in self.table.columns if not col.is_hidden]

    def column_text(self) -> list[str]:
        return [col.column.text for col in self.visible_columns()]

    def num_enabled_columns(self) -> int:
        """Number of columns not hidden, whether or not they fit on screen."""
        return len(self.visible_columns())

    def formatted_row(self, row: DisplayRow) -> list[str]:
        """Cell text of a row for every visible column."""
        return [col.column.format(row) for col in self.visible_columns()]

    def current_item(self) -> DisplayRow | None:
        if 0 <= self.table.current_index < len(self.table_data):
            return self.table_data[self.table.current_index]
        return None

    def is_search_enabled(self) -> bool:
        return self.proc_search.is_enabled

    def get_current_search_query(self) -> str:
        return self.proc_search.current_search_query

    def get_search_cursor_position(self) -> int:
        return self.proc_search.cursor

    def get_char_cursor_position(self) -> int:
        return self.proc_search.cursor_cell_position

    # Data

    def _get_predicate(self) -> Predicate | None:
        return self.proc_search.active_predicate()

    def refresh(self, snapshot: ProcessForestSnapshot) -> list[DisplayRow]:
        """
        Recompute the displayed rows from a snapshot.

        Normal and Grouped rows are sorted by the active column; Tree rows
        are sorted within each level of siblings.
        """
        predicate = self._get_predicate()
        is_using_command = self.is_using_command()

        if isinstance(self.mode, TreeMode):
            rows = build_tree_rows(
                snapshot,
                predicate,
                self.mode.collapsed_pids,
                self.table,
                is_using_command,
            )
        elif isinstance(self.mode, GroupedMode):
            rows, self.id_pid_map = group_records(
                snapshot.records.values(), predicate, is_using_command
            )
            self.table.sort(rows)
        else:
            rows = normal_rows(snapshot.records.values(), predicate, is_using_command)
            self.id_pid_map = {}
            self.table.sort(rows)

        self.table_data = rows
        self.table.clamp_cursor(len(rows))
        self.force_update_data = False
        return rows

    update_displayed_process_data = refresh

    # Dirty flags

    def force_data_update(self) -> None:
        """Forces an update of the data stored."""
        self.force_update_data = True

    def force_rerender_and_update(self) -> None:
        """Forces an entire rerender and update of the data stored."""
        self.force_rerender = True
        self.force_update_data = True

    # Columns and sorting

    def _hide_column(self, index: int) -> None:
        """Hide a column; if it was the sort column, go back to CPU descending."""
        self.table.columns[index].is_hidden = True
        if self.table.sort_index == index:
            self.table.set_sort_index(self.CPU)
            self.table.order = SortOrder.DESCENDING

    def _show_column(self, index: int) -> None:
        self.table.columns[index].is_hidden = False

    def select_column(self, index: int) -> None:
        """
        Sort by a column.

        Selecting the column that is already active is a no-op here; callers
        toggle its order with ``toggle_sort_order`` instead.
        """
        self.table.set_sort_index(index)
        self.force_data_update()

    def toggle_sort_order(self) -> None:
        self.table.toggle_order()
        self.force_data_update()

    def toggle_mem_display(self) -> None:
        """Switch the memory column between percent and bytes."""
        column = self.table.columns[self.MEM]
        if column.column is ProcColumn.MEMORY_VALUE:
            column.column = ProcColumn.MEMORY_PERCENT
        else:
            column.column = ProcColumn.MEMORY_VALUE
        self.force_data_update()

    def toggle_command_display(self) -> None:
        """Switch the name column between process names and full commands."""
        column = self.table.columns[self.PROC_NAME_OR_CMD]
        if column.column is ProcColumn.NAME:
            column.column = ProcColumn.COMMAND
            column.bounds.max_percentage = 0.5
        else:
            column.column = ProcColumn.NAME
            column.bounds.max_percentage = 0.5 if self.is_tree_mode() else 0.3
        self.force_rerender_and_update()

    def on_tab(self) -> None:
        """
        Toggle between Normal and Grouped mode. Does nothing in Tree mode.

        Grouping turns the pid column into a count column sorted descending by
        default, and hides the user and state columns, which mean nothing for
        a group. Ungrouping undoes all of that.
        """
        if self.is_tree_mode():
            return

        first = self.table.columns[self.PID_OR_COUNT]
        if first.column is ProcColumn.PID:
            first.column = ProcColumn.COUNT
            first.default_order = SortOrder.DESCENDING
            self._hide_column(self.USER)
            self._hide_column(self.STATE)
            self.mode = GroupedMode()
        else:
            first.column = ProcColumn.PID
            first.default_order = SortOrder.ASCENDING
            self._show_column(self.USER)
            self._show_column(self.STATE)
            self.mode = NormalMode()
        logger.debug("Process view switched to %s", type(self.mode).__name__)

        self.force_rerender_and_update()

    def set_tree_mode(self, enabled: bool) -> None:
        """
        Enter or leave Tree mode.

        Entering resets grouping and sorts by pid ascending; the collapsed set
        from the last time Tree mode was active is restored.
        """
        if enabled == self.is_tree_mode():
            return

        if enabled:
            if isinstance(self.mode, GroupedMode):
                self.on_tab()
            self.mode = TreeMode(set(self._saved_collapsed_pids))
            self.table.set_sort_index(self.PID_OR_COUNT)
            self.table.order = SortOrder.ASCENDING
        else:
            self._saved_collapsed_pids = set(self.mode.collapsed_pids)
            self.mode = NormalMode()
            self.table.set_sort_index(self.CPU)
            self.table.order = SortOrder.DESCENDING

        if not self.is_using_command():
            self.table.columns[self.PROC_NAME_OR_CMD].bounds.max_percentage = (
                0.5 if enabled else 0.3
            )
        logger.debug("Process view switched to %s", type(self.mode).__name__)
        self.table.reset_scroll()
        self.force_rerender_and_update()

    def toggle_collapse(self, pid: int) -> None:
        """Collapse or expand the subtree under a pid. Tree mode only."""
        if not isinstance(self.mode, TreeMode):
            return
        collapsed = self.mode.collapsed_pids
        if pid in collapsed:
            collapsed.remove(pid)
        else:
            collapsed.add(pid)
        self.force_data_update()

    def toggle_collapse_at_cursor(self) -> None:
        row = self.current_item()
        if row is not None:
            self.toggle_collapse(row.pid)

    def open_sort_picker(self) -> None:
        self.sort_picker.is_open = True
        self.sort_picker.current_index = self.table.sort_index
        self.force_rerender = True

    def apply_sort_choice_from_picker(self) -> None:
        """Sort by the column chosen in the picker, then close the picker."""
        self.table.set_sort_index(self.sort_picker.current_index)
        self.sort_picker.is_open = False
        self.force_rerender_and_update()

    # Table cursor

    def move_cursor(self, delta: int) -> None:
        self.table.move_cursor(delta, len(self.table_data))

    def move_cursor_to_top(self) -> None:
        self.table.reset_scroll()

    def move_cursor_to_bottom(self) -> None:
        self.table.move_cursor(len(self.table_data), len(self.table_data))

    # Search

    def update_query(self) -> None:
        """Re-parse the search text and go back to the top of the table."""
        self.proc_search.update_query()
        self.table.reset_scroll()
        self.force_data_update()

    def set_query(self, text: str) -> None:
        self.proc_search.current_search_query = text
        self.proc_search.move_to_end()
        self.update_query()

    def clear_search(self) -> None:
        self.proc_search.reset()
        self.force_data_update()

    def search_insert(self, text: str) -> None:
        self.proc_search.insert(text)
        self.update_query()

    def search_backspace(self) -> None:
        self.proc_search.backspace()
        self.update_query()

    def search_delete(self) -> None:
        self.proc_search.delete()
        self.update_query()

    def search_walk_forward(self) -> None:
        self.proc_search.walk_forward()

    def search_walk_back(self) -> None:
        self.proc_search.walk_back()

    def toggle_ignore_case(self) -> None:
        self.proc_search.toggle_ignore_case()
        self.update_query()

    def toggle_whole_word(self) -> None:
        self.proc_search.toggle_whole_word()
        self.update_query()

    def toggle_regex(self) -> None:
        self.proc_search.toggle_regex()
        self.update_query()
