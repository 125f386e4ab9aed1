"""Process table columns and the sort dispatcher."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from proctop.models import DisplayRow


class SortOrder(Enum):
    """Sort direction of the active column."""

    ASCENDING = "asc"
    DESCENDING = "desc"

    def reversed(self) -> "SortOrder":
        if self is SortOrder.ASCENDING:
            return SortOrder.DESCENDING
        return SortOrder.ASCENDING


class ProcColumn(Enum):
    """Columns the process table can show."""

    PID = "pid"
    COUNT = "count"
    NAME = "name"
    COMMAND = "command"
    CPU_PERCENT = "cpu"
    MEMORY_VALUE = "mem_value"
    MEMORY_PERCENT = "mem_percent"
    READ_PER_SECOND = "rps"
    WRITE_PER_SECOND = "wps"
    TOTAL_READ = "t_read"
    TOTAL_WRITE = "t_write"
    USER = "user"
    STATE = "state"

    @property
    def text(self) -> str:
        """Header text."""
        return _COLUMN_SPECS[self].header

    def sort_key(self, row: DisplayRow) -> Any:
        return _COLUMN_SPECS[self].key(row)

    def format(self, row: DisplayRow) -> str:
        return _COLUMN_SPECS[self].formatter(row)


# Ordering used for the state column: active states first, unknown states last.
STATE_ORDER = {
    state: index
    for index, state in enumerate(
        [
            "running",
            "waking",
            "disk-sleep",
            "sleeping",
            "idle",
            "parked",
            "waiting",
            "locked",
            "stopped",
            "tracing-stop",
            "zombie",
            "wake-kill",
            "dead",
        ]
    )
}


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:.1f}{unit}" if unit != "B" else f"{int(size)}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_rate(size: float) -> str:
    return f"{format_bytes(size)}/s"


@dataclass(slots=True, frozen=True)
class _ColumnSpec:
    header: str
    key: Callable[[DisplayRow], Any]
    formatter: Callable[[DisplayRow], str]


_COLUMN_SPECS: dict[ProcColumn, _ColumnSpec] = {
    ProcColumn.PID: _ColumnSpec("PID", lambda r: r.pid, lambda r: str(r.pid)),
    ProcColumn.COUNT: _ColumnSpec(
        "Count", lambda r: r.num_similar, lambda r: str(r.num_similar)
    ),
    ProcColumn.NAME: _ColumnSpec("Name", lambda r: r.id.lower(), lambda r: r.label),
    ProcColumn.COMMAND: _ColumnSpec(
        "Command", lambda r: r.id.lower(), lambda r: r.label
    ),
    ProcColumn.CPU_PERCENT: _ColumnSpec(
        "CPU%", lambda r: r.cpu_percent, lambda r: f"{r.cpu_percent:.1f}%"
    ),
    ProcColumn.MEMORY_VALUE: _ColumnSpec(
        "Mem", lambda r: r.mem_bytes, lambda r: format_bytes(r.mem_bytes)
    ),
    ProcColumn.MEMORY_PERCENT: _ColumnSpec(
        "Mem%", lambda r: r.mem_percent, lambda r: f"{r.mem_percent:.1f}%"
    ),
    ProcColumn.READ_PER_SECOND: _ColumnSpec(
        "R/s", lambda r: r.read_bytes_per_sec, lambda r: format_rate(r.read_bytes_per_sec)
    ),
    ProcColumn.WRITE_PER_SECOND: _ColumnSpec(
        "W/s", lambda r: r.write_bytes_per_sec, lambda r: format_rate(r.write_bytes_per_sec)
    ),
    ProcColumn.TOTAL_READ: _ColumnSpec(
        "T.Read", lambda r: r.total_read_bytes, lambda r: format_bytes(r.total_read_bytes)
    ),
    ProcColumn.TOTAL_WRITE: _ColumnSpec(
        "T.Write", lambda r: r.total_write_bytes, lambda r: format_bytes(r.total_write_bytes)
    ),
    ProcColumn.USER: _ColumnSpec("User", lambda r: r.user.lower(), lambda r: r.user),
    ProcColumn.STATE: _ColumnSpec(
        "State", lambda r: STATE_ORDER.get(r.state, len(STATE_ORDER)), lambda r: r.state
    ),
}


def sort_rows(column: ProcColumn, rows: list[DisplayRow], order: SortOrder) -> None:
    """
    Sort rows in place by one column.

    The sort is stable in both directions: rows with equal keys keep their
    input order.
    """
    rows.sort(key=column.sort_key, reverse=order is SortOrder.DESCENDING)


def reverse_sort_rows(column: ProcColumn, rows: list[DisplayRow], order: SortOrder) -> None:
    """Sort rows in the opposite direction, for pushing onto a LIFO stack."""
    sort_rows(column, rows, order.reversed())


@dataclass(slots=True)
class ColumnWidthBounds:
    """Either a fixed width or a soft cap as a share of the table width."""

    hard_width: int | None = None
    max_percentage: float | None = None

    @classmethod
    def hard(cls, width: int) -> "ColumnWidthBounds":
        return cls(hard_width=width)

    @classmethod
    def soft(cls, max_percentage: float | None = None) -> "ColumnWidthBounds":
        return cls(max_percentage=max_percentage)

    @property
    def is_soft(self) -> bool:
        return self.hard_width is None


@dataclass(slots=True)
class SortColumn:
    """A column of the sortable table and its per-column metadata."""

    column: ProcColumn
    default_order: SortOrder = SortOrder.ASCENDING
    is_hidden: bool = False
    bounds: ColumnWidthBounds | None = None

    def __post_init__(self) -> None:
        if self.bounds is None:
            self.bounds = ColumnWidthBounds.soft()


class SortTable:
    """
    Column list, active sort column and cursor of the process table.

    Rows are owned by the caller; this only tracks positions into them.
    """

    def __init__(
        self,
        columns: list[SortColumn],
        sort_index: int = 0,
        order: SortOrder = SortOrder.ASCENDING,
    ) -> None:
        self.columns = columns
        self._sort_index = sort_index
        self.order = order
        self.current_index = 0
        self.display_start_index = 0

    @property
    def sort_index(self) -> int:
        return self._sort_index

    def set_sort_index(self, index: int) -> None:
        """Make a column the sort column, switching to its default order if it changed."""
        if index == self._sort_index or not 0 <= index < len(self.columns):
            return
        self._sort_index = index
        self.order = self.columns[index].default_order

    def toggle_order(self) -> None:
        self.order = self.order.reversed()

    @property
    def sort_column(self) -> ProcColumn | None:
        if 0 <= self._sort_index < len(self.columns):
            return self.columns[self._sort_index].column
        return None

    def sort(self, rows: list[DisplayRow]) -> None:
        column = self.sort_column
        if column is not None:
            sort_rows(column, rows, self.order)

    def reverse_sort(self, rows: list[DisplayRow]) -> None:
        column = self.sort_column
        if column is not None:
            reverse_sort_rows(column, rows, self.order)

    def reset_scroll(self) -> None:
        self.current_index = 0
        self.display_start_index = 0

    def move_cursor(self, delta: int, num_rows: int) -> None:
        """Move the cursor by delta rows, clamped to the row count."""
        if num_rows <= 0:
            self.current_index = 0
            return
        self.current_index = max(0, min(num_rows - 1, self.current_index + delta))

    def clamp_cursor(self, num_rows: int) -> None:
        self.move_cursor(0, num_rows)
        self.display_start_index = min(self.display_start_index, self.current_index)
