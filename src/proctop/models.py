"""Data models for proctop."""

from dataclasses import dataclass, field, replace
from typing import Union


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of a process as harvested on one tick."""

    pid: int
    parent_pid: int | None
    name: str
    command: str
    cpu_percent: float  # 0.0 - 100.0 * core_count
    mem_percent: float
    mem_bytes: int
    read_bytes_per_sec: float
    write_bytes_per_sec: float
    total_read_bytes: int
    total_write_bytes: int
    user: str
    state: str  # psutil status string: 'running', 'sleeping', ...


@dataclass(slots=True)
class ProcessForestSnapshot:
    """
    Flat pid -> record map plus the parent/child adjacency index.

    Rebuilt wholesale every tick. The forest is assumed acyclic.
    """

    records: dict[int, ProcessRecord]
    children_of: dict[int, list[int]]
    orphan_pids: list[int]

    @classmethod
    def from_records(cls, records: list[ProcessRecord]) -> "ProcessForestSnapshot":
        """Build the adjacency index and orphan list from a flat record list."""
        by_pid = {record.pid: record for record in records}
        children_of: dict[int, list[int]] = {}
        orphan_pids: list[int] = []

        for record in by_pid.values():
            parent = record.parent_pid
            if parent is None or parent == record.pid or parent not in by_pid:
                orphan_pids.append(record.pid)
            else:
                children_of.setdefault(parent, []).append(record.pid)

        return cls(records=by_pid, children_of=children_of, orphan_pids=orphan_pids)


@dataclass(slots=True)
class DisplayRow:
    """One row of the process table, recomputed every refresh."""

    pid: int
    id: str  # name or command, depending on the active column
    cpu_percent: float = 0.0
    mem_percent: float = 0.0
    mem_bytes: int = 0
    read_bytes_per_sec: float = 0.0
    write_bytes_per_sec: float = 0.0
    total_read_bytes: int = 0
    total_write_bytes: int = 0
    user: str = ""
    state: str = ""
    prefix: str | None = None
    disabled: bool = False
    num_similar: int = 1

    @classmethod
    def from_record(cls, record: ProcessRecord, is_command: bool) -> "DisplayRow":
        return cls(
            pid=record.pid,
            id=record.command if is_command else record.name,
            cpu_percent=record.cpu_percent,
            mem_percent=record.mem_percent,
            mem_bytes=record.mem_bytes,
            read_bytes_per_sec=record.read_bytes_per_sec,
            write_bytes_per_sec=record.write_bytes_per_sec,
            total_read_bytes=record.total_read_bytes,
            total_write_bytes=record.total_write_bytes,
            user=record.user,
            state=record.state,
        )

    @property
    def label(self) -> str:
        """The id with its tree prefix, if any."""
        return f"{self.prefix}{self.id}" if self.prefix else self.id

    def add(self, other: "DisplayRow") -> None:
        """Add the numeric fields of another row onto this one."""
        self.cpu_percent += other.cpu_percent
        self.mem_percent += other.mem_percent
        self.mem_bytes += other.mem_bytes
        self.read_bytes_per_sec += other.read_bytes_per_sec
        self.write_bytes_per_sec += other.write_bytes_per_sec
        self.total_read_bytes += other.total_read_bytes
        self.total_write_bytes += other.total_write_bytes

    def copy(self) -> "DisplayRow":
        return replace(self)


@dataclass(slots=True, frozen=True)
class NormalMode:
    """Flat list, one row per process."""


@dataclass(slots=True, frozen=True)
class GroupedMode:
    """One row per distinct name (or command)."""


@dataclass(slots=True)
class TreeMode:
    """Process forest; collapsed_pids holds the user-collapsed subtree roots."""

    collapsed_pids: set[int] = field(default_factory=set)


ViewMode = Union[NormalMode, GroupedMode, TreeMode]
