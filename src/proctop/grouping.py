"""Flat process rows: Normal mode and the Grouped aggregator."""

from collections.abc import Iterable

from proctop.models import DisplayRow, ProcessRecord
from proctop.search import Predicate


def _filtered(
    records: Iterable[ProcessRecord], predicate: Predicate | None, is_using_command: bool
) -> Iterable[ProcessRecord]:
    if predicate is None:
        return records
    return (record for record in records if predicate(record, is_using_command))


def normal_rows(
    records: Iterable[ProcessRecord], predicate: Predicate | None, is_using_command: bool
) -> list[DisplayRow]:
    """One row per matching process, unsorted."""
    return [
        DisplayRow.from_record(record, is_using_command)
        for record in _filtered(records, predicate, is_using_command)
    ]


def group_records(
    records: Iterable[ProcessRecord], predicate: Predicate | None, is_using_command: bool
) -> tuple[list[DisplayRow], dict[str, list[int]]]:
    """
    Collapse matching processes that share a name (or command) into one row each.

    Each group row carries the summed numeric fields of its members and the
    member count in ``num_similar``; its pid is the first member's. Groups come
    out in the order their first member was seen.

    Returns:
        The group rows, and the member pids of every group keyed by name or command.
    """
    id_pid_map: dict[str, list[int]] = {}
    grouped: dict[str, DisplayRow] = {}

    for record in _filtered(records, predicate, is_using_command):
        row = DisplayRow.from_record(record, is_using_command)
        id_pid_map.setdefault(row.id, []).append(record.pid)

        group = grouped.get(row.id)
        if group is None:
            grouped[row.id] = row
        else:
            group.add(row)

    rows = list(grouped.values())
    for row in rows:
        row.num_similar = len(id_pid_map[row.id])
    return rows, id_pid_map
