"""
Process tree building for the Tree view.

Both phases walk the forest with explicit stacks, so arbitrarily deep process
chains never hit the interpreter's recursion limit.
"""

from proctop.columns import SortTable
from proctop.models import DisplayRow, ProcessForestSnapshot
from proctop.search import Predicate

BRANCH_END = "└"
BRANCH_VERTICAL = "│"
BRANCH_SPLIT = "├"
BRANCH_HORIZONTAL = "─"
COLLAPSED_MARKER = "+ "


def match_pids(
    snapshot: ProcessForestSnapshot, predicate: Predicate | None, is_using_command: bool
) -> dict[int, bool]:
    """Map every pid to whether its process matches the predicate itself."""
    if predicate is None:
        return {pid: True for pid in snapshot.records}
    return {
        pid: predicate(record, is_using_command) for pid, record in snapshot.records.items()
    }


def build_filtered_tree(
    snapshot: ProcessForestSnapshot, kept: dict[int, bool]
) -> dict[int, list[int]]:
    """
    Compute the filtered forest as a pid -> shown child pids mapping.

    A process is shown if it matches, or if any of its children is shown.
    Only shown pids appear as keys. Child pids missing from the snapshot
    count as hidden.
    """
    records = snapshot.records
    children_of = snapshot.children_of
    filtered_tree: dict[int, list[int]] = {}
    visited: dict[int, bool] = {}
    stack = [pid for pid in snapshot.orphan_pids if pid in records]

    while stack:
        pid = stack[-1]
        is_matching = kept.get(pid, False)
        children = [child for child in children_of.get(pid, ()) if child in records]

        if not children:
            if is_matching:
                filtered_tree[pid] = []
            visited[pid] = is_matching
            stack.pop()
            continue

        unvisited = [child for child in children if child not in visited]
        if unvisited:
            # Reversed so the first child is on top of the stack.
            stack.extend(reversed(unvisited))
            continue

        shown_children = [child for child in children if visited[child]]
        is_shown = is_matching or bool(shown_children)
        visited[pid] = is_shown
        if is_shown:
            filtered_tree[pid] = shown_children
        stack.pop()

    return filtered_tree


def _sum_subtree(
    row: DisplayRow,
    snapshot: ProcessForestSnapshot,
    filtered_tree: dict[int, list[int]],
    is_using_command: bool,
) -> DisplayRow:
    summed = row.copy()
    queue = list(filtered_tree.get(row.pid, ()))
    while queue:
        pid = queue.pop()
        record = snapshot.records.get(pid)
        if record is None:
            continue
        summed.add(DisplayRow.from_record(record, is_using_command))
        queue.extend(filtered_tree.get(pid, ()))
    return summed


def _rows_for(
    pids: list[int], snapshot: ProcessForestSnapshot, is_using_command: bool
) -> list[DisplayRow]:
    return [
        DisplayRow.from_record(snapshot.records[pid], is_using_command)
        for pid in pids
        if pid in snapshot.records
    ]


def flatten_tree(
    snapshot: ProcessForestSnapshot,
    filtered_tree: dict[int, list[int]],
    kept: dict[int, bool],
    collapsed_pids: set[int],
    table: SortTable,
    is_using_command: bool,
) -> list[DisplayRow]:
    """
    Flatten the filtered forest depth first into decorated rows.

    Siblings are ordered by the table's sort column. Collapsed pids become a
    single row summing their whole shown subtree, marked with "+ ". Rows that
    do not match themselves but are shown for a matching descendant are
    marked disabled.
    """
    rows: list[DisplayRow] = []
    prefixes: list[str] = []

    stack = _rows_for(
        [pid for pid in snapshot.orphan_pids if pid in filtered_tree],
        snapshot,
        is_using_command,
    )
    table.reverse_sort(stack)
    siblings_left = [len(stack)]

    while stack and siblings_left:
        row = stack.pop()
        siblings_left[-1] -= 1

        row.disabled = not kept.get(row.pid, False)
        is_last = siblings_left[-1] == 0
        if prefixes:
            branch = f"{''.join(prefixes)}{BRANCH_END if is_last else BRANCH_SPLIT}{BRANCH_HORIZONTAL} "
        else:
            branch = ""

        if row.pid in collapsed_pids:
            summed = _sum_subtree(row, snapshot, filtered_tree, is_using_command)
            summed.prefix = f"{branch}{COLLAPSED_MARKER}"
            rows.append(summed)
        else:
            row.prefix = branch
            rows.append(row)

            children_pids = filtered_tree.get(row.pid)
            if children_pids is not None:
                if not prefixes:
                    prefixes.append("")
                else:
                    prefixes.append("   " if is_last else f"{BRANCH_VERTICAL}  ")

                children = _rows_for(children_pids, snapshot, is_using_command)
                table.reverse_sort(children)
                siblings_left.append(len(children))
                stack.extend(children)

        while siblings_left and siblings_left[-1] == 0:
            siblings_left.pop()
            if prefixes:
                prefixes.pop()

    return rows


def build_tree_rows(
    snapshot: ProcessForestSnapshot,
    predicate: Predicate | None,
    collapsed_pids: set[int],
    table: SortTable,
    is_using_command: bool,
) -> list[DisplayRow]:
    """Filter the forest by the predicate, then flatten it into rows."""
    kept = match_pids(snapshot, predicate, is_using_command)
    filtered_tree = build_filtered_tree(snapshot, kept)
    return flatten_tree(snapshot, filtered_tree, kept, collapsed_pids, table, is_using_command)
