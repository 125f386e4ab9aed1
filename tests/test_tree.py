"""Tests for process tree building."""

import random

import pytest

from proctop.columns import ProcColumn, SortColumn, SortOrder, SortTable
from proctop.models import ProcessForestSnapshot
from proctop.query import parse_query
from proctop.tree import build_filtered_tree, build_tree_rows, match_pids


def sort_table(column=ProcColumn.PID, order=SortOrder.ASCENDING):
    return SortTable([SortColumn(column)], sort_index=0, order=order)


def name_in(*names):
    return lambda record, is_using_command: record.name in names


def bash_query():
    return parse_query("bash", False, True, False).check


class TestScenarios:
    """The initd/sshd/bash example."""

    def test_search_keeps_matching_ancestor_disabled(self, init_snapshot):
        """Test only bash and its ancestor are shown, the ancestor disabled."""
        rows = build_tree_rows(init_snapshot, bash_query(), set(), sort_table(), False)

        assert [(r.id, r.disabled) for r in rows] == [("initd", True), ("bash", False)]
        assert [r.prefix for r in rows] == ["", "└─ "]

    def test_collapsed_root_sums_shown_subtree(self, init_snapshot):
        """Test collapsing initd gives one row summing initd and bash, not sshd."""
        rows = build_tree_rows(init_snapshot, bash_query(), {1}, sort_table(), False)

        assert len(rows) == 1
        (row,) = rows
        assert row.pid == 1
        assert row.prefix == "+ "
        assert row.label == "+ initd"
        assert row.disabled
        assert row.cpu_percent == 5.0
        assert row.mem_bytes == 500
        assert row.total_read_bytes == 50

    def test_no_search_shows_everything_enabled(self, init_snapshot):
        """Test a blank search shows every process and disables none."""
        rows = build_tree_rows(init_snapshot, None, set(), sort_table(), False)

        assert [r.pid for r in rows] == [1, 2, 3]
        assert not any(r.disabled for r in rows)
        assert [r.prefix for r in rows] == ["", "├─ ", "└─ "]

    def test_stale_collapsed_pid_is_ignored(self, init_snapshot):
        """Test a collapsed pid that no longer exists changes nothing."""
        rows = build_tree_rows(init_snapshot, None, {999}, sort_table(), False)

        assert [r.pid for r in rows] == [1, 2, 3]


class TestPrefixes:
    """Tests for branch glyphs."""

    @pytest.fixture
    def snapshot(self, make_record):
        #  1 init
        #  ├─ 2 a
        #  │  └─ 4 c
        #  └─ 3 b
        return ProcessForestSnapshot.from_records(
            [
                make_record(1, "init"),
                make_record(2, "a", 1, cpu_percent=1.0),
                make_record(3, "b", 1, cpu_percent=2.0),
                make_record(4, "c", 2, cpu_percent=4.0),
            ]
        )

    def test_nested_prefixes(self, snapshot):
        """Test vertical continuation under a non-last sibling."""
        rows = build_tree_rows(snapshot, None, set(), sort_table(), False)

        assert [(r.pid, r.prefix) for r in rows] == [
            (1, ""),
            (2, "├─ "),
            (4, "│  └─ "),
            (3, "└─ "),
        ]

    def test_collapsed_child_marker(self, snapshot):
        """Test a collapsed inner node keeps its branch and adds the marker."""
        rows = build_tree_rows(snapshot, None, {2}, sort_table(), False)

        assert [(r.pid, r.prefix) for r in rows] == [(1, ""), (2, "├─ + "), (3, "└─ ")]
        assert rows[1].cpu_percent == 5.0

    def test_siblings_follow_sort_order(self, snapshot):
        """Test siblings come out in the table's sort order."""
        rows = build_tree_rows(
            snapshot, None, set(), sort_table(ProcColumn.CPU_PERCENT, SortOrder.DESCENDING), False
        )

        assert [r.pid for r in rows] == [1, 3, 2, 4]
        assert [r.prefix for r in rows] == ["", "├─ ", "└─ ", "   └─ "]

    def test_roots_follow_sort_order(self, make_record):
        """Test orphan roots are ordered like any other sibling level."""
        snapshot = ProcessForestSnapshot.from_records(
            [make_record(5, "x"), make_record(2, "y"), make_record(9, "z")]
        )

        rows = build_tree_rows(snapshot, None, set(), sort_table(), False)

        assert [r.pid for r in rows] == [2, 5, 9]
        assert all(r.prefix == "" for r in rows)


class TestFilteredTree:
    """Tests for the inclusion phase."""

    def test_missing_child_pid_is_hidden(self, make_record):
        """Test an adjacency entry without a record is skipped, not fatal."""
        snapshot = ProcessForestSnapshot(
            records={1: make_record(1, "init"), 2: make_record(2, "bash", 1)},
            children_of={1: [2, 77]},
            orphan_pids=[1, 55],
        )
        kept = match_pids(snapshot, name_in("bash"), False)

        assert build_filtered_tree(snapshot, kept) == {1: [2], 2: []}

    def test_nothing_matches(self, init_snapshot):
        """Test no rows when nothing matches."""
        rows = build_tree_rows(init_snapshot, name_in("nope"), set(), sort_table(), False)

        assert rows == []

    def test_deep_chain_does_not_recurse(self, make_record):
        """Test a chain far deeper than the recursion limit is handled."""
        depth = 3000
        snapshot = ProcessForestSnapshot.from_records(
            [make_record(1, "p")]
            + [make_record(pid, "p", pid - 1, cpu_percent=1.0) for pid in range(2, depth + 1)]
        )

        rows = build_tree_rows(snapshot, None, set(), sort_table(), False)

        assert len(rows) == depth
        assert rows[-1].pid == depth
        assert rows[-1].prefix.endswith("└─ ")

    def test_deep_collapsed_chain_sums_iteratively(self, make_record):
        """Test collapsing the root of a very deep chain sums it without recursion."""
        depth = 100_000
        snapshot = ProcessForestSnapshot.from_records(
            [make_record(1, "p", cpu_percent=1.0)]
            + [make_record(pid, "p", pid - 1, cpu_percent=1.0) for pid in range(2, depth + 1)]
        )

        rows = build_tree_rows(snapshot, None, {1}, sort_table(), False)

        assert len(rows) == 1
        assert rows[0].cpu_percent == depth


def random_forest(rng, make_record, size):
    records = []
    for pid in range(1, size + 1):
        parent = rng.randint(1, pid - 1) if pid > 1 and rng.random() < 0.85 else None
        records.append(
            make_record(pid, rng.choice(["a", "b", "c", "d"]), parent, cpu_percent=float(pid))
        )
    return ProcessForestSnapshot.from_records(records)


def included_pids(snapshot, predicate):
    """Brute force: a pid is included if it or any descendant matches."""
    included = set()
    for pid, record in snapshot.records.items():
        if predicate(record, False):
            current = pid
            while current is not None and current not in included:
                included.add(current)
                current = snapshot.records[current].parent_pid
                if current not in snapshot.records:
                    current = None
    return included


@pytest.mark.parametrize("seed", range(20))
def test_ancestor_inclusion_property(seed, make_record):
    """Test rows are exactly the matches plus their ancestors, non-matches disabled."""
    rng = random.Random(seed)
    snapshot = random_forest(rng, make_record, 60)
    predicate = name_in("a")

    rows = build_tree_rows(snapshot, predicate, set(), sort_table(), False)

    expected = included_pids(snapshot, predicate)
    assert sorted(r.pid for r in rows) == sorted(expected)
    for row in rows:
        assert row.disabled == (snapshot.records[row.pid].name != "a")


@pytest.mark.parametrize("seed", range(10))
def test_collapse_row_conservation_property(seed, make_record):
    """Test row counts and sums when random shown nodes are collapsed."""
    rng = random.Random(seed)
    snapshot = random_forest(rng, make_record, 60)
    predicate = name_in("a", "b")
    kept = match_pids(snapshot, predicate, False)
    filtered = build_filtered_tree(snapshot, kept)
    collapsed = set(rng.sample(sorted(filtered), min(4, len(filtered))))

    rows = build_tree_rows(snapshot, predicate, collapsed, sort_table(), False)

    def subtree(pid):
        found, stack = [], [pid]
        while stack:
            current = stack.pop()
            found.append(current)
            stack.extend(filtered[current])
        return found

    hidden = set()
    for pid in collapsed:
        if pid not in hidden:
            hidden.update(subtree(pid)[1:])
    assert len(rows) == len(filtered) - len(hidden)

    for row in rows:
        if row.pid in collapsed:
            assert row.prefix.endswith("+ ")
            assert row.cpu_percent == sum(float(p) for p in subtree(row.pid))
