"""Shared fixtures for proctop tests."""

import pytest

from proctop.models import ProcessForestSnapshot, ProcessRecord


def record(pid: int, name: str, parent_pid: int | None = None, **fields) -> ProcessRecord:
    """Build a ProcessRecord with zeroed metrics unless given."""
    values = {
        "command": f"/usr/bin/{name}",
        "cpu_percent": 0.0,
        "mem_percent": 0.0,
        "mem_bytes": 0,
        "read_bytes_per_sec": 0.0,
        "write_bytes_per_sec": 0.0,
        "total_read_bytes": 0,
        "total_write_bytes": 0,
        "user": "root",
        "state": "sleeping",
    }
    values.update(fields)
    return ProcessRecord(pid=pid, parent_pid=parent_pid, name=name, **values)


@pytest.fixture
def make_record():
    """Factory fixture for ProcessRecord."""
    return record


@pytest.fixture
def init_snapshot() -> ProcessForestSnapshot:
    """initd (1) with children sshd (2) and bash (3)."""
    return ProcessForestSnapshot.from_records(
        [
            record(1, "initd", cpu_percent=1.0, mem_bytes=100, total_read_bytes=10),
            record(2, "sshd", 1, cpu_percent=2.0, mem_bytes=200, total_read_bytes=20),
            record(3, "bash", 1, cpu_percent=4.0, mem_bytes=400, total_read_bytes=40),
        ]
    )
