"""Process harvesting for proctop."""

import logging
import threading
import time
from queue import Queue

import psutil

from proctop.models import ProcessForestSnapshot, ProcessRecord

logger = logging.getLogger(__name__)

_ATTRS = [
    "pid",
    "ppid",
    "name",
    "username",
    "status",
    "cpu_percent",
    "memory_percent",
    "memory_info",
    "io_counters",
    "cmdline",
]


class ProcessMonitor:
    """
    Process monitor that collects a process forest using psutil.

    Runs in a separate daemon thread and pushes snapshots to a thread-safe Queue.
    Handles AccessDenied and ZombieProcess errors gracefully.
    """

    def __init__(
        self,
        update_queue: Queue[ProcessForestSnapshot],
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the ProcessMonitor.

        Args:
            update_queue: Thread-safe queue to push snapshots to.
            poll_rate: How often to poll the system (in seconds). Default 2.0s.
        """
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        # pid -> (read_bytes, write_bytes) from the previous poll, for rates
        self._prev_io: dict[int, tuple[int, int]] = {}
        self._prev_time: float | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="ProcessMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect_snapshot())
            except Exception:
                # Keep the loop running; the next poll may succeed
                logger.exception("Process poll failed")

            self._stop_event.wait(timeout=self._poll_rate)

    def collect_snapshot(self) -> ProcessForestSnapshot:
        """Collect all running processes into a forest snapshot."""
        return ProcessForestSnapshot.from_records(self.collect_processes())

    def collect_processes(self) -> list[ProcessRecord]:
        """
        Collect records of all running processes.

        Read/write rates are computed against the previous call; the first
        call reports zero rates.
        """
        now = time.monotonic()
        elapsed = now - self._prev_time if self._prev_time is not None else 0.0
        records: list[ProcessRecord] = []
        current_io: dict[int, tuple[int, int]] = {}
        skipped = 0

        for proc in psutil.process_iter(attrs=_ATTRS):
            try:
                with proc.oneshot():
                    info = proc.info

                    cmdline = info.get("cmdline") or []
                    name = info.get("name") or ""
                    command = " ".join(cmdline) if cmdline else name

                    mem_info = info.get("memory_info")
                    io = info.get("io_counters")
                    total_read = io.read_bytes if io else 0
                    total_write = io.write_bytes if io else 0

                    pid = info.get("pid", 0)
                    read_rate = write_rate = 0.0
                    previous = self._prev_io.get(pid)
                    if previous is not None and elapsed > 0:
                        read_rate = max(0, total_read - previous[0]) / elapsed
                        write_rate = max(0, total_write - previous[1]) / elapsed
                    current_io[pid] = (total_read, total_write)

                    records.append(
                        ProcessRecord(
                            pid=pid,
                            parent_pid=info.get("ppid"),
                            name=name,
                            command=command,
                            cpu_percent=info.get("cpu_percent") or 0.0,
                            mem_percent=info.get("memory_percent") or 0.0,
                            mem_bytes=mem_info.rss if mem_info else 0,
                            read_bytes_per_sec=read_rate,
                            write_bytes_per_sec=write_rate,
                            total_read_bytes=total_read,
                            total_write_bytes=total_write,
                            user=info.get("username") or "",
                            state=info.get("status") or "?",
                        )
                    )

            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Process died mid-poll, or we may not look at it
                skipped += 1
                continue

        if skipped:
            logger.debug("Skipped %d processes during poll", skipped)
        self._prev_io = current_io
        self._prev_time = now
        return records
