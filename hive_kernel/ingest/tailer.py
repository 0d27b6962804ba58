"""
Record Source Tailer — pull-based reader for a growing newline-delimited file.

Behavioral Contract:
- poll() returns only complete lines appended since the previous poll
- A trailing line without its newline is left unread until it is complete
- Truncation or rotation resets the read offset to the start of the new file
- A missing file is not an error; it simply has no records yet
"""

import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Union

from hive_kernel.ingest.normalizer import Normalizer
from hive_kernel.ingest.queue import EventQueue, QueueClosed

logger = logging.getLogger("hive_kernel.ingest.tailer")


def _split_complete_lines(data: bytes) -> List[str]:
    lines = []
    for raw in data.split(b"\n")[:-1]:
        line = raw.rstrip(b"\r").decode("utf-8", errors="replace")
        if line.strip():
            lines.append(line)
    return lines


class RecordTailer:
    """Tracks a byte offset into a record file."""

    def __init__(self, path: Union[str, Path], from_start: bool = True):
        self.path = Path(path)
        self._offset = 0
        self._inode: Optional[int] = None

        if not from_start:
            try:
                stat = self.path.stat()
                self._offset = stat.st_size
                self._inode = stat.st_ino
            except FileNotFoundError:
                pass

    @property
    def offset(self) -> int:
        return self._offset

    def poll(self) -> List[str]:
        """Read newly completed lines."""
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return []

        if self._inode is not None and stat.st_ino != self._inode:
            logger.info("Record source %s was rotated; reading from start", self.path)
            self._offset = 0
        elif stat.st_size < self._offset:
            logger.info("Record source %s was truncated; reading from start", self.path)
            self._offset = 0
        self._inode = stat.st_ino

        if stat.st_size == self._offset:
            return []

        with self.path.open("rb") as fh:
            fh.seek(self._offset)
            data = fh.read()

        end = data.rfind(b"\n")
        if end < 0:
            return []  # Only a partial record so far

        complete = data[: end + 1]
        self._offset += len(complete)
        return _split_complete_lines(complete)


class SourceProducer:
    """
    Background producer: polls a RecordTailer, normalizes each line and
    feeds the bounded event queue.
    """

    def __init__(
        self,
        tailer: RecordTailer,
        normalizer: Normalizer,
        queue: EventQueue,
        poll_interval: float = 0.1,
    ):
        self.tailer = tailer
        self.normalizer = normalizer
        self.queue = queue
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> int:
        """Read, normalize and enqueue whatever is new. Returns events enqueued."""
        try:
            lines = self.tailer.poll()
        except OSError as e:
            logger.warning("Failed to read record source %s: %s", self.tailer.path, e)
            return 0

        pushed = 0
        for line in lines:
            event = self.normalizer.normalize(line)
            if event is not None:
                self.queue.put(event)
                pushed += 1
        return pushed

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"hive-source-{os.path.basename(self.tailer.path)}", daemon=True
        )
        self._thread.start()
        logger.info("Started record source producer for %s", self.tailer.path)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Stopped record source producer for %s", self.tailer.path)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except QueueClosed:
                return
            self._stop.wait(self.poll_interval)
