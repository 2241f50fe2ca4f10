"""Append-only file that records write commands for replay."""

from __future__ import annotations

import os
import threading
from pathlib import Path

from respkv.resp import RespReader, Value


class Aof:
    """An append-only log of RESP values, synced to disk periodically."""

    def __init__(self, path: str | os.PathLike[str], sync_interval: float = 1.0) -> None:
        self._file = open(Path(path), "a+b")
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._syncer = threading.Thread(
            target=self._sync_loop, args=(sync_interval,), daemon=True
        )
        self._syncer.start()

    def _sync_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self.sync()

    def sync(self) -> None:
        """Flush buffered data and force it to disk."""
        with self._lock:
            if self._file.closed:
                return
            self._file.flush()
            os.fsync(self._file.fileno())

    def close(self) -> None:
        """Stop background syncing and close the file."""
        self._stop.set()
        with self._lock:
            self._file.close()

    def write(self, value: Value) -> None:
        """Append a value to the log."""
        with self._lock:
            self._file.write(value.marshal())
            self._file.flush()

    def read(self) -> list[Value]:
        """Return every complete value stored in the log, oldest first."""
        with self._lock:
            self._file.seek(0)
            reader = RespReader(self._file)
            values = []
            while True:
                try:
                    values.append(reader.read())
                except EOFError:
                    return values

    def __enter__(self) -> Aof:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()