"""Append-only JSONL event log for step lifecycle records."""

import json
import queue
import threading
from pathlib import Path
from typing import List, Optional

from lyracopy.domain.exceptions import EventLogReadError
from lyracopy.domain.models import LogRecord
from lyracopy.shared.logging import get_logger
from lyracopy.shared.types import PathLike

logger = get_logger(__name__)

_STOP = object()
DEFAULT_FLUSH_TIMEOUT = 5.0


class JsonlEventLog:
    """
    One JSON object per line, UTF-8, append-only.

    :meth:`append` only enqueues; a dedicated writer thread drains the queue
    and appends to the file, so records land on disk in call order and a
    slow disk never stalls the caller. Write failures are logged and the
    record dropped. A torn final line left by a crash is terminated before
    the next write so it cannot swallow the following record.
    """

    def __init__(self, path: PathLike):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self._writer = threading.Thread(
            target=self._writer_loop,
            name=f"event-log-writer:{self.path.name}",
            daemon=True,
        )
        self._writer.start()

    def append(self, record: LogRecord) -> None:
        """Queue *record* for writing. Never raises."""
        if self._closed:
            logger.warning(f"Event log {self.path} is closed, dropping {record.event} record for {record.step_id}")
            return
        self._queue.put(record)

    def flush(self, timeout: Optional[float] = DEFAULT_FLUSH_TIMEOUT) -> bool:
        """
        Wait until every record queued so far has been written.

        Returns:
            False if the writer did not catch up within *timeout*
        """
        if not self._writer.is_alive():
            return True
        marker = threading.Event()
        self._queue.put(marker)
        return marker.wait(timeout)

    def close(self, timeout: Optional[float] = DEFAULT_FLUSH_TIMEOUT) -> None:
        """Write out pending records and stop the writer thread."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._writer.join(timeout)

    def read_all(self) -> List[LogRecord]:
        """
        Read every well-formed record in file order.

        Pending appends are flushed first. Blank, undecodable or incomplete
        lines are skipped.

        Raises:
            EventLogReadError: If the file cannot be read
        """
        self.flush()
        try:
            content = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise EventLogReadError(f"Cannot read event log {self.path}: {e}") from e

        records: List[LogRecord] = []
        skipped = 0
        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                records.append(LogRecord.from_dict(json.loads(line)))
            except ValueError:
                # json.JSONDecodeError is a ValueError too
                skipped += 1
        if skipped:
            logger.debug(f"Skipped {skipped} malformed line(s) in {self.path}")
        return records

    def records_for_job(self, job_id: str) -> List[LogRecord]:
        """Records of one job, in file order."""
        return [record for record in self.read_all() if record.job_id == job_id]

    def _writer_loop(self) -> None:
        while True:
            item = self._queue.get()
            batch = [item]
            # Drain what is already queued so one open() covers a burst
            while True:
                try:
                    batch.append(self._queue.get_nowait())
                except queue.Empty:
                    break

            stop = False
            pending: List[LogRecord] = []
            for entry in batch:
                if entry is _STOP:
                    stop = True
                elif isinstance(entry, threading.Event):
                    self._write(pending)
                    pending = []
                    entry.set()
                else:
                    pending.append(entry)
            self._write(pending)
            if stop:
                return

    def _write(self, records: List[LogRecord]) -> None:
        if not records:
            return
        lines: List[bytes] = []
        for record in records:
            try:
                lines.append((record.to_json() + "\n").encode("utf-8"))
            except (TypeError, ValueError) as e:
                # UnicodeEncodeError (lone surrogates) is a ValueError
                logger.warning(f"Dropping unserializable log record for {record.step_id}: {e}")
        if not lines:
            return
        try:
            with open(self.path, "a+b") as fh:
                if fh.tell() > 0:
                    fh.seek(-1, 2)
                    if fh.read(1) != b"\n":
                        fh.write(b"\n")
                fh.write(b"".join(lines))
                fh.flush()
        except OSError as e:
            logger.warning(f"Failed to append {len(lines)} record(s) to {self.path}: {e}")
