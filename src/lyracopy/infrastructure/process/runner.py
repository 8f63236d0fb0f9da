"""Streaming subprocess runner with cooperative cancellation."""

import codecs
import os
import queue
import re
import signal
import subprocess
import threading
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, FrozenSet

from lyracopy.domain.exceptions import (
    ProcessLaunchError,
    ProcessExitError,
    ProcessCancelledError,
)
from lyracopy.shared.logging import get_logger
from lyracopy.shared.types import LineCallback

logger = get_logger(__name__)

# rsync: "Partial transfer due to vanished source files"
RSYNC_PARTIAL_VANISHED = 24
DEFAULT_ACCEPTED_CODES: FrozenSet[int] = frozenset({0, RSYNC_PARTIAL_VANISHED})
DEFAULT_KILL_GRACE_SECONDS = 1.0

# Lines buffered between the reader thread and the consumer. When full the
# reader blocks, and the child in turn blocks on its own stdout pipe.
LINE_QUEUE_SIZE = 1024
READ_CHUNK_SIZE = 4096

# rsync rewrites its progress line in place with a bare carriage return
_LINE_BREAK = re.compile(r"\r\n|\r|\n")

_EOF = object()
_POSIX = os.name == "posix"


class ProcessRunner:
    """
    Launches one external tool at a time and streams its merged output.

    stdout and stderr are merged and read line by line on a reader thread;
    the caller consumes the lines on its own thread, either through
    :meth:`stream` (a lazy generator) or :meth:`run` (callback per line).

    :meth:`cancel` may be called from any thread. It sends SIGTERM to the
    child's process group and, if the child is still alive after the grace
    period, SIGKILL.
    """

    def __init__(
        self,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
        accepted_codes: Iterable[int] = DEFAULT_ACCEPTED_CODES,
        env: Optional[dict] = None,
    ):
        self._kill_grace_seconds = kill_grace_seconds
        self._accepted_codes = frozenset(accepted_codes)
        self._env = env
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._cancel_requested = threading.Event()
        self._signalled = False
        self._signalled_run = False
        self._kill_timer: Optional[threading.Timer] = None
        self.returncode: Optional[int] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    def run(
        self,
        executable: str,
        arguments: Sequence[str],
        on_line: Optional[LineCallback] = None,
        accepted_codes: Optional[Iterable[int]] = None,
    ) -> int:
        """
        Run a tool to completion, handing every output line to *on_line*.

        Args:
            executable: Program to launch
            arguments: Arguments passed verbatim (no shell)
            on_line: Called once per non-blank line, as soon as it is read
            accepted_codes: Exit statuses treated as success (default: 0 and 24)

        Returns:
            The exit status

        Raises:
            ProcessLaunchError: If the program cannot be started
            ProcessCancelledError: If the run was cancelled
            ProcessExitError: If the exit status is not accepted
        """
        for line in self.stream(executable, arguments, accepted_codes):
            if on_line is not None:
                on_line(line)
        return self.returncode

    def stream(
        self,
        executable: str,
        arguments: Sequence[str],
        accepted_codes: Optional[Iterable[int]] = None,
    ) -> Iterator[str]:
        """
        Launch a tool and lazily yield its output lines.

        The exit status is evaluated once the output is exhausted, so the
        errors documented on :meth:`run` are raised from the final
        iteration. Closing the generator early terminates the child.
        """
        accepted = self._accepted_codes if accepted_codes is None else frozenset(accepted_codes)
        name = Path(executable).name
        cmd = [str(executable), *[str(arg) for arg in arguments]]

        proc = self._launch(name, cmd)
        lines: queue.Queue = queue.Queue(maxsize=LINE_QUEUE_SIZE)
        reader = threading.Thread(
            target=self._pump,
            args=(proc.stdout, lines),
            name=f"{name}-reader-{proc.pid}",
            daemon=True,
        )
        reader.start()

        finished = False
        try:
            while True:
                item = lines.get()
                if item is _EOF:
                    break
                yield item
            finished = True
        finally:
            if not finished:
                # Consumer stopped early or raised: take the child down and
                # drain the queue so the reader thread can exit.
                self._send_signal(proc, signal.SIGKILL if _POSIX else None)
                while lines.get() is not _EOF:
                    pass
            returncode = proc.wait()
            reader.join()
            self._finish(proc, returncode)

        if self._signalled_run:
            logger.warning(f"{name} pid={proc.pid} cancelled, exit code {returncode}")
            raise ProcessCancelledError(name, returncode)
        if returncode not in accepted:
            logger.error(f"{name} pid={proc.pid} exited with code {returncode}")
            raise ProcessExitError(name, returncode)
        if returncode != 0:
            logger.warning(f"{name} pid={proc.pid} exited with accepted code {returncode}")
        else:
            logger.debug(f"{name} pid={proc.pid} exited cleanly")

    def cancel(self) -> None:
        """
        Request termination of the running process.

        A cancel issued while nothing runs makes the next launch fail with
        :class:`ProcessCancelledError` until :meth:`reset` is called.
        """
        with self._lock:
            self._cancel_requested.set()
            proc = self._process
            if proc is None or proc.poll() is not None:
                return
            self._signalled = True
            logger.info(f"Sending SIGTERM to pid={proc.pid}")
            self._send_signal(proc, signal.SIGTERM)
            self._kill_timer = threading.Timer(self._kill_grace_seconds, self._force_kill, args=(proc,))
            self._kill_timer.daemon = True
            self._kill_timer.start()

    stop = cancel

    def reset(self) -> None:
        """Forget an earlier cancel request."""
        with self._lock:
            self._cancel_requested.clear()

    def _launch(self, name: str, cmd: list) -> subprocess.Popen:
        with self._lock:
            if self._cancel_requested.is_set():
                raise ProcessCancelledError(name, -1)
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    bufsize=0,
                    env=self._env,
                    start_new_session=_POSIX,
                )
            except OSError as e:
                logger.error(f"Failed to start {name}: {e}")
                raise ProcessLaunchError(f"Failed to start {name}: {e}") from e
            self._process = proc
            self._signalled = False
            self.returncode = None
        logger.info(f"Started {name} pid={proc.pid}")
        logger.debug(f"Command: {cmd}")
        return proc

    def _finish(self, proc: subprocess.Popen, returncode: int) -> None:
        with self._lock:
            if self._kill_timer is not None:
                self._kill_timer.cancel()
                self._kill_timer = None
            self._signalled_run = self._signalled
            self._process = None
            self.returncode = returncode

    def _force_kill(self, proc: subprocess.Popen) -> None:
        if proc.poll() is None:
            logger.warning(
                f"pid={proc.pid} still running {self._kill_grace_seconds}s after SIGTERM, sending SIGKILL"
            )
            self._send_signal(proc, signal.SIGKILL if _POSIX else None)

    @staticmethod
    def _send_signal(proc: subprocess.Popen, sig) -> None:
        """Signal the child's whole process group (POSIX) or the child itself."""
        try:
            if _POSIX:
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            pass

    @staticmethod
    def _pump(stdout, lines: queue.Queue) -> None:
        """
        Split raw output into lines as soon as each terminator arrives.

        Both "\\n" and a bare "\\r" end a line. Bytes are decoded as UTF-8
        with replacement, incrementally so multi-byte characters may span
        reads.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        try:
            while True:
                chunk = stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                parts = _LINE_BREAK.split(pending + decoder.decode(chunk))
                pending = parts.pop()
                for line in parts:
                    if line.strip():
                        lines.put(line)
            pending += decoder.decode(b"", final=True)
            if pending.strip():
                lines.put(pending)
        except (OSError, ValueError) as e:
            logger.debug(f"Output pipe closed: {e}")
        finally:
            stdout.close()
            lines.put(_EOF)
