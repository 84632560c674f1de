"""Lifecycle management for the long-lived heuristics-miner child process."""

import contextlib
import logging
import queue
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import IO, Sequence

from hm_pipeline.miner.artifact import ArtifactProvisioner
from hm_pipeline.miner.errors import ProvisionError, StartError

logger = logging.getLogger(__name__)

DEFAULT_TERMINATE_GRACE_S = 2.0
_LINE_QUEUE_SIZE = 1024
_READER_JOIN_TIMEOUT_S = 1.0


@dataclass(slots=True)
class ProcessHandle:
    """A running miner process plus the endpoints used to talk to it.

    stdout is drained by a dedicated reader thread into ``lines``; ``None`` on the
    queue marks EOF. Readers must never touch ``stdout`` directly.
    """

    process: subprocess.Popen
    stdin: IO[str]
    stdout: IO[str]
    lines: "queue.Queue[str | None]" = field(default_factory=lambda: queue.Queue(maxsize=_LINE_QUEUE_SIZE))
    reader: threading.Thread | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.poll() is None


def _drain_stdout(stdout: IO[str], lines: "queue.Queue[str | None]") -> None:
    try:
        for line in stdout:
            lines.put(line)
    except (OSError, ValueError):
        # stdout was closed under us during teardown.
        pass
    finally:
        lines.put(None)


def _discard_pending(lines: "queue.Queue[str | None]") -> None:
    while True:
        try:
            lines.get_nowait()
        except queue.Empty:
            return


class ProcessSupervisor:
    """Start the miner when absent, detect its death and tear it down."""

    def __init__(self, provisioner: ArtifactProvisioner, launcher: Sequence[str]) -> None:
        if not launcher:
            raise ValueError("launcher command must not be empty")
        self.provisioner = provisioner
        self.launcher = tuple(launcher)
        self.spawn_count = 0
        self._handle: ProcessHandle | None = None

    @property
    def handle(self) -> ProcessHandle | None:
        return self._handle

    def command(self) -> list[str]:
        return [*self.launcher, str(self.provisioner.installed_path.absolute())]

    @staticmethod
    def is_alive(handle: ProcessHandle | None) -> bool:
        return handle is not None and handle.running

    def ensure_started(self) -> ProcessHandle:
        """Return the live handle, provisioning and spawning a fresh process if needed."""

        if self.is_alive(self._handle):
            return self._handle

        if self._handle is not None:
            logger.warning(
                "miner_process_dead",
                extra={"pid": self._handle.pid, "returncode": self._handle.process.returncode},
            )
            self.discard()

        logger.info("miner_jar_check", extra={"path": str(self.provisioner.installed_path)})
        try:
            self.provisioner.ensure_present()
        except ProvisionError as exc:
            raise StartError(f"failed to provision miner jar: {exc}") from exc

        command = self.command()
        logger.info("miner_process_starting", extra={"command": command})
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise StartError(f"failed to start miner process {command!r}: {exc}") from exc

        handle = ProcessHandle(process=process, stdin=process.stdin, stdout=process.stdout)
        handle.reader = threading.Thread(
            target=_drain_stdout,
            args=(handle.stdout, handle.lines),
            name=f"miner-stdout-{process.pid}",
            daemon=True,
        )
        handle.reader.start()

        self._handle = handle
        self.spawn_count += 1
        logger.info("miner_process_started", extra={"pid": process.pid})
        return handle

    def discard(self) -> None:
        """Close the streams of the current process and forget it without signalling."""

        handle = self._handle
        self._handle = None
        if handle is None:
            return
        self._close_streams(handle)

    def terminate(self, grace_s: float = DEFAULT_TERMINATE_GRACE_S) -> None:
        """Stop the current process: cooperative signal first, kill after ``grace_s``."""

        handle = self._handle
        self._handle = None
        if handle is None:
            return

        with contextlib.suppress(OSError, ValueError):
            handle.stdin.close()

        process = handle.process
        try:
            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=grace_s)
                except subprocess.TimeoutExpired:
                    logger.warning("miner_process_kill", extra={"pid": process.pid, "grace_s": grace_s})
                    process.kill()
                    process.wait()
        except OSError as exc:
            logger.error("miner_terminate_failed", extra={"pid": process.pid, "error": str(exc)})
        finally:
            self._close_streams(handle)

        logger.info("miner_process_terminated", extra={"pid": process.pid, "returncode": process.returncode})

    @staticmethod
    def _close_streams(handle: ProcessHandle) -> None:
        with contextlib.suppress(OSError, ValueError):
            handle.stdin.close()
        # Closing stdout while the reader is blocked in it would block on the
        # buffer lock, so wait for EOF first when the process is gone.
        if handle.reader is not None and not handle.running:
            deadline = time.monotonic() + _READER_JOIN_TIMEOUT_S
            while handle.reader.is_alive() and time.monotonic() < deadline:
                _discard_pending(handle.lines)
                handle.reader.join(timeout=0.05)
        if handle.reader is None or not handle.reader.is_alive():
            with contextlib.suppress(OSError, ValueError):
                handle.stdout.close()
