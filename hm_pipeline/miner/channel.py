"""Line-oriented request/response framing over the miner's stdin/stdout.

One request is a single line. The miner answers with zero or more body lines,
a blank line, and a status line that is ``true`` or ``false``.
"""

import queue
import time
from dataclasses import dataclass

from hm_pipeline.miner.errors import ChannelClosed, ChannelError, ChannelTimeout
from hm_pipeline.miner.supervisor import ProcessHandle

DEFAULT_READ_TIMEOUT_S = 10.0


@dataclass(frozen=True, slots=True)
class MiningResponse:
    """Raw miner answer: body lines and the trailing status line (None at EOF)."""

    body: tuple[str, ...]
    status_line: str | None

    @property
    def success(self) -> bool:
        return self.status_line is not None and self.status_line.lower() == "true"

    @property
    def content(self) -> str:
        return "\n".join(self.body).strip()

    @property
    def usable(self) -> bool:
        return self.success and bool(self.content)


class ProtocolChannel:
    """Send one request line and collect the framed response before a deadline."""

    def __init__(self, read_timeout_s: float = DEFAULT_READ_TIMEOUT_S) -> None:
        self.read_timeout_s = read_timeout_s

    def exchange(self, handle: ProcessHandle, request: str, timeout_s: float | None = None) -> MiningResponse:
        if "\n" in request or "\r" in request:
            raise ChannelError("request must be a single line")

        self._write_line(handle, request)

        deadline = time.monotonic() + (self.read_timeout_s if timeout_s is None else timeout_s)
        body: list[str] = []
        while True:
            line = self._next_line(handle, deadline)
            if line is None:
                raise ChannelClosed(f"miner output closed after {len(body)} body lines")
            if not line.strip():
                break
            body.append(line)

        status_line = self._next_line(handle, deadline)
        return MiningResponse(body=tuple(body), status_line=status_line)

    @staticmethod
    def _write_line(handle: ProcessHandle, request: str) -> None:
        try:
            handle.stdin.write(request + "\n")
            handle.stdin.flush()
        except (OSError, ValueError) as exc:
            raise ChannelClosed(f"failed to write request to miner: {exc}") from exc

    @staticmethod
    def _next_line(handle: ProcessHandle, deadline: float) -> str | None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ChannelTimeout("timed out waiting for miner output")
        try:
            line = handle.lines.get(timeout=remaining)
        except queue.Empty as exc:
            raise ChannelTimeout("timed out waiting for miner output") from exc

        if line is None:
            # Keep the EOF marker visible to any later read on this handle.
            handle.lines.put_nowait(None)
            return None
        return line.rstrip("\r\n")
