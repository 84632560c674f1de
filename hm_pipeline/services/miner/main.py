"""Mining stage: tails events, filters by department and appends mined Petri nets."""

import logging
import signal
import threading
from pathlib import Path
from typing import TextIO

from hm_pipeline.core.config import get_settings
from hm_pipeline.core.logging import configure_logging
from hm_pipeline.core.serialization import SerializationError, deserialize_event, serialize_petri_net
from hm_pipeline.core.throughput import ThroughputCounter
from hm_pipeline.core.types import Event, PetriNet
from hm_pipeline.miner.errors import StartError
from hm_pipeline.miner.service import MiningService
from hm_pipeline.miner.shutdown import ShutdownCoordinator

_POLL_SLEEP_S = 0.5
_WAIT_LOG_POLL_INTERVAL = 20


class DepartmentFilter:
    """Forward only events whose ``department`` attribute is in the allowed set."""

    def __init__(self, departments: tuple[str, ...], throughput: ThroughputCounter | None = None) -> None:
        self.departments = frozenset(department.lower() for department in departments)
        self.throughput = throughput or ThroughputCounter()
        self._logger = logging.getLogger(__name__)

    def process(self, event: Event) -> Event | None:
        received = self.throughput.tick()
        if received is not None:
            self._logger.info("department_filter_throughput", extra={"events_last_second": received})

        if not self.departments:
            return event

        department = event.attribute("department")
        if department is None or str(department).lower() not in self.departments:
            return None
        return event


class PetriNetWriter:
    """Simple JSONL writer for published Petri nets."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._file: TextIO | None = None

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8")

    def write(self, net: PetriNet) -> None:
        if self._file is None:
            raise RuntimeError("petri net writer is not open")
        self._file.write(serialize_petri_net(net) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is None:
            return
        self._file.close()
        self._file = None


def _read_new_lines(path: Path, offset: int, logger: logging.Logger) -> tuple[int, list[str]]:
    size = path.stat().st_size
    if size < offset:
        logger.info(
            "miner_event_file_truncated",
            extra={"path": str(path), "previous_offset": offset, "size": size},
        )
        offset = 0

    with path.open("r", encoding="utf-8") as file_obj:
        file_obj.seek(offset)
        lines: list[str] = []
        while True:
            line = file_obj.readline()
            # A line without its newline is still being written; pick it up next poll.
            if not line or not line.endswith("\n"):
                break
            lines.append(line)
            offset = file_obj.tell()
        return offset, lines


def handle_line(
    raw_line: str,
    event_filter: DepartmentFilter,
    service: MiningService,
    writer: PetriNetWriter,
    logger: logging.Logger,
) -> bool:
    """Run one event line through filter, miner and sink; return True when a net was written."""

    line = raw_line.strip()
    if not line:
        return False

    try:
        event = deserialize_event(line)
    except SerializationError as exc:
        logger.warning("miner_event_invalid", extra={"error": str(exc)})
        return False

    if event_filter.process(event) is None:
        return False

    outcome = service.process(event)
    if not service.publish_condition(outcome) or outcome.result is None:
        logger.debug("miner_no_result", extra={"case_id": event.case_id, "reason": outcome.reason})
        return False

    try:
        writer.write(outcome.result)
    except OSError as exc:
        logger.error("miner_petri_net_write_failed", extra={"path": str(writer.path), "error": str(exc)})
        return False
    return True


def _request_shutdown(shutdown_event: threading.Event, logger: logging.Logger, signal_name: str) -> None:
    if shutdown_event.is_set():
        return
    logger.info("miner_shutdown_signal", extra={"signal": signal_name})
    shutdown_event.set()


def _install_signal_handlers(shutdown_event: threading.Event, logger: logging.Logger) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal_name = sig.name
        signal.signal(
            sig,
            lambda *_args, signal_name=signal_name: _request_shutdown(
                shutdown_event,
                logger,
                signal_name,
            ),
        )


def main() -> int:
    """Run the mining stage until interrupted."""

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger = logging.getLogger(__name__)
    shutdown_event = threading.Event()

    service = MiningService.from_settings(settings)
    coordinator = ShutdownCoordinator(service)
    coordinator.register()
    try:
        service.start()
    except StartError as exc:
        logger.error("miner_startup_failed", extra={"error": str(exc)})
        coordinator.run()
        return 1

    writer = PetriNetWriter(settings.MINER_PETRI_NET_PATH)
    try:
        writer.open()
    except OSError as exc:
        logger.error(
            "miner_petri_net_path_error",
            extra={"path": settings.MINER_PETRI_NET_PATH, "error": str(exc)},
        )
        coordinator.run()
        return 1

    _install_signal_handlers(shutdown_event, logger)
    event_filter = DepartmentFilter(settings.miner_departments())
    event_path = Path(settings.MINER_EVENT_PATH)
    logger.info(
        "miner_startup",
        extra={
            "event_path": settings.MINER_EVENT_PATH,
            "petri_net_path": settings.MINER_PETRI_NET_PATH,
            "departments": sorted(event_filter.departments),
            "jar_path": str(service.supervisor.provisioner.installed_path),
        },
    )

    file_offset = 0
    wait_polls = 0
    published = 0

    with coordinator:
        try:
            while not shutdown_event.is_set():
                if not event_path.exists():
                    wait_polls += 1
                    if wait_polls % _WAIT_LOG_POLL_INTERVAL == 0:
                        logger.info("miner_waiting_for_event_file", extra={"path": str(event_path)})
                    shutdown_event.wait(_POLL_SLEEP_S)
                    continue

                wait_polls = 0
                try:
                    file_offset, lines = _read_new_lines(path=event_path, offset=file_offset, logger=logger)
                except OSError as exc:
                    logger.warning(
                        "miner_event_read_failed",
                        extra={"path": str(event_path), "error": str(exc)},
                    )
                    shutdown_event.wait(_POLL_SLEEP_S)
                    continue

                if not lines:
                    shutdown_event.wait(_POLL_SLEEP_S)
                    continue

                for raw_line in lines:
                    if shutdown_event.is_set():
                        break
                    if handle_line(raw_line, event_filter, service, writer, logger):
                        published += 1
        finally:
            writer.close()

    logger.info("miner_shutdown_complete", extra={"petri_nets_written": published})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
