"""Synthetic hospital workflow source that appends random case events to a JSONL file."""

import logging
import random
import signal
import threading
from pathlib import Path
from typing import TextIO

from hm_pipeline.core.config import get_settings
from hm_pipeline.core.logging import configure_logging
from hm_pipeline.core.serialization import event_to_dict, serialize_event
from hm_pipeline.core.throughput import ThroughputCounter
from hm_pipeline.core.time_utils import epoch_ms
from hm_pipeline.core.types import Attribute, Event

DEPARTMENTS = ("Emergency", "Cardiology", "Neurology", "Oncology", "Pediatrics")
EMERGENCY_FLOW = ("ADMISSION", "TRIAGE", "DIAGNOSIS", "TREATMENT", "DISCHARGE")
PROCESS_VARIANTS = (
    ("ADMISSION", "DIAGNOSIS", "LAB_TEST", "TREATMENT", "DISCHARGE"),
    ("ADMISSION", "TRIAGE", "DIAGNOSIS", "DISCHARGE"),
    ("ADMISSION", "TRIAGE", "DIAGNOSIS", "TREATMENT", "TREATMENT", "DISCHARGE"),
)
_NEW_CASE_PROBABILITY = 0.4


class HospitalCaseGenerator:
    """Interleave random patient cases, advancing one case by one step per call."""

    def __init__(self, rng: random.Random, max_active_cases: int = 100) -> None:
        self.rng = rng
        self.max_active_cases = max(1, max_active_cases)
        self._steps: dict[str, list[str]] = {}
        self._departments: dict[str, str] = {}

    @property
    def active_cases(self) -> int:
        return len(self._steps)

    def _start_case(self) -> None:
        case_id = f"PAT-{self.rng.randint(1000, 9999)}"
        if case_id in self._steps:
            return
        department = self.rng.choice(DEPARTMENTS)
        variant = EMERGENCY_FLOW if department == "Emergency" else self.rng.choice(PROCESS_VARIANTS)
        self._steps[case_id] = list(variant)
        self._departments[case_id] = department

    def next_event(self) -> Event | None:
        """Return the next event, or None when no case produced one this step."""

        if self.active_cases < self.max_active_cases and self.rng.random() < _NEW_CASE_PROBABILITY:
            self._start_case()

        if not self._steps:
            return None

        case_id = self.rng.choice(sorted(self._steps))
        steps = self._steps[case_id]
        if not steps:
            del self._steps[case_id]
            del self._departments[case_id]
            return None

        activity = steps.pop(0)
        return Event(
            case_id=case_id,
            activity=activity,
            timestamp=str(epoch_ms()),
            attributes=(
                Attribute("department", self._departments[case_id]),
                Attribute("doctor", f"Dr.{chr(ord('A') + self.rng.randrange(26))}"),
                Attribute("severity", self.rng.randint(1, 5)),
            ),
        )


class EventWriter:
    """Simple JSONL writer for generated events."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._file: TextIO | None = None

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8")

    def write(self, event: Event) -> None:
        if self._file is None:
            raise RuntimeError("event writer is not open")
        self._file.write(serialize_event(event) + "\n")
        self._file.flush()

    def close(self) -> None:
        if self._file is None:
            return
        self._file.close()
        self._file = None


def _request_shutdown(shutdown_event: threading.Event, logger: logging.Logger, signal_name: str) -> None:
    if shutdown_event.is_set():
        return
    logger.info("generator_shutdown_signal", extra={"signal": signal_name})
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
    """Generate events until interrupted."""

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger = logging.getLogger(__name__)
    shutdown_event = threading.Event()

    events_per_second = max(1, settings.GENERATOR_EVENTS_PER_SECOND)
    tick_s = 1.0 / events_per_second
    generator = HospitalCaseGenerator(
        rng=random.Random(settings.GENERATOR_SEED),
        max_active_cases=settings.GENERATOR_MAX_ACTIVE_CASES,
    )

    writer = EventWriter(settings.GENERATOR_EVENT_PATH)
    try:
        writer.open()
    except OSError as exc:
        logger.error(
            "generator_event_path_error",
            extra={"path": settings.GENERATOR_EVENT_PATH, "error": str(exc)},
        )
        return 1

    _install_signal_handlers(shutdown_event, logger)
    logger.info(
        "generator_startup",
        extra={
            "event_path": settings.GENERATOR_EVENT_PATH,
            "events_per_second": events_per_second,
            "max_active_cases": generator.max_active_cases,
            "seed": settings.GENERATOR_SEED,
        },
    )

    throughput = ThroughputCounter()
    event_count = 0
    try:
        while not shutdown_event.is_set():
            event = generator.next_event()
            if event is not None:
                try:
                    writer.write(event)
                except OSError as exc:
                    logger.error(
                        "generator_event_write_failed",
                        extra={"path": str(writer.path), "error": str(exc)},
                    )
                else:
                    event_count += 1
                    emitted = throughput.tick()
                    if emitted is not None:
                        logger.info("generator_throughput", extra={"events_last_second": emitted})
                    logger.debug("generator_event", extra=event_to_dict(event))
            shutdown_event.wait(tick_s)
    finally:
        writer.close()

    logger.info("generator_shutdown", extra={"events_written": event_count})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
