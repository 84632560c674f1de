"""Single-flight mining operator: one event in, zero or one Petri net out."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from hm_pipeline.core.config import Settings
from hm_pipeline.core.serialization import deserialize_petri_net, serialize_event
from hm_pipeline.core.throughput import ThroughputCounter
from hm_pipeline.core.types import Event, PetriNet
from hm_pipeline.miner.artifact import ArtifactDescriptor, ArtifactProvisioner
from hm_pipeline.miner.channel import ProtocolChannel
from hm_pipeline.miner.errors import ChannelClosed, ChannelError, ChannelTimeout, StartError
from hm_pipeline.miner.supervisor import DEFAULT_TERMINATE_GRACE_S, ProcessSupervisor

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MiningOutcome:
    """Result of one ``process`` call; ``result`` is set only when ``success``."""

    result: PetriNet | None
    success: bool
    reason: str = "ok"

    @classmethod
    def mined(cls, net: PetriNet) -> "MiningOutcome":
        return cls(result=net, success=True)

    @classmethod
    def no_result(cls, reason: str) -> "MiningOutcome":
        return cls(result=None, success=False, reason=reason)


class MiningService:
    """Feed events to the external miner one at a time and decode its answers.

    Every exchange runs under one lock: the miner's pipes carry a single
    request/response pair at a time, so concurrent callers queue up. ``process``
    never raises; each failure becomes ``MiningOutcome(None, False, reason)``.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        channel: ProtocolChannel | None = None,
        serialize: Callable[[Event], str] = serialize_event,
        deserialize: Callable[[str], PetriNet] = deserialize_petri_net,
        terminate_grace_s: float = DEFAULT_TERMINATE_GRACE_S,
        throughput: ThroughputCounter | None = None,
    ) -> None:
        self.supervisor = supervisor
        self.channel = channel or ProtocolChannel()
        self._serialize = serialize
        self._deserialize = deserialize
        self.terminate_grace_s = terminate_grace_s
        self.throughput = throughput or ThroughputCounter()
        self._lock = threading.Lock()
        self._terminated = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "MiningService":
        descriptor = ArtifactDescriptor(
            source_path=settings.artifact_source(),
            install_dir=settings.jar_dir(),
            file_name=settings.HM_JAR_NAME,
        )
        supervisor = ProcessSupervisor(ArtifactProvisioner(descriptor), launcher=settings.miner_launcher())
        return cls(
            supervisor=supervisor,
            channel=ProtocolChannel(read_timeout_s=settings.HM_READ_TIMEOUT_S),
            terminate_grace_s=settings.HM_TERMINATE_GRACE_S,
        )

    @property
    def terminated(self) -> bool:
        return self._terminated

    def start(self) -> None:
        """Provision and launch the miner eagerly; raises StartError on failure."""

        with self._lock:
            if self._terminated:
                raise StartError("mining service already terminated")
            self.supervisor.ensure_started()

    def process(self, event: Event) -> MiningOutcome:
        with self._lock:
            if self._terminated:
                return MiningOutcome.no_result("terminated")

            processed = self.throughput.tick()
            if processed is not None:
                logger.info("miner_throughput", extra={"events_last_second": processed})

            try:
                handle = self.supervisor.ensure_started()
            except StartError as exc:
                logger.error("miner_start_failed", extra={"error": str(exc)})
                return MiningOutcome.no_result("start_failed")

            try:
                request = self._serialize(event)
            except Exception as exc:
                logger.warning("miner_event_unserializable", extra={"case_id": event.case_id, "error": str(exc)})
                return MiningOutcome.no_result("malformed_event")

            try:
                response = self.channel.exchange(handle, request)
            except ChannelTimeout:
                # Late output would desynchronize the framing, so recycle the process.
                logger.warning("miner_response_timeout", extra={"pid": handle.pid, "case_id": event.case_id})
                self.supervisor.terminate(self.terminate_grace_s)
                return MiningOutcome.no_result("timeout")
            except (ChannelError, OSError) as exc:
                logger.error(
                    "miner_exchange_failed",
                    extra={"pid": handle.pid, "case_id": event.case_id, "error": str(exc)},
                )
                if not self.supervisor.is_alive(handle):
                    self.supervisor.discard()
                elif isinstance(exc, ChannelClosed):
                    # Output is gone while the process lingers; framing cannot recover.
                    self.supervisor.terminate(self.terminate_grace_s)
                return MiningOutcome.no_result("io_error")

            if response.status_line is None:
                # Output closed after the body; the next exchange would hit EOF.
                logger.warning("miner_status_missing", extra={"pid": handle.pid, "case_id": event.case_id})
                if self.supervisor.is_alive(handle):
                    self.supervisor.terminate(self.terminate_grace_s)
                else:
                    self.supervisor.discard()
                return MiningOutcome.no_result("no_result")

            if not response.usable:
                return MiningOutcome.no_result("no_result")

            try:
                net = self._deserialize(response.content)
            except Exception as exc:
                logger.debug("miner_result_malformed", extra={"case_id": event.case_id, "error": str(exc)})
                return MiningOutcome.no_result("malformed_result")

            return MiningOutcome.mined(net)

    @staticmethod
    def publish_condition(outcome: MiningOutcome) -> bool:
        return outcome.success

    def terminate(self) -> None:
        """Stop the miner process; later calls are no-ops."""

        with self._lock:
            if self._terminated:
                return
            self._terminated = True
            self.supervisor.terminate(self.terminate_grace_s)
        logger.info("miner_service_terminated")

    def __enter__(self) -> "MiningService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.terminate()
