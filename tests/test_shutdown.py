"""ShutdownCoordinator tests: exactly-once teardown across exit paths."""

import pytest

from hm_pipeline.miner import shutdown
from hm_pipeline.miner.service import MiningService
from hm_pipeline.miner.shutdown import ShutdownCoordinator
from hm_pipeline.miner.supervisor import ProcessSupervisor


class _RecordingService:
    def __init__(self) -> None:
        self.calls = 0

    def terminate(self) -> None:
        self.calls += 1


def test_run_terminates_only_once() -> None:
    """Repeated shutdown requests reach the service once."""

    service = _RecordingService()
    coordinator = ShutdownCoordinator(service)

    coordinator.run()
    coordinator.run()

    assert service.calls == 1
    assert coordinator.done


def test_register_installs_single_atexit_hook(monkeypatch: pytest.MonkeyPatch) -> None:
    """Registering twice installs one finalizer."""

    registered: list[object] = []
    monkeypatch.setattr(shutdown.atexit, "register", registered.append)
    monkeypatch.setattr(shutdown.atexit, "unregister", registered.remove)
    coordinator = ShutdownCoordinator(_RecordingService())

    coordinator.register()
    coordinator.register()
    assert len(registered) == 1

    coordinator.unregister()
    assert registered == []


def test_context_exit_and_atexit_do_not_double_terminate(monkeypatch: pytest.MonkeyPatch) -> None:
    """Structured shutdown followed by interpreter exit tears down once."""

    registered: list[object] = []
    monkeypatch.setattr(shutdown.atexit, "register", registered.append)
    monkeypatch.setattr(shutdown.atexit, "unregister", registered.remove)
    service = _RecordingService()
    coordinator = ShutdownCoordinator(service)
    coordinator.register()
    hook = registered[0]

    with coordinator:
        pass
    hook()

    assert service.calls == 1


def test_shutdown_stops_real_process(supervisor: ProcessSupervisor) -> None:
    """Shutting down twice leaves no process handle and raises nothing."""

    service = MiningService(supervisor, terminate_grace_s=0.5)
    service.start()
    handle = supervisor.handle
    coordinator = ShutdownCoordinator(service)

    coordinator.run()
    coordinator.run()

    assert supervisor.handle is None
    assert handle.process.returncode is not None
