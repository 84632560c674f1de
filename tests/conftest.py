"""Shared fixtures: the miner stand-in provisioned and launched with the current interpreter."""

from pathlib import Path
from typing import Iterator

import pytest

from helpers import FAKE_MINER, LAUNCHER
from hm_pipeline.miner.artifact import ArtifactDescriptor, ArtifactProvisioner
from hm_pipeline.miner.channel import ProtocolChannel
from hm_pipeline.miner.service import MiningService
from hm_pipeline.miner.supervisor import ProcessSupervisor


@pytest.fixture
def miner_source(tmp_path: Path) -> Path:
    source = tmp_path / "bundle" / "fake_miner.py"
    source.parent.mkdir()
    source.write_text(FAKE_MINER, encoding="utf-8")
    return source


@pytest.fixture
def provisioner(tmp_path: Path, miner_source: Path) -> ArtifactProvisioner:
    return ArtifactProvisioner(
        ArtifactDescriptor(source_path=miner_source, install_dir=tmp_path / "install", file_name="miner.py")
    )


@pytest.fixture
def supervisor(provisioner: ArtifactProvisioner) -> Iterator[ProcessSupervisor]:
    supervisor = ProcessSupervisor(provisioner, launcher=LAUNCHER)
    yield supervisor
    supervisor.terminate(grace_s=0.5)


@pytest.fixture
def service(supervisor: ProcessSupervisor) -> Iterator[MiningService]:
    service = MiningService(supervisor, ProtocolChannel(read_timeout_s=5.0), terminate_grace_s=0.5)
    yield service
    service.terminate()
