"""Environment-driven settings shared by the generator, miner and API services."""

import shlex
from functools import lru_cache
from pathlib import Path
from typing import Callable

from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_EVENT_PATH = "/app/data/events.jsonl"
_DEFAULT_PETRI_NET_PATH = "/app/data/petri_nets.jsonl"
_BUNDLED_ARTIFACT = Path(__file__).resolve().parent.parent / "resources" / "algorithms" / "heuristics-miner.jar"


class Settings(BaseSettings):
    """Simple application settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "HM Pipeline"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    HM_JAR_DIR: str = "/opt/heuristics-miner"
    HM_JAR_NAME: str = "heuristics-miner.jar"
    HM_ARTIFACT_SOURCE: str = ""
    HM_LAUNCHER: str = "java -XX:+ExitOnOutOfMemoryError -jar"
    HM_READ_TIMEOUT_S: float = 10.0
    HM_TERMINATE_GRACE_S: float = 2.0
    GENERATOR_EVENT_PATH: str = _DEFAULT_EVENT_PATH
    GENERATOR_EVENTS_PER_SECOND: int = 200
    GENERATOR_MAX_ACTIVE_CASES: int = 100
    GENERATOR_SEED: int | None = None
    MINER_EVENT_PATH: str = _DEFAULT_EVENT_PATH
    MINER_PETRI_NET_PATH: str = _DEFAULT_PETRI_NET_PATH
    MINER_DEPARTMENT: str = ""
    API_PETRI_NET_PATH: str = _DEFAULT_PETRI_NET_PATH

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def jar_dir(self) -> Path:
        """Return the directory the miner jar is provisioned into."""

        return Path(self.HM_JAR_DIR.strip() or "/opt/heuristics-miner")

    def artifact_source(self) -> Path:
        """Return the trusted jar copy, falling back to the one bundled with the package."""

        source = self.HM_ARTIFACT_SOURCE.strip()
        if source:
            return Path(source)
        return _BUNDLED_ARTIFACT

    def miner_launcher(self) -> tuple[str, ...]:
        """Return the command prefix that runs the jar; the jar path is appended to it."""

        return tuple(shlex.split(self.HM_LAUNCHER))

    def miner_departments(self) -> tuple[str, ...]:
        """Return normalized departments from MINER_DEPARTMENT; empty means no filtering."""

        return self._split_csv(self.MINER_DEPARTMENT, transform=str.lower)

    @staticmethod
    def _split_csv(value: str, transform: Callable[[str], str]) -> tuple[str, ...]:
        """Split comma-separated values while removing empty entries and duplicates."""

        items: list[str] = []
        seen: set[str] = set()

        for raw in value.split(","):
            item = transform(raw.strip())
            if not item or item in seen:
                continue
            seen.add(item)
            items.append(item)

        return tuple(items)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
