"""Install a verified copy of the heuristics-miner jar at a well-known path."""

import contextlib
import hashlib
import hmac
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from hm_pipeline.miner.errors import ArtifactSourceMissing, ProvisionIOError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_INSTALLED_MODE = 0o555


def sha256_file(path: Path) -> bytes:
    """Return the SHA-256 digest of a file, read in chunks."""

    digest = hashlib.sha256()
    with path.open("rb") as file_obj:
        for chunk in iter(lambda: file_obj.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.digest()


@dataclass(slots=True)
class ArtifactDescriptor:
    """Where the trusted jar comes from and where it is installed."""

    source_path: Path
    install_dir: Path
    file_name: str = "heuristics-miner.jar"
    _expected_digest: bytes | None = field(default=None, init=False, repr=False)
    _source_stamp: tuple[int, int] | None = field(default=None, init=False, repr=False)

    @property
    def installed_path(self) -> Path:
        return self.install_dir / self.file_name

    @property
    def expected_digest(self) -> bytes:
        """Digest of the source copy, recomputed when its mtime or size changes."""

        stat = self.source_path.stat()
        stamp = (stat.st_mtime_ns, stat.st_size)
        if self._expected_digest is None or stamp != self._source_stamp:
            self._expected_digest = sha256_file(self.source_path)
            self._source_stamp = stamp
        return self._expected_digest


class ArtifactProvisioner:
    """Keep ``installed_path`` byte-identical to the trusted source copy.

    The on-disk copy is never trusted by itself: it is hashed on every call and
    replaced atomically (temp file + rename) when it differs, so concurrent
    readers see either the old jar or the complete new one.
    """

    def __init__(self, descriptor: ArtifactDescriptor) -> None:
        self.descriptor = descriptor
        self.write_count = 0

    @property
    def installed_path(self) -> Path:
        return self.descriptor.installed_path

    def ensure_present(self) -> bool:
        """Install the jar if needed; return True when a new copy was written."""

        descriptor = self.descriptor
        try:
            descriptor.install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ProvisionIOError(f"cannot create jar directory {descriptor.install_dir}: {exc}") from exc

        if not descriptor.source_path.is_file():
            raise ArtifactSourceMissing(f"miner jar not found: {descriptor.source_path}")

        try:
            expected = descriptor.expected_digest
        except OSError as exc:
            raise ProvisionIOError(f"cannot read miner jar {descriptor.source_path}: {exc}") from exc

        target = descriptor.installed_path
        if target.is_file():
            try:
                if hmac.compare_digest(sha256_file(target), expected):
                    return False
            except OSError as exc:
                logger.warning("miner_jar_unreadable", extra={"path": str(target), "error": str(exc)})

        self._replace(target)
        self.write_count += 1
        logger.info("miner_jar_refreshed", extra={"path": str(target)})
        return True

    def _replace(self, target: Path) -> None:
        descriptor = self.descriptor
        try:
            fd, tmp_name = tempfile.mkstemp(dir=descriptor.install_dir, prefix="hm-", suffix=".jar")
        except OSError as exc:
            raise ProvisionIOError(f"cannot create temp file in {descriptor.install_dir}: {exc}") from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as dst, descriptor.source_path.open("rb") as src:
                shutil.copyfileobj(src, dst, _CHUNK_SIZE)
                dst.flush()
                os.fsync(dst.fileno())
            with contextlib.suppress(OSError, NotImplementedError):
                os.chmod(tmp_path, _INSTALLED_MODE)
            os.replace(tmp_path, target)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise ProvisionIOError(f"cannot install miner jar at {target}: {exc}") from exc
