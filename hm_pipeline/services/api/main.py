"""FastAPI service exposing health, version and the most recently mined Petri net."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException

from hm_pipeline.core.config import get_settings
from hm_pipeline.core.dot import render_dot
from hm_pipeline.core.logging import configure_logging
from hm_pipeline.core.serialization import SerializationError, deserialize_petri_net, petri_net_to_dict
from hm_pipeline.core.types import PetriNet

settings = get_settings()
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

_TAIL_CHUNK_BYTES = 64 * 1024


def read_latest_petri_net(path: Path) -> PetriNet | None:
    """Return the last decodable Petri net in a JSONL file, or None."""

    if not path.is_file():
        return None

    with path.open("rb") as file_obj:
        size = file_obj.seek(0, 2)
        start = max(0, size - _TAIL_CHUNK_BYTES)
        file_obj.seek(start)
        chunk = file_obj.read()

    lines = chunk.decode("utf-8", errors="replace").splitlines()
    if start > 0 and lines:
        # The first line may be cut in half by the seek.
        lines = lines[1:]

    for line in reversed(lines):
        if not line.strip():
            continue
        try:
            return deserialize_petri_net(line)
        except SerializationError:
            logger.warning("api_petri_net_invalid", extra={"path": str(path)})
    return None


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Log startup metadata for operational visibility."""

    logger.info(
        "api_startup",
        extra={
            "service": "api",
            "env": settings.ENV,
            "version": settings.VERSION,
            "petri_net_path": settings.API_PETRI_NET_PATH,
        },
    )
    yield


app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)


@app.get("/health")
def health() -> dict[str, str]:
    """Return process liveness status."""

    return {"status": "ok"}


@app.get("/version")
def version() -> dict[str, str]:
    """Return application metadata from shared settings."""

    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "env": settings.ENV,
    }


@app.get("/petri-net/latest")
def latest_petri_net() -> dict[str, Any]:
    """Return the latest mined Petri net together with its DOT rendering."""

    path = Path(settings.API_PETRI_NET_PATH)
    try:
        net = read_latest_petri_net(path)
    except OSError as exc:
        logger.error("api_petri_net_read_failed", extra={"path": str(path), "error": str(exc)})
        raise HTTPException(status_code=503, detail="petri net store unavailable") from exc

    if net is None:
        raise HTTPException(status_code=404, detail="no petri net mined yet")

    return {
        "petri_net": petri_net_to_dict(net),
        "dot": render_dot(net),
    }


def run() -> int:
    """Serve the API with uvicorn, keeping the JSON log format for access logs."""

    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
