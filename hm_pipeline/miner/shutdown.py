"""Exactly-once teardown of a mining service on host shutdown."""

import atexit
import logging
import threading

from hm_pipeline.miner.service import MiningService

logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    """Run ``service.terminate()`` once, whichever exit path gets there first.

    Hosts either use it as a context manager around their main loop or call
    :meth:`register` to cover interpreter exit as well.
    """

    def __init__(self, service: MiningService) -> None:
        self.service = service
        self._lock = threading.Lock()
        self._done = False
        self._registered = False

    @property
    def done(self) -> bool:
        return self._done

    def register(self) -> None:
        with self._lock:
            if self._registered:
                return
            atexit.register(self.run)
            self._registered = True

    def unregister(self) -> None:
        with self._lock:
            if not self._registered:
                return
            atexit.unregister(self.run)
            self._registered = False

    def run(self) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
        logger.info("miner_shutdown")
        self.service.terminate()

    def __enter__(self) -> "ShutdownCoordinator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.run()
        self.unregister()
