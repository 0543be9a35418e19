"""Agent extension pool."""
import logging
import threading
from typing import Dict, Iterable, List

from app.core.errors import ExtensionPoolExhaustedError

logger = logging.getLogger(__name__)


class AgentExtensionPool:
    """Fixed set of agent extensions, each leased to at most one call.

    Lease and release hold a lock so check-available-then-mark-busy is a
    single step even when called from worker threads.
    """

    def __init__(self, extensions: Iterable[str]):
        self._available: Dict[str, bool] = {extension: True for extension in extensions}
        if not self._available:
            raise ValueError("Extension pool needs at least one extension")
        self._lock = threading.Lock()
        logger.info(
            f"[EXTENSION POOL] Initialized with extensions: {list(self._available)}"
        )

    @property
    def size(self) -> int:
        return len(self._available)

    @property
    def extensions(self) -> List[str]:
        return list(self._available)

    def available_count(self) -> int:
        with self._lock:
            return sum(1 for available in self._available.values() if available)

    def is_available(self, extension: str) -> bool:
        with self._lock:
            return self._available.get(extension, False)

    def lease(self) -> str:
        """
        Lease the first free extension.

        Raises:
            ExtensionPoolExhaustedError: if every extension is leased
        """
        with self._lock:
            for extension, available in self._available.items():
                if available:
                    self._available[extension] = False
                    logger.debug(f"[EXTENSION POOL] Extension {extension} leased")
                    return extension
        raise ExtensionPoolExhaustedError(self.size)

    def release(self, extension: str) -> None:
        """Return an extension to the pool."""
        with self._lock:
            if extension not in self._available:
                raise KeyError(f"Unknown agent extension '{extension}'")
            if self._available[extension]:
                logger.warning(
                    f"[EXTENSION POOL] Extension {extension} released but was not leased"
                )
                return
            self._available[extension] = True
        logger.debug(f"[EXTENSION POOL] Extension {extension} released")

    def release_all(self) -> None:
        with self._lock:
            for extension in self._available:
                self._available[extension] = True
