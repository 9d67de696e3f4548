"""
One backend client per worker thread.

Clients are expensive to build and are not shared between workers, so the
registry hands each worker its own, created lazily on first use. Creation
happens under the lock, so two callers racing on the same key still build
exactly one client.
"""

import logging
import threading
from typing import Callable, Dict, Hashable, Optional

from lookup.client import SearchClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], SearchClient]


def current_worker() -> int:
    return threading.get_ident()


class ClientRegistry:
    def __init__(self, factory: ClientFactory, key_func: Callable[[], Hashable] = current_worker):
        self._factory = factory
        self._key_func = key_func
        self._clients: Dict[Hashable, SearchClient] = {}
        self._lock = threading.Lock()

    def get_or_create(self, worker_key: Optional[Hashable] = None) -> SearchClient:
        key = self._key_func() if worker_key is None else worker_key

        client = self._clients.get(key)
        if client is not None:
            return client

        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self._factory()
                self._clients[key] = client
                logger.debug("Created search client for worker %s (%d total)", key, len(self._clients))
        return client

    def __len__(self) -> int:
        return len(self._clients)

    def close(self) -> None:
        """Close every cached client. Called once when the filter shuts down."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            try:
                client.close()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Failed to close search client: %s", exc)
