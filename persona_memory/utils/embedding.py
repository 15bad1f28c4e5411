"""
Embedding service contract and a single-flight wrapper around it.
"""

import threading
from concurrent.futures import Future
from typing import Dict, List, Protocol

from ..errors import EmbeddingUnavailable
from .logging_config import get_logger

logger = get_logger(__name__)

Embedding = List[float]


class EmbeddingService(Protocol):
    """Anything that turns text into a fixed-length vector."""

    def embed(self, text: str) -> Embedding:
        ...


class SingleFlightEmbedder:
    """Collapse concurrent embed calls for the same text into one upstream call.

    The first caller for a given text performs the request; callers arriving
    while it is in flight wait for that result (or that failure) instead of
    issuing their own. Nothing is cached once the call completes.
    """

    def __init__(self, service: EmbeddingService):
        self.service = service
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}

    def embed(self, text: str) -> Embedding:
        with self._lock:
            future = self._in_flight.get(text)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[text] = future

        if not owner:
            logger.debug('Waiting on in-flight embedding request')
            return list(future.result())

        try:
            embedding = self.service.embed(text)
        except EmbeddingUnavailable as e:
            future.set_exception(e)
            raise
        except Exception as e:
            future.set_exception(EmbeddingUnavailable(f'Embedding failed: {e}'))
            raise EmbeddingUnavailable(f'Embedding failed: {e}') from e
        except BaseException:
            # Waiters must not inherit the owner's interrupt, only the outcome.
            future.set_exception(EmbeddingUnavailable('Embedding request was cancelled'))
            raise
        else:
            future.set_result(embedding)
            return list(embedding)
        finally:
            with self._lock:
                self._in_flight.pop(text, None)

    def health_check(self) -> bool:
        check = getattr(self.service, 'health_check', None)
        return bool(check()) if callable(check) else True
