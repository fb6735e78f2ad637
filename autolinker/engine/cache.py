"""Rendered-content cache with stampede protection."""

from __future__ import annotations

import hashlib
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Tuple

from django.core.cache import caches

from .types import RenderResult, RenderWarning

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "autolinker:render"


class RenderCache:
    """Store render results in a Django cache backend.

    Concurrent misses for the same key share a single computation: the first
    caller registers a :class:`~concurrent.futures.Future` and computes, the
    others block on that future. Backend errors never fail a render; they are
    logged and reported as ``cache`` warnings.
    """

    def __init__(
        self,
        cache_alias: str = "default",
        *,
        backend: Any | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self.cache_alias = cache_alias
        self._backend = backend
        self.key_prefix = key_prefix
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    @property
    def backend(self) -> Any:
        if self._backend is not None:
            return self._backend
        return caches[self.cache_alias]

    def build_key(self, document_id: str, content_hash: str, ruleset_version: str) -> str:
        raw = "\x1f".join((str(document_id), content_hash, str(ruleset_version)))
        digest = hashlib.sha256(raw.encode("utf-8", "surrogatepass")).hexdigest()
        return f"{self.key_prefix}:{digest}"

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], RenderResult],
    ) -> Tuple[RenderResult, List[RenderWarning]]:
        """Return the cached result for ``key`` or compute and store it."""

        warnings: List[RenderWarning] = []
        cached = self._safe_get(key, warnings)
        if cached is not None:
            logger.debug("Render cache hit for %s", key)
            return cached, warnings

        with self._lock:
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            logger.debug("Waiting for in-flight render of %s", key)
            return future.result(), warnings

        try:
            cached = self._safe_get(key, warnings)
            result = cached if cached is not None else compute()
        except BaseException as exc:
            self._release(key)
            future.set_exception(exc)
            raise

        if cached is None:
            self._safe_set(key, result, warnings)
        self._release(key)
        future.set_result(result)
        return result, warnings

    def _release(self, key: str) -> None:
        with self._lock:
            self._inflight.pop(key, None)

    def _safe_get(self, key: str, warnings: List[RenderWarning]) -> Optional[RenderResult]:
        try:
            value = self.backend.get(key)
        except Exception as exc:
            warnings.append(self._failure("read", key, exc))
            return None
        return value if isinstance(value, RenderResult) else None

    def _safe_set(self, key: str, value: RenderResult, warnings: List[RenderWarning]) -> None:
        try:
            self.backend.set(key, value, timeout=None)
        except Exception as exc:
            warnings.append(self._failure("write", key, exc))

    def _failure(self, action: str, key: str, exc: Exception) -> RenderWarning:
        logger.warning("Render cache %s failed for %s: %s", action, key, exc)
        return RenderWarning(kind="cache", message=f"cache {action} failed: {exc}")
