"""Adapters between Django settings and the engine's snapshot and content stores."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional, Tuple

from django.conf import settings

from .engine.config import load_snapshot_data, snapshot_from_dict
from .engine.errors import SnapshotError
from .engine.rules import MappingResolver
from .engine.types import RuleSetSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Serve the rule-set snapshot stored in a YAML file.

    The file is re-read whenever its modification time or size changes, so
    each call to :meth:`current` returns an immutable snapshot that reflects
    the latest saved configuration. A broken file never replaces a snapshot
    that loaded successfully; the error is logged and the previous snapshot
    is kept.
    """

    def __init__(self, path: str | Path, *, site_name: str = '') -> None:
        self.path = Path(path)
        self.site_name = site_name
        self._lock = threading.Lock()
        self._stamp: Optional[Tuple[int, int]] = None
        self._snapshot: Optional[RuleSetSnapshot] = None
        self._resolver = MappingResolver()

    def current(self) -> RuleSetSnapshot:
        self._refresh()
        if self._snapshot is None:
            raise SnapshotError(f'no snapshot loaded from {self.path}')
        return self._snapshot

    def resolver(self) -> MappingResolver:
        self._refresh()
        return self._resolver

    def _refresh(self) -> None:
        try:
            stat = self.path.stat()
        except OSError as exc:
            if self._snapshot is None:
                raise SnapshotError(f'cannot read snapshot {self.path}: {exc}') from exc
            logger.warning('Snapshot %s unavailable, keeping version %s: %s', self.path, self._snapshot.version, exc)
            return

        stamp = (stat.st_mtime_ns, stat.st_size)
        with self._lock:
            if stamp == self._stamp:
                return
            try:
                data, digest = load_snapshot_data(self.path)
                snapshot = snapshot_from_dict(data, default_version=digest)
            except SnapshotError:
                if self._snapshot is None:
                    raise
                logger.exception('Failed to reload snapshot %s; keeping version %s', self.path, self._snapshot.version)
                return

            if self.site_name and not snapshot.site_name:
                snapshot = replace(snapshot, site_name=self.site_name)
            self._snapshot = snapshot
            self._resolver = MappingResolver(_content_map(data.get('content')))
            self._stamp = stamp
            logger.info('Loaded snapshot %s version %s (%d rules)', self.path, snapshot.version, len(snapshot.rules))


def _content_map(value: object) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(key): str(url) for key, url in value.items() if url}


_default_store: Optional[SnapshotStore] = None
_default_lock = threading.Lock()


def get_store() -> SnapshotStore:
    """Return the process-wide store configured by ``AUTOLINKER_SNAPSHOT_PATH``."""

    global _default_store
    path = Path(settings.AUTOLINKER_SNAPSHOT_PATH)
    with _default_lock:
        if _default_store is None or _default_store.path != path:
            _default_store = SnapshotStore(path, site_name=getattr(settings, 'AUTOLINKER_SITE_NAME', ''))
        return _default_store
