"""Exceptions raised by the link-insertion engine."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine failures."""


class DocumentError(EngineError):
    """The document cannot be rendered at all (e.g. missing content)."""


class RenderTimeout(EngineError):
    """The render exceeded its time budget and was abandoned."""


class NormalizationError(EngineError):
    """Text could not be normalized for matching."""


class UtmError(EngineError):
    """A destination URL could not be parsed for query-parameter merging."""


class SnapshotError(EngineError):
    """A rule-set snapshot file is missing or malformed."""
