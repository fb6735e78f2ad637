"""JSON endpoints exposing the link-insertion engine.

``POST /render/`` links a document with the current rule-set snapshot and
``POST /preview/`` tries a single rule against a piece of content. Both
accept and return JSON; invalid input yields a 400 payload and an
unavailable rule set or an exhausted time budget yields a 503.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from functools import lru_cache
from typing import Any, Dict, Tuple

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from .engine.cache import RenderCache
from .engine.errors import DocumentError, RenderTimeout, SnapshotError
from .engine.index import preview, render_document
from .engine.types import RenderResult
from .forms import PreviewForm, RenderForm
from .store import get_store

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_render_cache(alias: str) -> RenderCache:
    """Return the shared render cache for ``alias``.

    One instance per alias keeps the in-flight registry process wide.
    """

    return RenderCache(alias)


@csrf_exempt
@require_POST
def render(request: HttpRequest) -> JsonResponse:
    """Insert links into the posted document."""

    payload, error = _read_json(request)
    if error is not None:
        return error

    form = RenderForm(payload)
    if not form.is_valid():
        return _invalid(form)

    store = get_store()
    try:
        snapshot = store.current()
    except SnapshotError as exc:
        logger.error('Rule set unavailable: %s', exc)
        return JsonResponse({'detail': 'Rule set is unavailable.'}, status=503)

    try:
        result = render_document(
            form.to_document(),
            snapshot,
            resolver=store.resolver(),
            cache=get_render_cache(settings.AUTOLINKER_CACHE_ALIAS),
            timeout=settings.AUTOLINKER_RENDER_TIMEOUT,
        )
    except DocumentError as exc:
        return JsonResponse({'detail': str(exc)}, status=400)
    except RenderTimeout as exc:
        return JsonResponse({'detail': str(exc)}, status=503)

    return JsonResponse(_result_payload(result))


@csrf_exempt
@require_POST
def preview_rule(request: HttpRequest) -> JsonResponse:
    """Show what a single rule would link in the posted content."""

    payload, error = _read_json(request)
    if error is not None:
        return error

    form = PreviewForm(payload)
    if not form.is_valid():
        return _invalid(form)

    store = get_store()
    try:
        snapshot = store.current()
    except SnapshotError as exc:
        logger.error('Rule set unavailable: %s', exc)
        return JsonResponse({'detail': 'Rule set is unavailable.'}, status=503)

    try:
        result = preview(form.cleaned_data['rule'], form.to_document(), snapshot, resolver=store.resolver())
    except DocumentError as exc:
        return JsonResponse({'detail': str(exc)}, status=400)

    return JsonResponse(
        {
            'content': result.content,
            'replacements': [asdict(item) for item in result.replacements],
            'warnings': [asdict(warning) for warning in result.warnings],
        }
    )


def _read_json(request: HttpRequest) -> Tuple[Dict[str, Any], JsonResponse | None]:
    try:
        payload = json.loads(request.body or b'{}')
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        return {}, JsonResponse({'detail': f'Invalid JSON body: {exc}'}, status=400)
    if not isinstance(payload, dict):
        return {}, JsonResponse({'detail': 'JSON body must be an object.'}, status=400)
    return payload, None


def _invalid(form: RenderForm | PreviewForm) -> JsonResponse:
    return JsonResponse({'detail': 'Invalid request.', 'errors': form.errors.get_json_data()}, status=400)


def _result_payload(result: RenderResult) -> Dict[str, Any]:
    return {
        'content': result.content,
        'ruleset_version': result.ruleset_version,
        'placements': [asdict(record) for record in result.placements],
        'warnings': [asdict(warning) for warning in result.warnings],
    }
