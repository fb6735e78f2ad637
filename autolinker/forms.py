"""Forms validating the JSON payloads accepted by the autolinker endpoints.

Both forms are bound to the decoded request body. They check the document
metadata and, for previews, convert the submitted rule into an engine
:class:`~autolinker.engine.types.Rule`.
"""

from __future__ import annotations

from dataclasses import replace

from django import forms

from .engine.config import rule_from_dict
from .engine.errors import SnapshotError
from .engine.types import Document, Rule


class DocumentForm(forms.Form):
    """Document metadata plus the raw content to link."""

    document_id = forms.CharField(max_length=255, label='Document ID')
    content_hash = forms.CharField(
        required=False,
        max_length=128,
        help_text='Optional. Computed from the content when omitted.',
    )
    url = forms.CharField(required=False, max_length=2048, help_text='Public URL of the document.')
    content_type = forms.CharField(required=False, max_length=64, help_text='e.g. post, page, product.')
    content = forms.CharField(required=False, strip=False, help_text='HTML or plain text to link.')

    def clean_content(self) -> str:
        value = self.data.get('content')
        if value is None:
            raise forms.ValidationError('This field is required.')
        if not isinstance(value, str):
            raise forms.ValidationError('Content must be a string.')
        return value

    def to_document(self) -> Document:
        data = self.cleaned_data
        return Document(
            id=data['document_id'],
            content=data['content'],
            content_hash=data.get('content_hash') or '',
            url=data.get('url') or '',
            content_type=data.get('content_type') or '',
        )


class RenderForm(DocumentForm):
    """Input for ``POST /render/``."""


class PreviewForm(DocumentForm):
    """Input for ``POST /preview/``: a document and a single, possibly unsaved, rule."""

    document_id = forms.CharField(max_length=255, required=False)
    rule = forms.JSONField(help_text='Rule definition in the snapshot file layout.')

    def clean_rule(self) -> Rule:
        value = self.cleaned_data.get('rule')
        if not isinstance(value, dict):
            raise forms.ValidationError('Rule must be an object.')
        try:
            return rule_from_dict(value)
        except SnapshotError as exc:
            raise forms.ValidationError(str(exc)) from exc

    def to_document(self) -> Document:
        document = super().to_document()
        return document if document.id else replace(document, id='preview')
