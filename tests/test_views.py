from __future__ import annotations

import json
from pathlib import Path

from django.core.cache import caches
from django.test import SimpleTestCase, override_settings
from django.urls import reverse

from autolinker.forms import PreviewForm, RenderForm

FIXTURE = Path(__file__).resolve().parent / 'fixtures' / 'snapshot.yaml'


class RenderFormTests(SimpleTestCase):
    def test_content_is_kept_verbatim(self) -> None:
        form = RenderForm({'document_id': 'd1', 'content': '  <p>padded</p>\n'})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.to_document().content, '  <p>padded</p>\n')

    def test_content_is_required(self) -> None:
        form = RenderForm({'document_id': 'd1'})
        self.assertFalse(form.is_valid())
        self.assertIn('content', form.errors)

    def test_preview_rule_must_be_valid(self) -> None:
        form = PreviewForm({'content': 'x', 'rule': {'keywords': ['x']}})
        self.assertFalse(form.is_valid())
        self.assertIn('rule', form.errors)

    def test_preview_document_defaults_its_id(self) -> None:
        form = PreviewForm({'content': 'x', 'rule': {'id': 'r', 'keywords': ['x'], 'destination': {'url': '/x'}}})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.to_document().id, 'preview')
        self.assertEqual(form.cleaned_data['rule'].id, 'r')


@override_settings(AUTOLINKER_SNAPSHOT_PATH=str(FIXTURE), AUTOLINKER_RENDER_TIMEOUT=None)
class RenderViewTests(SimpleTestCase):
    def setUp(self) -> None:
        caches['autolinker'].clear()

    def post(self, name: str, payload) -> object:
        body = payload if isinstance(payload, str) else json.dumps(payload)
        return self.client.post(reverse(name), data=body, content_type='application/json')

    def test_render_links_document(self) -> None:
        response = self.post(
            'autolinker:render',
            {
                'document_id': 'post-1',
                'content': '<p>Need support? Check pricing and documentation.</p>',
                'url': 'https://www.example.com/blog/launch',
                'content_type': 'post',
            },
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['ruleset_version'], '2024-06-01')
        self.assertEqual(
            [(item['rule_id'], item['start'], item['url']) for item in data['placements']],
            [
                (
                    'support',
                    8,
                    'https://www.example.com/support?utm_source=site&utm_medium=internal&utm_campaign=Guides-support',
                ),
                ('pricing', 23, '/pricing'),
                ('docs', 35, '/docs'),
            ],
        )
        self.assertIn(
            '<a href="/pricing" rel="nofollow noopener" target="_blank" title="See pricing">pricing</a>',
            data['content'],
        )
        self.assertEqual(
            data['warnings'],
            [
                {
                    'kind': 'configuration',
                    'message': "unknown UTM template 'missing'",
                    'rule_id': 'docs',
                    'chunk': None,
                }
            ],
        )

    def test_render_rejects_invalid_json(self) -> None:
        response = self.post('autolinker:render', '{not json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('Invalid JSON', response.json()['detail'])

    def test_render_rejects_non_object_body(self) -> None:
        response = self.post('autolinker:render', [1, 2])
        self.assertEqual(response.status_code, 400)

    def test_render_reports_form_errors(self) -> None:
        response = self.post('autolinker:render', {'content': '<p>x</p>'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('document_id', response.json()['errors'])

    def test_render_requires_post(self) -> None:
        response = self.client.get(reverse('autolinker:render'))
        self.assertEqual(response.status_code, 405)

    def test_missing_snapshot_is_service_unavailable(self) -> None:
        with override_settings(AUTOLINKER_SNAPSHOT_PATH=str(FIXTURE.parent / 'absent.yaml')):
            response = self.post('autolinker:render', {'document_id': 'd', 'content': 'x'})
        self.assertEqual(response.status_code, 503)

    def test_exhausted_time_budget_is_service_unavailable(self) -> None:
        with override_settings(AUTOLINKER_RENDER_TIMEOUT=0):
            response = self.post('autolinker:render', {'document_id': 'slow', 'content': '<p>support</p>'})
        self.assertEqual(response.status_code, 503)

    def test_preview_single_rule(self) -> None:
        response = self.post(
            'autolinker:preview',
            {
                'content': '<p>Our legacy plans</p>',
                'rule': {
                    'id': 'draft',
                    'title': 'Draft',
                    'keywords': ['legacy'],
                    'destination': {'url': '/legacy'},
                    'status': 'inactive',
                },
            },
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['content'], '<p>Our <a href="/legacy">legacy</a> plans</p>')
        self.assertEqual(
            data['replacements'],
            [{'rule_id': 'draft', 'rule': 'Draft', 'keyword': 'legacy', 'url': '/legacy', 'count': 1}],
        )
