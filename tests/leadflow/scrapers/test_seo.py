"""Tests for leadflow.scrapers.seo -- PageSpeed Insights adapter."""
import pytest
import requests
from unittest.mock import MagicMock

from leadflow.errors import ProviderError, RateLimitError, ValidationError
from leadflow.scrapers.base import RunStatus
from leadflow.scrapers.seo import PageSpeedSeoAdapter, extract_seo_data, normalize_website_url


PAYLOAD = {
    'captchaResult': 'CAPTCHA_NOT_NEEDED',
    'lighthouseResult': {
        'categories': {
            'seo': {'score': 0.92},
            'performance': {'score': 0.5},
            'accessibility': {'score': 0.81},
            'best-practices': {'score': 1},
        },
        'audits': {
            'document-title': {'score': 1, 'title': 'Document has a <title> element'},
            'image-alt': {'score': 0, 'title': 'Image elements do not have [alt] attributes'},
            'unrelated-audit': {'score': 1},
            'canonical': {'score': None},
        },
    },
}


def _response(status=200, payload=None, text=''):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    resp.text = text
    resp.json.return_value = payload
    return resp


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def adapter(http):
    return PageSpeedSeoAdapter({}, mapper=MagicMock(), http=http, api_key='k')


class TestExtract:

    def test_scores_and_audits(self):
        seo = extract_seo_data(PAYLOAD, 'https://acme.com', 'mobile')
        assert seo['score'] == 92
        assert seo['performance'] == 50
        assert seo['bestPractices'] == 100
        assert set(seo['audits']) == {'document-title', 'image-alt'}

    def test_empty_payload(self):
        seo = extract_seo_data({}, 'https://acme.com', 'desktop')
        assert seo['score'] == 0
        assert seo['performance'] is None

    def test_normalize_website_url(self):
        assert normalize_website_url('acme.com') == 'https://acme.com'
        assert normalize_website_url('http://acme.com') == 'http://acme.com'
        assert normalize_website_url(' ') is None


class TestExecute:

    def test_synchronous_run(self, adapter, http):
        http.get.return_value = _response(200, PAYLOAD)
        run = adapter.execute({'url': 'acme.com'})

        assert run.status == RunStatus.SUCCEEDED
        assert run.id.startswith('pagespeed-')
        assert adapter.get_status(run.id) == RunStatus.SUCCEEDED
        [seo] = adapter.get_results(run.id)
        assert seo['url'] == 'https://acme.com'
        params = http.get.call_args.kwargs['params']
        assert ('strategy', 'mobile') in params
        assert ('category', 'seo') in params
        assert ('key', 'k') in params

    def test_requires_url(self, adapter):
        with pytest.raises(ValidationError):
            adapter.execute({})

    def test_unknown_strategy(self, adapter):
        with pytest.raises(ValidationError):
            adapter.execute({'url': 'acme.com', 'strategy': 'tablet'})

    def test_rate_limited(self, adapter, http):
        http.get.return_value = _response(429)
        with pytest.raises(RateLimitError):
            adapter.execute({'url': 'acme.com'})

    def test_captcha(self, adapter, http):
        http.get.return_value = _response(200, {'captchaResult': 'CAPTCHA_BLOCKING'})
        with pytest.raises(ProviderError):
            adapter.execute({'url': 'acme.com'})

    def test_network_error(self, adapter, http):
        http.get.side_effect = requests.Timeout('slow')
        with pytest.raises(ProviderError):
            adapter.execute({'url': 'acme.com'})

    def test_unknown_run(self, adapter):
        with pytest.raises(ProviderError):
            adapter.get_results('pagespeed-missing')


class TestMapToLeads:

    def test_stores_first_item(self, adapter):
        adapter.map_to_leads([{'score': 90}], None, 1, {'company_id': 4})
        adapter.mapper.apply_seo_analysis.assert_called_once_with(4, {'score': 90})

    def test_no_items_is_a_miss(self, adapter):
        result = adapter.map_to_leads([], None, 1, {'company_id': 4})
        assert [(t.entity_id, t.has_result) for t in result.entities] == [(4, False)]

    def test_requires_company(self, adapter):
        with pytest.raises(ValidationError):
            adapter.map_to_leads([{}], None, 1, {})
