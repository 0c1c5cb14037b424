"""Tests for leadflow.scrapers.apify -- ApifyClient plumbing and the lead scraper."""
import pytest
from unittest.mock import MagicMock, patch

from leadflow.errors import ProviderError, RateLimitError
from leadflow.scrapers.apify import (
    LeadScraperAdapter, map_person_functions, normalize_lead_item,
)
from leadflow.scrapers.base import RunStatus


class _ApiError(Exception):
    """Stands in for apify_client's ApifyApiError, which carries the HTTP status."""

    def __init__(self, status_code, message='error'):
        super().__init__(message)
        self.status_code = status_code


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def adapter(client):
    return LeadScraperAdapter({'actorId': 'pipelinelabs/lead-scraper'}, mapper=MagicMock(), client=client,
                              token='test-token')


# ---------------------------------------------------------------------------
# Client plumbing
# ---------------------------------------------------------------------------

class TestExecute:

    def test_starts_actor_run(self, adapter, client):
        client.actor.return_value.start.return_value = {
            'id': 'run-1', 'status': 'READY', 'defaultDatasetId': 'ds-1'}
        run = adapter.execute({'personTitle': ['CTO'], 'totalResults': 50})

        assert run.id == 'run-1'
        assert run.status == RunStatus.QUEUED
        client.actor.assert_called_once_with('pipelinelabs~lead-scraper')
        client.actor.return_value.start.assert_called_once_with(
            run_input={'personTitle': ['CTO'], 'totalResults': 50})

    @patch('apify_client.ApifyClient')
    def test_client_built_from_token(self, mock_client_cls):
        mock_client_cls.return_value.actor.return_value.start.return_value = {'id': 'run-1', 'status': 'RUNNING'}
        adapter = LeadScraperAdapter({'actorId': 'a~b'}, token='secret')
        adapter.execute({})
        assert mock_client_cls.call_args.args == ('secret',)
        adapter.execute({})
        mock_client_cls.assert_called_once()

    def test_missing_token_is_provider_error(self):
        adapter = LeadScraperAdapter({'actorId': 'a~b'})
        adapter.token = None
        with pytest.raises(ProviderError, match='APIFY_API_TOKEN'):
            adapter.execute({})

    def test_rate_limited(self, adapter, client):
        client.actor.return_value.start.side_effect = _ApiError(429, 'Too many requests')
        with pytest.raises(RateLimitError):
            adapter.execute({})

    def test_rejection_carries_provider_message(self, adapter, client):
        client.actor.return_value.start.side_effect = _ApiError(400, 'Input is not valid')
        with pytest.raises(ProviderError, match='Input is not valid') as exc:
            adapter.execute({})
        assert not isinstance(exc.value, RateLimitError)

    def test_network_error(self, adapter, client):
        client.actor.return_value.start.side_effect = ConnectionError('refused')
        with pytest.raises(ProviderError):
            adapter.execute({})

    def test_run_without_id(self, adapter, client):
        client.actor.return_value.start.return_value = {'status': 'READY'}
        with pytest.raises(ProviderError):
            adapter.execute({})

    def test_actor_from_default_config(self, client):
        adapter = LeadScraperAdapter({}, client=client, token='t')
        assert adapter.actor_id == 'pipelinelabs~lead-scraper-apollo-zoominfo-lusha-ppe'


class TestStatusAndResults:

    def test_get_status(self, adapter, client):
        client.run.return_value.get.return_value = {'id': 'run-1', 'status': 'SUCCEEDED'}
        assert adapter.get_status('run-1') == RunStatus.SUCCEEDED
        client.run.assert_called_with('run-1')

    def test_status_read_rate_limited(self, adapter, client):
        client.run.return_value.get.side_effect = _ApiError(429)
        with pytest.raises(RateLimitError):
            adapter.get_status('run-1')

    def test_unknown_run(self, adapter, client):
        client.run.return_value.get.return_value = None
        with pytest.raises(ProviderError, match='not found'):
            adapter.get_status('run-404')

    def test_results_from_cached_dataset(self, adapter, client):
        client.actor.return_value.start.return_value = {
            'id': 'run-1', 'status': 'RUNNING', 'defaultDatasetId': 'ds-9'}
        client.dataset.return_value.iterate_items.return_value = iter([{'email': 'a@b.com'}])
        adapter.execute({})

        assert adapter.get_results('run-1') == [{'email': 'a@b.com'}]
        client.dataset.assert_called_once_with('ds-9')
        client.run.assert_not_called()

    def test_results_look_up_dataset(self, adapter, client):
        client.run.return_value.get.return_value = {'id': 'run-2', 'status': 'SUCCEEDED',
                                                    'defaultDatasetId': 'ds-2'}
        client.dataset.return_value.iterate_items.return_value = iter([])
        assert adapter.get_results('run-2') == []
        client.dataset.assert_called_once_with('ds-2')

    def test_no_dataset_is_error(self, adapter, client):
        client.run.return_value.get.return_value = {'id': 'run-2', 'status': 'SUCCEEDED'}
        with pytest.raises(ProviderError, match='No dataset'):
            adapter.get_results('run-2')

    def test_dataset_read_failure(self, adapter, client):
        client.run.return_value.get.return_value = {'id': 'run-2', 'status': 'SUCCEEDED',
                                                    'defaultDatasetId': 'ds-2'}
        client.dataset.return_value.iterate_items.side_effect = _ApiError(500, 'storage down')
        with pytest.raises(ProviderError, match='storage down'):
            adapter.get_results('run-2')


class TestGetCost:

    def test_total_usd(self, adapter, client):
        client.run.return_value.get.return_value = {
            'id': 'run-1', 'usageTotalUsd': 0.42, 'usageUsd': {'ACTOR_COMPUTE_UNITS': 0.4},
            'startedAt': '2026-01-15T10:00:00Z', 'finishedAt': '2026-01-15T10:05:00Z'}
        cost = adapter.get_cost('run-1')
        assert cost['cost_usd'] == 0.42
        assert cost['usage_details'] == {'ACTOR_COMPUTE_UNITS': 0.4}
        assert cost['finished_at'].minute == 5

    def test_falls_back_to_breakdown_sum(self, adapter, client):
        client.run.return_value.get.return_value = {'id': 'run-1', 'usageUsd': {'A': 0.25, 'B': 0.5, 'note': 'x'}}
        assert adapter.get_cost('run-1')['cost_usd'] == 0.75


# ---------------------------------------------------------------------------
# Lead scraper input / normalization
# ---------------------------------------------------------------------------

class TestLeadScraperInput:

    def test_total_results_dropped_with_target_urls(self, adapter):
        actor_input = adapter.build_input({'totalResults': 10, 'targetUrls': ['https://x']})
        assert 'totalResults' not in actor_input
        assert actor_input['targetUrls'] == ['https://x']

    def test_has_phone_only_when_true(self, adapter):
        assert 'hasPhone' not in adapter.build_input({'hasPhone': False})
        assert adapter.build_input({'hasPhone': True})['hasPhone'] is True

    def test_default_match_modes_dropped(self, adapter):
        actor_input = adapter.build_input({'companyNameMatchMode': 'phrase', 'companyDomainMatchMode': 'exact'})
        assert actor_input == {'companyDomainMatchMode': 'exact'}

    def test_internal_and_empty_params_dropped(self, adapter):
        actor_input = adapter.build_input({'collectionId': 4, 'scraperId': 2, 'personTitle': [], 'q': ' '})
        assert actor_input == {}

    def test_person_functions_mapped(self, adapter):
        actor_input = adapter.build_input({'personFunctionIncludes': ['Customer Success', 'Sales', 'Nonsense']})
        assert actor_input['personFunctionIncludes'] == ['Support', 'Sales']

    def test_map_person_functions_dedupes(self):
        assert map_person_functions(['Support', 'Customer Success']) == ['Support']

    def test_map_to_leads_delegates_to_mapper(self, adapter):
        adapter.map_to_leads([{'email': 'a@b.com'}], 5, 1)
        args, kwargs = adapter.mapper.map_contacts.call_args
        assert args == ([{'email': 'a@b.com'}], 5, 1)
        assert kwargs['normalize'] is normalize_lead_item


class TestNormalizeLeadItem:

    def test_company_fields(self):
        contact = normalize_lead_item({
            'firstName': 'Ada', 'email': 'ada@acme.com', 'orgName': 'Acme', 'orgFoundedYear': '1999',
            'functional': "['engineering']", 'phone': '+1 555',
        })
        assert contact['company']['name'] == 'Acme'
        assert contact['company']['founded_year'] == 1999
        assert contact['functional'] == 'engineering'
        assert contact['phone_numbers'] == ['+1 555']

    def test_no_company_fields(self):
        assert normalize_lead_item({'firstName': 'Ada', 'orgIndustry': 'Software'})['company'] is None

    def test_non_dict(self):
        assert normalize_lead_item('x') is None
