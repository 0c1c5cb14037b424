"""Tests for leadflow.scrapers.contacts -- Leads Finder, company employees, bulk email finder."""
import pytest
from unittest.mock import MagicMock

from leadflow.errors import ValidationError
from leadflow.scrapers.contacts import (
    LeadsFinderAdapter, LinkedInCompanyEmployeesAdapter, BulkEmailFinderAdapter,
    normalize_leads_finder_item, normalize_employee_item, normalize_email_finder_item,
    parse_person, person_key,
)


def _adapter(cls):
    return cls({'actorId': 'acme~actor'}, mapper=MagicMock(), client=MagicMock(), token='t')


class TestLeadsFinder:

    def test_translates_form_params(self):
        actor_input = _adapter(LeadsFinderAdapter).build_input({
            'totalResults': 250,
            'personTitleIncludes': ['CTO'],
            'personLocationCountryIncludes': ['United States'],
            'companyDomainIncludes': 'acme.com, globex.com',
            'emailStatus': 'validated',
            'seniorityIncludes': [],
        })
        assert actor_input == {
            'fetch_count': 250,
            'contact_job_title': ['CTO'],
            'contact_location': ['united states'],
            'company_domain': ['acme.com', 'globex.com'],
            'email_status': ['validated'],
        }

    def test_default_fetch_count(self):
        assert _adapter(LeadsFinderAdapter).build_input({})['fetch_count'] == 100

    def test_normalizes_snake_case_item(self):
        contact = normalize_leads_finder_item({
            'first_name': 'Ada', 'last_name': 'Lovelace', 'job_title': 'CTO',
            'linkedin': 'https://www.linkedin.com/in/ada', 'business_email': 'ada@acme.com',
            'company_name': 'Acme', 'company_domain': 'acme.com', 'company_size': 120,
            'functional_level': ['engineering', 'product'],
        })
        assert contact['position'] == 'CTO'
        assert contact['email'] == 'ada@acme.com'
        assert contact['functional'] == 'engineering, product'
        assert contact['company']['name'] == 'Acme'
        assert contact['company']['size'] == '120'


class TestCompanyEmployees:

    def test_requires_a_company(self):
        with pytest.raises(ValidationError):
            _adapter(LinkedInCompanyEmployeesAdapter).build_input({})

    def test_defaults_and_passthrough(self):
        actor_input = _adapter(LinkedInCompanyEmployeesAdapter).build_input({
            'companyLinkedinUrl': 'https://www.linkedin.com/company/acme/',
            'maxItems': 50,
            'jobTitles': ['Engineer'],
            'unknownKey': 1,
        })
        assert actor_input == {
            'companies': ['https://www.linkedin.com/company/acme'],
            'profileScraperMode': 'Full ($8 per 1k)',
            'companyBatchMode': 'all_at_once',
            'recentlyChangedJobs': False,
            'maxItems': 50,
            'jobTitles': ['Engineer'],
        }

    def test_map_flags_company(self):
        adapter = _adapter(LinkedInCompanyEmployeesAdapter)
        adapter.map_to_leads([], None, 1, {'company_id': 9})
        adapter.mapper.mark_employees_scraped.assert_called_once_with(9)

    def test_normalize_employee(self):
        contact = normalize_employee_item({
            'firstName': 'Grace', 'lastName': 'Hopper', 'headline': 'Rear Admiral',
            'linkedinUrl': 'https://www.linkedin.com/in/grace',
            'location': {'parsed': {'city': 'Arlington', 'country': 'United States'}},
            'currentPosition': [{'position': 'Engineer', 'companyName': 'Acme'}],
        })
        assert contact['full_name'] == 'Grace Hopper'
        assert contact['position'] == 'Engineer'
        assert contact['city'] == 'Arlington'
        assert contact['company'] == {'name': 'Acme', 'linkedin_url': None}

    def test_normalize_employee_without_position(self):
        contact = normalize_employee_item({'firstName': 'Grace', 'headline': 'Admiral'})
        assert contact['position'] == 'Admiral'
        assert contact['company'] is None


class TestBulkEmailFinder:

    def test_parse_person(self):
        assert parse_person(' Ada , Lovelace , acme.com ') == ['Ada', 'Lovelace', 'acme.com']
        assert parse_person('Ada, , acme.com') is None
        assert parse_person('Ada Lovelace') is None

    def test_person_key_is_normalized(self):
        assert person_key(' Ada ', 'LOVELACE', 'https://www.acme.com') == 'ada|lovelace|acme.com'

    def test_keeps_valid_entries(self):
        actor_input = _adapter(BulkEmailFinderAdapter).build_input(
            {'people': ['Ada, Lovelace, acme.com', 'broken']})
        assert actor_input == {'people': ['Ada, Lovelace, acme.com']}

    def test_no_valid_entries(self):
        with pytest.raises(ValidationError):
            _adapter(BulkEmailFinderAdapter).build_input({'people': ['broken']})

    def test_found_row(self):
        index = {'ada|lovelace|acme.com': 12}
        contact = normalize_email_finder_item({'firstName': 'Ada', 'lastName': 'Lovelace', 'domain': 'acme.com',
                                               'email': 'ADA@acme.com', 'status': 'FOUND'}, index)
        assert contact['email'] == 'ada@acme.com'
        assert contact['company'] == {'domain': 'acme.com'}
        assert contact['match_by_name'] is True
        assert contact['lead_id'] == 12

    def test_domain_from_email_when_missing(self):
        contact = normalize_email_finder_item({'firstName': 'A', 'email': 'a@globex.com', 'status': 'found'})
        assert contact['company'] == {'domain': 'globex.com'}
        assert 'lead_id' not in contact

    def test_not_found(self):
        assert normalize_email_finder_item({'status': 'NOT_FOUND', 'email': 'a@b.com'}) is None
        assert normalize_email_finder_item({'status': 'FOUND'}) is None
