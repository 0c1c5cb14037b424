"""
Contact-finder adapters beyond the Apollo lead scraper.

  LeadsFinderAdapter               snake_case lead search, same lead mapping
  LinkedInCompanyEmployeesAdapter  employees of given LinkedIn company pages
  BulkEmailFinderAdapter           "First, Last, Domain" -> email lookups
"""
import logging
from typing import Dict, List, Any, Optional

from leadflow.errors import ValidationError
from leadflow.pipeline.normalize import (
    clean_str, first_of, parse_linkedin_url, extract_domain, normalize_email,
)
from leadflow.scrapers.apify import ApifyAdapter, normalize_lead_item, _drop_empty
from leadflow.scrapers.base import MappingResult, Capability, MapperType

logger = logging.getLogger('scrapers.contacts')


# ============================================================================
# LEADS FINDER
# ============================================================================

# Form filter -> actor input key
LEADS_FINDER_PARAMS = {
    'fileName': 'file_name',
    'personTitleIncludes': 'contact_job_title',
    'personTitleExcludes': 'contact_not_job_title',
    'seniorityIncludes': 'seniority_level',
    'personFunctionIncludes': 'functional_level',
    'personLocationCountryIncludes': 'contact_location',
    'personLocationCityIncludes': 'contact_city',
    'personLocationCountryExcludes': 'contact_not_location',
    'personLocationCityExcludes': 'contact_not_city',
    'companyDomainIncludes': 'company_domain',
    'companyEmployeeSizeIncludes': 'size',
    'companyIndustryIncludes': 'company_industry',
    'companyIndustryExcludes': 'company_not_industry',
    'companyKeywordsIncludes': 'company_keywords',
    'companyKeywordsExcludes': 'company_not_keywords',
    'minRevenue': 'min_revenue',
    'maxRevenue': 'max_revenue',
}

# The actor matches these lower-cased
_LOWERCASE_PARAMS = {'contact_location', 'contact_not_location', 'company_industry', 'company_not_industry'}

# Accepted as comma-separated strings too
_SPLIT_PARAMS = {'contact_city', 'contact_not_city', 'company_domain', 'company_keywords', 'company_not_keywords'}


def _split_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [s.strip() for s in value.split(',') if s.strip()]
    if isinstance(value, (list, tuple)):
        return [v for v in value if v not in (None, '')]
    return []


class LeadsFinderAdapter(ApifyAdapter):
    mapper_type = MapperType.LEADS_FINDER
    capability = Capability.CONTACT_FINDER
    description = 'Leads Finder (B2B contact search with emails)'

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        actor_input = {'fetch_count': params.get('totalResults') or 100}
        for param, key in LEADS_FINDER_PARAMS.items():
            value = params.get(param)
            if value in (None, '', []):
                continue
            if key in _SPLIT_PARAMS:
                value = _split_list(value)
            if key in _LOWERCASE_PARAMS and isinstance(value, list):
                value = [v.lower().strip() if isinstance(v, str) else v for v in value]
            actor_input[key] = value
        if clean_str(params.get('emailStatus')):
            actor_input['email_status'] = [params['emailStatus']]
        return _drop_empty(actor_input)

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        return self.mapper.map_contacts(items, collection_id, user_id, normalize=normalize_leads_finder_item)


def normalize_leads_finder_item(raw: Any) -> Optional[Dict[str, Any]]:
    """Alias snake_case / camelCase Leads Finder fields onto the Apollo shape, then normalize."""
    if not isinstance(raw, dict):
        return None
    functional = raw.get('functional_level')
    data = {
        'firstName': first_of(raw, 'first_name', 'firstName'),
        'lastName': first_of(raw, 'last_name', 'lastName'),
        'fullName': first_of(raw, 'full_name', 'fullName'),
        'position': first_of(raw, 'position', 'job_title', 'title'),
        'linkedinUrl': first_of(raw, 'linkedin', 'linkedin_url', 'linkedinUrl'),
        'headline': first_of(raw, 'headline', 'headLine'),
        'seniority': first_of(raw, 'seniority', 'seniority_level'),
        'functional': functional if isinstance(functional, list) else first_of(raw, 'functional', 'functional_level'),
        'orgName': first_of(raw, 'org_name', 'orgName', 'company_name', 'companyName'),
        'orgWebsite': first_of(raw, 'org_website', 'orgWebsite', 'company_website', 'companyWebsite', 'website'),
        'orgLinkedinUrl': first_of(raw, 'org_linkedin_url', 'orgLinkedinUrl', 'company_linkedin', 'company_linkedin_url'),
        'orgIndustry': first_of(raw, 'org_industry', 'orgIndustry', 'company_industry', 'industry'),
        'orgSize': first_of(raw, 'org_size', 'orgSize', 'company_size', 'size'),
        'orgDomain': first_of(raw, 'org_domain', 'orgDomain', 'company_domain', 'companyDomain'),
        'orgTechnologies': first_of(raw, 'org_technologies', 'orgTechnologies', 'company_technologies', 'companyTechnologies'),
        'orgDescription': first_of(raw, 'org_description', 'orgDescription', 'company_description'),
        'orgCity': first_of(raw, 'org_city', 'orgCity', 'company_city'),
        'orgState': first_of(raw, 'org_state', 'orgState', 'company_state'),
        'orgCountry': first_of(raw, 'org_country', 'orgCountry', 'company_country'),
        'orgFoundedYear': first_of(raw, 'org_founded_year', 'orgFoundedYear', 'founded_year'),
        'email': first_of(raw, 'email', 'business_email', 'work_email'),
        'personalEmail': first_of(raw, 'personal_email', 'personalEmail'),
        'emailCertainty': first_of(raw, 'email_certainty', 'emailCertainty', 'email_status'),
        'phone': first_of(raw, 'phone', 'phone_numbers', 'mobile', 'mobile_number'),
        'city': first_of(raw, 'city', 'contact_city'),
        'state': first_of(raw, 'state', 'contact_state'),
        'country': first_of(raw, 'country', 'contact_country', 'contact_location'),
    }
    if isinstance(data['orgSize'], (int, float)):
        data['orgSize'] = str(data['orgSize'])
    return normalize_lead_item(data)


# ============================================================================
# LINKEDIN COMPANY EMPLOYEES
# ============================================================================

# Optional actor filters passed through as given
EMPLOYEE_PASSTHROUGH = (
    'locations', 'searchQuery', 'jobTitles', 'pastJobTitles', 'industryIds',
    'yearsAtCurrentCompanyIds', 'yearsOfExperienceIds', 'seniorityLevelIds', 'functionIds',
    'companyHeadcount', 'maxItemsPerCompany', 'startPage', 'takePages', 'excludeLocations',
    'excludePastCompanies', 'excludeSchools', 'excludeCurrentJobTitles', 'excludePastJobTitles',
    'excludeIndustryIds', 'excludeSeniorityLevelIds', 'excludeFunctionIds',
)


class LinkedInCompanyEmployeesAdapter(ApifyAdapter):
    mapper_type = MapperType.LINKEDIN_COMPANY_EMPLOYEES
    capability = Capability.CONTACT_FINDER
    description = 'Employees of LinkedIn company pages'

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        companies = params.get('companies') or params.get('companyLinkedinUrl')
        if isinstance(companies, str):
            companies = [companies]
        companies = [c for c in (parse_linkedin_url(c) for c in companies or []) if c]
        if not companies:
            raise ValidationError("At least one company LinkedIn URL is required")

        actor_input = {
            'companies': companies,
            'profileScraperMode': params.get('profileScraperMode') or 'Full ($8 per 1k)',
            'companyBatchMode': params.get('companyBatchMode') or 'all_at_once',
            'recentlyChangedJobs': bool(params.get('recentlyChangedJobs', False)),
        }
        if params.get('maxItems') is not None:
            actor_input['maxItems'] = params['maxItems']
        for key in EMPLOYEE_PASSTHROUGH:
            if params.get(key) is not None:
                actor_input[key] = params[key]
        return actor_input

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        options = options or {}
        result = self.mapper.map_contacts(items, collection_id, user_id, normalize=normalize_employee_item)
        if options.get('company_id'):
            self.mapper.mark_employees_scraped(options['company_id'])
        return result


def normalize_employee_item(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    positions = data.get('currentPosition')
    current = positions[0] if isinstance(positions, list) and positions and isinstance(positions[0], dict) else {}
    location = ((data.get('location') or {}).get('parsed') or {}) if isinstance(data.get('location'), dict) else {}

    first_name = clean_str(data.get('firstName'))
    last_name = clean_str(data.get('lastName'))
    company = None
    if current.get('companyName') or current.get('companyLinkedinUrl'):
        company = {'name': current.get('companyName'), 'linkedin_url': current.get('companyLinkedinUrl')}

    return {
        'first_name': first_name,
        'last_name': last_name,
        'full_name': ' '.join(p for p in (first_name, last_name) if p) or None,
        'position': clean_str(current.get('position')) or clean_str(data.get('headline')),
        'headline': clean_str(data.get('headline')),
        'linkedin_url': parse_linkedin_url(data.get('linkedinUrl')),
        'email': data.get('email'),
        'city': clean_str(location.get('city')),
        'state': clean_str(location.get('state')),
        'country': clean_str(location.get('country')),
        'company': company,
    }


# ============================================================================
# BULK EMAIL FINDER
# ============================================================================

def parse_person(entry: Any) -> Optional[List[str]]:
    """'First, Last, Domain' -> [first, last, domain]; None when malformed."""
    if not isinstance(entry, str):
        return None
    parts = [p.strip() for p in entry.split(',')]
    if len(parts) < 3 or not all(parts[:3]):
        return None
    return parts[:3]


def person_key(first_name: Any, last_name: Any, domain: Any) -> str:
    return '|'.join([
        (clean_str(first_name) or '').lower(),
        (clean_str(last_name) or '').lower(),
        (extract_domain(domain) or '').lower(),
    ])


class BulkEmailFinderAdapter(ApifyAdapter):
    mapper_type = MapperType.BULK_EMAIL_FINDER
    capability = Capability.CONTACT_FINDER
    description = 'Email lookup from first name, last name and company domain'

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        people = params.get('people')
        if isinstance(people, str):
            people = [people]
        valid = [', '.join(p) for p in (parse_person(e) for e in people or []) if p]
        dropped = len(people or []) - len(valid)
        if dropped:
            logger.warning("Dropped %d malformed people entries", dropped)
        if not valid:
            raise ValidationError("No valid 'First, Last, Domain' entries in people")
        return {'people': valid}

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        person_index = (options or {}).get('person_index') or {}

        def normalize(item):
            return normalize_email_finder_item(item, person_index)

        return self.mapper.map_contacts(items, collection_id, user_id, normalize=normalize)


def normalize_email_finder_item(data: Any, person_index: Dict[str, int] = None) -> Optional[Dict[str, Any]]:
    """FOUND rows become contacts; NOT_FOUND or email-less rows are None (skipped)."""
    if not isinstance(data, dict):
        return None
    email = normalize_email(data.get('email'))
    if str(data.get('status') or '').upper() != 'FOUND' or not email:
        return None

    domain = extract_domain(data.get('domain')) or email.split('@')[-1]
    contact = {
        'first_name': clean_str(data.get('firstName')),
        'last_name': clean_str(data.get('lastName')),
        'email': email,
        'email_certainty': clean_str(data.get('certainty')),
        'company': {'domain': domain},
        'match_by_name': True,
    }
    lead_id = (person_index or {}).get(person_key(data.get('firstName'), data.get('lastName'), domain))
    if lead_id:
        contact['lead_id'] = lead_id
    return contact
