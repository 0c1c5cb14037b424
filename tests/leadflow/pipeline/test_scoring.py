"""Tests for leadflow.pipeline.scoring -- read-time completeness scores."""
from datetime import datetime, timezone

import pytest

from leadflow.models.company import CompanyPost, CompanyReview
from leadflow.pipeline.scoring import (
    LEAD_WEIGHTS, COMPANY_WEIGHTS, MAX_SCORE, weighted_score, score_category, company_score, lead_score,
    lead_facts,
)


class TestWeights:

    def test_weight_tables_sum_to_max(self):
        assert sum(LEAD_WEIGHTS.values()) == MAX_SCORE
        assert sum(COMPANY_WEIGHTS.values()) == MAX_SCORE

    def test_weighted_score_counts_true_facts(self):
        assert weighted_score({'a': True, 'b': False}, {'a': 2.0, 'b': 3.0}) == 2.0

    def test_weighted_score_is_capped(self):
        assert weighted_score({'a': True}, {'a': 12.0}) == MAX_SCORE


class TestScoreCategory:

    @pytest.mark.parametrize('score, category', [
        (0, '1-3'), (3, '1-3'), (3.5, '4-6'), (6, '4-6'), (7, '7-8'), (8, '7-8'), (8.5, '9-10'), (10, '9-10'),
    ])
    def test_boundaries(self, score, category):
        assert score_category(score) == category


class TestCompanyScore:

    def test_bare_company(self, db_session, make_company):
        company = make_company(domain=None, website=None, linkedin_url=None)
        assert company_score(db_session, company) == COMPANY_WEIGHTS['name']

    def test_fully_enriched_company(self, db_session, make_company):
        company = make_company(industry='Software', size='51-200',
                               seo_analyzed_at=datetime.now(timezone.utc), seo_score=90)
        db_session.add(CompanyReview(company_id=company.id, trustpilot_id='r1', rating=4))
        db_session.commit()
        assert company_score(db_session, company) == MAX_SCORE


class TestLeadScore:

    def test_lead_without_company(self, db_session, make_lead):
        lead = make_lead(email='ada@acme.com', first_name='Ada', last_name='Lovelace')
        assert lead_score(db_session, lead) == 3.0

    def test_company_facts_flow_into_lead(self, db_session, make_company, make_lead):
        company = make_company()
        db_session.add(CompanyPost(company_id=company.id, organization_linkedin_url=company.linkedin_url,
                                   post_url='https://www.linkedin.com/posts/acme-1'))
        db_session.commit()
        lead = make_lead(company_id=company.id)
        facts = lead_facts(db_session, lead)
        assert facts['company'] is True
        assert facts['company_linkedin_url'] is True
        assert facts['company_post'] is True
        assert facts['company_seo'] is False
        assert lead_score(db_session, lead) == (LEAD_WEIGHTS['company'] + LEAD_WEIGHTS['company_linkedin_url']
                                                + LEAD_WEIGHTS['company_post'])
