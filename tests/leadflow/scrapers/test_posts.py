"""Tests for leadflow.scrapers.posts -- LinkedIn post crawlers."""
import pytest
from unittest.mock import MagicMock

from leadflow.errors import MappingError, ValidationError
from leadflow.scrapers.posts import LinkedInCompanyPostsAdapter, LinkedInProfilePostsAdapter, normalize_post


def _adapter(cls):
    return cls({'actorId': 'harvestapi~posts'}, mapper=MagicMock(), client=MagicMock(), token='t')


class TestBuildInput:

    def test_defaults(self):
        actor_input = _adapter(LinkedInCompanyPostsAdapter).build_input(
            {'targetUrls': ['https://www.linkedin.com/company/acme/']})
        assert actor_input == {
            'targetUrls': ['https://www.linkedin.com/company/acme'],
            'maxPosts': 10,
            'includeQuotePosts': False,
            'includeReposts': False,
            'scrapeComments': False,
            'scrapeReactions': False,
        }

    def test_target_from_type_specific_param(self):
        actor_input = _adapter(LinkedInProfilePostsAdapter).build_input(
            {'profileLinkedinUrl': 'https://www.linkedin.com/in/ada', 'maxPosts': 3, 'postedLimit': 'week'})
        assert actor_input['targetUrls'] == ['https://www.linkedin.com/in/ada']
        assert actor_input['maxPosts'] == 3
        assert actor_input['postedLimit'] == 'week'

    def test_requires_target(self):
        with pytest.raises(ValidationError):
            _adapter(LinkedInCompanyPostsAdapter).build_input({'targetUrls': []})


class TestMapToLeads:

    def test_company_posts_options(self):
        adapter = _adapter(LinkedInCompanyPostsAdapter)
        adapter.map_to_leads([], 1, 1, {'target_url': 'https://www.linkedin.com/company/acme/',
                                        'lead_ids': [4, 5], 'company_id': 2, 'force_enrichment': True})
        args, kwargs = adapter.mapper.map_company_posts.call_args
        assert args == ([], 'https://www.linkedin.com/company/acme')
        assert kwargs['lead_ids'] == [4, 5]
        assert kwargs['company_id'] == 2
        assert kwargs['force'] is True

    def test_profile_posts_options(self):
        adapter = _adapter(LinkedInProfilePostsAdapter)
        adapter.map_to_leads([], 1, 1, {'target_url': 'https://www.linkedin.com/in/ada', 'lead_ids': [4]})
        _, kwargs = adapter.mapper.map_lead_posts.call_args
        assert kwargs['lead_ids'] == [4]
        assert kwargs['force'] is False


class TestNormalizePost:

    def test_crawler_shape(self):
        post = normalize_post({
            'linkedinUrl': 'https://www.linkedin.com/posts/acme-1',
            'content': ' Hello ',
            'author': {'name': 'Acme'},
            'postedAt': {'timestamp': 1768471200000},
            'engagement': {'likes': 7, 'reactions': [{'type': 'LIKE', 'count': 7}, {'type': 'PRAISE', 'count': 1}]},
        })
        assert post['post_url'] == 'https://www.linkedin.com/posts/acme-1'
        assert post['text'] == 'Hello'
        assert post['author'] == 'Acme'
        assert post['posted_date'].year == 2026
        assert post['reactions'] == 8
        assert post['likes'] == 7

    def test_flat_shape(self):
        post = normalize_post({'post_url': 'https://x/1', 'text': 'Hi', 'reactions': '4', 'likes': 2,
                               'posted_date': '2026-01-01T00:00:00Z', 'author': 'Ada'})
        assert post['reactions'] == 4
        assert post['author'] == 'Ada'

    def test_missing_url_is_none(self):
        assert normalize_post({'content': 'no url'})['post_url'] is None

    def test_non_dict_raises(self):
        with pytest.raises(MappingError):
            normalize_post(['not', 'a', 'post'])
