from datetime import timedelta
from types import SimpleNamespace

import pytest
import requests
from django.utils import timezone
from github import GithubException, RateLimitExceededException, UnknownObjectException

from recruiting.enrichment import EnrichmentService
from recruiting.enrichment.base import ProfileEnricher
from recruiting.enrichment.github import GitHubEnricher, extract_login
from recruiting.enrichment.internet_search import InternetSearchEnricher
from recruiting.enrichment.linkedin import LinkedInEnricher
from recruiting.enrichment.service import CONTEXT_HEADER
from recruiting.enrichment.twitter import TwitterEnricher, extract_username
from recruiting.models import CandidateExternalProfile
from recruiting.tests.fixtures import CandidateFactory, ExternalProfileFactory

GITHUB = CandidateExternalProfile.SOURCE_GITHUB
INTERNET = CandidateExternalProfile.SOURCE_INTERNET_SEARCH


class CountingEnricher(ProfileEnricher):
    source = INTERNET

    def __init__(self):
        self.calls = 0

    def enrich(self, profile, candidate):
        self.calls += 1
        return self.mark_success(profile, f'fetch #{self.calls} for {candidate.name}')


def _repo(name, stars, fork=False):
    return SimpleNamespace(
        name=name, description=f'{name} project', stargazers_count=stars, language='Python',
        html_url=f'https://github.com/jane/{name}', fork=fork,
    )


def _github_user(repos):
    return SimpleNamespace(
        login='jane', name='Jane Doe', html_url='https://github.com/jane', bio='Backend dev',
        location='Berlin', company='Acme', blog='https://jane.dev', public_repos=len(repos),
        followers=42, get_repos=lambda: repos,
    )


@pytest.mark.django_db
def test_cached_profile_is_reused_within_ttl():
    candidate = CandidateFactory()
    enricher = CountingEnricher()
    service = EnrichmentService(enrichers=[enricher], staleness_ttl_days=7)

    first = service.get_or_fetch(candidate, INTERNET)
    second = service.get_or_fetch(candidate, INTERNET)

    assert enricher.calls == 1
    assert first.id == second.id
    assert second.enriched_summary.startswith('fetch #1')


@pytest.mark.django_db
def test_profile_past_ttl_is_refetched():
    candidate = CandidateFactory()
    enricher = CountingEnricher()
    service = EnrichmentService(enrichers=[enricher], staleness_ttl_days=7)
    profile = service.get_or_fetch(candidate, INTERNET)
    CandidateExternalProfile.objects.filter(id=profile.id).update(
        last_fetched_at=timezone.now() - timedelta(days=8),
    )

    refreshed = service.get_or_fetch(candidate, INTERNET)

    assert enricher.calls == 2
    assert refreshed.enriched_summary.startswith('fetch #2')
    assert CandidateExternalProfile.objects.filter(candidate=candidate).count() == 1


@pytest.mark.django_db
def test_force_bypasses_cache_and_refresh_stale_profiles():
    candidate = CandidateFactory()
    enricher = CountingEnricher()
    service = EnrichmentService(enrichers=[enricher], staleness_ttl_days=7)
    service.get_or_fetch(candidate, INTERNET)

    service.get_or_fetch(candidate, INTERNET, force=True)
    assert enricher.calls == 2

    assert service.refresh_stale_profiles(candidate) == 0
    CandidateExternalProfile.objects.update(last_fetched_at=timezone.now() - timedelta(days=30))
    assert service.refresh_stale_profiles(candidate) == 1
    assert enricher.calls == 3


@pytest.mark.django_db
def test_failed_outcomes_are_cached_and_retryable():
    candidate = CandidateFactory()

    class Broken(ProfileEnricher):
        source = GITHUB
        calls = 0

        def enrich(self, profile, candidate):
            Broken.calls += 1
            raise RuntimeError('socket closed')

    service = EnrichmentService(enrichers=[Broken()])
    profile = service.get_or_fetch(candidate, GITHUB)
    assert profile.status == CandidateExternalProfile.STATUS_FAILED
    assert profile.error_message == 'socket closed'

    service.get_or_fetch(candidate, GITHUB)
    assert Broken.calls == 1

    service.retry_failed(candidate)
    assert Broken.calls == 2


@pytest.mark.django_db
def test_build_enrichment_context_uses_successful_profiles():
    candidate = CandidateFactory()
    ExternalProfileFactory(candidate=candidate, source=INTERNET, enriched_summary='Speaker at PyCon')
    ExternalProfileFactory(
        candidate=candidate, source=GITHUB, status=CandidateExternalProfile.STATUS_NOT_FOUND,
        enriched_summary='',
    )
    service = EnrichmentService(enrichers=[CountingEnricher()])

    context = service.build_enrichment_context(candidate)

    assert context.startswith(CONTEXT_HEADER)
    assert 'Speaker at PyCon' in context
    assert 'GitHub' not in context.replace(CONTEXT_HEADER, '')
    assert service.build_enrichment_context(CandidateFactory()) == ''


@pytest.mark.unit
def test_extract_login_and_username():
    assert extract_login('https://github.com/jane-doe/repo') == 'jane-doe'
    assert extract_login('https://github.com/orgs/acme') is None
    assert extract_login('') is None
    assert extract_username('https://twitter.com/@jane_doe') == 'jane_doe'
    assert extract_username('https://x.com/jane') == 'jane'


@pytest.mark.django_db
def test_github_enricher_records_top_repositories():
    candidate = CandidateFactory(github_url='https://github.com/jane')
    repos = [_repo(f'r{i}', stars) for i, stars in enumerate([3, 50, 7, 1, 20, 9])] + [_repo('fork', 999, fork=True)]
    client = SimpleNamespace(get_user=lambda login: _github_user(repos))
    profile = CandidateExternalProfile.objects.create(candidate=candidate, source=GITHUB)

    GitHubEnricher(client=client).enrich(profile, candidate)

    profile.refresh_from_db()
    assert profile.status == CandidateExternalProfile.STATUS_SUCCESS
    assert [repo['name'] for repo in profile.repositories] == ['r1', 'r4', 'r5', 'r2', 'r0']
    assert profile.followers == 42
    assert profile.enriched_summary.startswith('GitHub: @jane')
    assert 'r1 (Python, 50 stars): r1 project' in profile.enriched_summary
    assert profile.last_fetched_at is not None


@pytest.mark.django_db
def test_github_enricher_searches_by_name_without_url():
    candidate = CandidateFactory(name='Jane Doe', github_url='')
    searched = []

    def search_users(query):
        searched.append(query)
        return [SimpleNamespace(login='jane')]

    client = SimpleNamespace(search_users=search_users, get_user=lambda login: _github_user([]))
    profile = CandidateExternalProfile.objects.create(candidate=candidate, source=GITHUB)

    GitHubEnricher(client=client).enrich(profile, candidate)

    assert searched == ['"Jane Doe" in:name']
    assert profile.status == CandidateExternalProfile.STATUS_SUCCESS


@pytest.mark.django_db
@pytest.mark.parametrize('exc,status,message', [
    (UnknownObjectException(404, {'message': 'Not Found'}, {}), CandidateExternalProfile.STATUS_NOT_FOUND, 'not found'),
    (RateLimitExceededException(403, {'message': 'rate'}, {}), CandidateExternalProfile.STATUS_FAILED, 'rate limit'),
    (GithubException(500, {'message': 'boom'}, {}), CandidateExternalProfile.STATUS_FAILED, 'GitHub API error'),
])
def test_github_enricher_error_mapping(exc, status, message):
    candidate = CandidateFactory(github_url='https://github.com/jane')

    def get_user(login):
        raise exc

    profile = CandidateExternalProfile.objects.create(candidate=candidate, source=GITHUB)
    GitHubEnricher(client=SimpleNamespace(get_user=get_user)).enrich(profile, candidate)

    assert profile.status == status
    assert message in profile.error_message


@pytest.mark.django_db
def test_linkedin_is_not_available():
    candidate = CandidateFactory(name='Jane Doe', linkedin_url='')
    profile = CandidateExternalProfile.objects.create(
        candidate=candidate, source=CandidateExternalProfile.SOURCE_LINKEDIN,
    )

    LinkedInEnricher().enrich(profile, candidate)

    assert profile.status == CandidateExternalProfile.STATUS_NOT_AVAILABLE
    assert 'keywords=Jane+Doe' in profile.profile_url


@pytest.mark.django_db
def test_twitter_requires_token_and_reads_metrics(monkeypatch):
    candidate = CandidateFactory(twitter_url='https://twitter.com/jane')
    profile = CandidateExternalProfile.objects.create(
        candidate=candidate, source=CandidateExternalProfile.SOURCE_TWITTER,
    )
    TwitterEnricher(bearer_token='').enrich(profile, candidate)
    assert profile.status == CandidateExternalProfile.STATUS_NOT_AVAILABLE

    response = SimpleNamespace(status_code=200, json=lambda: {'data': {
        'name': 'Jane', 'description': 'Writes about Django', 'public_metrics': {'followers_count': 1200},
    }})
    monkeypatch.setattr('recruiting.enrichment.twitter.requests.get', lambda *a, **k: response)
    TwitterEnricher(bearer_token='token').enrich(profile, candidate)

    assert profile.status == CandidateExternalProfile.STATUS_SUCCESS
    assert profile.followers == 1200
    assert 'Writes about Django' in profile.enriched_summary


@pytest.mark.django_db
def test_internet_search_without_key_synthesizes_summary():
    candidate = CandidateFactory(name='Jane Doe', skills='Python, Django', current_company='Acme')
    profile = CandidateExternalProfile.objects.create(candidate=candidate, source=INTERNET)

    InternetSearchEnricher(api_key='').enrich(profile, candidate)

    assert profile.status == CandidateExternalProfile.STATUS_SUCCESS
    assert profile.enriched_summary.startswith('Candidate: Jane Doe.')
    assert 'Company: Acme.' in profile.enriched_summary
    assert profile.enriched_summary.endswith('(Synthesised from resume data.)')


@pytest.mark.django_db
def test_internet_search_formats_tavily_results(monkeypatch):
    candidate = CandidateFactory(name='Jane Doe', skills='Python, Django')
    sent = {}

    def fake_post(url, json, timeout):
        sent.update(json)
        return SimpleNamespace(raise_for_status=lambda: None, json=lambda: {
            'answer': 'Jane Doe is a Python developer and conference speaker based in Berlin.',
            'results': [
                {'title': f'Result {i}', 'url': f'https://example.com/{i}', 'content': 'x' * 400}
                for i in range(5)
            ],
        })

    monkeypatch.setattr('recruiting.enrichment.internet_search.requests.post', fake_post)
    profile = CandidateExternalProfile.objects.create(candidate=candidate, source=INTERNET)

    InternetSearchEnricher(api_key='tvly-key').enrich(profile, candidate)

    assert sent['query'] == 'Jane Doe Python software developer professional profile'
    assert sent['max_results'] == 5
    assert sent['include_answer'] is True
    assert sent['search_depth'] == 'basic'
    summary = profile.enriched_summary
    assert summary.startswith('=== Web Search Results for Jane Doe ===')
    assert summary.count('Source: ') == 3
    assert ('x' * 300 + '...') in summary


@pytest.mark.django_db
def test_internet_search_request_failure_is_cached_as_failed(monkeypatch):
    candidate = CandidateFactory()

    def broken(*args, **kwargs):
        raise requests.ConnectionError('dns failure')

    monkeypatch.setattr('recruiting.enrichment.internet_search.requests.post', broken)
    profile = CandidateExternalProfile.objects.create(candidate=candidate, source=INTERNET)

    InternetSearchEnricher(api_key='tvly-key').enrich(profile, candidate)

    assert profile.status == CandidateExternalProfile.STATUS_FAILED
    assert 'dns failure' in profile.error_message
