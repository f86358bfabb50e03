"""
Per-candidate external profile cache.

Each (candidate, source) pair has one ``CandidateExternalProfile`` row. A row
fetched within the staleness TTL is reused as-is, whatever its outcome;
older rows are re-fetched through the source's ``ProfileEnricher``.
"""
import logging

from django.conf import settings

from recruiting.enrichment.github import GitHubEnricher
from recruiting.enrichment.internet_search import InternetSearchEnricher
from recruiting.enrichment.linkedin import LinkedInEnricher
from recruiting.enrichment.twitter import TwitterEnricher
from recruiting.exceptions import EnrichmentError
from recruiting.models import CandidateExternalProfile

logger = logging.getLogger(__name__)

CONTEXT_HEADER = 'EXTERNAL PROFILE DATA (from GitHub / LinkedIn / Internet):'

PROFILE_URL_FIELDS = {
    CandidateExternalProfile.SOURCE_GITHUB: 'github_url',
    CandidateExternalProfile.SOURCE_LINKEDIN: 'linkedin_url',
    CandidateExternalProfile.SOURCE_TWITTER: 'twitter_url',
}


def enrichment_setting(key, default):
    return getattr(settings, 'ENRICHMENT', {}).get(key, default)


def default_enrichers():
    return [
        GitHubEnricher(token=enrichment_setting('GITHUB_TOKEN', '') or None),
        LinkedInEnricher(),
        TwitterEnricher(bearer_token=enrichment_setting('TWITTER_BEARER_TOKEN', '')),
        InternetSearchEnricher(api_key=enrichment_setting('TAVILY_API_KEY', '')),
    ]


class EnrichmentService:
    def __init__(self, enrichers=None, staleness_ttl_days=None):
        self.enrichers = {enricher.source: enricher for enricher in (enrichers or default_enrichers())}
        self.staleness_ttl_days = (
            staleness_ttl_days if staleness_ttl_days is not None
            else enrichment_setting('STALENESS_TTL_DAYS', 7)
        )

    @property
    def available_sources(self):
        return list(self.enrichers)

    def get_or_fetch(self, candidate, source, force=False):
        """Return the cached profile for ``source`` or fetch a fresh one."""
        enricher = self.enrichers.get(source)
        if enricher is None:
            raise EnrichmentError(f'No enricher registered for source {source}')

        url_field = PROFILE_URL_FIELDS.get(source)
        profile, _ = CandidateExternalProfile.objects.get_or_create(
            candidate=candidate,
            source=source,
            defaults={'profile_url': getattr(candidate, url_field, '') if url_field else ''},
        )
        if not force and profile.is_fresh(self.staleness_ttl_days):
            logger.debug('Using cached %s profile for candidate %s (%s)', source, candidate.id, profile.status)
            return profile

        try:
            return enricher.enrich(profile, candidate)
        except Exception as e:
            logger.error('%s enrichment crashed for candidate %s: %s', source, candidate.id, e, exc_info=True)
            return enricher.mark_failed(profile, str(e) or type(e).__name__)

    def enrich_candidate(self, candidate, sources=None, force=False):
        sources = sources or self.available_sources
        profiles = []
        for source in sources:
            if source not in self.enrichers:
                logger.warning('Skipping unknown enrichment source %s', source)
                continue
            profiles.append(self.get_or_fetch(candidate, source, force=force))
        logger.info(
            'Enriched candidate %s from %s',
            candidate.id,
            ', '.join(f'{p.source}={p.status}' for p in profiles) or 'no sources',
        )
        return profiles

    def refresh_stale_profiles(self, candidate):
        """Re-fetch every known profile of the candidate that is past its TTL."""
        refreshed = 0
        for profile in candidate.external_profiles.all():
            if profile.source in self.enrichers and not profile.is_fresh(self.staleness_ttl_days):
                self.get_or_fetch(candidate, profile.source, force=True)
                refreshed += 1
        if refreshed:
            logger.info('Refreshed %d stale profile(s) for candidate %s', refreshed, candidate.id)
        return refreshed

    def retry_failed(self, candidate):
        retried = []
        failed = candidate.external_profiles.filter(
            status__in=[CandidateExternalProfile.STATUS_FAILED, CandidateExternalProfile.STATUS_NOT_FOUND],
        )
        for profile in failed:
            if profile.source in self.enrichers:
                retried.append(self.get_or_fetch(candidate, profile.source, force=True))
        return retried

    def build_enrichment_context(self, candidate):
        profiles = candidate.external_profiles.filter(
            status=CandidateExternalProfile.STATUS_SUCCESS,
        ).exclude(enriched_summary='').order_by('source')
        sections = [f'[{profile.get_source_display()}]\n{profile.enriched_summary}' for profile in profiles]
        if not sections:
            return ''
        return CONTEXT_HEADER + '\n\n' + '\n\n'.join(sections)
