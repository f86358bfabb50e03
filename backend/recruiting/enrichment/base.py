import logging

from django.utils import timezone

from recruiting.models import CandidateExternalProfile

logger = logging.getLogger(__name__)


class ProfileEnricher:
    """
    Strategy for one external source.

    ``enrich`` fills in and saves the given profile row. Every outcome,
    including not-found and failures, is stamped with ``last_fetched_at`` so
    the TTL cache also covers dead sources.
    """

    source = None
    url_markers = ()

    def supports_url(self, url):
        lowered = (url or '').lower()
        return any(marker in lowered for marker in self.url_markers)

    def enrich(self, profile, candidate):
        raise NotImplementedError

    def _save(self, profile, status, error_message=''):
        profile.status = status
        profile.error_message = error_message
        profile.last_fetched_at = timezone.now()
        profile.save()
        return profile

    def mark_success(self, profile, summary):
        profile.enriched_summary = summary
        logger.info('[%s] Enriched profile for candidate %s', self.source, profile.candidate_id)
        return self._save(profile, CandidateExternalProfile.STATUS_SUCCESS)

    def mark_not_found(self, profile, message):
        logger.info('[%s] No profile for candidate %s: %s', self.source, profile.candidate_id, message)
        return self._save(profile, CandidateExternalProfile.STATUS_NOT_FOUND, message)

    def mark_failed(self, profile, message):
        logger.warning('[%s] Enrichment failed for candidate %s: %s', self.source, profile.candidate_id, message)
        return self._save(profile, CandidateExternalProfile.STATUS_FAILED, message)

    def mark_not_available(self, profile, message):
        return self._save(profile, CandidateExternalProfile.STATUS_NOT_AVAILABLE, message)
