from urllib.parse import quote_plus

from recruiting.enrichment.base import ProfileEnricher
from recruiting.models import CandidateExternalProfile

LINKEDIN_SEARCH_URL = 'https://www.linkedin.com/search/results/people/?keywords={keywords}'


class LinkedInEnricher(ProfileEnricher):
    """LinkedIn offers no public profile API; we only record where to look."""

    source = CandidateExternalProfile.SOURCE_LINKEDIN
    url_markers = ('linkedin.com',)

    def enrich(self, profile, candidate):
        url = profile.profile_url or candidate.linkedin_url
        if not url:
            url = LINKEDIN_SEARCH_URL.format(keywords=quote_plus(candidate.name or ''))
        profile.profile_url = url
        profile.display_name = candidate.name
        return self.mark_not_available(
            profile,
            'LinkedIn does not provide a public profile API. Review the profile manually.',
        )
