import logging
import re

import requests

from recruiting.enrichment.base import ProfileEnricher
from recruiting.models import CandidateExternalProfile

logger = logging.getLogger(__name__)

TWITTER_USER_ENDPOINT = 'https://api.twitter.com/2/users/by/username/{username}'
USER_FIELDS = 'description,location,public_metrics,url'
_USERNAME_RE = re.compile(r'(?:twitter|x)\.com/@?([A-Za-z0-9_]{1,15})', re.IGNORECASE)


def extract_username(url):
    match = _USERNAME_RE.search(url or '')
    return match.group(1) if match else None


class TwitterEnricher(ProfileEnricher):
    """Twitter / X API v2 lookup. Needs a bearer token."""

    source = CandidateExternalProfile.SOURCE_TWITTER
    url_markers = ('twitter.com', 'x.com')

    def __init__(self, bearer_token='', timeout=15):
        self.bearer_token = bearer_token
        self.timeout = timeout

    def enrich(self, profile, candidate):
        if not self.bearer_token:
            return self.mark_not_available(profile, 'Twitter API bearer token is not configured.')
        username = extract_username(profile.profile_url or candidate.twitter_url)
        if not username:
            return self.mark_not_found(profile, 'No Twitter / X handle on the resume')

        try:
            response = requests.get(
                TWITTER_USER_ENDPOINT.format(username=username),
                headers={'Authorization': f'Bearer {self.bearer_token}'},
                params={'user.fields': USER_FIELDS},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return self.mark_failed(profile, f'Twitter API request failed: {e}')

        if response.status_code == 404:
            return self.mark_not_found(profile, f'Twitter user @{username} not found')
        if response.status_code == 429:
            return self.mark_failed(profile, 'Twitter API rate limit exceeded')
        if response.status_code != 200:
            return self.mark_failed(profile, f'Twitter API error: {response.status_code}')

        try:
            data = response.json().get('data')
        except (ValueError, AttributeError) as e:
            return self.mark_failed(profile, f'Twitter API returned an unreadable response: {e}')
        if not isinstance(data, dict) or not data:
            return self.mark_not_found(profile, f'Twitter user @{username} not found')

        metrics = data.get('public_metrics') or {}
        profile.profile_url = f'https://x.com/{username}'
        profile.display_name = data.get('name') or username
        profile.bio = data.get('description') or ''
        profile.location = data.get('location') or ''
        profile.followers = metrics.get('followers_count')

        summary = f"Twitter / X: @{username} ({metrics.get('followers_count', 0)} followers)."
        if profile.bio:
            summary += f' Bio: {profile.bio}'
        return self.mark_success(profile, summary)
