"""
GitHub profile enrichment via PyGithub.

Resolves a login from the candidate's ``github_url`` (or a name search when
the resume had none) and records the public profile plus the top
repositories by stars.
"""
import logging
import re
from typing import Dict, List, Optional

from github import Github, GithubException, RateLimitExceededException, UnknownObjectException

from recruiting.enrichment.base import ProfileEnricher
from recruiting.models import CandidateExternalProfile

logger = logging.getLogger(__name__)

TOP_REPOSITORIES = 5
_LOGIN_RE = re.compile(r'github\.com/([A-Za-z0-9](?:[A-Za-z0-9-]{0,38}))', re.IGNORECASE)
_RESERVED_PATHS = {'orgs', 'topics', 'search', 'about', 'features', 'pricing', 'settings'}


def extract_login(url: str) -> Optional[str]:
    match = _LOGIN_RE.search(url or '')
    if not match:
        return None
    login = match.group(1)
    if login.lower() in _RESERVED_PATHS:
        return None
    return login


class GitHubEnricher(ProfileEnricher):
    source = CandidateExternalProfile.SOURCE_GITHUB
    url_markers = ('github.com',)

    def __init__(self, client=None, token=None):
        self._client = client
        self.token = token

    @property
    def client(self):
        if self._client is None:
            self._client = Github(self.token) if self.token else Github()
        return self._client

    def enrich(self, profile, candidate):
        try:
            login = extract_login(profile.profile_url or candidate.github_url) or self._search_login(candidate)
            if not login:
                return self.mark_not_found(profile, 'No GitHub account found for candidate')

            user = self.client.get_user(login)
            repos = self._top_repositories(user)
        except RateLimitExceededException:
            return self.mark_failed(profile, 'GitHub API rate limit exceeded')
        except UnknownObjectException:
            return self.mark_not_found(profile, 'GitHub user not found')
        except GithubException as e:
            if e.status == 404:
                return self.mark_not_found(profile, 'GitHub user not found')
            return self.mark_failed(profile, f'GitHub API error: {e.status}')
        except Exception as e:
            logger.error(f"Unexpected GitHub error for candidate {candidate.id}: {e}")
            return self.mark_failed(profile, str(e))

        profile.profile_url = user.html_url or f'https://github.com/{login}'
        profile.display_name = user.name or login
        profile.bio = user.bio or ''
        profile.location = user.location or ''
        profile.company = user.company or ''
        profile.public_repos = user.public_repos
        profile.followers = user.followers
        profile.repositories = repos
        return self.mark_success(profile, self._summarize(user, login, repos))

    def _search_login(self, candidate) -> Optional[str]:
        if not candidate.name or candidate.name == 'Unknown':
            return None
        results = self.client.search_users(f'"{candidate.name}" in:name')
        return next((user.login for user in results), None)

    def _top_repositories(self, user) -> List[Dict]:
        repos = sorted(
            (repo for repo in user.get_repos() if not repo.fork),
            key=lambda repo: repo.stargazers_count,
            reverse=True,
        )
        return [
            {
                'name': repo.name,
                'description': repo.description or '',
                'stars': repo.stargazers_count,
                'language': repo.language,
                'url': repo.html_url,
            }
            for repo in repos[:TOP_REPOSITORIES]
        ]

    def _summarize(self, user, login, repos) -> str:
        lines = [f'GitHub: @{login} ({user.public_repos} public repos, {user.followers} followers).']
        if user.bio:
            lines.append(f'Bio: {user.bio}')
        if user.blog:
            lines.append(f'Blog: {user.blog}')
        if repos:
            lines.append('Top projects:')
            for repo in repos:
                language = repo['language'] or 'n/a'
                line = f"- {repo['name']} ({language}, {repo['stars']} stars)"
                if repo['description']:
                    line += f": {repo['description']}"
                lines.append(line)
        return '\n'.join(lines)
