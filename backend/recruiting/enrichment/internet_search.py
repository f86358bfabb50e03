"""
Web search enrichment through the Tavily search API.

Without an API key, or when the search comes back with too little to be
useful, the summary is synthesized from the candidate's own resume fields so
matching always has some context for this source.
"""
import logging

import requests

from recruiting.enrichment.base import ProfileEnricher
from recruiting.models import CandidateExternalProfile

logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL = 'https://api.tavily.com/search'
MAX_RESULTS = 5
SUMMARY_RESULTS = 3
SNIPPET_CHARS = 300
MIN_USEFUL_CHARS = 100


def primary_skill(candidate):
    skills = [skill.strip() for skill in (candidate.skills or '').split(',') if skill.strip()]
    return skills[0] if skills else ''


def synthesize_summary(candidate):
    parts = [f'Candidate: {candidate.name}.']
    if candidate.email:
        parts.append(f'Email: {candidate.email}.')
    if candidate.current_company:
        parts.append(f'Company: {candidate.current_company}.')
    if candidate.years_of_experience:
        parts.append(f'Experience: {candidate.years_of_experience} years.')
    if candidate.skills:
        parts.append(f'Skills: {candidate.skills}.')
    if candidate.academic_background:
        parts.append(f'Education: {candidate.academic_background}.')
    parts.append('(Synthesised from resume data.)')
    return ' '.join(parts)


class InternetSearchEnricher(ProfileEnricher):
    source = CandidateExternalProfile.SOURCE_INTERNET_SEARCH

    def __init__(self, api_key='', timeout=20):
        self.api_key = api_key
        self.timeout = timeout

    def supports_url(self, url):
        return True

    def build_query(self, candidate):
        skill = primary_skill(candidate)
        query = f'{candidate.name} {skill}' if skill else candidate.name
        return f'{query} software developer professional profile'

    def enrich(self, profile, candidate):
        profile.display_name = candidate.name
        if not self.api_key:
            logger.info('No Tavily API key configured, synthesizing context for candidate %s', candidate.id)
            return self.mark_success(profile, synthesize_summary(candidate))

        try:
            summary = self._search(candidate)
        except (requests.RequestException, ValueError) as e:
            return self.mark_failed(profile, f'Internet search failed: {e}')

        if len(summary) < MIN_USEFUL_CHARS:
            summary = synthesize_summary(candidate)
        return self.mark_success(profile, summary)

    def _search(self, candidate):
        response = requests.post(
            TAVILY_SEARCH_URL,
            json={
                'api_key': self.api_key,
                'query': self.build_query(candidate),
                'max_results': MAX_RESULTS,
                'include_answer': True,
                'search_depth': 'basic',
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()

        lines = [f'=== Web Search Results for {candidate.name} ===']
        answer = (payload.get('answer') or '').strip()
        if answer:
            lines.append(f'Summary: {answer}')
        for result in (payload.get('results') or [])[:SUMMARY_RESULTS]:
            title = result.get('title') or 'Untitled'
            lines.append(f"Source: {title} ({result.get('url', '')})")
            content = (result.get('content') or '').strip()
            if content:
                if len(content) > SNIPPET_CHARS:
                    content = content[:SNIPPET_CHARS] + '...'
                lines.append(content)
        if len(lines) == 1:
            return ''
        return '\n'.join(lines)
