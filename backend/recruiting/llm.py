"""
Gemini client and structured response parsing.

The LLM is asked for JSON in a fixed schema, but responses still arrive
wrapped in code fences, with chatter around the object, or with list values
where a string was requested. ``extract_json`` and the ``from_payload``
constructors below normalize all of that in one place.
"""
from __future__ import annotations

import json
import logging
import math
import re
import textwrap
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

from recruiting.exceptions import LLMServiceError

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent'

MAX_RESUME_CHARS = 15000
MAX_CONTEXT_CHARS = 4000


def call_gemini_api(
    prompt: str,
    api_key: str,
    *,
    model: str | None = None,
    temperature: float = 0.3,
    max_tokens: int = 2048,
    timeout: int = 40,
) -> str:
    if not api_key:
        raise LLMServiceError('Gemini API key is not configured.')
    model_name = model or getattr(settings, 'GEMINI_MODEL', 'gemini-2.0-flash')
    payload = {
        'contents': [
            {
                'role': 'user',
                'parts': [{'text': prompt}],
            }
        ],
        'generationConfig': {
            'temperature': temperature,
            'maxOutputTokens': max_tokens,
            'responseMimeType': 'application/json',
        },
    }
    try:
        response = requests.post(
            GEMINI_ENDPOINT.format(model=model_name),
            params={'key': api_key},
            json=payload,
            timeout=timeout,
        )
        response.raise_for_status()
    except requests.Timeout as exc:
        logger.error('Gemini API request timed out: %s', exc)
        raise LLMServiceError('Gemini API request timeout.') from exc
    except requests.RequestException as exc:
        logger.error('Gemini API request failed: %s', exc)
        raise LLMServiceError('Gemini API connection failed. Service unavailable.') from exc

    data = response_json(response, 'Gemini')

    feedback = data.get('promptFeedback') or {}
    if isinstance(feedback, dict) and feedback.get('blockReason'):
        logger.error('Gemini blocked request. Reason: %s', feedback['blockReason'])
        raise LLMServiceError(f"Content was blocked by Gemini: {feedback['blockReason']}")

    candidates = data.get('candidates') or []
    if not isinstance(candidates, list) or not candidates:
        logger.error('Gemini returned empty candidates. Full response: %s', data)
        raise LLMServiceError('Gemini returned an empty result.')

    first_candidate = candidates[0]
    if not isinstance(first_candidate, dict):
        raise LLMServiceError('Gemini returned an unexpected candidate shape.')
    finish_reason = first_candidate.get('finishReason')
    if finish_reason and finish_reason not in ['STOP', 'MAX_TOKENS']:
        logger.error('Gemini stopped with reason: %s', finish_reason)
        raise LLMServiceError(f'Generation stopped: {finish_reason}')

    content = first_candidate.get('content')
    parts = content.get('parts') if isinstance(content, dict) else None
    if not isinstance(parts, list):
        parts = []
    texts = [part.get('text') for part in parts if isinstance(part, dict) and part.get('text')]
    if not texts:
        raise LLMServiceError('Gemini response did not include text output.')
    return texts[0]


def response_json(response, service: str) -> Dict[str, Any]:
    """Decode a JSON object body, mapping gateway pages and odd shapes to ``LLMServiceError``."""
    try:
        data = response.json()
    except ValueError as exc:
        logger.error('%s returned a non-JSON body: %s', service, exc)
        raise LLMServiceError(f'{service} returned an unreadable response.') from exc
    if not isinstance(data, dict):
        logger.error('%s returned %s instead of a JSON object', service, type(data).__name__)
        raise LLMServiceError(f'{service} returned an unreadable response.')
    return data


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith('```'):
        stripped = re.sub(r'^```(?:json)?', '', stripped, count=1, flags=re.IGNORECASE).strip()
        if stripped.endswith('```'):
            stripped = stripped[:-3].strip()
    return stripped


def extract_json(raw_text: str) -> Dict[str, Any]:
    """Parse the outermost JSON object out of an LLM reply."""
    cleaned = _strip_code_fence(raw_text or '')
    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start == -1 or end <= start:
        raise LLMServiceError('LLM response did not contain a JSON object.')
    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as exc:
        logger.error('Failed to parse LLM JSON: %s', exc)
        raise LLMServiceError('LLM returned malformed JSON.') from exc
    if not isinstance(parsed, dict):
        raise LLMServiceError('LLM response JSON is not an object.')
    return parsed


# ----------------------------------------------------------------------
# Response coercion
# ----------------------------------------------------------------------

def coerce_text(value: Any) -> str:
    """Coerce an LLM value that should be a string. Arrays become a comma-joined string."""
    if value is None:
        return ''
    if isinstance(value, (list, tuple)):
        items = [coerce_text(item) for item in value]
        return ', '.join(item for item in items if item)
    if isinstance(value, dict):
        return ', '.join(f'{k}: {coerce_text(v)}' for k, v in value.items() if coerce_text(v))
    return str(value).strip()


def coerce_number(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        # NaN and Infinity are valid for json.loads but never a usable score
        if isinstance(value, float) and not math.isfinite(value):
            return default
        return float(value)
    if isinstance(value, (list, tuple)):
        return coerce_number(value[0], default) if value else default
    match = re.search(r'-?\d+(?:\.\d+)?', str(value))
    return float(match.group()) if match else default


def _coerce(kind: str, value: Any):
    if kind == 'text':
        return coerce_text(value)
    if kind == 'score':
        return max(0.0, min(100.0, coerce_number(value)))
    if kind == 'int':
        number = coerce_number(value, default=-1)
        return int(number) if number >= 0 else None
    if kind == 'fraction':
        return max(0.0, min(1.0, coerce_number(value)))
    if kind == 'list':
        if isinstance(value, (list, tuple)):
            return [coerce_text(v) for v in value if coerce_text(v)]
        text = coerce_text(value)
        return [part.strip() for part in text.split(',') if part.strip()]
    return value


def _key(name: str, kind: str, **kwargs):
    return field(metadata={'key': name, 'kind': kind}, **kwargs)


class LLMPayload:
    """Mixin building a dataclass from an LLM JSON object, coercing every field."""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]):
        values = {}
        for f in fields(cls):
            key = f.metadata.get('key', f.name)
            values[f.name] = _coerce(f.metadata.get('kind'), payload.get(key))
        return cls(**values)


@dataclass(frozen=True)
class ResumeAnalysis(LLMPayload):
    name: str = _key('name', 'text', default='')
    email: str = _key('email', 'text', default='')
    mobile: str = _key('mobile', 'text', default='')
    experience_summary: str = _key('experienceSummary', 'text', default='')
    skills: str = _key('skills', 'text', default='')
    domain_knowledge: str = _key('domainKnowledge', 'text', default='')
    academic_background: str = _key('academicBackground', 'text', default='')
    current_company: str = _key('currentCompany', 'text', default='')
    github_url: str = _key('githubUrl', 'text', default='')
    linkedin_url: str = _key('linkedinUrl', 'text', default='')
    twitter_url: str = _key('twitterUrl', 'text', default='')
    years_of_experience: Optional[int] = _key('yearsOfExperience', 'int', default=None)
    confidence_score: float = _key('confidenceScore', 'fraction', default=0.0)


@dataclass(frozen=True)
class MatchResult(LLMPayload):
    match_score: float = _key('matchScore', 'score', default=0.0)
    skills_score: float = _key('skillsScore', 'score', default=0.0)
    experience_score: float = _key('experienceScore', 'score', default=0.0)
    education_score: float = _key('educationScore', 'score', default=0.0)
    domain_score: float = _key('domainScore', 'score', default=0.0)
    explanation: str = _key('explanation', 'text', default='')
    strengths: str = _key('strengths', 'text', default='')
    gaps: str = _key('gaps', 'text', default='')
    recommendation: str = _key('recommendation', 'text', default='')

    def format_explanation(self) -> str:
        sections = []
        if self.recommendation:
            sections.append(f'Recommendation: {self.recommendation}')
        if self.explanation:
            sections.append(self.explanation)
        if self.strengths:
            sections.append(f'Strengths: {self.strengths}')
        if self.gaps:
            sections.append(f'Gaps: {self.gaps}')
        return '\n\n'.join(sections)


@dataclass(frozen=True)
class SourceSelection(LLMPayload):
    sources: List[str] = _key('sources', 'list', default_factory=list)
    reasoning: str = _key('reasoning', 'text', default='')


# ----------------------------------------------------------------------
# Prompts
# ----------------------------------------------------------------------

RESUME_ANALYSIS_PROMPT = textwrap.dedent(
    """\
    You are an experienced technical recruiter. Extract structured candidate data
    from the resume below. Respond with a single JSON object and nothing else:
    {{
      "name": "Full name",
      "email": "email address or empty string",
      "mobile": "phone number or empty string",
      "experienceSummary": "3-4 sentence summary of professional experience",
      "skills": "comma separated technical and professional skills",
      "domainKnowledge": "industries and business domains",
      "academicBackground": "degrees, institutions, graduation years",
      "currentCompany": "most recent employer or empty string",
      "githubUrl": "GitHub profile URL or empty string",
      "linkedinUrl": "LinkedIn profile URL or empty string",
      "twitterUrl": "Twitter/X profile URL or empty string",
      "yearsOfExperience": 0,
      "confidenceScore": 0.0
    }}
    confidenceScore is your confidence in the extraction between 0 and 1.

    Resume file: {filename}
    Resume text:
    {resume_text}
    """
)

MATCH_PROMPT = textwrap.dedent(
    """\
    You are evaluating how well a candidate fits a job requirement.
    Score each dimension from 0 to 100 and respond with a single JSON object:
    {{
      "matchScore": 0,
      "skillsScore": 0,
      "experienceScore": 0,
      "educationScore": 0,
      "domainScore": 0,
      "explanation": "2-3 sentences justifying the overall score",
      "strengths": "key strengths for this role",
      "gaps": "missing skills or experience",
      "recommendation": "STRONG_MATCH, GOOD_MATCH, PARTIAL_MATCH or WEAK_MATCH"
    }}

    JOB REQUIREMENT
    Title: {title}
    Description: {description}
    Required skills: {required_skills}
    Experience: {experience_range}
    Education: {required_education}
    Domain: {domain_requirements}

    CANDIDATE
    Name: {name}
    Years of experience: {years}
    Experience summary: {experience_summary}
    Skills: {skills}
    Domain knowledge: {domain_knowledge}
    Academic background: {academic_background}
    {enrichment}"""
)

SOURCE_SELECTION_PROMPT = textwrap.dedent(
    """\
    Decide which external sources are worth querying to learn more about this
    candidate for the job below. Available sources: GITHUB, LINKEDIN, TWITTER,
    INTERNET_SEARCH. Respond with a single JSON object:
    {{"sources": ["INTERNET_SEARCH"], "reasoning": "one sentence"}}

    Job: {title}. Required skills: {required_skills}
    Candidate: {name}. Skills: {skills}. Current company: {company}
    Known profile links: {links}
    """
)


def _api_key() -> str:
    return getattr(settings, 'GEMINI_API_KEY', '')


def _experience_range(job_requirement) -> str:
    low = job_requirement.min_experience_years
    high = job_requirement.max_experience_years
    if low is not None and high is not None:
        return f'{low}-{high} years'
    if low is not None:
        return f'{low}+ years'
    if high is not None:
        return f'up to {high} years'
    return 'not specified'


def analyze_resume(resume_text: str, filename: str = '') -> ResumeAnalysis:
    """Extract candidate fields from resume text via the LLM."""
    prompt = RESUME_ANALYSIS_PROMPT.format(
        filename=filename or 'unknown',
        resume_text=resume_text[:MAX_RESUME_CHARS],
    )
    raw = call_gemini_api(prompt, _api_key(), temperature=0.3, max_tokens=3000)
    analysis = ResumeAnalysis.from_payload(extract_json(raw))
    logger.info(
        'Analyzed resume %s: name=%r, confidence=%.2f',
        filename,
        analysis.name,
        analysis.confidence_score,
    )
    return analysis


def build_match_prompt(candidate, job_requirement, enrichment_context: str = '') -> str:
    enrichment = ''
    if enrichment_context:
        enrichment = '\n' + enrichment_context[:MAX_CONTEXT_CHARS] + '\n'
    return MATCH_PROMPT.format(
        title=job_requirement.title,
        description=job_requirement.description or 'not specified',
        required_skills=job_requirement.required_skills or 'not specified',
        experience_range=_experience_range(job_requirement),
        required_education=job_requirement.required_education or 'not specified',
        domain_requirements=job_requirement.domain_requirements or 'not specified',
        name=candidate.name or 'unknown',
        years=candidate.years_of_experience if candidate.years_of_experience is not None else 'unknown',
        experience_summary=candidate.experience_summary or 'not provided',
        skills=candidate.skills or 'not provided',
        domain_knowledge=candidate.domain_knowledge or 'not provided',
        academic_background=candidate.academic_background or 'not provided',
        enrichment=enrichment,
    )


def score_match(candidate, job_requirement, enrichment_context: str = '') -> MatchResult:
    """Score one candidate against one job requirement. Raises LLMServiceError on unusable output."""
    prompt = build_match_prompt(candidate, job_requirement, enrichment_context)
    raw = call_gemini_api(prompt, _api_key(), temperature=0.2, max_tokens=2000)
    payload = extract_json(raw)
    if 'matchScore' not in payload:
        raise LLMServiceError('LLM match response is missing matchScore.')
    return MatchResult.from_payload(payload)


def select_sources(candidate, job_requirement, available_sources: List[str]) -> SourceSelection:
    """Ask the LLM which enrichment sources are relevant. Falls back to internet search."""
    links = ', '.join(
        url for url in (candidate.github_url, candidate.linkedin_url, candidate.twitter_url) if url
    ) or 'none'
    prompt = SOURCE_SELECTION_PROMPT.format(
        title=job_requirement.title,
        required_skills=job_requirement.required_skills or 'not specified',
        name=candidate.name or 'unknown',
        skills=candidate.skills or 'not provided',
        company=candidate.current_company or 'unknown',
        links=links,
    )
    fallback = SourceSelection(sources=['INTERNET_SEARCH'], reasoning='Default source selection')
    try:
        raw = call_gemini_api(prompt, _api_key(), temperature=0.1, max_tokens=300)
        selection = SourceSelection.from_payload(extract_json(raw))
    except LLMServiceError as exc:
        logger.warning('Source selection failed for candidate %s: %s', candidate.id, exc)
        return fallback
    chosen = [s.upper() for s in selection.sources if s.upper() in available_sources]
    if not chosen:
        return fallback
    return SourceSelection(sources=chosen, reasoning=selection.reasoning)
