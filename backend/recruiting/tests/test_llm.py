import json
from types import SimpleNamespace

import pytest
import requests

from recruiting import llm
from recruiting.exceptions import LLMServiceError


def _gemini_response(text):
    return SimpleNamespace(
        raise_for_status=lambda: None,
        json=lambda: {'candidates': [{'finishReason': 'STOP', 'content': {'parts': [{'text': text}]}}]},
    )


@pytest.mark.unit
def test_coerce_text_joins_arrays():
    assert llm.coerce_text(['Python', ' Django ', '', None]) == 'Python, Django'
    assert llm.coerce_text(None) == ''
    assert llm.coerce_text('  plain ') == 'plain'


@pytest.mark.unit
def test_extract_json_strips_fences_and_prose():
    raw = 'Here you go:\n```json\n{"matchScore": 81, "gaps": ["Kubernetes"]}\n```'
    assert llm.extract_json(raw) == {'matchScore': 81, 'gaps': ['Kubernetes']}


@pytest.mark.unit
@pytest.mark.parametrize('raw', ['no json here', '{"matchScore": 81,,}', ''])
def test_extract_json_rejects_garbage(raw):
    with pytest.raises(LLMServiceError):
        llm.extract_json(raw)


@pytest.mark.unit
def test_resume_analysis_coerces_every_field():
    analysis = llm.ResumeAnalysis.from_payload({
        'name': 'Jane Doe',
        'skills': ['Python', 'Django'],
        'academicBackground': ['BSc CS', 'MSc AI'],
        'yearsOfExperience': '7 years',
        'confidenceScore': 1.4,
        'githubUrl': None,
    })

    assert analysis.skills == 'Python, Django'
    assert analysis.academic_background == 'BSc CS, MSc AI'
    assert analysis.years_of_experience == 7
    assert analysis.confidence_score == 1.0
    assert analysis.github_url == ''


@pytest.mark.unit
def test_match_result_clamps_scores_and_formats_explanation():
    result = llm.MatchResult.from_payload({
        'matchScore': '120',
        'skillsScore': -5,
        'explanation': 'Strong backend fit.',
        'strengths': ['Python', 'APIs'],
        'gaps': 'Kubernetes',
        'recommendation': 'Interview',
    })

    assert result.match_score == 100.0
    assert result.skills_score == 0.0
    assert result.format_explanation() == (
        'Recommendation: Interview\n\nStrong backend fit.\n\nStrengths: Python, APIs\n\nGaps: Kubernetes'
    )


@pytest.mark.unit
def test_call_gemini_api_requires_key():
    with pytest.raises(LLMServiceError, match='not configured'):
        llm.call_gemini_api('prompt', '')


@pytest.mark.unit
def test_call_gemini_api_maps_timeouts(monkeypatch):
    def timeout(*args, **kwargs):
        raise requests.Timeout('slow')

    monkeypatch.setattr('recruiting.llm.requests.post', timeout)
    with pytest.raises(LLMServiceError, match='timeout'):
        llm.call_gemini_api('prompt', 'key')


@pytest.mark.unit
def test_call_gemini_api_reports_blocked_prompt(monkeypatch):
    response = SimpleNamespace(raise_for_status=lambda: None, json=lambda: {'promptFeedback': {'blockReason': 'SAFETY'}})
    monkeypatch.setattr('recruiting.llm.requests.post', lambda *a, **k: response)
    with pytest.raises(LLMServiceError, match='SAFETY'):
        llm.call_gemini_api('prompt', 'key')


@pytest.mark.unit
def test_score_match_parses_response(monkeypatch, settings):
    settings.GEMINI_API_KEY = 'test-key'
    captured = {}

    def fake_post(url, params, json, timeout):
        captured['prompt'] = json['contents'][0]['parts'][0]['text']
        return _gemini_response('{"matchScore": 72, "skillsScore": 80, "strengths": ["Django"]}')

    monkeypatch.setattr('recruiting.llm.requests.post', fake_post)
    candidate = SimpleNamespace(
        name='Jane', years_of_experience=5, experience_summary='APIs', skills='Python',
        domain_knowledge='', academic_background='BSc',
    )
    job = SimpleNamespace(
        title='Backend Engineer', description='', required_skills='Python', min_experience_years=3,
        max_experience_years=None, required_education='', domain_requirements='',
    )

    result = llm.score_match(candidate, job, enrichment_context='EXTERNAL PROFILE DATA: speaker')

    assert result.match_score == 72.0
    assert result.strengths == 'Django'
    assert 'Backend Engineer' in captured['prompt']
    assert '3+ years' in captured['prompt']
    assert 'EXTERNAL PROFILE DATA: speaker' in captured['prompt']


@pytest.mark.unit
def test_score_match_requires_match_score(monkeypatch, settings):
    settings.GEMINI_API_KEY = 'test-key'
    monkeypatch.setattr('recruiting.llm.requests.post', lambda *a, **k: _gemini_response(json.dumps({'gaps': 'all'})))
    candidate = SimpleNamespace(name='x', years_of_experience=None, experience_summary='', skills='',
                                domain_knowledge='', academic_background='')
    job = SimpleNamespace(title='t', description='', required_skills='', min_experience_years=None,
                          max_experience_years=None, required_education='', domain_requirements='')

    with pytest.raises(LLMServiceError, match='matchScore'):
        llm.score_match(candidate, job)


@pytest.mark.unit
def test_select_sources_falls_back_to_internet_search(monkeypatch):
    candidate = SimpleNamespace(id='c1', name='Jane', skills='Python', current_company='Acme',
                                github_url='', linkedin_url='', twitter_url='')
    job = SimpleNamespace(title='Engineer', required_skills='Python')

    # No API key configured
    selection = llm.select_sources(candidate, job, ['GITHUB', 'INTERNET_SEARCH'])

    assert selection.sources == ['INTERNET_SEARCH']


def _raw_response(body):
    def decode():
        if isinstance(body, Exception):
            raise body
        return body
    return SimpleNamespace(raise_for_status=lambda: None, json=decode)


@pytest.mark.unit
@pytest.mark.parametrize('body', [
    json.JSONDecodeError('Expecting value', '<html>Bad Gateway</html>', 0),
    ['not', 'an', 'object'],
    {'candidates': [{'finishReason': 'STOP', 'content': None}]},
    {'candidates': ['oops']},
])
def test_call_gemini_api_maps_unusable_bodies(monkeypatch, body):
    monkeypatch.setattr('recruiting.llm.requests.post', lambda *a, **k: _raw_response(body))

    with pytest.raises(LLMServiceError):
        llm.call_gemini_api('prompt', 'key')


@pytest.mark.unit
def test_non_finite_scores_fall_back_to_zero():
    result = llm.MatchResult.from_payload(json.loads('{"matchScore": NaN, "skillsScore": Infinity}'))

    assert result.match_score == 0.0
    assert result.skills_score == 0.0
    assert llm.coerce_number(float('nan'), default=5.0) == 5.0
