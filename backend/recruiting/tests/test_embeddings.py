from types import SimpleNamespace

import pytest

from recruiting.embeddings import (
    EmbeddingService,
    chunk_resume,
    classify_section,
    cosine_similarity,
    local_embedding,
)
from recruiting.exceptions import LLMServiceError
from recruiting.models import ResumeEmbedding
from recruiting.tests.fixtures import CandidateFactory


@pytest.mark.unit
def test_chunk_resume_splits_sections_and_long_paragraphs():
    long_paragraph = ' '.join(['Built payment systems at a company.'] * 60)
    text = f'Education: BSc Computer Science\n\n{long_paragraph}\n\nSkills: Python, Go'

    chunks = chunk_resume(text, max_chars=500)

    assert chunks[0] == ('Education: BSc Computer Science', ResumeEmbedding.SECTION_EDUCATION)
    assert chunks[-1] == ('Skills: Python, Go', ResumeEmbedding.SECTION_SKILLS)
    middle = chunks[1:-1]
    assert len(middle) > 1
    assert all(len(chunk) <= 500 for chunk, _ in middle)
    assert all(section == ResumeEmbedding.SECTION_EXPERIENCE for _, section in middle)


@pytest.mark.unit
def test_classify_section_defaults_to_general():
    assert classify_section('Jane Doe, Berlin') == ResumeEmbedding.SECTION_GENERAL
    assert classify_section('AWS Certified Architect') == ResumeEmbedding.SECTION_CERTIFICATIONS


@pytest.mark.unit
def test_local_embedding_is_deterministic_and_normalized():
    a = local_embedding('python django postgres')
    b = local_embedding('python django postgres')
    c = local_embedding('watercolour painting')

    assert a == b
    assert abs(sum(v * v for v in a) - 1.0) < 1e-9
    assert cosine_similarity(a, b) == pytest.approx(1.0)
    assert cosine_similarity(a, c) < 0.5
    assert cosine_similarity(a, []) == 0.0


@pytest.mark.unit
def test_gemini_batches_are_limited(monkeypatch):
    calls = []

    def fake_post(url, params, json, timeout):
        calls.append(len(json['requests']))
        return SimpleNamespace(
            raise_for_status=lambda: None,
            json=lambda: {'embeddings': [{'values': [0.1, 0.2]} for _ in json['requests']]},
        )

    monkeypatch.setattr('recruiting.embeddings.requests.post', fake_post)
    vectors = EmbeddingService(api_key='key').embed_texts([f'chunk {i}' for i in range(23)])

    assert calls == [10, 10, 3]
    assert len(vectors) == 23


@pytest.mark.unit
def test_gemini_vector_count_mismatch_is_an_error(monkeypatch):
    response = SimpleNamespace(raise_for_status=lambda: None, json=lambda: {'embeddings': []})
    monkeypatch.setattr('recruiting.embeddings.requests.post', lambda *a, **k: response)

    with pytest.raises(LLMServiceError):
        EmbeddingService(api_key='key').embed_texts(['one'])


@pytest.mark.unit
def test_gemini_html_body_is_a_service_error(monkeypatch):
    def not_json():
        raise ValueError('Expecting value: line 1 column 1 (char 0)')

    response = SimpleNamespace(raise_for_status=lambda: None, json=not_json)
    monkeypatch.setattr('recruiting.embeddings.requests.post', lambda *a, **k: response)

    with pytest.raises(LLMServiceError, match='unreadable'):
        EmbeddingService(api_key='key').embed_texts(['one'])


@pytest.mark.django_db
def test_search_candidates_ranks_by_similarity():
    python_dev = CandidateFactory(name='Py Dev', resume_content='Skills: python django postgres rest apis')
    painter = CandidateFactory(name='Painter', resume_content='Skills: watercolour oil painting galleries')
    inactive = CandidateFactory(resume_content='Skills: python django postgres', is_active=False)
    service = EmbeddingService(api_key='')
    for candidate in (python_dev, painter, inactive):
        service.regenerate_for_candidate(candidate)

    ranked = service.search_candidates('python django', limit=2)

    assert ranked[0][0] == python_dev
    assert inactive not in [candidate for candidate, _ in ranked]
    assert ranked[0][1] > ranked[-1][1]


@pytest.mark.django_db
def test_regenerate_replaces_previous_vectors():
    candidate = CandidateFactory()
    service = EmbeddingService(api_key='')

    first = service.regenerate_for_candidate(candidate)
    second = service.regenerate_for_candidate(candidate)

    assert ResumeEmbedding.objects.filter(candidate=candidate).count() == len(second)
    assert not ResumeEmbedding.objects.filter(id__in=[row.id for row in first]).exists()
