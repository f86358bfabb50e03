"""
Resume chunk embeddings and cosine similarity search.

Vectors come from Gemini's ``batchEmbedContents`` endpoint. When no API key
is configured (local development, tests) a deterministic feature-hashing
embedding is used instead so ingestion still completes end to end.
"""
from __future__ import annotations

import hashlib
import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import requests
from django.conf import settings
from django.db import transaction

from recruiting.exceptions import LLMServiceError
from recruiting.llm import response_json
from recruiting.models import ResumeEmbedding

logger = logging.getLogger(__name__)

GEMINI_EMBED_ENDPOINT = 'https://generativelanguage.googleapis.com/v1beta/models/{model}:batchEmbedContents'
EMBED_BATCH_SIZE = 10
MAX_CHUNK_CHARS = 1000
LOCAL_EMBEDDING_DIMENSIONS = 256

# Checked in order; the first section whose keywords appear wins
SECTION_KEYWORDS = [
    (ResumeEmbedding.SECTION_EDUCATION, ('education', 'degree', 'university', 'college')),
    (ResumeEmbedding.SECTION_EXPERIENCE, ('experience', 'worked', 'position', 'company')),
    (ResumeEmbedding.SECTION_SKILLS, ('skill', 'proficient', 'expertise')),
    (ResumeEmbedding.SECTION_PROJECTS, ('project',)),
    (ResumeEmbedding.SECTION_CERTIFICATIONS, ('certification', 'certified')),
]

_TOKEN_RE = re.compile(r'[a-z0-9+#.]+')


@dataclass
class ChunkEmbedding:
    text: str
    section_type: str
    vector: List[float]


def classify_section(text: str) -> str:
    lowered = text.lower()
    for section, keywords in SECTION_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return section
    return ResumeEmbedding.SECTION_GENERAL


def chunk_resume(text: str, max_chars: int = MAX_CHUNK_CHARS) -> List[Tuple[str, str]]:
    """Split resume text into ``(chunk, section_type)`` pairs on blank lines, then sentences."""
    chunks = []
    for section in re.split(r'\n\s*\n+', text or ''):
        section = section.strip()
        if not section:
            continue
        section_type = classify_section(section)
        if len(section) <= max_chars:
            chunks.append((section, section_type))
            continue
        current = ''
        for sentence in re.split(r'(?<=\.)\s+', section):
            if current and len(current) + len(sentence) + 1 > max_chars:
                chunks.append((current.strip(), section_type))
                current = ''
            current = f'{current} {sentence}' if current else sentence
        if current.strip():
            chunks.append((current.strip(), section_type))
    return chunks


def local_embedding(text: str, dimensions: int = LOCAL_EMBEDDING_DIMENSIONS) -> List[float]:
    """Signed feature-hashing bag-of-words vector, L2 normalized."""
    vector = [0.0] * dimensions
    for token in _TOKEN_RE.findall((text or '').lower()):
        digest = hashlib.md5(token.encode('utf-8')).digest()
        index = int.from_bytes(digest[:4], 'big') % dimensions
        vector[index] += 1.0 if digest[4] & 1 else -1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if not norm:
        return vector
    return [v / norm for v in vector]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if not norm_a or not norm_b:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingService:
    """Generate, persist and search resume chunk embeddings."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: int = 30):
        self.api_key = getattr(settings, 'GEMINI_API_KEY', '') if api_key is None else api_key
        self.model = model or getattr(settings, 'GEMINI_EMBEDDING_MODEL', 'text-embedding-004')
        self.timeout = timeout

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        if not self.api_key:
            return [local_embedding(text) for text in texts]
        vectors = []
        for start in range(0, len(texts), EMBED_BATCH_SIZE):
            vectors.extend(self._embed_batch(texts[start:start + EMBED_BATCH_SIZE]))
        return vectors

    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        payload = {
            'requests': [
                {'model': f'models/{self.model}', 'content': {'parts': [{'text': text}]}}
                for text in texts
            ]
        }
        try:
            response = requests.post(
                GEMINI_EMBED_ENDPOINT.format(model=self.model),
                params={'key': self.api_key},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            raise LLMServiceError('Embedding request timeout.') from exc
        except requests.RequestException as exc:
            logger.error('Embedding request failed: %s', exc)
            raise LLMServiceError('Embedding service connection failed. Service unavailable.') from exc
        embeddings = response_json(response, 'Embedding service').get('embeddings') or []
        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            count = len(embeddings) if isinstance(embeddings, list) else 0
            raise LLMServiceError(
                f'Embedding service returned {count} vectors for {len(texts)} inputs.'
            )
        return [(item.get('values') if isinstance(item, dict) else None) or [] for item in embeddings]

    def generate_chunk_embeddings(self, text: str) -> List[ChunkEmbedding]:
        chunks = chunk_resume(text)
        vectors = self.embed_texts([chunk for chunk, _ in chunks])
        return [
            ChunkEmbedding(text=chunk, section_type=section, vector=vector)
            for (chunk, section), vector in zip(chunks, vectors)
        ]

    def store_embeddings(self, chunks: List[ChunkEmbedding], *, candidate=None, tracker=None, source_filename=''):
        """Persist chunk vectors. An existing candidate's previous vectors are replaced."""
        with transaction.atomic():
            if candidate is not None:
                ResumeEmbedding.objects.filter(candidate=candidate).delete()
            rows = ResumeEmbedding.objects.bulk_create([
                ResumeEmbedding(
                    candidate=candidate,
                    tracker=tracker,
                    source_filename=source_filename,
                    content_chunk=chunk.text,
                    section_type=chunk.section_type,
                    embedding=chunk.vector,
                )
                for chunk in chunks
            ])
        logger.info('Stored %d embedding(s) for %s', len(rows), source_filename or candidate)
        return rows

    def attach_to_candidate(self, embedding_ids, candidate):
        """Link freshly stored vectors to their candidate, replacing older ones."""
        with transaction.atomic():
            ResumeEmbedding.objects.filter(candidate=candidate).exclude(id__in=embedding_ids).delete()
            return ResumeEmbedding.objects.filter(id__in=embedding_ids).update(candidate=candidate)

    def regenerate_for_candidate(self, candidate):
        chunks = self.generate_chunk_embeddings(candidate.resume_content)
        return self.store_embeddings(chunks, candidate=candidate, source_filename=candidate.resume_filename)

    def embed_query(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]

    def find_similar(self, vector: Sequence[float], limit: int = 10, section_type: Optional[str] = None):
        """Return ``(embedding_row, similarity)`` pairs nearest to ``vector`` by cosine distance."""
        qs = ResumeEmbedding.objects.filter(candidate__isnull=False, candidate__is_active=True)
        if section_type:
            qs = qs.filter(section_type=section_type)
        scored = [(row, cosine_similarity(vector, row.embedding)) for row in qs.select_related('candidate')]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    def search_candidates(self, query: str, limit: int = 10):
        """Best similarity per candidate for a free-text query."""
        best = {}
        for row, score in self.find_similar(self.embed_query(query), limit=limit * 5):
            current = best.get(row.candidate_id)
            if current is None or score > current[1]:
                best[row.candidate_id] = (row.candidate, score)
        ranked = sorted(best.values(), key=lambda pair: pair[1], reverse=True)
        return ranked[:limit]
