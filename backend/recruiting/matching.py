"""
Multi-pass candidate matching.

Pass 1 scores every active candidate against a job requirement with whatever
external context is already cached. Candidates landing in the borderline band
are enriched from more sources and scored again; the second score replaces
the first. Each run over a job requirement is recorded as one ``MatchAudit``.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from django.db import connection
from django.utils import timezone

from recruiting import llm
from recruiting.enrichment import EnrichmentService, enrichment_setting
from recruiting.exceptions import EnrichmentError, LLMServiceError, RecordNotFound
from recruiting.models import (
    Candidate,
    CandidateExternalProfile,
    CandidateMatch,
    JobRequirement,
    MatchAudit,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchingConfig:
    multi_pass_enabled: bool = True
    borderline_min: int = 50
    borderline_max: int = 75
    source_selection_enabled: bool = False
    staleness_ttl_days: int = 7
    max_workers: int = 1

    @classmethod
    def from_settings(cls):
        return cls(
            multi_pass_enabled=enrichment_setting('MULTI_PASS_ENABLED', True),
            borderline_min=enrichment_setting('BORDERLINE_MIN', 50),
            borderline_max=enrichment_setting('BORDERLINE_MAX', 75),
            source_selection_enabled=enrichment_setting('SOURCE_SELECTION_ENABLED', False),
            staleness_ttl_days=enrichment_setting('STALENESS_TTL_DAYS', 7),
            max_workers=max(1, enrichment_setting('MATCH_MAX_WORKERS', 1)),
        )

    def is_borderline(self, score):
        return self.borderline_min <= score <= self.borderline_max


@dataclass
class CandidateOutcome:
    candidate: Candidate
    match: Optional[CandidateMatch] = None
    error: str = ''

    @property
    def succeeded(self):
        return self.match is not None


class CandidateMatchingEngine:
    def __init__(self, config=None, enrichment_service=None):
        self.config = config or MatchingConfig.from_settings()
        self.enrichment = enrichment_service or EnrichmentService(
            staleness_ttl_days=self.config.staleness_ttl_days,
        )

    # ------------------------------------------------------------------
    # Single pair
    # ------------------------------------------------------------------

    def match_candidate_to_job(self, candidate, job_requirement, enrichment_context='', match_pass=1):
        """Score one candidate with the LLM and upsert its ``CandidateMatch``."""
        result = llm.score_match(candidate, job_requirement, enrichment_context)
        match, _ = CandidateMatch.objects.get_or_create(candidate=candidate, job_requirement=job_requirement)
        match.match_score = result.match_score
        match.skills_score = result.skills_score
        match.experience_score = result.experience_score
        match.education_score = result.education_score
        match.domain_score = result.domain_score
        match.explanation = result.format_explanation()
        match.strengths = result.strengths
        match.gaps = result.gaps
        match.match_pass = match_pass
        match.matched_at = timezone.now()
        if not match.is_selected:
            match.is_shortlisted = result.match_score >= CandidateMatch.SHORTLIST_THRESHOLD
        match.save()
        logger.info(
            'Pass %d: %s vs %s scored %.1f%s',
            match_pass,
            candidate.name,
            job_requirement.title,
            match.match_score,
            ' (shortlisted)' if match.is_shortlisted else '',
        )
        return match

    # ------------------------------------------------------------------
    # Enrichment steps
    # ------------------------------------------------------------------

    def prepare_enrichment(self, candidate):
        """Refresh stale profiles and make sure a fresh internet search exists."""
        try:
            self.enrichment.refresh_stale_profiles(candidate)
            self.enrichment.get_or_fetch(candidate, CandidateExternalProfile.SOURCE_INTERNET_SEARCH)
        except EnrichmentError as exc:
            logger.warning('Pre-match enrichment failed for candidate %s: %s', candidate.id, exc)
        return self.enrichment.build_enrichment_context(candidate)

    def choose_sources(self, candidate, job_requirement):
        available = self.enrichment.available_sources
        if not self.config.source_selection_enabled:
            return available
        selection = llm.select_sources(candidate, job_requirement, available)
        logger.info('Sources for candidate %s: %s (%s)', candidate.id, selection.sources, selection.reasoning)
        return selection.sources

    def enrich_for_rematch(self, candidate, job_requirement):
        try:
            self.enrichment.enrich_candidate(candidate, self.choose_sources(candidate, job_requirement))
        except EnrichmentError as exc:
            logger.warning('Enrichment for re-match failed for candidate %s: %s', candidate.id, exc)
        return self.enrichment.build_enrichment_context(candidate)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def score_candidate(self, candidate, job_requirement):
        """Run both passes for one candidate. Any failure only fails this candidate."""
        try:
            return self._score_candidate(candidate, job_requirement)
        except LLMServiceError as exc:
            logger.warning('Matching failed for candidate %s: %s', candidate.id, exc)
            return CandidateOutcome(candidate=candidate, error=str(exc))
        except Exception as exc:
            logger.error('Unexpected error matching candidate %s: %s', candidate.id, exc, exc_info=True)
            return CandidateOutcome(candidate=candidate, error=str(exc) or type(exc).__name__)

    def _score_candidate(self, candidate, job_requirement):
        context = self.prepare_enrichment(candidate)
        match = self.match_candidate_to_job(candidate, job_requirement, context)

        if not (self.config.multi_pass_enabled and self.config.is_borderline(match.match_score)):
            return CandidateOutcome(candidate=candidate, match=match)

        logger.info(
            'Candidate %s is borderline (%.1f), enriching for a second pass',
            candidate.id,
            match.match_score,
        )
        enriched_context = self.enrich_for_rematch(candidate, job_requirement)
        try:
            match = self.match_candidate_to_job(candidate, job_requirement, enriched_context, match_pass=2)
        except Exception as exc:
            logger.warning('Second pass failed for candidate %s, keeping pass 1: %s', candidate.id, exc)
        return CandidateOutcome(candidate=candidate, match=match)

    def _score_in_worker(self, candidate, job_requirement):
        try:
            return self.score_candidate(candidate, job_requirement)
        finally:
            connection.close()

    def _score_all(self, candidates, job_requirement) -> List[CandidateOutcome]:
        if self.config.max_workers <= 1 or len(candidates) <= 1:
            return [self.score_candidate(candidate, job_requirement) for candidate in candidates]
        with ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix='matcher') as pool:
            futures = [pool.submit(self._score_in_worker, candidate, job_requirement) for candidate in candidates]
            return [future.result() for future in futures]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def match_all_candidates_to_job(self, job_requirement_id, initiated_by='system'):
        """Match every active candidate to one job requirement and return the run's audit."""
        job_requirement = JobRequirement.objects.filter(id=job_requirement_id).first()
        if job_requirement is None:
            raise RecordNotFound(f'Job requirement not found: {job_requirement_id}')

        audit = MatchAudit.objects.create(
            job_requirement=job_requirement,
            job_title=job_requirement.title,
            initiated_by=initiated_by or 'system',
        )
        started = time.monotonic()
        try:
            candidates = list(Candidate.objects.filter(is_active=True).order_by('created_at'))
            audit.total_candidates = len(candidates)
            audit.save(update_fields=['total_candidates'])
            logger.info(
                'Matching %d candidate(s) to %s (audit %s)',
                len(candidates),
                job_requirement.title,
                audit.id,
            )
            outcomes = self._score_all(candidates, job_requirement)
            self._complete_audit(audit, outcomes, started)
        except Exception as exc:
            logger.error('Matching run %s failed: %s', audit.id, exc, exc_info=True)
            audit.status = MatchAudit.STATUS_FAILED
            audit.error_message = str(exc)
            audit.duration_ms = int((time.monotonic() - started) * 1000)
            audit.completed_at = timezone.now()
            audit.save()
        return audit

    def match_candidate_to_all_jobs(self, candidate_id):
        candidate = Candidate.objects.filter(id=candidate_id).first()
        if candidate is None:
            raise RecordNotFound(f'Candidate not found: {candidate_id}')
        matches = []
        for job_requirement in JobRequirement.objects.filter(is_active=True).order_by('created_at'):
            outcome = self.score_candidate(candidate, job_requirement)
            if outcome.succeeded:
                matches.append(outcome.match)
        return matches

    def _complete_audit(self, audit, outcomes, started):
        successes = [outcome.match for outcome in outcomes if outcome.succeeded]
        scores = [match.match_score for match in successes]

        audit.total_candidates = len(outcomes)
        audit.successful_matches = len(successes)
        audit.shortlisted_count = sum(1 for match in successes if match.is_shortlisted)
        audit.average_match_score = round(sum(scores) / len(scores), 2) if scores else None
        audit.highest_match_score = max(scores) if scores else None
        audit.estimated_tokens_used = MatchAudit.TOKENS_PER_CANDIDATE * len(outcomes)
        audit.match_summaries = [
            {
                'candidateId': str(match.candidate_id),
                'candidateName': match.candidate.name,
                'matchScore': match.match_score,
                'skillsScore': match.skills_score,
                'isShortlisted': match.is_shortlisted,
                'matchPass': match.match_pass,
            }
            for match in sorted(successes, key=lambda m: m.match_score, reverse=True)
        ]
        audit.status = MatchAudit.STATUS_COMPLETED
        audit.duration_ms = int((time.monotonic() - started) * 1000)
        audit.completed_at = timezone.now()
        audit.save()
        logger.info(
            'Matching run %s done: %d/%d matched, %d shortlisted, avg=%s, in %dms',
            audit.id,
            audit.successful_matches,
            audit.total_candidates,
            audit.shortlisted_count,
            audit.average_match_score,
            audit.duration_ms,
        )
