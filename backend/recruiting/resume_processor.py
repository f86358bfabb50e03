"""Job handlers for resume ingestion and embedding backfills."""
import logging

import requests
from django.db import transaction

from recruiting import file_parser, llm
from recruiting.embeddings import EmbeddingService
from recruiting.exceptions import (
    FileProcessingError,
    FileValidationError,
    LLMServiceError,
    RetryableJobError,
)
from recruiting.ingestion import ProcessTrackerService
from recruiting.models import Candidate, ProcessTracker

logger = logging.getLogger(__name__)

PERMANENT_ERROR_MARKERS = ('invalid', 'malformed', 'unsupported', 'not configured')
TRANSIENT_ERROR_MARKERS = ('timeout', 'connection', 'network', 'unavailable')

FALLBACK_ANALYSIS = llm.ResumeAnalysis(
    name='Unknown',
    experience_summary='Resume processed (AI analysis unavailable)',
    years_of_experience=0,
)


def is_retryable_error(exc):
    """Classify a handler failure. Unknown errors are worth another attempt."""
    if isinstance(exc, (FileValidationError, FileProcessingError, ValueError, TypeError, KeyError)):
        return False
    message = str(exc).lower()
    if any(marker in message for marker in PERMANENT_ERROR_MARKERS):
        return False
    if isinstance(exc, (requests.Timeout, requests.ConnectionError, TimeoutError, ConnectionError)):
        return True
    if any(marker in message for marker in TRANSIENT_ERROR_MARKERS):
        return True
    logger.debug('Unknown error type %s, defaulting to retryable', type(exc).__name__)
    return True


def upsert_candidate(analysis, filename, resume_text):
    """Create or refresh a candidate, matched on email when the resume has one."""
    if analysis.email:
        existing = Candidate.objects.filter(email__iexact=analysis.email).first()
    else:
        existing = Candidate.objects.filter(resume_filename=filename, email='').first()

    candidate = existing or Candidate()
    candidate.name = analysis.name or candidate.name
    candidate.email = analysis.email or candidate.email
    candidate.mobile = analysis.mobile or candidate.mobile
    candidate.resume_filename = filename
    candidate.resume_content = resume_text
    candidate.experience_summary = analysis.experience_summary
    candidate.skills = analysis.skills
    candidate.domain_knowledge = analysis.domain_knowledge
    candidate.academic_background = analysis.academic_background
    candidate.years_of_experience = analysis.years_of_experience
    candidate.current_company = analysis.current_company or candidate.current_company
    candidate.github_url = analysis.github_url or candidate.github_url
    candidate.linkedin_url = analysis.linkedin_url or candidate.linkedin_url
    candidate.twitter_url = analysis.twitter_url or candidate.twitter_url
    candidate.analysis_confidence = analysis.confidence_score
    candidate.is_active = True
    candidate.save()
    logger.info('%s candidate %s (%s)', 'Updated' if existing else 'Created', candidate.id, candidate.name)
    return candidate


class ResumeJobProcessor:
    """
    RESUME_PROCESSING handler.

    Runs one resume through extract -> embed -> persist vectors -> analyze,
    reporting each stage to the upload's tracker and heartbeating in between.
    Permanent failures are counted on the tracker at once. Transient ones
    raise ``RetryableJobError`` so the queue retries the job, and are counted
    only when no retries remain.
    """

    def __init__(self, embedding_service=None, trackers=None):
        self.embeddings = embedding_service or EmbeddingService()
        self.trackers = trackers or ProcessTrackerService()

    def __call__(self, job, context):
        metadata = job.metadata or {}
        filename = metadata.get('filename') or job.filename
        tracker_id = metadata.get('tracker_id')
        if not filename or not tracker_id:
            raise ValueError('Missing required metadata: filename or tracker_id')
        if not ProcessTracker.objects.filter(id=tracker_id).exists():
            raise ValueError(f'Tracker not found: {tracker_id}')

        logger.info(
            'Processing resume job %s: %s (tracker=%s, attempt %d/%d)',
            job.id,
            filename,
            tracker_id,
            job.retry_count + 1,
            job.max_retries + 1,
        )
        try:
            return self._process(job, context, filename, tracker_id)
        except Exception as exc:
            self._handle_failure(job, filename, tracker_id, exc)
            raise

    def _process(self, job, context, filename, tracker_id):
        tracker = ProcessTracker.objects.get(id=tracker_id)
        context.heartbeat()

        resume_text = file_parser.extract_text(bytes(job.file_data or b''), filename)
        chunks = self.embeddings.generate_chunk_embeddings(resume_text)
        self.trackers.advance_stage(
            tracker_id,
            ProcessTracker.STATUS_EMBED_GENERATED,
            f'Embeddings generated for {filename} ({len(chunks)} chunks)',
        )
        context.heartbeat()

        with transaction.atomic():
            # Drop vectors left behind by an earlier attempt at this file
            tracker.embeddings.filter(source_filename=filename, candidate__isnull=True).delete()
            rows = self.embeddings.store_embeddings(chunks, tracker=tracker, source_filename=filename)
        self.trackers.advance_stage(
            tracker_id,
            ProcessTracker.STATUS_VECTOR_DB_UPDATED,
            f'Vector store updated for {filename}',
        )
        context.heartbeat()

        analysis = self._analyze(job, resume_text, filename)
        with transaction.atomic():
            candidate = upsert_candidate(analysis, filename, resume_text)
            self.embeddings.attach_to_candidate([row.id for row in rows], candidate)
        self.trackers.advance_stage(
            tracker_id,
            ProcessTracker.STATUS_RESUME_ANALYZED,
            f'Resume analyzed: {candidate.name or filename}',
        )
        context.heartbeat()

        self.trackers.record_file_processed(tracker_id, job.id, f'{filename} processed')
        return {
            'candidate_id': str(candidate.id),
            'candidate_name': candidate.name,
            'filename': filename,
            'tracker_id': str(tracker_id),
            'skills_present': bool(candidate.skills),
            'years_of_experience': candidate.years_of_experience,
            'chunks': len(rows),
        }

    def _analyze(self, job, resume_text, filename):
        try:
            return llm.analyze_resume(resume_text, filename)
        except LLMServiceError as exc:
            if is_retryable_error(exc) and job.can_retry:
                raise
            logger.warning('LLM unavailable for %s, storing fallback analysis: %s', filename, exc)
            return FALLBACK_ANALYSIS

    def _handle_failure(self, job, filename, tracker_id, exc):
        retryable = is_retryable_error(exc)
        if retryable and job.can_retry:
            message = (
                f'Processing failed, will retry (attempt {job.retry_count + 1}/{job.max_retries}): {exc}'
            )
            logger.warning('Resume job %s for %s failed transiently: %s', job.id, filename, exc)
            self.trackers.update_message(tracker_id, message)
            raise RetryableJobError(str(exc)) from exc

        logger.error('Resume job %s for %s failed permanently: %s', job.id, filename, exc)
        self.trackers.record_file_failed(tracker_id, job.id, f'Processing failed permanently: {exc}')


class BatchEmbeddingProcessor:
    """BATCH_EMBEDDING handler: rebuild vectors for the listed (or all active) candidates."""

    def __init__(self, embedding_service=None):
        self.embeddings = embedding_service or EmbeddingService()

    def __call__(self, job, context):
        candidate_ids = (job.metadata or {}).get('candidate_ids')
        qs = Candidate.objects.filter(is_active=True).exclude(resume_content='')
        if candidate_ids:
            qs = qs.filter(id__in=candidate_ids)

        processed = failed = 0
        for candidate in qs.iterator():
            try:
                self.embeddings.regenerate_for_candidate(candidate)
                processed += 1
            except LLMServiceError as exc:
                failed += 1
                logger.warning('Embedding refresh failed for candidate %s: %s', candidate.id, exc)
            context.heartbeat()
        logger.info('Batch embedding job %s: %d refreshed, %d failed', job.id, processed, failed)
        if failed and not processed:
            raise RetryableJobError(f'Embedding service unavailable for all {failed} candidate(s)')
        return {'processed': processed, 'failed': failed}
