"""Periodic maintenance and matching tasks.
This file provides Celery task wrappers if Celery is configured. If Celery
is not installed, functions can be called synchronously.
"""
import logging

from recruiting.job_queue import JobQueueService
from recruiting.models import MatchAudit
from recruiting.scheduler import queue_depths

logger = logging.getLogger(__name__)

try:
    from celery import shared_task
    CELERY_AVAILABLE = True
except Exception:
    CELERY_AVAILABLE = False


def _reclaim_stale_jobs_sync(threshold_minutes=None):
    reclaimed, dead_lettered = JobQueueService().reclaim_stale_jobs(threshold_minutes)
    return {'reclaimed': reclaimed, 'dead_lettered': dead_lettered}


def _cleanup_old_jobs_sync(days_to_keep=None):
    return {'deleted': JobQueueService().cleanup_old_jobs(days_to_keep)}


def _log_queue_metrics_sync():
    queue = JobQueueService()
    depths = queue_depths(queue)
    for job_type, counts in depths.items():
        logger.info(
            'Queue %s: pending=%d processing=%d failed=%d',
            job_type,
            counts['pending'],
            counts['processing'],
            counts['failed'],
        )
    stats = queue.get_job_stats()
    if stats['dead_lettered']:
        logger.warning('%d job(s) are dead-lettered and need attention', stats['dead_lettered'])
    return depths


def _match_all_candidates_sync(job_requirement_id, initiated_by='system'):
    from recruiting.matching import CandidateMatchingEngine

    audit = CandidateMatchingEngine().match_all_candidates_to_job(job_requirement_id, initiated_by)
    if audit.status == MatchAudit.STATUS_FAILED:
        logger.error('Matching run %s failed: %s', audit.id, audit.error_message)
    return str(audit.id)


if CELERY_AVAILABLE:
    @shared_task
    def reclaim_stale_jobs(threshold_minutes=None):
        return _reclaim_stale_jobs_sync(threshold_minutes)

    @shared_task
    def cleanup_old_jobs(days_to_keep=None):
        return _cleanup_old_jobs_sync(days_to_keep)

    @shared_task
    def log_queue_metrics():
        return _log_queue_metrics_sync()

    # Matching runs are audited and never retried automatically
    @shared_task(bind=True, max_retries=0)
    def match_all_candidates_task(self, job_requirement_id, initiated_by='system'):
        return _match_all_candidates_sync(job_requirement_id, initiated_by)
else:
    def reclaim_stale_jobs(threshold_minutes=None):
        return _reclaim_stale_jobs_sync(threshold_minutes)

    def cleanup_old_jobs(days_to_keep=None):
        return _cleanup_old_jobs_sync(days_to_keep)

    def log_queue_metrics():
        return _log_queue_metrics_sync()

    def match_all_candidates_task(job_requirement_id, initiated_by='system'):
        return _match_all_candidates_sync(job_requirement_id, initiated_by)


def enqueue_matching_run(job_requirement_id, initiated_by='system'):
    if CELERY_AVAILABLE:
        match_all_candidates_task.delay(str(job_requirement_id), initiated_by)
    else:
        match_all_candidates_task(str(job_requirement_id), initiated_by)
