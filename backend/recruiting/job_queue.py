"""
Database-backed job queue.

All coordination between worker processes happens through row-level locks
on the ``Job`` table. Claims and stale sweeps read with
``SELECT ... FOR UPDATE SKIP LOCKED`` so two schedulers polling the same table
never pick up the same row, and a row locked by one sweeper is simply skipped
by another.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from recruiting.exceptions import InvalidJobTransition, JobNotFound
from recruiting.models import Job
from recruiting.signals import job_dead_lettered

logger = logging.getLogger(__name__)

DEFAULT_STALE_THRESHOLD_MINUTES = 15
DEFAULT_RETRY_DELAY_MINUTES = 5
DEFAULT_RETENTION_DAYS = 30
DEAD_LETTER_MESSAGE = 'Job exceeded maximum retries after stale heartbeat'


def queue_setting(key, default):
    return getattr(settings, 'JOB_QUEUE', {}).get(key, default)


class JobQueueService:
    """Enqueue, claim and finalize jobs stored in the ``Job`` table."""

    def __init__(self, stale_threshold_minutes=None, retry_delay_minutes=DEFAULT_RETRY_DELAY_MINUTES):
        if stale_threshold_minutes is None:
            stale_threshold_minutes = queue_setting('STALE_THRESHOLD_MINUTES', DEFAULT_STALE_THRESHOLD_MINUTES)
        self.stale_threshold_minutes = stale_threshold_minutes
        self.retry_delay_minutes = retry_delay_minutes

    # ------------------------------------------------------------------
    # Producing
    # ------------------------------------------------------------------

    def enqueue(
        self,
        job_type,
        metadata=None,
        *,
        priority=Job.PRIORITY_NORMAL,
        correlation_id=None,
        scheduled_for=None,
        file_data=None,
        filename='',
        max_retries=Job.DEFAULT_MAX_RETRIES,
    ):
        """Create a PENDING job and return its id."""
        job = Job.objects.create(
            job_type=job_type,
            priority=priority,
            metadata=metadata or {},
            correlation_id=correlation_id or '',
            scheduled_for=scheduled_for,
            file_data=file_data,
            filename=filename or '',
            max_retries=max_retries,
        )
        logger.info(
            'Enqueued job %s (type=%s, priority=%s, correlation_id=%s, scheduled_for=%s)',
            job.id,
            job_type,
            priority,
            job.correlation_id or '-',
            scheduled_for,
        )
        return job.id

    # ------------------------------------------------------------------
    # Claiming and liveness
    # ------------------------------------------------------------------

    def claim_next(self, job_type, batch_size, worker_id):
        """
        Atomically claim up to ``batch_size`` due PENDING jobs of ``job_type``.

        Jobs are taken highest priority first, oldest first within a priority.
        Rows locked by a concurrent claimer are skipped rather than waited on.
        Returns the claimed jobs, already marked PROCESSING.
        """
        if batch_size <= 0:
            return []
        now = timezone.now()
        with transaction.atomic():
            jobs = list(
                Job.objects.select_for_update(skip_locked=True)
                .filter(job_type=job_type, status=Job.STATUS_PENDING)
                .filter(Q(scheduled_for__isnull=True) | Q(scheduled_for__lte=now))
                .order_by('-priority', 'created_at')[:batch_size]
            )
            if not jobs:
                return []
            Job.objects.filter(id__in=[job.id for job in jobs]).update(
                status=Job.STATUS_PROCESSING,
                assigned_to=worker_id,
                started_at=now,
                heartbeat_at=now,
                updated_at=now,
                version=F('version') + 1,
            )
        for job in jobs:
            job.status = Job.STATUS_PROCESSING
            job.assigned_to = worker_id
            job.started_at = now
            job.heartbeat_at = now
            job.version += 1
        logger.info('Worker %s claimed %d %s job(s)', worker_id, len(jobs), job_type)
        return jobs

    def heartbeat(self, job_id, worker_id=None):
        """Extend liveness of a PROCESSING job. Returns False if the job is no longer ours."""
        now = timezone.now()
        qs = Job.objects.filter(id=job_id, status=Job.STATUS_PROCESSING)
        if worker_id:
            qs = qs.filter(assigned_to=worker_id)
        updated = qs.update(heartbeat_at=now, updated_at=now)
        if not updated:
            logger.warning('Heartbeat ignored for job %s: not processing (worker=%s)', job_id, worker_id)
        return bool(updated)

    # ------------------------------------------------------------------
    # Finalizing
    # ------------------------------------------------------------------

    def complete(self, job_id, result=None, worker_id=None):
        """PROCESSING -> COMPLETED. ``result`` is merged into the job metadata."""
        now = timezone.now()
        with transaction.atomic():
            job = self._lock_processing(job_id, worker_id, 'complete')
            if result:
                job.metadata = {**(job.metadata or {}), 'result': result}
            job.status = Job.STATUS_COMPLETED
            job.completed_at = now
            job.heartbeat_at = now
            job.version += 1
            job.save(update_fields=['metadata', 'status', 'completed_at', 'heartbeat_at', 'version', 'updated_at'])
        logger.info('Job %s completed by %s', job_id, job.assigned_to)
        return job

    def fail(self, job_id, error, stack_trace='', worker_id=None):
        """PROCESSING -> FAILED with the error recorded for operators."""
        now = timezone.now()
        with transaction.atomic():
            job = self._lock_processing(job_id, worker_id, 'fail')
            job.status = Job.STATUS_FAILED
            job.error_message = str(error)
            job.error_stack_trace = stack_trace or ''
            job.completed_at = now
            job.version += 1
            job.save(update_fields=['status', 'error_message', 'error_stack_trace', 'completed_at', 'version', 'updated_at'])
        logger.error(
            'Job %s failed: %s (retry %d/%d)',
            job_id,
            error,
            job.retry_count,
            job.max_retries,
        )
        return job

    def retry_later(self, job_id, error, stack_trace='', worker_id=None, delay_minutes=None):
        """
        Requeue a PROCESSING job after a transient handler failure.

        The job goes back to PENDING with ``retry_count`` incremented and a
        delayed ``scheduled_for``. When retries are exhausted it is failed
        instead. Returns True if the job was requeued.
        """
        delay = self.retry_delay_minutes if delay_minutes is None else delay_minutes
        now = timezone.now()
        qs = Job.objects.filter(
            id=job_id,
            status=Job.STATUS_PROCESSING,
            retry_count__lt=F('max_retries'),
        )
        if worker_id:
            qs = qs.filter(assigned_to=worker_id)
        requeued = qs.update(
            status=Job.STATUS_PENDING,
            retry_count=F('retry_count') + 1,
            assigned_to=None,
            started_at=None,
            heartbeat_at=None,
            scheduled_for=now + timedelta(minutes=delay),
            error_message=str(error),
            error_stack_trace=stack_trace or '',
            updated_at=now,
            version=F('version') + 1,
        )
        if requeued:
            job = Job.objects.only('retry_count', 'max_retries').get(id=job_id)
            logger.warning(
                'Job %s reset for retry (attempt %d/%d) in %d minute(s): %s',
                job_id,
                job.retry_count,
                job.max_retries,
                delay,
                error,
            )
            return True
        self.fail(job_id, error, stack_trace=stack_trace, worker_id=worker_id)
        return False

    def cancel(self, job_id):
        """PENDING -> CANCELLED. Running jobs cannot be cancelled."""
        now = timezone.now()
        updated = Job.objects.filter(id=job_id, status=Job.STATUS_PENDING).update(
            status=Job.STATUS_CANCELLED,
            error_message='Cancelled by user',
            completed_at=now,
            updated_at=now,
            version=F('version') + 1,
        )
        if not updated:
            job = self._get(job_id)
            raise InvalidJobTransition(f'Cannot cancel job {job_id} in status {job.status}')
        logger.info('Job %s cancelled', job_id)
        return self._get(job_id)

    def retry(self, job_id):
        """FAILED -> PENDING on explicit request, only while retries remain."""
        now = timezone.now()
        updated = Job.objects.filter(
            id=job_id,
            status=Job.STATUS_FAILED,
            retry_count__lt=F('max_retries'),
        ).update(
            status=Job.STATUS_PENDING,
            retry_count=F('retry_count') + 1,
            assigned_to=None,
            started_at=None,
            heartbeat_at=None,
            completed_at=None,
            scheduled_for=None,
            updated_at=now,
            version=F('version') + 1,
        )
        if not updated:
            job = self._get(job_id)
            if job.status == Job.STATUS_FAILED:
                raise InvalidJobTransition(
                    f'Job {job_id} exhausted its retries ({job.retry_count}/{job.max_retries}) and is dead-lettered'
                )
            raise InvalidJobTransition(f'Cannot retry job {job_id} in status {job.status}')
        job = self._get(job_id)
        logger.info('Job %s manually requeued (attempt %d/%d)', job_id, job.retry_count, job.max_retries)
        return job

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def reclaim_stale_jobs(self, threshold_minutes=None):
        """
        Recover PROCESSING jobs whose worker stopped heartbeating.

        Jobs with retries left return to PENDING with ``retry_count`` + 1 and
        their assignment cleared. The rest are dead-lettered as FAILED.
        Returns ``(reclaimed, dead_lettered)``.
        """
        minutes = self.stale_threshold_minutes if threshold_minutes is None else threshold_minutes
        now = timezone.now()
        cutoff = now - timedelta(minutes=minutes)
        reclaimed = 0
        dead_jobs = []
        with transaction.atomic():
            stale_jobs = list(
                Job.objects.select_for_update(skip_locked=True)
                .filter(status=Job.STATUS_PROCESSING)
                .filter(Q(heartbeat_at__isnull=True) | Q(heartbeat_at__lt=cutoff))
                .only('id', 'job_type', 'metadata', 'retry_count', 'max_retries', 'assigned_to', 'heartbeat_at')
            )
            for job in stale_jobs:
                if job.retry_count < job.max_retries:
                    Job.objects.filter(id=job.id).update(
                        status=Job.STATUS_PENDING,
                        retry_count=F('retry_count') + 1,
                        assigned_to=None,
                        heartbeat_at=None,
                        started_at=None,
                        error_message=f'Reclaimed after stale heartbeat from worker {job.assigned_to}',
                        updated_at=now,
                        version=F('version') + 1,
                    )
                    reclaimed += 1
                    logger.warning(
                        'Reclaimed stale job %s from worker %s (retry %d/%d, last heartbeat %s)',
                        job.id,
                        job.assigned_to,
                        job.retry_count + 1,
                        job.max_retries,
                        job.heartbeat_at,
                    )
                else:
                    Job.objects.filter(id=job.id).update(
                        status=Job.STATUS_FAILED,
                        retry_count=F('retry_count') + 1,
                        error_message=DEAD_LETTER_MESSAGE,
                        completed_at=now,
                        updated_at=now,
                        version=F('version') + 1,
                    )
                    dead_jobs.append(job)
                    logger.error(
                        'Dead-lettered stale job %s from worker %s after %d retries',
                        job.id,
                        job.assigned_to,
                        job.retry_count,
                    )
        for job in dead_jobs:
            job_dead_lettered.send(sender=Job, job_id=job.id, job_type=job.job_type, metadata=job.metadata)
        dead_lettered = len(dead_jobs)
        if reclaimed or dead_lettered:
            logger.info('Stale sweep: %d reclaimed, %d dead-lettered', reclaimed, dead_lettered)
        return reclaimed, dead_lettered

    def cleanup_old_jobs(self, days_to_keep=None):
        """Delete COMPLETED jobs older than the retention window."""
        days = queue_setting('RETENTION_DAYS', DEFAULT_RETENTION_DAYS) if days_to_keep is None else days_to_keep
        deleted, _ = self.old_jobs_queryset(days).delete()
        logger.info('Deleted %d completed job(s) older than %d days', deleted, days)
        return deleted

    def old_jobs_queryset(self, days_to_keep):
        cutoff = timezone.now() - timedelta(days=days_to_keep)
        return Job.objects.filter(status=Job.STATUS_COMPLETED, completed_at__lt=cutoff)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_job(self, job_id):
        return self._get(job_id)

    def get_queue_depth(self, job_type):
        return Job.objects.filter(job_type=job_type, status=Job.STATUS_PENDING).count()

    def get_job_count(self, job_type=None, status=None):
        qs = Job.objects.all()
        if job_type:
            qs = qs.filter(job_type=job_type)
        if status:
            qs = qs.filter(status=status)
        return qs.count()

    def get_jobs_by_correlation_id(self, correlation_id):
        return list(Job.objects.filter(correlation_id=correlation_id).order_by('created_at'))

    def get_retryable_failed_jobs(self, job_type=None, limit=50):
        qs = Job.objects.filter(status=Job.STATUS_FAILED, retry_count__lt=F('max_retries'))
        if job_type:
            qs = qs.filter(job_type=job_type)
        return list(qs.order_by('-priority', 'created_at')[:limit])

    def get_average_processing_seconds(self, job_type, sample_size=500):
        rows = (
            Job.objects.filter(
                job_type=job_type,
                status=Job.STATUS_COMPLETED,
                started_at__isnull=False,
                completed_at__isnull=False,
            )
            .order_by('-completed_at')
            .values_list('started_at', 'completed_at')[:sample_size]
        )
        durations = [(done - started).total_seconds() for started, done in rows]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    def get_job_stats(self, job_type=None):
        qs = Job.objects.all()
        if job_type:
            qs = qs.filter(job_type=job_type)
        by_status = {status: 0 for status, _ in Job.STATUS_CHOICES}
        for row in qs.values('status').annotate(total=Count('id')):
            by_status[row['status']] = row['total']
        by_type = {row['job_type']: row['total'] for row in qs.values('job_type').annotate(total=Count('id'))}
        return {
            'by_status': by_status,
            'by_type': by_type,
            'dead_lettered': qs.filter(status=Job.STATUS_FAILED, retry_count__gte=F('max_retries')).count(),
            'total': sum(by_status.values()),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, job_id):
        try:
            return Job.objects.get(id=job_id)
        except Job.DoesNotExist:
            raise JobNotFound(f'Job {job_id} does not exist')

    def _lock_processing(self, job_id, worker_id, action):
        job = Job.objects.select_for_update().filter(id=job_id).first()
        if job is None:
            raise JobNotFound(f'Job {job_id} does not exist')
        if job.status != Job.STATUS_PROCESSING:
            raise InvalidJobTransition(f'Cannot {action} job {job_id} in status {job.status}')
        if worker_id and job.assigned_to != worker_id:
            raise InvalidJobTransition(
                f'Cannot {action} job {job_id}: assigned to {job.assigned_to}, not {worker_id}'
            )
        return job
