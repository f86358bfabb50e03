"""
Polling scheduler and bounded worker pool.

A ``JobScheduler`` is an explicit object: whoever starts workers builds one,
registers handlers for the job types it serves, and owns its lifecycle. Each
process runs its own scheduler; they coordinate only through the claim query
in ``JobQueueService``.
"""
import logging
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor

from django.db import connection

from recruiting.exceptions import InvalidJobTransition, RetryableJobError
from recruiting.job_queue import JobQueueService, queue_setting
from recruiting.models import Job

logger = logging.getLogger(__name__)


def queue_depths(queue, job_types=None):
    """Pending, processing and failed counts per job type."""
    depths = {}
    for job_type in job_types or [value for value, _ in Job.TYPE_CHOICES]:
        depths[job_type] = {
            'pending': queue.get_queue_depth(job_type),
            'processing': queue.get_job_count(job_type, Job.STATUS_PROCESSING),
            'failed': queue.get_job_count(job_type, Job.STATUS_FAILED),
        }
    return depths


class JobContext:
    """Handed to job handlers so they can report liveness between steps."""

    def __init__(self, queue, job, worker_id):
        self.queue = queue
        self.job = job
        self.worker_id = worker_id

    def heartbeat(self):
        return self.queue.heartbeat(self.job.id, worker_id=self.worker_id)


class JobScheduler:
    def __init__(
        self,
        queue=None,
        worker_id=None,
        pool_size=None,
        batch_size=None,
        poll_interval=None,
        stale_check_interval=None,
        stale_threshold_minutes=None,
        heartbeat_interval=None,
        executor=None,
    ):
        self.queue = queue or JobQueueService()
        self.worker_id = worker_id or queue_setting('WORKER_ID', 'default-worker')
        self.pool_size = pool_size or queue_setting('POOL_SIZE', 5)
        self.batch_size = batch_size or queue_setting('BATCH_SIZE', 5)
        self.poll_interval = poll_interval if poll_interval is not None else queue_setting('POLL_INTERVAL', 5.0)
        self.stale_check_interval = (
            stale_check_interval if stale_check_interval is not None
            else queue_setting('STALE_CHECK_INTERVAL', 60.0)
        )
        self.stale_threshold_minutes = (
            stale_threshold_minutes if stale_threshold_minutes is not None
            else queue_setting('STALE_THRESHOLD_MINUTES', 15)
        )
        self.heartbeat_interval = (
            heartbeat_interval if heartbeat_interval is not None
            else queue_setting('HEARTBEAT_INTERVAL', 30.0)
        )

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.pool_size,
            thread_name_prefix=f'job-worker-{self.worker_id}',
        )
        self._handlers = {}
        self._active = set()
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def register_handler(self, job_type, handler):
        if job_type not in dict(Job.TYPE_CHOICES):
            raise ValueError(f'Unknown job type: {job_type}')
        self._handlers[job_type] = handler
        logger.info('Worker %s handles %s jobs with %s', self.worker_id, job_type, type(handler).__name__)

    @property
    def active_jobs(self):
        with self._lock:
            return len(self._active)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def poll_once(self):
        """Claim and submit as many jobs as there are free workers. Returns the futures."""
        futures = []
        for job_type, handler in self._handlers.items():
            available = min(self.batch_size, self.pool_size - self.active_jobs)
            if available <= 0:
                logger.debug('Worker %s at capacity (%d active)', self.worker_id, self.active_jobs)
                break
            for job in self.queue.claim_next(job_type, available, self.worker_id):
                with self._lock:
                    self._active.add(job.id)
                futures.append(self._executor.submit(self._run_job, job, handler))
        return futures

    def reclaim_stale(self):
        return self.queue.reclaim_stale_jobs(self.stale_threshold_minutes)

    def heartbeat_active(self):
        """Refresh liveness of every job this process is running."""
        with self._lock:
            job_ids = list(self._active)
        for job_id in job_ids:
            self.queue.heartbeat(job_id, worker_id=self.worker_id)
        return len(job_ids)

    def _run_job(self, job, handler):
        context = JobContext(self.queue, job, self.worker_id)
        started = time.monotonic()
        try:
            try:
                result = handler(job, context)
            except RetryableJobError as exc:
                self.queue.retry_later(
                    job.id,
                    str(exc),
                    stack_trace=traceback.format_exc(),
                    worker_id=self.worker_id,
                )
            except Exception as exc:
                logger.error('Handler for job %s (%s) raised: %s', job.id, job.job_type, exc, exc_info=True)
                self.queue.fail(
                    job.id,
                    str(exc) or type(exc).__name__,
                    stack_trace=traceback.format_exc(),
                    worker_id=self.worker_id,
                )
            else:
                self.queue.complete(
                    job.id,
                    result=result if isinstance(result, dict) else None,
                    worker_id=self.worker_id,
                )
                logger.info('Job %s finished in %.2fs', job.id, time.monotonic() - started)
        except InvalidJobTransition as exc:
            # The stale sweep took the job away from us while it was running
            logger.warning('Could not finalize job %s: %s', job.id, exc)
        finally:
            with self._lock:
                self._active.discard(job.id)
            if self._owns_executor:
                connection.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f'job-scheduler-{self.worker_id}', daemon=True)
        self._thread.start()
        logger.info(
            'Job scheduler %s started (pool=%d, batch=%d, poll=%.1fs, types=%s)',
            self.worker_id,
            self.pool_size,
            self.batch_size,
            self.poll_interval,
            ', '.join(self._handlers) or 'none',
        )

    def stop(self, wait=True):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self.poll_interval + 5)
            self._thread = None
        self._executor.shutdown(wait=wait)
        logger.info('Job scheduler %s stopped', self.worker_id)

    def run_forever(self):
        self.start()
        try:
            while self._thread and self._thread.is_alive():
                self._thread.join(timeout=1.0)
        except KeyboardInterrupt:
            logger.info('Interrupted, shutting down scheduler %s', self.worker_id)
        finally:
            self.stop(wait=True)

    def _loop(self):
        last_stale_check = last_heartbeat = time.monotonic()
        try:
            while not self._stop_event.is_set():
                try:
                    self.poll_once()
                    now = time.monotonic()
                    if now - last_heartbeat >= self.heartbeat_interval:
                        self.heartbeat_active()
                        last_heartbeat = now
                    if now - last_stale_check >= self.stale_check_interval:
                        self.reclaim_stale()
                        last_stale_check = now
                except Exception:
                    # Keep polling through transient database errors
                    logger.exception('Scheduler %s poll cycle failed', self.worker_id)
                self._stop_event.wait(self.poll_interval)
        finally:
            if self._owns_executor:
                connection.close()

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_queue_health(self):
        return {
            'worker_id': self.worker_id,
            'active_jobs': self.active_jobs,
            'pool_size': self.pool_size,
            'batch_size': self.batch_size,
            'running': bool(self._thread and self._thread.is_alive()),
            'queues': queue_depths(self.queue, list(self._handlers)),
        }

    def log_metrics(self):
        health = self.get_queue_health()
        for job_type, counts in health['queues'].items():
            logger.info(
                'Queue %s: pending=%d processing=%d failed=%d (worker %s active=%d/%d)',
                job_type,
                counts['pending'],
                counts['processing'],
                counts['failed'],
                self.worker_id,
                health['active_jobs'],
                self.pool_size,
            )
        return health


def build_default_scheduler(**kwargs):
    """Scheduler with the resume-processing and batch-embedding handlers registered."""
    from recruiting.resume_processor import BatchEmbeddingProcessor, ResumeJobProcessor

    scheduler = JobScheduler(**kwargs)
    scheduler.register_handler(Job.TYPE_RESUME_PROCESSING, ResumeJobProcessor())
    scheduler.register_handler(Job.TYPE_BATCH_EMBEDDING, BatchEmbeddingProcessor())
    return scheduler
