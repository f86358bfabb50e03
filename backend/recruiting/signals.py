import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

# Sent once per job the stale sweep moves to terminal FAILED. Kwargs: job_id, job_type, metadata
job_dead_lettered = Signal()


@receiver(job_dead_lettered)
def count_dead_lettered_resume(sender, job_id, job_type, metadata, **kwargs):
    """A crashed worker never reported its file, so count it as failed on the tracker."""
    from recruiting.ingestion import ProcessTrackerService
    from recruiting.models import Job, ProcessTracker

    if job_type != Job.TYPE_RESUME_PROCESSING:
        return
    tracker_id = (metadata or {}).get('tracker_id')
    if not tracker_id:
        return
    filename = (metadata or {}).get('filename', '')
    try:
        ProcessTrackerService().record_file_failed(
            tracker_id,
            job_id,
            f'Processing failed permanently: worker stopped responding while processing {filename}',
        )
    except ProcessTracker.DoesNotExist:
        logger.warning('Tracker %s for dead-lettered job %s no longer exists', tracker_id, job_id)
