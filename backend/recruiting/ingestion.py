"""
Resume upload intake and the upload-batch state machine.

An upload creates one ``ProcessTracker`` and one RESUME_PROCESSING job per
resume (zip archives are expanded first). Workers report each file's stage and
final outcome back through ``ProcessTrackerService``. Every tracker update
takes a row lock, so sibling files finishing on different workers never lose
counter increments.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from django.db import transaction
from django.utils import timezone

from recruiting import file_parser
from recruiting.exceptions import FileValidationError
from recruiting.job_queue import JobQueueService
from recruiting.models import Job, ProcessTracker

logger = logging.getLogger(__name__)


class ProcessTrackerService:
    """Mutations of ``ProcessTracker`` rows, each under a row lock."""

    def create(self, uploaded_filename, total_files, initiated_by='system', message=''):
        tracker = ProcessTracker.objects.create(
            uploaded_filename=uploaded_filename[:255],
            total_files=total_files,
            initiated_by=initiated_by or 'system',
            message=message or f'Upload received: {total_files} file(s) queued',
        )
        logger.info('Created tracker %s for %s (%d file(s))', tracker.id, uploaded_filename, total_files)
        return tracker

    def advance_stage(self, tracker_id, stage, message=''):
        """
        Move a tracker forward to ``stage``.

        Stages never move backwards: with several files in flight, a file
        reaching an earlier stage only refreshes the message. Terminal
        trackers are left untouched.
        """
        if stage not in ProcessTracker.STAGE_ORDER:
            raise ValueError(f'Not a pipeline stage: {stage}')
        with transaction.atomic():
            tracker = ProcessTracker.objects.select_for_update().get(id=tracker_id)
            if tracker.is_terminal:
                logger.debug('Ignoring stage %s for terminal tracker %s', stage, tracker_id)
                return tracker
            current = ProcessTracker.STAGE_ORDER.index(tracker.status)
            if ProcessTracker.STAGE_ORDER.index(stage) > current:
                tracker.status = stage
            if message:
                tracker.message = message
            tracker.save(update_fields=['status', 'message', 'updated_at'])
        return tracker

    def record_file_processed(self, tracker_id, job_id, message=''):
        return self._record_outcome(tracker_id, job_id, succeeded=True, message=message)

    def record_file_failed(self, tracker_id, job_id, message=''):
        return self._record_outcome(tracker_id, job_id, succeeded=False, message=message)

    def update_message(self, tracker_id, message):
        ProcessTracker.objects.filter(id=tracker_id).update(message=message, updated_at=timezone.now())

    def mark_failed(self, tracker_id, message):
        with transaction.atomic():
            tracker = ProcessTracker.objects.select_for_update().get(id=tracker_id)
            if tracker.is_terminal:
                return tracker
            tracker.status = ProcessTracker.STATUS_FAILED
            tracker.message = message
            tracker.completed_at = timezone.now()
            tracker.save(update_fields=['status', 'message', 'completed_at', 'updated_at'])
        logger.warning('Tracker %s failed: %s', tracker_id, message)
        return tracker

    def _record_outcome(self, tracker_id, job_id, succeeded, message):
        job_key = str(job_id)
        with transaction.atomic():
            tracker = ProcessTracker.objects.select_for_update().get(id=tracker_id)
            if job_key in tracker.resolved_jobs:
                logger.info('Job %s already counted on tracker %s', job_key, tracker_id)
                return tracker
            if tracker.resolved_files >= tracker.total_files:
                logger.warning(
                    'Tracker %s already resolved %d/%d files; ignoring outcome of job %s',
                    tracker_id,
                    tracker.resolved_files,
                    tracker.total_files,
                    job_key,
                )
                return tracker

            if succeeded:
                tracker.processed_files += 1
            else:
                tracker.failed_files += 1
            tracker.resolved_jobs = tracker.resolved_jobs + [job_key]

            if tracker.resolved_files == tracker.total_files:
                self._finalize(tracker)
            else:
                progress = f'Processed {tracker.resolved_files}/{tracker.total_files} files'
                tracker.message = f'{progress}: {message}' if message else progress
            tracker.save()
        return tracker

    def _finalize(self, tracker):
        summary = (
            f'Completed: {tracker.processed_files} successful, '
            f'{tracker.failed_files} failed out of {tracker.total_files} total'
        )
        if tracker.processed_files == 0:
            tracker.status = ProcessTracker.STATUS_FAILED
        else:
            # Partial failures still complete; the counts carry the degradation
            tracker.status = ProcessTracker.STATUS_COMPLETED
        tracker.message = summary
        tracker.completed_at = timezone.now()
        logger.info('Tracker %s finished as %s. %s', tracker.id, tracker.status, summary)


@dataclass
class UploadResult:
    tracker: ProcessTracker
    job_ids: List = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class ResumeUploadService:
    """Validate an upload, expand archives and enqueue one job per resume."""

    def __init__(self, queue=None, trackers=None):
        self.queue = queue or JobQueueService()
        self.trackers = trackers or ProcessTrackerService()

    def upload(
        self,
        files: Sequence[Tuple[str, bytes]],
        initiated_by='system',
        priority=Job.PRIORITY_NORMAL,
    ) -> UploadResult:
        if not files:
            raise FileValidationError('No files provided')
        for filename, data in files:
            file_parser.validate_upload(filename, data)

        resumes, skipped = self._expand(files)
        if not resumes:
            raise FileValidationError('No valid resume files found in upload')

        if len(files) == 1:
            uploaded_filename = files[0][0]
        else:
            uploaded_filename = f'{len(files)} files'

        uploaded_at = timezone.now().isoformat()
        with transaction.atomic():
            tracker = self.trackers.create(uploaded_filename, len(resumes), initiated_by=initiated_by)
            prefix = 'upload' if len(resumes) == 1 else 'batch'
            tracker.correlation_id = f'{prefix}-{tracker.id}'
            tracker.save(update_fields=['correlation_id'])

            job_ids = []
            for filename, data in resumes:
                job_ids.append(self.queue.enqueue(
                    Job.TYPE_RESUME_PROCESSING,
                    {
                        'filename': filename,
                        'tracker_id': str(tracker.id),
                        'uploaded_at': uploaded_at,
                        'file_size': len(data),
                        'initiated_by': initiated_by,
                    },
                    priority=priority,
                    correlation_id=tracker.correlation_id,
                    file_data=data,
                    filename=filename,
                ))

        logger.info(
            'Upload %s queued %d resume job(s) (skipped %d archive entries)',
            tracker.correlation_id,
            len(job_ids),
            len(skipped),
        )
        return UploadResult(tracker=tracker, job_ids=job_ids, skipped=skipped)

    def _expand(self, files):
        resumes = []
        skipped = []
        for filename, data in files:
            if not file_parser.is_archive(filename):
                resumes.append((filename, data))
                continue
            entries = list(file_parser.iter_archive_resumes(data))
            if not entries:
                skipped.append(filename)
                logger.warning('Archive %s contains no resume files', filename)
            resumes.extend(entries)
        return resumes, skipped
