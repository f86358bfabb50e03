"""
Delete completed jobs past the retention window.

Usage:
    python manage.py cleanup_old_jobs --days=30
    python manage.py cleanup_old_jobs --days=30 --dry-run
"""
from django.core.management.base import BaseCommand

from recruiting.job_queue import DEFAULT_RETENTION_DAYS, JobQueueService, queue_setting


class Command(BaseCommand):
    help = 'Delete COMPLETED jobs older than the retention window'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help=f'Days of completed jobs to keep (default: {DEFAULT_RETENTION_DAYS})'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )

    def handle(self, *args, **options):
        days = options['days']
        if days is None:
            days = queue_setting('RETENTION_DAYS', DEFAULT_RETENTION_DAYS)
        queue = JobQueueService()

        if options['dry_run']:
            old_jobs = queue.old_jobs_queryset(days)
            count = old_jobs.count()
            self.stdout.write(f"Found {count} completed job(s) older than {days} days")
            for job in old_jobs[:20]:
                self.stdout.write(f"  - {job.job_type} {job.id} ({job.filename or 'no file'})")
            if count > 20:
                self.stdout.write(f"  ... and {count - 20} more")
            self.stdout.write(self.style.WARNING('DRY RUN - No changes made'))
            return

        deleted = queue.cleanup_old_jobs(days)
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} completed job(s) older than {days} days"))
