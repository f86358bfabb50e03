"""
Run the database job scheduler in the foreground.

Usage:
    python manage.py run_job_scheduler --worker-id=worker-1 --pool-size=5
    python manage.py run_job_scheduler --once
"""
import logging

from django.core.management.base import BaseCommand

from recruiting.scheduler import build_default_scheduler

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Poll the job table and process resume and embedding jobs'

    def add_arguments(self, parser):
        parser.add_argument('--worker-id', type=str, default=None, help='Identifier recorded on claimed jobs')
        parser.add_argument('--pool-size', type=int, default=None, help='Maximum jobs processed at once')
        parser.add_argument('--batch-size', type=int, default=None, help='Maximum jobs claimed per poll')
        parser.add_argument(
            '--once',
            action='store_true',
            help='Reclaim stale jobs, run one poll cycle, wait for it and exit'
        )

    def handle(self, *args, **options):
        scheduler = build_default_scheduler(
            worker_id=options['worker_id'],
            pool_size=options['pool_size'],
            batch_size=options['batch_size'],
        )

        if options['once']:
            reclaimed, dead_lettered = scheduler.reclaim_stale()
            futures = scheduler.poll_once()
            for future in futures:
                future.result()
            scheduler.stop(wait=True)
            self.stdout.write(self.style.SUCCESS(
                f"Processed {len(futures)} job(s); reclaimed {reclaimed}, dead-lettered {dead_lettered}"
            ))
            return

        self.stdout.write(f"Starting job scheduler {scheduler.worker_id} (Ctrl+C to stop)")
        scheduler.run_forever()
        self.stdout.write(self.style.SUCCESS(f"Job scheduler {scheduler.worker_id} stopped"))
