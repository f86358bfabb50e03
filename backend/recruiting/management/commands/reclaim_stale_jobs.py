from django.core.management.base import BaseCommand

from recruiting.job_queue import JobQueueService


class Command(BaseCommand):
    help = 'Requeue or dead-letter PROCESSING jobs whose heartbeat has gone stale'

    def add_arguments(self, parser):
        parser.add_argument(
            '--threshold-minutes',
            type=int,
            default=None,
            help='Heartbeat age after which a job is considered abandoned (default: JOB_QUEUE setting)'
        )

    def handle(self, *args, **options):
        reclaimed, dead_lettered = JobQueueService().reclaim_stale_jobs(options['threshold_minutes'])
        self.stdout.write(self.style.SUCCESS(
            f"Reclaimed {reclaimed} stale job(s), dead-lettered {dead_lettered}"
        ))
        if dead_lettered:
            self.stdout.write(self.style.WARNING(
                f"{dead_lettered} job(s) exhausted their retries and are now FAILED"
            ))
