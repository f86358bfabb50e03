from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from recruiting.exceptions import RecordNotFound
from recruiting.matching import CandidateMatchingEngine
from recruiting.models import MatchAudit


class Command(BaseCommand):
    help = 'Match every active candidate against one job requirement'

    def add_arguments(self, parser):
        parser.add_argument('job_requirement_id', type=str)
        parser.add_argument('--initiated-by', type=str, default='cli', help='Recorded on the match audit')

    def handle(self, *args, **options):
        try:
            audit = CandidateMatchingEngine().match_all_candidates_to_job(
                options['job_requirement_id'],
                initiated_by=options['initiated_by'],
            )
        except (RecordNotFound, ValidationError) as exc:
            raise CommandError(str(exc))

        if audit.status == MatchAudit.STATUS_FAILED:
            raise CommandError(f"Matching run {audit.id} failed: {audit.error_message}")

        self.stdout.write(self.style.SUCCESS(
            f"Matched {audit.successful_matches}/{audit.total_candidates} candidate(s) "
            f"to {audit.job_title}: {audit.shortlisted_count} shortlisted, "
            f"average score {audit.average_match_score}, audit {audit.id}"
        ))
        for summary in audit.match_summaries[:10]:
            self.stdout.write(
                f"  {summary['matchScore']:5.1f}  {summary['candidateName']}"
                f"{'  (shortlisted)' if summary['isShortlisted'] else ''}"
            )
