from datetime import timedelta

import pytest
from django.utils import timezone

from recruiting import llm, tasks
from recruiting.models import Job, MatchAudit
from recruiting.tests.fixtures import CandidateFactory, JobFactory, JobRequirementFactory


@pytest.mark.django_db
def test_reclaim_task_returns_counts():
    job = JobFactory(status=Job.STATUS_PROCESSING, assigned_to='w9')
    Job.objects.filter(id=job.id).update(heartbeat_at=timezone.now() - timedelta(hours=1))

    assert tasks.reclaim_stale_jobs(15) == {'reclaimed': 1, 'dead_lettered': 0}


@pytest.mark.django_db
def test_cleanup_task_deletes_old_completed_jobs():
    job = JobFactory(status=Job.STATUS_COMPLETED)
    Job.objects.filter(id=job.id).update(completed_at=timezone.now() - timedelta(days=60))

    assert tasks.cleanup_old_jobs(30) == {'deleted': 1}


@pytest.mark.django_db
def test_queue_metrics_warn_about_dead_letters(monkeypatch):
    JobFactory()
    JobFactory(status=Job.STATUS_FAILED, retry_count=3, max_retries=3)
    warnings = []
    monkeypatch.setattr(tasks.logger, 'warning', lambda msg, *args: warnings.append(msg % args))

    depths = tasks.log_queue_metrics()

    assert depths[Job.TYPE_RESUME_PROCESSING] == {'pending': 1, 'processing': 0, 'failed': 1}
    assert warnings == ['1 job(s) are dead-lettered and need attention']


@pytest.mark.django_db
def test_match_task_runs_engine(monkeypatch):
    monkeypatch.setattr(
        'recruiting.llm.score_match',
        lambda candidate, job_requirement, enrichment_context='': llm.MatchResult(match_score=30),
    )
    job = JobRequirementFactory()
    CandidateFactory()

    audit_id = tasks.match_all_candidates_task(str(job.id), 'beat')

    audit = MatchAudit.objects.get(id=audit_id)
    assert audit.status == MatchAudit.STATUS_COMPLETED
    assert audit.initiated_by == 'beat'


def test_enqueue_matching_run_hands_off(monkeypatch):
    sent = []

    class FakeTask:
        def delay(self, *args):
            sent.append(args)

        def __call__(self, *args):
            sent.append(args)

    monkeypatch.setattr(tasks, 'match_all_candidates_task', FakeTask())

    tasks.enqueue_matching_run('abc', initiated_by='api')

    assert sent == [('abc', 'api')]
