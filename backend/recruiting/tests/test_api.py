import uuid

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.test import APIClient

from recruiting import llm
from recruiting.models import Job, MatchAudit, ProcessTracker
from recruiting.tests.fixtures import (
    CandidateFactory,
    CandidateMatchFactory,
    JobFactory,
    JobRequirementFactory,
    ProcessTrackerFactory,
)


@pytest.fixture
def client():
    return APIClient()


@pytest.mark.django_db
def test_upload_queues_each_resume(client):
    files = [
        SimpleUploadedFile('jane.pdf', b'%PDF-1.4 jane', content_type='application/pdf'),
        SimpleUploadedFile('john.docx', b'PK-john', content_type='application/octet-stream'),
    ]

    r = client.post('/api/resumes/upload/', {'files': files}, format='multipart')

    assert r.status_code == 202
    assert r.data['tracker']['total_files'] == 2
    assert r.data['tracker']['status'] == ProcessTracker.STATUS_INITIATED
    assert r.data['tracker']['initiated_by'] == 'api'
    assert len(r.data['job_ids']) == 2
    assert Job.objects.filter(status=Job.STATUS_PENDING).count() == 2


@pytest.mark.django_db
def test_upload_errors_use_error_envelope(client):
    r = client.post('/api/resumes/upload/', {}, format='multipart')
    assert r.status_code == 400
    assert r.data == {'error': {'code': 'file_validation_error', 'message': 'No files provided'}}

    bad = SimpleUploadedFile('notes.txt', b'plain text')
    r = client.post('/api/resumes/upload/', {'files': [bad]}, format='multipart')
    assert r.status_code == 400
    assert 'Unsupported' in r.data['error']['message']


@pytest.mark.django_db
def test_tracker_detail_lists_its_jobs(client):
    tracker = ProcessTrackerFactory(total_files=2, processed_files=1)
    JobFactory(correlation_id=tracker.correlation_id)
    JobFactory(correlation_id=tracker.correlation_id)
    JobFactory(correlation_id='someone-else')

    r = client.get(f'/api/trackers/{tracker.id}/')

    assert r.status_code == 200
    assert r.data['progress_percent'] == 50
    assert len(r.data['jobs']) == 2


@pytest.mark.django_db
def test_tracker_list_filters_by_status(client):
    ProcessTrackerFactory()
    ProcessTrackerFactory(status=ProcessTracker.STATUS_COMPLETED)

    r = client.get('/api/trackers/', {'status': 'completed'})

    assert r.status_code == 200
    assert [t['status'] for t in r.data] == [ProcessTracker.STATUS_COMPLETED]


@pytest.mark.django_db
def test_unknown_ids_return_not_found(client):
    missing = uuid.uuid4()

    r = client.get(f'/api/trackers/{missing}/')
    assert r.status_code == 404
    assert r.data['error']['code'] == 'not_found'

    r = client.post(f'/api/job-requirements/{missing}/match/', {}, format='json')
    assert r.status_code == 404

    r = client.post(f'/api/jobs/{missing}/retry/')
    assert r.status_code == 404
    assert r.data['error']['code'] == 'job_not_found'


@pytest.mark.django_db
def test_run_matching_inline_returns_audit(client, monkeypatch):
    job = JobRequirementFactory(title='Data Engineer')
    CandidateFactory(name='Ada')
    monkeypatch.setattr(
        'recruiting.llm.score_match',
        lambda candidate, job_requirement, enrichment_context='': llm.MatchResult(match_score=91),
    )

    r = client.post(f'/api/job-requirements/{job.id}/match/', {}, format='json')

    assert r.status_code == 201
    assert r.data['status'] == MatchAudit.STATUS_COMPLETED
    assert r.data['job_title'] == 'Data Engineer'
    assert r.data['shortlisted_count'] == 1
    assert r.data['match_summaries'][0]['candidateName'] == 'Ada'

    r = client.get('/api/match-audits/', {'job_requirement': str(job.id)})
    assert len(r.data) == 1


@pytest.mark.django_db
def test_run_matching_async_is_queued(client, monkeypatch):
    job = JobRequirementFactory()
    queued = []
    monkeypatch.setattr(
        'recruiting.tasks.enqueue_matching_run',
        lambda job_requirement_id, initiated_by: queued.append((job_requirement_id, initiated_by)),
    )

    r = client.post(f'/api/job-requirements/{job.id}/match/', {'run_async': True}, format='json')

    assert r.status_code == 202
    assert r.data['status'] == 'queued'
    assert queued == [(job.id, 'api')]
    assert not MatchAudit.objects.exists()


@pytest.mark.django_db
def test_matches_can_be_filtered_to_shortlist(client):
    job = JobRequirementFactory()
    CandidateMatchFactory(job_requirement=job, match_score=88, is_shortlisted=True)
    CandidateMatchFactory(job_requirement=job, match_score=41)

    r = client.get(f'/api/job-requirements/{job.id}/matches/')
    assert [m['match_score'] for m in r.data] == [88, 41]

    r = client.get(f'/api/job-requirements/{job.id}/matches/', {'shortlisted': 'true'})
    assert len(r.data) == 1
    assert r.data[0]['is_shortlisted'] is True


@pytest.mark.django_db
def test_cancel_only_pending_jobs(client):
    job = JobFactory()

    r = client.post(f'/api/jobs/{job.id}/cancel/')
    assert r.status_code == 200
    assert r.data['status'] == Job.STATUS_CANCELLED

    r = client.post(f'/api/jobs/{job.id}/cancel/')
    assert r.status_code == 409
    assert r.data['error']['code'] == 'invalid_job_transition'


@pytest.mark.django_db
def test_retry_failed_job(client):
    job = JobFactory(status=Job.STATUS_FAILED, retry_count=1, error_message='boom')

    r = client.post(f'/api/jobs/{job.id}/retry/')

    assert r.status_code == 200
    assert r.data['status'] == Job.STATUS_PENDING
    assert r.data['retry_count'] == 2


@pytest.mark.django_db
def test_queue_health_reports_dead_letters(client):
    JobFactory()
    r = client.get('/api/jobs/health/')
    assert r.status_code == 200
    assert r.data['status'] == 'healthy'
    assert r.data['queues'][Job.TYPE_RESUME_PROCESSING]['pending'] == 1

    JobFactory(status=Job.STATUS_FAILED, retry_count=3, max_retries=3)
    r = client.get('/api/jobs/health/')
    assert r.data['status'] == 'degraded'
    assert r.data['dead_lettered'] == 1


@pytest.mark.django_db
def test_queue_stats(client):
    JobFactory()
    JobFactory(status=Job.STATUS_COMPLETED)

    r = client.get('/api/jobs/stats/')

    assert r.status_code == 200
    assert r.data['total'] == 2
    assert r.data['by_status'][Job.STATUS_COMPLETED] == 1
    assert Job.TYPE_RESUME_PROCESSING in r.data['average_processing_seconds']
