"""
REST endpoints for uploads, tracker polling, matching runs and queue admin.

Domain errors raised here (``RecruitingError`` subclasses) are rendered by
``recruiting.exceptions.custom_exception_handler``.
"""
import logging

from rest_framework import status
from rest_framework.decorators import api_view, parser_classes
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from recruiting import tasks
from recruiting.exceptions import FileValidationError, RecordNotFound
from recruiting.ingestion import ResumeUploadService
from recruiting.job_queue import JobQueueService
from recruiting.matching import CandidateMatchingEngine
from recruiting.models import CandidateMatch, JobRequirement, MatchAudit, ProcessTracker
from recruiting.scheduler import queue_depths
from recruiting.serializers import (
    CandidateMatchSerializer,
    JobSerializer,
    MatchAuditSerializer,
    MatchRequestSerializer,
    ProcessTrackerSerializer,
)

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def _initiator(request):
    user = getattr(request, 'user', None)
    if user is not None and getattr(user, 'is_authenticated', False):
        return user.get_username()
    return 'api'


def _limit(request):
    try:
        limit = int(request.query_params.get('limit', DEFAULT_LIST_LIMIT))
    except (TypeError, ValueError):
        limit = DEFAULT_LIST_LIMIT
    return max(1, min(limit, MAX_LIST_LIMIT))


def _get_or_404(model, pk, label):
    obj = model.objects.filter(pk=pk).first()
    if obj is None:
        raise RecordNotFound(f'{label} not found: {pk}')
    return obj


@api_view(['POST'])
@parser_classes([MultiPartParser, FormParser])
def upload_resumes(request):
    """Accept one or more resumes (or zip archives) and queue them for processing."""
    uploads = request.FILES.getlist('files')
    if not uploads:
        raise FileValidationError('No files provided')

    files = [(upload.name, upload.read()) for upload in uploads]
    result = ResumeUploadService().upload(files, initiated_by=_initiator(request))
    return Response({
        'tracker': ProcessTrackerSerializer(result.tracker).data,
        'job_ids': [str(job_id) for job_id in result.job_ids],
        'skipped': result.skipped,
    }, status=status.HTTP_202_ACCEPTED)


@api_view(['GET'])
def tracker_list(request):
    trackers = ProcessTracker.objects.order_by('-created_at')
    status_filter = request.query_params.get('status')
    if status_filter:
        trackers = trackers.filter(status=status_filter.upper())
    return Response(ProcessTrackerSerializer(trackers[:_limit(request)], many=True).data)


@api_view(['GET'])
def tracker_detail(request, tracker_id):
    tracker = _get_or_404(ProcessTracker, tracker_id, 'Tracker')
    data = ProcessTrackerSerializer(tracker).data
    if tracker.correlation_id:
        jobs = JobQueueService().get_jobs_by_correlation_id(tracker.correlation_id)
        data['jobs'] = JobSerializer(jobs, many=True).data
    return Response(data)


@api_view(['POST'])
@parser_classes([JSONParser, FormParser])
def run_matching(request, job_requirement_id):
    """Match all active candidates against a job requirement.

    Runs inline and returns the audit, or with ``run_async`` hands the run to
    Celery and returns 202.
    """
    job_requirement = _get_or_404(JobRequirement, job_requirement_id, 'Job requirement')
    serializer = MatchRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    if serializer.validated_data['run_async']:
        tasks.enqueue_matching_run(job_requirement.id, initiated_by=_initiator(request))
        return Response({'status': 'queued', 'job_requirement': str(job_requirement.id)},
                        status=status.HTTP_202_ACCEPTED)

    audit = CandidateMatchingEngine().match_all_candidates_to_job(job_requirement.id, _initiator(request))
    return Response(MatchAuditSerializer(audit).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
def job_requirement_matches(request, job_requirement_id):
    job_requirement = _get_or_404(JobRequirement, job_requirement_id, 'Job requirement')
    matches = CandidateMatch.objects.filter(job_requirement=job_requirement).select_related('candidate')
    if request.query_params.get('shortlisted') in ('1', 'true', 'True'):
        matches = matches.filter(is_shortlisted=True)
    matches = matches.order_by('-match_score')[:_limit(request)]
    return Response(CandidateMatchSerializer(matches, many=True).data)


@api_view(['GET'])
def match_audit_list(request):
    audits = MatchAudit.objects.order_by('-initiated_at')
    job_requirement_id = request.query_params.get('job_requirement')
    if job_requirement_id:
        audits = audits.filter(job_requirement_id=job_requirement_id)
    return Response(MatchAuditSerializer(audits[:_limit(request)], many=True).data)


@api_view(['GET'])
def match_audit_detail(request, audit_id):
    return Response(MatchAuditSerializer(_get_or_404(MatchAudit, audit_id, 'Match audit')).data)


@api_view(['GET'])
def queue_health(request):
    queue = JobQueueService()
    queues = queue_depths(queue)
    stats = queue.get_job_stats()
    healthy = stats['dead_lettered'] == 0
    return Response({
        'status': 'healthy' if healthy else 'degraded',
        'queues': queues,
        'dead_lettered': stats['dead_lettered'],
    })


@api_view(['GET'])
def queue_stats(request):
    queue = JobQueueService()
    stats = queue.get_job_stats(request.query_params.get('job_type'))
    stats['average_processing_seconds'] = {
        job_type: queue.get_average_processing_seconds(job_type)
        for job_type in stats['by_type']
    }
    return Response(stats)


@api_view(['POST'])
def cancel_job(request, job_id):
    job = JobQueueService().cancel(job_id)
    logger.info('Job %s cancelled by %s', job_id, _initiator(request))
    return Response(JobSerializer(job).data)


@api_view(['POST'])
def retry_job(request, job_id):
    job = JobQueueService().retry(job_id)
    logger.info('Job %s requeued by %s', job_id, _initiator(request))
    return Response(JobSerializer(job).data)
