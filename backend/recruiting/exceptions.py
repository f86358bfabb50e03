"""
Domain exceptions and the API exception handler.

Every error raised by the queue, ingestion, LLM and enrichment layers derives
from ``RecruitingError`` so callers can catch one base class. The handler
below renders them, and DRF's own exceptions, in one response format.
"""
import logging

from django.http import Http404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class RecruitingError(Exception):
    """Base class for errors raised by the recruiting backend."""

    code = 'recruiting_error'
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidJobTransition(RecruitingError):
    """Raised when a job is asked to move to a status it cannot reach."""

    code = 'invalid_job_transition'
    status_code = status.HTTP_409_CONFLICT


class JobNotFound(RecruitingError):
    code = 'job_not_found'
    status_code = status.HTTP_404_NOT_FOUND


class RecordNotFound(RecruitingError):
    """Raised when a candidate, job requirement or tracker id does not exist."""

    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND


class RetryableJobError(RecruitingError):
    """Raised by job handlers for failures worth another attempt."""

    code = 'retryable_job_error'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class FileValidationError(RecruitingError):
    """Raised for uploads that can never be processed (empty, wrong type, too large)."""

    code = 'file_validation_error'


class FileProcessingError(RecruitingError):
    """Raised when text cannot be extracted from an otherwise valid file."""

    code = 'file_processing_error'
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class LLMServiceError(RecruitingError):
    """Raised when we cannot get a usable response from the LLM."""

    code = 'llm_service_error'
    status_code = status.HTTP_502_BAD_GATEWAY


class EnrichmentError(RecruitingError):
    code = 'enrichment_error'
    status_code = status.HTTP_502_BAD_GATEWAY


def _collect_messages_from_response_data(response_data):
    """Build a list of human-readable messages from DRF error response data."""
    messages = []
    if isinstance(response_data, dict):
        if 'detail' in response_data and not isinstance(response_data.get('detail'), (dict, list)):
            messages.append(str(response_data['detail']))
        for field, value in response_data.items():
            if field == 'detail':
                continue
            if isinstance(value, (list, tuple)) and value:
                msg = str(value[0])
            else:
                msg = str(value)
            field_label = str(field).replace('_', ' ').capitalize()
            messages.append(f"{field_label}: {msg}")
    elif isinstance(response_data, (list, tuple)):
        messages.extend(str(v) for v in response_data if v)
    elif response_data:
        messages.append(str(response_data))
    return messages


def custom_exception_handler(exc, context):
    """
    Render API errors in one format.

    Returns:
        Response with format:
        {
            "error": {
                "code": "error_code",
                "message": "User-friendly error message",
                "messages": [...]  # Optional, DRF validation errors only
            }
        }
    """
    if isinstance(exc, RecruitingError):
        logger.info('API request rejected with %s: %s', exc.code, exc)
        return Response(
            {'error': {'code': exc.code, 'message': str(exc)}},
            status=exc.status_code,
        )

    response = exception_handler(exc, context)
    if response is None:
        logger.error('Unhandled exception: %s', exc, exc_info=True)
        return Response(
            {
                'error': {
                    'code': 'internal_server_error',
                    'message': 'An unexpected error occurred. Please try again later.',
                }
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    messages = _collect_messages_from_response_data(response.data)
    payload = {
        'code': get_error_code(exc, response.status_code),
        'message': messages[0] if messages else 'An error occurred',
    }
    if len(messages) > 1:
        payload['messages'] = messages
    response.data = {'error': payload}
    return response


def get_error_code(exc, status_code):
    """Generate error code from exception."""
    if isinstance(exc, Http404):
        return 'not_found'
    if hasattr(exc, 'default_code'):
        return exc.default_code

    code_map = {
        400: 'bad_request',
        401: 'unauthorized',
        403: 'forbidden',
        404: 'not_found',
        405: 'method_not_allowed',
        409: 'conflict',
        422: 'validation_error',
        429: 'too_many_requests',
        500: 'internal_server_error',
    }
    return code_map.get(status_code, 'error')
