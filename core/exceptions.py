"""
Business-rule errors and the DRF exception handler
Every error body carries 'detail' and 'code', same as core.views error pages
"""
import logging

from django_ratelimit.exceptions import Ratelimited
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ServiceError(APIException):
    """
    Raised by service functions when a business rule rejects a request.
    ``extra`` is merged into the response body.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'service_error'

    def __init__(self, detail=None, code=None, extra=None):
        super().__init__(detail, code)
        self.extra = extra or {}


class BadRequest(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Bad request.'
    default_code = 'bad_request'


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Not allowed.'
    default_code = 'forbidden'


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource already exists.'
    default_code = 'conflict'


class PreconditionFailed(ServiceError):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    default_detail = 'Precondition failed.'
    default_code = 'precondition_failed'


class BadGateway(ServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Upstream service error.'
    default_code = 'bad_gateway'


class RateLimitExceeded(ServiceError):
    """Same body as RequestContextMiddleware's 429"""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = 'Rate limit exceeded. Please try again later.'
    default_code = 'rate_limit_exceeded'


def api_exception_handler(exc, context):
    """DRF handler: adds 'code' to detail responses and logs server errors"""
    # django_ratelimit raises a PermissionDenied subclass, which DRF would turn into a 403
    if isinstance(exc, Ratelimited):
        request = context.get('request')
        path = request.path if request is not None else 'unknown path'
        logger.warning(f"Rate limit exceeded for {path}")
        exc = RateLimitExceeded()

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        view_name = view.__class__.__name__ if view else 'unknown view'
        logger.exception(f"Unhandled error in {view_name}: {exc}")
        return None

    data = response.data
    if isinstance(data, dict) and 'detail' in data and 'code' not in data:
        codes = exc.get_codes() if isinstance(exc, APIException) else None
        data['code'] = codes if isinstance(codes, str) else 'error'

    if isinstance(exc, ServiceError) and exc.extra:
        data.update(exc.extra)

    if response.status_code >= 500:
        logger.error(f"{response.status_code} {exc.__class__.__name__}: {exc}")

    return response
