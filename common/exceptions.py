"""
Project-wide DRF exception handler.

Services raise plain ``MessagingError`` subclasses; this handler turns
them into API responses so views do not repeat try/except blocks.
Anything else falls through to DRF's default handler.
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from messaging.exceptions import (
    CommunicationNotPermittedError,
    InvalidMessageError,
    InvalidPairError,
    InvalidRetentionConfigError,
    MessagingError,
    NotFoundError,
    StoreTimeoutError,
    StoreUnavailableError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (InvalidPairError, status.HTTP_400_BAD_REQUEST),
    (InvalidMessageError, status.HTTP_400_BAD_REQUEST),
    (InvalidRetentionConfigError, status.HTTP_400_BAD_REQUEST),
    (CommunicationNotPermittedError, status.HTTP_403_FORBIDDEN),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StoreTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def api_exception_handler(exc, context):
    if isinstance(exc, MessagingError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        for error_cls, error_status in STATUS_BY_ERROR:
            if isinstance(exc, error_cls):
                code = error_status
                break
        if code >= 500:
            logger.error("Messaging store failure: %s", exc.detail)
        return Response({"detail": exc.detail, "code": exc.code}, status=code)
    return exception_handler(exc, context)
