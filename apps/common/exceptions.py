import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."
    default_code = "validation_error"


class InsufficientFunds(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Insufficient balance."
    default_code = "insufficient_funds"


class DistanceExceeded(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Delivery is not available for this distance."
    default_code = "distance_exceeded"


class InvalidPromotion(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid promo code."
    default_code = "invalid_promotion"

    NOT_FOUND = "not_found"
    NOT_YET_ACTIVE = "not_yet_active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    BELOW_MINIMUM = "below_minimum"

    MESSAGES = {
        NOT_FOUND: "Invalid promo code.",
        NOT_YET_ACTIVE: "This promo code is not yet active.",
        EXPIRED: "This promo code has expired.",
        EXHAUSTED: "This promo code has reached its usage limit.",
        BELOW_MINIMUM: "Order subtotal is below the minimum for this promo code.",
    }

    def __init__(self, reason, detail=None):
        self.reason = reason
        super().__init__(detail or self.MESSAGES.get(reason, self.default_detail))


class UpstreamProviderError(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream provider request failed."
    default_code = "upstream_provider_error"

    def __init__(self, detail=None, provider="", status_code=None):
        self.provider = provider
        if status_code is not None:
            self.status_code = status_code
        super().__init__(detail)


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "request", exc_info=exc)
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    elif isinstance(response.data, list) and response.data:
        detail = str(response.data[0])
        fields = {}
    else:
        detail = "Request failed"
        fields = {}

    response.data = {
        "error": str(detail),
        "code": getattr(exc, "default_code", "error"),
        "fields": fields,
    }
    reason = getattr(exc, "reason", None)
    if reason:
        response.data["reason"] = reason
    return response
