"""
Error taxonomy shared by the authorization and ledger layers.

Services raise these; app.main maps every GatewayError to a JSON response
with the matching status code.
"""

from fastapi import status


class GatewayError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "internal_error"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class Unauthorized(GatewayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "unauthorized"


class Forbidden(GatewayError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "forbidden"


class NotFound(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class Conflict(GatewayError):
    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class InvalidInput(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "invalid_input"


class InsufficientCredit(GatewayError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    error = "insufficient_credit"


class StoreTimeout(GatewayError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error = "store_timeout"


class StoreUnavailable(GatewayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "store_unavailable"
