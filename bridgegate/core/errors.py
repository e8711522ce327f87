"""Project error hierarchy."""

from __future__ import annotations


class BridgeGateError(Exception):
    """Base error. Each subclass maps to one HTTP status and source-protocol error type."""

    status_code = 500
    error_type = "api_error"
    default_code = "gateway_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ClientInputError(BridgeGateError):
    """Malformed JSON or a request that breaks a schema rule."""

    status_code = 400
    error_type = "invalid_request_error"
    default_code = "invalid_request"


class PayloadTooLargeError(ClientInputError):
    status_code = 413
    error_type = "request_too_large"
    default_code = "request_body_too_large"


class MethodNotAllowedError(ClientInputError):
    status_code = 405
    default_code = "method_not_allowed"


class AuthError(BridgeGateError):
    """Missing or invalid proxy credential. The message never says which check failed."""

    status_code = 401
    error_type = "authentication_error"
    default_code = "unauthorized"

    def __init__(self) -> None:
        super().__init__("invalid or missing proxy credentials")


class UpstreamError(BridgeGateError):
    """Backend unreachable, timed out, non-200, unparsable or reporting an error."""

    status_code = 502
    default_code = "upstream_error"

    def __init__(self, message: str, *, code: str | None = None, upstream_status: int | None = None) -> None:
        super().__init__(message, code=code)
        self.upstream_status = upstream_status


class InternalError(BridgeGateError):
    """Proxy-side encoding failure."""

    default_code = "internal_error"
