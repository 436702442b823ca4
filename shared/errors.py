"""
Shared error handling for the Resource Inventory Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class GatewayException(Exception):
    """Base exception for gateway services."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidInputError(GatewayException):
    """A required request parameter is missing or malformed."""

    status_code = 400

    def __init__(self, message: str = "Invalid inputs", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class ParameterUnresolvedError(GatewayException):
    """A route placeholder has no matching segment in a resource identifier."""

    def __init__(self, parameter: str, identifier: str):
        self.parameter = parameter
        self.identifier = identifier
        super().__init__(
            "PARAMETER_UNRESOLVED",
            f"The parameter '{parameter}' does not have a corresponding value in the resourceId '{identifier}'.",
            {"parameter": parameter, "identifier": identifier},
        )


class UpstreamCallFailedError(GatewayException):
    """The upstream API answered with a non-2xx status or could not be reached."""

    def __init__(
        self,
        url: str,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
        body: Optional[str] = None,
    ):
        self.url = url
        self.upstream_status = status_code
        self.reason = reason
        self.body = body
        if status_code is None:
            message = f"Failed to call upstream API: {reason}"
        else:
            message = f"Failed to call upstream API. Status Code: {status_code}, Reason: {reason}"
        super().__init__(
            "UPSTREAM_CALL_FAILED",
            message,
            {"url": url, "status_code": status_code, "reason": reason},
        )


class MergeFailedError(GatewayException):
    """An upstream response did not have the JSON shape the merger expects."""

    def __init__(self, message: str = "Unexpected upstream response shape", details: Optional[Dict[str, Any]] = None):
        super().__init__("MERGE_FAILED", message, details)


class CredentialUnavailableError(GatewayException):
    """No configured token source could produce an access token."""

    def __init__(self, message: str = "Unable to acquire an access token", details: Optional[Dict[str, Any]] = None):
        super().__init__("CREDENTIAL_UNAVAILABLE", message, details)
