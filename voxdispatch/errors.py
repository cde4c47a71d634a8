"""Error hierarchy for registry, routing and dispatch failures.

Every error carries a stable code and the HTTP status the API maps it to.
Messages are safe to show to callers.
"""


class DispatchError(Exception):
    """Base exception for all voxdispatch errors."""

    code = "DISPATCH_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(DispatchError):
    """Bad transcript, bad registration payload or malformed tool arguments."""
    code = "VALIDATION_ERROR"
    http_status = 400


class AuthError(DispatchError):
    """Missing or incorrect static API key."""
    code = "AUTH_INVALID"
    http_status = 403

    def __init__(self, message: str, missing: bool = False):
        super().__init__(message)
        if missing:
            self.code = "AUTH_REQUIRED"
            self.http_status = 401


class NotFoundError(DispatchError):
    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, resource_type: str, resource_id):
        super().__init__(f"{resource_type} not found: {resource_id}")
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(DispatchError):
    """A service with the same name is already registered."""
    code = "CONFLICT"
    http_status = 409


class UpstreamError(DispatchError):
    """Remote service or language model failed, timed out or answered badly."""
    code = "UPSTREAM_ERROR"
    http_status = 502

    def __init__(self, message: str, upstream: str = ""):
        super().__init__(message)
        self.upstream = upstream


class NoHealthyServicesError(DispatchError):
    """No registered service is currently eligible for routing."""
    code = "NO_HEALTHY_SERVICES"
    http_status = 503

    def __init__(self, message: str = "No healthy services available"):
        super().__init__(message)
