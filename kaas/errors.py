from typing import List, Optional


class KaasError(Exception):
    """Base error; every error names the resource it was raised for."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name
        self.message = message

    def __str__(self):
        return f"{self.name}: {self.message}"


class ValidationError(KaasError):
    """Malformed resource spec, wrong token count or unparsable quantity."""


class ConflictError(KaasError):
    """The name is already in use."""


class NotFoundError(KaasError):
    """No workload with this name."""


class UpstreamError(KaasError):
    """A Kubernetes API call failed."""

    def __init__(self, name: str, message: str, operation: str = "", kind: str = "",
                 status: Optional[int] = None):
        super().__init__(name, message)
        self.operation = operation
        self.kind = kind
        self.status = status

    def __str__(self):
        where = f"{self.operation} {self.kind}".strip()
        return f"{self.name}: failed to {where}: {self.message}" if where else super().__str__()


class PartialFailureError(UpstreamError):
    """A later object failed after earlier ones were created; those are left in place."""

    def __init__(self, name: str, cause: UpstreamError, created: List[str]):
        super().__init__(name, cause.message, cause.operation, cause.kind, cause.status)
        self.cause = cause
        self.created = list(created)

    def __str__(self):
        return f"{super().__str__()} (left in place: {', '.join(self.created)})"
