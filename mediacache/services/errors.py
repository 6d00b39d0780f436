"""
Service layer exceptions.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class CacheError(ServiceError):
    """Cache entry could not be decoded or stored."""

    pass


class UpstreamStatusError(ServiceError):
    """Upstream answered with a non-success status after retries."""

    def __init__(self, service_id: str, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"HTTP {status_code} from service '{service_id}': {body[:200]}",
            service_id=service_id,
        )


class UpstreamUnavailableError(ServiceError):
    """Upstream could not be reached (DNS, connection refused, reset)."""

    pass


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class ProviderNotConfiguredError(ServiceError):
    """A provider is missing the credentials it needs."""

    def __init__(self, service_id: str, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"Service '{service_id}' is not configured, missing: {', '.join(missing)}",
            service_id=service_id,
        )
