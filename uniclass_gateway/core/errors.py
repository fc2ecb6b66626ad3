"""Error taxonomy for the matching pipeline.

Only ``InvalidRequest``, ``BatchTooLarge`` and ``ConfigurationError`` ever
reach the HTTP layer. Embedding and lookup errors are caught per chunk or per
query and turned into sentinel results.
"""


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InvalidRequest(GatewayError):
    """Raised when the batch payload is missing, malformed or empty."""
    pass


class BatchTooLarge(GatewayError):
    """Raised when the batch exceeds the configured maximum size."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Maximum {limit} queries per batch",
            context={"size": size, "limit": limit},
        )
        self.size = size
        self.limit = limit


class ConfigurationError(GatewayError):
    """Raised when a collaborator is missing credentials or endpoints."""
    pass


class EmbeddingUnavailable(GatewayError):
    """Raised when the embedding provider cannot produce vectors."""
    pass


class LookupFailed(GatewayError):
    """Raised when the similarity store call errors."""
    pass
