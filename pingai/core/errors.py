class PingAIError(Exception):
    """Base exception for probe failures raised out of an adapter call."""


class ModelListError(PingAIError):
    """Raised when a provider answers a model listing with a non-2xx status."""


class CheckTimeoutError(PingAIError):
    """Raised when a single check exceeds its own deadline."""
