"""Exception hierarchy for ChargeGuard.

Everything raised on purpose derives from ``ChargeGuardError`` so the API
layer can map it to an HTTP status in one place. Per-order and per-merchant
failures are caught by the processor and scheduler and never abort a tick.
"""


class ChargeGuardError(Exception):
    """Base of all domain exceptions."""

    status_code: int = 500
    message: str = "Internal ChargeGuard error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.message
        super().__init__(self.message)


class OrderValidationError(ChargeGuardError):
    """Malformed order or config payload; rejected before it reaches PENDING."""

    status_code = 422
    message = "Invalid order payload"


class OrderNotFoundError(ChargeGuardError):
    status_code = 404
    message = "Order not found"


class SweepInProgressError(ChargeGuardError):
    """Another worker holds the merchant's monitoring lock."""

    status_code = 409
    message = "A monitoring sweep is already running for this merchant"


class TransientProviderError(ChargeGuardError):
    """External lookup timed out or failed with a transport error / 5xx."""

    status_code = 503
    message = "External validation provider unavailable"

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(message or f"{provider}: transient failure")


class ProviderUnavailableError(ChargeGuardError):
    """Provider not configured, rejected the request (4xx) or sent an unusable body."""

    status_code = 503
    message = "External validation provider not usable"

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(message or f"{provider}: unavailable")


class PipelineError(ChargeGuardError):
    """Unexpected failure inside the fusion pipeline."""

    status_code = 500
    message = "Risk assessment failed"
