"""Error taxonomy for the pricing engine."""


class PricingEngineError(Exception):
    """Base class for every error raised by the pricing engine."""


class InvalidInputError(PricingEngineError, ValueError):
    """
    Input outside the domain of a formula: non-positive annual hours or
    production rate, margin outside [0, 100), negative dimensions.

    Raised before computing so that Infinity/NaN never leave the engine.
    """


class MissingConfigurationError(PricingEngineError, LookupError):
    """
    No active service template exists for the requested service type.

    The UI must block pricing on this error rather than show a zero price.
    """

    def __init__(self, service_type: str, message: str = "") -> None:
        self.service_type = service_type
        super().__init__(message or f"No active service template configured for '{service_type}'")


class PricingIntegrityError(PricingEngineError):
    """Computed margin did not reproduce the requested target margin."""
