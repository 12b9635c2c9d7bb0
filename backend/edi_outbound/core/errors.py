"""
Error taxonomy for the outbound pipeline.

* ``ValidationError``  – bad input data or configuration; never retried.
* ``ExhaustionError``  – the SSCC serial range is used up; needs an operator.
* ``TransportError``   – connect / auth / write / rename failure; retryable.
* ``NotFoundError``    – referenced order or shipment does not exist.

Validation and exhaustion errors propagate to the caller and abort the
current order.  Transport errors are caught at the delivery boundary and
recorded on the document instead of being raised.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by the outbound pipeline."""

    retryable: bool = False


class ValidationError(PipelineError):
    """Input failed validation; the order must be fixed before it can ship."""

    def __init__(self, message: str, *, line_number: int | None = None) -> None:
        super().__init__(message)
        self.line_number = line_number


class ConfigurationError(ValidationError):
    """Static configuration (GS1 prefix, credentials …) is missing or malformed."""


class ExhaustionError(PipelineError):
    """No serial numbers left under the configured GS1 company prefix."""


class NotFoundError(PipelineError):
    pass


class TransportError(PipelineError):
    """File transfer to the exchange failed at some stage."""

    retryable = True

    def __init__(self, message: str, *, stage: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.cause = cause

    def __str__(self) -> str:
        return f"{self.stage}: {super().__str__()}"


__all__ = [
    "PipelineError",
    "ValidationError",
    "ConfigurationError",
    "ExhaustionError",
    "NotFoundError",
    "TransportError",
]
