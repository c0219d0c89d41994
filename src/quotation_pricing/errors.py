from __future__ import annotations


class PricingError(Exception):
    """Base class for errors raised by the pricing engine."""


class InvalidInputError(PricingError):
    """A required input is missing or outside its domain bounds.

    The message is shown as-is on the customer-facing estimation form, so it
    always names the offending field.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class ConfigurationUnavailableError(PricingError):
    """The configuration gateway could not supply rules or base constants."""


__all__ = ["PricingError", "InvalidInputError", "ConfigurationUnavailableError"]
