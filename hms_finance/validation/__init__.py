"""Request validation package."""

from hms_finance.validation.validator import InvalidPayloadError, RequestValidator

__all__ = ["InvalidPayloadError", "RequestValidator"]
