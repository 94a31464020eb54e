"""Error taxonomy for the extraction pipeline.

Two families live here:

* ``LabelExtractionError`` and subclasses are terminal for a request. Each
  carries the HTTP-equivalent status code returned to the caller.
* ``ModelError`` and subclasses describe a single failed call to the vision
  model. They are classified at the client boundary and consumed by the retry
  loop; only exhaustion escapes as ``CapacityError``.
"""

from typing import Optional


class LabelExtractionError(Exception):
    """Fatal error for one extraction request."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(LabelExtractionError):
    """Model credentials or endpoint missing."""
    status_code = 500


class InvalidInputError(LabelExtractionError):
    """Bad caller input (missing or unreadable image)."""
    status_code = 400


class UpstreamError(LabelExtractionError):
    """Model or image-preparation collaborator failed in a non-retryable way."""
    status_code = 502


class NoLabelDataError(UpstreamError):
    """Every extraction attempt came back without parseable data."""


class CapacityError(LabelExtractionError):
    """All models stayed rate-limited through the whole retry budget."""
    status_code = 429


class ModelError(Exception):
    """A single model call failed."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class RateLimitedError(ModelError):
    """The model rejected the call for capacity reasons (HTTP 429)."""


class ContentPolicyError(ModelError):
    """The model refused the input under its content policy."""


class ModelCallError(ModelError):
    """Any other model failure. Not retried."""
