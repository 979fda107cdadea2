class WebhookError(Exception):
    """Base class for errors raised by the admission pipeline."""


class EnvelopeDecodeError(WebhookError):
    """The AdmissionReview body could not be decoded; no UID is available."""


class ObjectDecodeError(WebhookError):
    """The object embedded in the review is not a readable Pod."""

    def __init__(self, uid: str, message: str) -> None:
        super().__init__(message)
        self.uid = uid
        self.message = message


class SelectorConfigError(WebhookError):
    """The configured label policy is invalid. Raised at startup."""


class QuantityParseError(WebhookError, ValueError):
    """A default quantity string is not a plain base-10 integer."""


class ResponseEncodeError(WebhookError):
    """The AdmissionReview response could not be serialized."""
