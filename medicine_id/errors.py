"""Exception hierarchy for the medicine identifier.

Client-side errors propagate to the caller (session, CLI). Proxy-side errors
carry the HTTP status and the public message returned to the browser; the
full detail only goes to the server log.
"""

from typing import Optional


class MedicineIdError(Exception):
    """Base class for every error raised by this package."""


# Client side

class InvalidInputError(MedicineIdError):
    """Selected file is not an image (or cannot be decoded as one)."""


class IdentificationError(MedicineIdError):
    """Base class for failures of a single identification call."""


class TransportError(IdentificationError):
    """Network failure or non-2xx response from the inference proxy."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamError(IdentificationError):
    """Proxy answered, but the payload carries an ``error`` field."""


class IndexOutOfRangeError(MedicineIdError, IndexError):
    """History selection outside the stored entries."""


class StorageError(MedicineIdError):
    """Local history could not be written."""


class NoImageSelectedError(MedicineIdError):
    pass


class AnalysisInProgressError(MedicineIdError):
    pass


# Proxy side

class ProxyError(MedicineIdError):
    """Error translated into a JSON error response by the proxy."""

    status_code = 500
    include_details = True

    def __init__(self, message: str, public_message: Optional[str] = None):
        super().__init__(message)
        self.public_message = public_message or message

    def to_payload(self) -> dict:
        payload = {"error": self.public_message}
        if self.include_details:
            payload["details"] = "Check server logs"
        return payload


class MissingInputError(ProxyError):
    status_code = 400
    include_details = False

    def __init__(self, message: str = "No image provided"):
        super().__init__(message)


class ConfigurationError(ProxyError):
    """Deployment fault; the public message never names the credential."""

    include_details = False

    def __init__(self, message: str = "API credential not configured"):
        super().__init__(message, public_message="Server configuration error: API key missing")


class UpstreamTransportError(ProxyError):
    """External model call failed, timed out or returned non-2xx."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.upstream_status = status_code
        self.upstream_body = body


class UpstreamShapeError(ProxyError):
    """External model reply lacks the candidate/text structure."""
