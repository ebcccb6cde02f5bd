"""Client for calling the inference proxy.

This module handles communication with the proxy, including payload
encoding and the three failure layers of a response:
- transport failures (network error, timeout, non-2xx)
- application errors embedded in a 2xx payload
- success, where the payload is taken as a medicine record
"""

import logging
import os
from typing import Optional

import httpx

from ..errors import TransportError, UpstreamError
from ..preprocessing.image_utils import EncodedImage
from ..records import MedicineRecord

logger = logging.getLogger(__name__)

IDENTIFY_PATH = "/identify-medicine"


class IdentificationClient:
    """Client for the medicine identification proxy.

    Configured via environment variables:
    - INFERENCE_SERVICE_URL: Proxy URL (default: http://127.0.0.1:8002)
    """

    def __init__(
        self,
        service_url: str = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            service_url: Base URL of the proxy (or use INFERENCE_SERVICE_URL env)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.service_url = (service_url or os.getenv("INFERENCE_SERVICE_URL", "http://127.0.0.1:8002")).rstrip("/")
        self.timeout = timeout
        self.client = httpx.Client(timeout=timeout, transport=transport)

        logger.info(f"IdentificationClient initialized: url={self.service_url}")

    def close(self):
        self.client.close()

    def __del__(self):
        """Clean up HTTP client."""
        if hasattr(self, "client"):
            self.client.close()

    def health_check(self) -> bool:
        """
        Check if the proxy is healthy.

        Returns:
            True if the proxy is accessible and healthy
        """
        try:
            response = self.client.get(f"{self.service_url}/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Health check failed: {e}")
            return False

    def identify(self, image: EncodedImage) -> MedicineRecord:
        """
        Identify the medicine in an encoded photo.

        Issues exactly one request; there is no retry.

        Args:
            image: Preprocessed image

        Returns:
            MedicineRecord as returned by the proxy, without capture time

        Raises:
            TransportError: network failure, timeout or non-2xx response
            UpstreamError: the proxy payload carries an ``error`` field
        """
        try:
            response = self.client.post(
                f"{self.service_url}{IDENTIFY_PATH}",
                json={"imageBase64": image.to_data_uri()},
            )
        except httpx.TimeoutException as e:
            logger.error(f"Identification request timed out: {e}")
            raise TransportError(f"Request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"Identification request failed: {e}")
            raise TransportError(str(e) or type(e).__name__) from e

        if not response.is_success:
            logger.error(f"Proxy returned {response.status_code}: {response.text}")
            raise TransportError(_failure_message(response), status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Proxy returned a non-JSON body", status_code=response.status_code) from e

        if not isinstance(data, dict):
            raise TransportError("Proxy returned an unexpected payload", status_code=response.status_code)

        if data.get("error"):
            raise UpstreamError(str(data["error"]))

        return MedicineRecord.from_dict(data)


def _failure_message(response: httpx.Response) -> str:
    """Prefer the proxy's own error message for non-2xx responses."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"Edge function returned a non-2xx status code ({response.status_code})"
