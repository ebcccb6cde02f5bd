"""Stateless inference proxy for medicine identification.

This service is responsible for:
- Accepting an encoded photo via HTTP
- Forwarding it to the vision-language model with a fixed prompt
- Normalizing the model's free-form reply into a medicine record
- Returning the record (or an error payload) as JSON

Key principle: The service is stateless. Each request is independent; the
credential is read from the environment on every request and nothing is
shared between requests except the immutable model caller.
"""

import logging
import os
import re
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from ..errors import ConfigurationError, MissingInputError, ProxyError
from .vision_model import GeminiVisionModel, extract_text, parse_reply_text

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

API_KEY_ENV = "GEMINI_API_KEY"

DATA_URI_PREFIX = re.compile(r"^data:image/(png|jpeg|jpg|webp);base64,")


class IdentifyRequest(BaseModel):
    """Request to identify the medicine in one photo."""

    imageBase64: Optional[str] = None  # Base64 image, optionally a data URI


def strip_data_uri(image_base64: str) -> str:
    return DATA_URI_PREFIX.sub("", image_base64, count=1)


async def read_image_field(request: Request) -> str:
    """Return the ``imageBase64`` field or raise MissingInputError."""
    try:
        payload = await request.json()
    except ValueError:
        raise MissingInputError()

    if not isinstance(payload, dict):
        raise MissingInputError()

    try:
        body = IdentifyRequest.model_validate(payload)
    except ValidationError:
        raise MissingInputError()

    if not body.imageBase64:
        raise MissingInputError()
    return body.imageBase64


def resolve_api_key() -> str:
    api_key = os.environ.get(API_KEY_ENV)
    if not api_key:
        logger.error(f"{API_KEY_ENV} not configured")
        raise ConfigurationError()
    return api_key


def create_app(vision_model: Optional[GeminiVisionModel] = None) -> FastAPI:
    """Create FastAPI application for the inference proxy."""

    app = FastAPI(
        title="Medicine Identification Proxy",
        description="Stateless proxy between the browser and the vision model",
        version="0.1.0",
    )
    model = vision_model or GeminiVisionModel()

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        if exc.status_code >= 500:
            logger.error(f"Error in identify-medicine: {exc}")
        else:
            logger.info(f"Rejected identify-medicine request: {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.get("/health")
    @app.get("/healthz")  # Alias for K8s-style health checks
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.options("/identify-medicine")
    async def identify_preflight():
        """Answer CORS preflight probes with headers only."""
        return Response(status_code=200, headers=CORS_HEADERS)

    @app.post("/identify-medicine")
    async def identify_medicine(request: Request):
        """
        Identify the medicine in a photo.

        Body: ``{"imageBase64": "<base64 or data URI>"}``

        Returns:
            Medicine record JSON (HTTP 200, possibly a "Parsing Error"
            record) or ``{"error": ...}`` with HTTP 400/500
        """
        try:
            image_base64 = await read_image_field(request)
            api_key = resolve_api_key()

            image_data = strip_data_uri(image_base64)
            logger.info(f"Analyzing medicine image with {model.model}... Payload size: {len(image_data)} chars")

            reply = await model.generate(image_data, api_key)
            logger.debug(f"Model reply: {reply}")

            text = extract_text(reply)
            return JSONResponse(content=parse_reply_text(text))

        except ProxyError:
            raise
        except Exception as e:
            logger.exception("Error in identify-medicine")
            return JSONResponse(
                status_code=500,
                content={"error": str(e) or "Unknown error", "details": "Check server logs"},
            )

    return app


def main():
    """Main entry point."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Inference proxy for medicine identification")
    parser.add_argument(
        "--host",
        type=str,
        default=os.getenv("HOST", "127.0.0.1"),
        help="Host to bind to (default: 127.0.0.1 or HOST env var)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8002")),
        help="Port to bind to (default: 8002 or PORT env var)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("LOG_LEVEL", "info"),
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: info or LOG_LEVEL env var)",
    )

    args = parser.parse_args()

    log_level = getattr(logging, args.log_level.upper())
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not os.environ.get(API_KEY_ENV):
        logger.warning(f"{API_KEY_ENV} is not set; identify requests will fail until it is")

    logger.info(f"Starting inference proxy on {args.host}:{args.port}")

    app = create_app()
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
