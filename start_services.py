"""Startup script for the inference proxy.

This starts the proxy (port 8002) and waits until it answers health checks.
The command-line client talks to it over HTTP:

    medicine-id identify photo.jpg
"""

import argparse
import logging
import os
import subprocess
import sys
import time
from pathlib import Path

import requests


def setup_logging():
    """Configure logging."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def wait_for_service(url: str, timeout: float = 30.0) -> bool:
    """
    Wait for a service to become available.

    Args:
        url: Service URL to check
        timeout: Maximum time to wait in seconds

    Returns:
        True if service became available, False if timeout
    """
    start = time.time()

    while time.time() - start < timeout:
        try:
            response = requests.get(url, timeout=2.0)
            if response.status_code == 200:
                return True
        except (requests.ConnectionError, requests.Timeout):
            pass

        time.sleep(0.5)

    return False


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Start the medicine identification proxy")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host for the proxy",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8002,
        help="Port for the proxy",
    )

    args = parser.parse_args()
    setup_logging()
    logger = logging.getLogger(__name__)

    if not os.environ.get("GEMINI_API_KEY"):
        logger.warning("GEMINI_API_KEY is not set; identify requests will return a configuration error")

    health_url = f"http://{args.host}:{args.port}/health"

    logger.info(f"Starting inference proxy on {args.host}:{args.port}...")
    proxy_process = subprocess.Popen(
        [
            sys.executable,
            "-m",
            "medicine_id.inference_service.server",
            "--host",
            args.host,
            "--port",
            str(args.port),
        ],
        cwd=Path(__file__).parent,
    )

    logger.info("Waiting for inference proxy to become ready...")
    if wait_for_service(health_url, timeout=30.0):
        logger.info("✓ Inference proxy is ready")
    else:
        logger.error("✗ Inference proxy failed to start")
        proxy_process.terminate()
        sys.exit(1)

    logger.info("\n" + "="*60)
    logger.info(f"Inference Proxy: http://{args.host}:{args.port}")
    logger.info("  POST /identify-medicine  {\"imageBase64\": ...}")
    logger.info("\nTry it with:")
    logger.info(f"  INFERENCE_SERVICE_URL=http://{args.host}:{args.port} medicine-id identify photo.jpg")
    logger.info("\nPress Ctrl+C to stop")
    logger.info("="*60 + "\n")

    try:
        proxy_process.wait()
    except KeyboardInterrupt:
        logger.info("\nShutting down...")
        proxy_process.terminate()
        try:
            proxy_process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            logger.warning("Forcing shutdown...")
            proxy_process.kill()


if __name__ == "__main__":
    main()
