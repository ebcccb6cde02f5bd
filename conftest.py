"""Shared fixtures: synthetic photos and canned model replies."""

import io

import numpy as np
import pytest
from PIL import Image


def create_test_image(width: int = 224, height: int = 224, mode: str = "RGB") -> Image.Image:
    """Create a random-noise test image."""
    channels = 4 if mode == "RGBA" else 3
    arr = np.random.randint(0, 255, (height, width, channels), dtype=np.uint8)
    return Image.fromarray(arr)


def image_bytes(width: int = 224, height: int = 224, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    buffer = io.BytesIO()
    create_test_image(width, height, mode).save(buffer, format=fmt)
    return buffer.getvalue()


def gemini_reply(text: str) -> dict:
    """Minimal generateContent reply carrying one text part."""
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


ASPIRIN = {
    "medicineName": "Aspirin",
    "genericName": "Acetylsalicylic acid",
    "dosage": "500mg",
    "manufacturer": "Bayer",
    "uses": "Pain relief, fever reduction",
    "sideEffects": "Stomach upset",
    "precautions": "Avoid with bleeding disorders",
    "confidence": "high",
}


@pytest.fixture
def png_bytes():
    return image_bytes(320, 240)
