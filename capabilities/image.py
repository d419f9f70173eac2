"""
Image analysis through the vision input of an OpenAI-compatible chat model.

The image bytes are sent inline as a base64 data URL next to the text prompt, so
no file ever has to be written to disk or hosted anywhere.
"""

import base64
import logging
from typing import Optional

from openai import OpenAI, OpenAIError

from monitoring.metrics import CAPABILITY_REQUEST_TIME, track_latency
from shared.utils import build_completion_kwargs
from .base import ImageAnalysis, ImageAnalyzer, ImageProcessingError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_PROMPT = "Please describe what you see in this image in detail."


def to_data_url(content: bytes, media_type: str) -> str:
    return f"data:{media_type};base64,{base64.b64encode(content).decode('utf-8')}"


class LLMImageAnalyzer(ImageAnalyzer):
    """Image analyzer backed by the configured `image_analysis` model."""

    def __init__(self, client: OpenAI) -> None:
        self.client = client

    @track_latency(CAPABILITY_REQUEST_TIME, labels=lambda self: {'capability': 'image'})
    def analyze_image(self, content: bytes, media_type: str, prompt: Optional[str] = None) -> ImageAnalysis:
        if not content:
            raise ImageProcessingError("Image file is empty")
        if not (media_type or "").startswith("image/"):
            raise ImageProcessingError(f"Unsupported image type: {media_type}")

        text_prompt = prompt.strip() if prompt and prompt.strip() else DEFAULT_IMAGE_PROMPT
        try:
            response = self.client.chat.completions.create(
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": text_prompt},
                        {"type": "image_url", "image_url": {"url": to_data_url(content, media_type)}},
                    ],
                }],
                **build_completion_kwargs('image_analysis'),
            )
        except OpenAIError as exc:
            logger.error(f"[analyze_image] Image analysis request failed: {exc}\n")
            raise ImageProcessingError(f"Image analysis failed: {exc}") from exc

        analysis = (response.choices[0].message.content or "").strip()
        logger.info(f"[analyze_image] Image analysis completed ({len(content)} bytes, {media_type})\n")
        return ImageAnalysis(text=analysis)
