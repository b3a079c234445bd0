import asyncio
import base64
import binascii
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import requests

from .completion import call_with_timeout
from .errors import ConfigurationError, MalformedResponse, TransportFailure
from .models import ImagePayload


logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"
DEFAULT_IMAGEN_BASE_URL = "https://generativelanguage.googleapis.com"
MULTIMODAL_MARKER = "gemini"

STYLE_GUIDES: Dict[str, str] = {
    "healing": (
        "- CUTE JOURNAL: pastel palette, rounded note boxes, dotted arrows, small doodles "
        "(stars, hearts), subtle cream grid background.\n"
        "- Clean sans-serif handwriting style, high readability."
    ),
    "tech": (
        "- TECH BLUEPRINT: geometric shapes, straight neon cyan lines, dark blue background, "
        "circuit motifs, monospaced labels.\n"
        "- Grid overlays and holographic UI hints; crisp thin strokes; high-contrast text."
    ),
    "retro": (
        "- RETRO POSTER: bold blocky layout, halftone texture, vibrant red/yellow/blue on aged "
        "paper, collage starbursts.\n"
        "- Impactful headline typography and chunky separators; text stays clear."
    ),
    "zen": (
        "- ZEN INK: rice paper white or cream background, ink wash strokes, sparse bamboo or "
        "red seal accents, calligraphic headings.\n"
        "- Minimal composition with generous whitespace and crisp black text."
    ),
    "clay": (
        "- 3D CLAY: soft pastel claymorphism, rounded blobs, gentle gradients and shadows, "
        "toy-like icons.\n"
        "- Text on flat labels in a clear sans-serif; avoid noisy details."
    ),
}
DEFAULT_STYLE_GUIDE = "healing"


def style_guide_for(style_id: str) -> str:
    return STYLE_GUIDES.get(style_id, STYLE_GUIDES[DEFAULT_STYLE_GUIDE])


def build_render_instruction(prompt: str, style_id: str) -> str:
    return (
        f"{prompt}\n\n"
        "# Visual Intent\n"
        "- Render as a finished 3:4 vertical visual note (no code, no SVG).\n"
        "- All Chinese text fully legible, sharp and high-contrast inside light text boxes.\n"
        "- Bento-like layout with the title at the top, clear sections and a footer watermark.\n"
        "- Flow arrows and connectors are neat and never cover text.\n\n"
        "# Style Guide\n"
        f"{style_guide_for(style_id)}\n\n"
        "# Output\n"
        "- Illustration or photo-real accepted, but flat and clean (no blur).\n"
        "- High quality PNG suitable for download and display."
    )


# -- backends --------------------------------------------------------------


class BackendKind(str, Enum):
    INLINE_PART = "inline_part"
    PREDICTION_LIST = "prediction_list"


def backend_kind_for(model_id: str) -> BackendKind:
    if MULTIMODAL_MARKER in (model_id or "").lower():
        return BackendKind.INLINE_PART
    return BackendKind.PREDICTION_LIST


class ImageBackend(Protocol):
    kind: BackendKind

    def check_ready(self) -> None:
        ...

    async def generate(self, prompt: str) -> ImagePayload:
        ...


def extract_inline_image(response: Any) -> Optional[ImagePayload]:
    """Return the first inline image found among a multimodal response's parts."""
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None)
            if not data:
                continue
            mime_type = getattr(inline, "mime_type", None) or "image/png"
            if isinstance(data, str):
                return _decode_image(data, mime_type)
            return ImagePayload(data=bytes(data), mime_type=mime_type)
    return None


def extract_prediction_image(payload: Any) -> Optional[ImagePayload]:
    """Return the image in `predictions[0]` of a prediction-style response body."""
    predictions = payload.get("predictions") if isinstance(payload, dict) else None
    if not isinstance(predictions, list) or not predictions:
        return None
    item = predictions[0]
    if not isinstance(item, dict):
        return None
    encoded = (
        item.get("bytesBase64Encoded")
        or item.get("base64Data")
        or item.get("imageBytes")
        or item.get("data")
    )
    if not isinstance(encoded, str) or not encoded:
        return None
    return _decode_image(encoded, item.get("mimeType"))


def _decode_image(encoded: str, mime_type: Optional[str]) -> Optional[ImagePayload]:
    # Undecodable data counts as no image, so the attempt is retried.
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        logger.warning("Discarding image payload that is not valid base64: %s", exc)
        return None
    if not data:
        return None
    return ImagePayload(data=data, mime_type=mime_type or "image/png")


class InlinePartBackend:
    """Multimodal completion model that returns image bytes among its response parts."""

    kind = BackendKind.INLINE_PART

    def __init__(self, client: Any, model: str, timeout: Optional[float] = None) -> None:
        self.client = client
        self.model = model
        self.timeout = timeout

    def check_ready(self) -> None:
        if self.client is None:
            raise ConfigurationError("No Gemini client configured. Set GEMINI_API_KEY.")

    async def generate(self, prompt: str) -> ImagePayload:
        response = await call_with_timeout(
            self.client.aio.models.generate_content(
                model=self.model,
                contents=[{"role": "user", "parts": [{"text": prompt}]}],
                config={"response_modalities": ["TEXT", "IMAGE"]},
            ),
            self.timeout,
            "Image generation",
        )
        payload = extract_inline_image(response)
        if payload is None:
            raise MalformedResponse("No inline image returned", raw=response)
        return payload


class PredictionListBackend:
    """Dedicated image model behind a `:predict` endpoint returning base64 predictions."""

    kind = BackendKind.PREDICTION_LIST

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = DEFAULT_IMAGEN_BASE_URL,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def check_ready(self) -> None:
        if not self.api_key:
            raise ConfigurationError("Missing GEMINI_API_KEY for image prediction requests.")

    async def generate(self, prompt: str) -> ImagePayload:
        body = await call_with_timeout(
            asyncio.to_thread(self._post, prompt), self.timeout, "Image generation"
        )
        payload = extract_prediction_image(body)
        if payload is None:
            raise MalformedResponse("Prediction response missing image data", raw=body)
        return payload

    def _post(self, prompt: str) -> Any:
        url = f"{self.base_url}/v1beta/models/{self.model}:predict"
        response = self.session.post(
            url,
            headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
            json={
                "instances": [{"prompt": prompt}],
                "parameters": {"sampleCount": 1, "outputMimeType": "image/png"},
            },
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            raise TransportFailure(f"Image HTTP {response.status_code}: {response.text[:500]}")
        try:
            return response.json()
        except ValueError:
            raise MalformedResponse("Prediction response is not JSON", raw=response.text) from None


def build_image_backend(config) -> ImageBackend:
    kind = backend_kind_for(config.image_model)
    if kind is BackendKind.INLINE_PART:
        client = None
        if config.gemini_api_key:
            from google import genai

            client = genai.Client(api_key=config.gemini_api_key)
        return InlinePartBackend(client, model=config.image_model, timeout=config.image_timeout_seconds)
    return PredictionListBackend(
        api_key=config.gemini_api_key,
        model=config.image_model,
        base_url=config.imagen_base_url,
        timeout=config.image_timeout_seconds,
    )


# -- retry policy ----------------------------------------------------------


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


def backoff_delay(attempt: int, base_seconds: float = 1.0) -> float:
    """Wait after failed attempt `attempt` (1-based): 1s, 2s, ..."""
    return attempt * base_seconds


class RetryPolicy:
    def __init__(self, max_attempts: int = 3, base_seconds: float = 1.0) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_seconds = base_seconds

    def after_failure(self, attempt: int) -> RetryState:
        if attempt >= self.max_attempts:
            return RetryState.EXHAUSTED
        return RetryState.ATTEMPTING

    def delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_seconds)


class ImageRenderer:
    """
    Renders a generation instruction into an image.

    Transport errors and replies without an image are retried the same way.
    When every attempt fails the last error is raised; there is no fallback
    image.
    """

    def __init__(
        self,
        backend: ImageBackend,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def check_ready(self) -> None:
        self.backend.check_ready()

    async def render(self, prompt: str, style_id: str) -> ImagePayload:
        instruction = build_render_instruction(prompt, style_id)
        logger.info("Rendering image via %s backend", self.backend.kind.value)

        attempt = 1
        state = RetryState.ATTEMPTING
        payload: Optional[ImagePayload] = None
        last_error: Optional[Exception] = None

        while state is RetryState.ATTEMPTING:
            try:
                payload = await self.backend.generate(instruction)
                state = RetryState.SUCCEEDED
            except (TransportFailure, MalformedResponse) as exc:
                last_error = exc
                state = self.policy.after_failure(attempt)
                logger.warning(
                    "Image generation attempt %d/%d failed: %s", attempt, self.policy.max_attempts, exc
                )
                if state is RetryState.ATTEMPTING:
                    await self._sleep(self.policy.delay(attempt))
                    attempt += 1

        if state is RetryState.EXHAUSTED:
            logger.error("All %d image generation attempts failed", attempt)
            raise last_error

        logger.info("Generated image (%s, %d bytes) on attempt %d", payload.mime_type, len(payload.data), attempt)
        return payload
