"""Label analyzer — the AI vision call behind every validation run.

The analyzer is treated as untrusted. Its reply goes through
``parse_validation_response`` before any business logic sees it: the
result is either ``Ok`` (a schema-valid ValidationResponse plus the raw
payload) or ``Err`` (why the reply was rejected). Rejected replies raise
MalformedResponseError so the retry wrapper handles them like a transport
failure.
"""

import base64
import io
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx
from PIL import Image
from pydantic import ValidationError

from label_review.config import Settings
from label_review.models.schemas import FormData, LabelImage, ValidationResponse
from label_review.services.prompt import SYSTEM_PROMPT, build_user_message
from label_review.utils.exceptions import AnalyzerError, MalformedResponseError
from label_review.utils.file_validation import is_remote_reference, validate_image_reference
from label_review.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Maximum width/height before resizing; local images larger than this are
# scaled down before upload.
MAX_IMAGE_DIMENSION = 1024


@dataclass(frozen=True)
class Ok:
    response: ValidationResponse
    raw: dict[str, Any]


@dataclass(frozen=True)
class Err:
    reason: str


ParseResult = Union[Ok, Err]


def parse_validation_response(content: str) -> ParseResult:
    """Check an analyzer reply against the response contract.

    extractedText must be present and a string (an empty string is a valid
    reading of a blank label); fieldResults must be a list. Everything else
    (enum membership, boolean overallPass) is checked by ValidationResponse.
    """
    try:
        payload = json.loads(content)
    except (TypeError, ValueError) as e:
        return Err(f"Response is not valid JSON: {e}")

    if not isinstance(payload, dict):
        return Err("Response is not a JSON object")
    if not isinstance(payload.get("extractedText"), str):
        return Err("Invalid response: missing extractedText")
    if not isinstance(payload.get("fieldResults"), list):
        return Err("Invalid response: missing fieldResults array")

    try:
        response = ValidationResponse.model_validate(payload)
    except ValidationError as e:
        return Err(f"Invalid response: {e.error_count()} schema error(s): {e.errors()[0]['msg']}")

    return Ok(response=response, raw=payload)


class LabelAnalyzer(ABC):
    """Compares one label image with the submitted form data."""

    @abstractmethod
    async def analyze(self, form: FormData, image: LabelImage) -> Ok:
        """Return the validated verdict, or raise on any failure."""


class OpenAIVisionAnalyzer(LabelAnalyzer):
    """Analyzer backed by an OpenAI-compatible chat completions endpoint.

    A shared ``httpx.AsyncClient`` can be injected (tests pass one with a
    mock transport); otherwise a client is opened per call.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        max_tokens: int = 2000,
        temperature: float = 0.1,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIVisionAnalyzer":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.analyzer_model,
            base_url=settings.analyzer_base_url,
            timeout=settings.analyzer_timeout,
            max_tokens=settings.analyzer_max_tokens,
            temperature=settings.analyzer_temperature,
        )

    async def analyze(self, form: FormData, image: LabelImage) -> Ok:
        if not self.api_key:
            raise AnalyzerError("Analyzer API key is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_user_message(form)},
                        {"type": "image_url", "image_url": {"url": image_content_url(image), "detail": "auto"}},
                    ],
                },
            ],
            "response_format": {"type": "json_object"},
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        LOGGER.debug(f"Analyzing image {image.id} with {self.model}")
        body = await self._post("/chat/completions", payload)
        content = _message_content(body)
        if not content:
            raise AnalyzerError(f"No response content from {self.model}")

        result = parse_validation_response(content)
        if isinstance(result, Err):
            LOGGER.warning(f"Rejected analyzer reply for image {image.id}: {result.reason}")
            raise MalformedResponseError(result.reason)
        return result

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AnalyzerError(f"Analyzer returned HTTP {e.response.status_code}", e) from e
        except httpx.HTTPError as e:
            raise AnalyzerError(f"Analyzer request failed: {e!r}", e) from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError("Analyzer envelope is not valid JSON", e) from e


def _message_content(body: dict[str, Any]) -> Optional[str]:
    choices = body.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("message") or {}).get("content")


def image_content_url(image: LabelImage) -> str:
    """URL the model should fetch the image from.

    Remote references are passed through. Local files are resized and
    inlined as a base64 JPEG data URL.
    """
    ref = validate_image_reference(image)
    if is_remote_reference(ref):
        return ref
    return encode_local_image(ref)


def encode_local_image(path: str) -> str:
    with Image.open(path) as image:
        prepared = _preprocess(image)
    buffer = io.BytesIO()
    prepared.save(buffer, format="JPEG", quality=90)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


def _preprocess(image: Image.Image) -> Image.Image:
    """Convert to RGB and cap the longest side at MAX_IMAGE_DIMENSION."""
    image = image.convert("RGB")
    w, h = image.size
    if max(w, h) > MAX_IMAGE_DIMENSION:
        ratio = MAX_IMAGE_DIMENSION / max(w, h)
        image = image.resize((int(w * ratio), int(h * ratio)), Image.Resampling.LANCZOS)
    return image
