from __future__ import annotations

import asyncio
import base64
import binascii
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from PIL import Image
from loguru import logger

from revision_ai.core.cancellation import CancellationToken
from revision_ai.core.errors import (
    BackendTimeoutError,
    NetworkError,
    OperationCancelledError,
    ProcessingError,
    SafetyRejectedError,
    UnexpectedError,
    ValidationError,
    classify_backend_error,
)
from revision_ai.core.result import Failure, Result, Success
from revision_ai.models.geometry import BoundingBox2D, SegmentationMask, SegmentationResult
from revision_ai.services.image_io import check_image_size

T = TypeVar("T")

DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024
DEFAULT_ANALYZE_TIMEOUT = 30.0
DEFAULT_GENERATE_TIMEOUT = 60.0


class AIBackend(ABC):
    """
    The network boundary to the generative backend.

    Every call returns a ``Result``; nothing raises. Image size is checked
    before dispatch and the cancellation token is checked both before the
    request leaves and after it returns (a late answer is discarded).
    """

    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES

    @abstractmethod
    async def analyze(
        self,
        image_bytes: bytes,
        marked_areas: list[dict[str, Any]],
        *,
        system_instructions: str | None = None,
        token: CancellationToken | None = None,
    ) -> Result[str]:
        """Return an analysis prompt describing what to change."""
        raise NotImplementedError

    @abstractmethod
    async def generate(
        self,
        image_bytes: bytes,
        instruction_prompt: str,
        *,
        token: CancellationToken | None = None,
    ) -> Result[bytes]:
        """Return the transformed image bytes."""
        raise NotImplementedError

    @abstractmethod
    async def segment(
        self,
        image_bytes: bytes,
        prompt: str,
        *,
        image_size: tuple[int, int],
        token: CancellationToken | None = None,
    ) -> Result[SegmentationResult]:
        raise NotImplementedError

    async def open(self) -> None:
        """Called on app startup."""

    async def close(self) -> None:
        """Called on app shutdown."""

    def _check_size(self, image_bytes: bytes) -> Result[bytes]:
        if len(image_bytes) == 0:
            return Failure(ValidationError("Image data cannot be empty"))
        return check_image_size(image_bytes, self.max_image_bytes)

    async def _dispatch(
        self,
        label: str,
        call: Callable[[], Awaitable[Result[T]]],
        *,
        token: CancellationToken | None,
        timeout: float | None,
    ) -> Result[T]:
        if token is not None and token.is_cancelled:
            return Failure(OperationCancelledError(token.reason or "Operation cancelled"))

        t0 = time.perf_counter()
        try:
            result = await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Backend {label} timed out after {timeout:.0f}s")
            return Failure(BackendTimeoutError(f"AI backend {label} timed out after {timeout:.0f}s"))
        except ProcessingError as e:
            return Failure(e)
        except Exception as e:
            logger.error(f"Backend {label} unexpected error: {e}")
            return Failure(UnexpectedError.wrap(e, f"AI backend {label} failed"))

        elapsed = (time.perf_counter() - t0) * 1000
        logger.debug(f"Backend {label} returned in {elapsed:.2f}ms (success={result.is_success})")

        if token is not None and token.is_cancelled:
            logger.info(f"Backend {label} returned after cancellation, discarding response")
            return Failure(OperationCancelledError(token.reason or "Operation cancelled"))
        return result


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if body.get("message"):
            return str(body["message"])
    return response.text


@dataclass
class HttpAIBackend(AIBackend):
    """
    JSON-over-HTTP client for the generative backend.

    Endpoints (relative to ``api_url``):
        POST /models/{model}:analyze   -> {"text": "..."}
        POST /models/{model}:generate  -> {"image": "<base64>"}
        POST /models/{model}:segment   -> {"masks": [...], "confidence": 0.9}

    A response carrying ``"blocked": "<reason>"`` is a safety rejection.
    """
    api_url: str
    api_key: str
    analyze_model: str = "gemini-2.5-flash"
    generate_model: str = "gemini-2.0-flash-preview-image-generation"
    segmentation_model: str = "gemini-2.5-flash"
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    analyze_timeout: float = DEFAULT_ANALYZE_TIMEOUT
    generate_timeout: float = DEFAULT_GENERATE_TIMEOUT
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url.rstrip("/"),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                transport=self.transport,
            )
            logger.info(f"AI backend client opened for {self.api_url}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("AI backend client closed")

    async def _post(self, model: str, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        await self.open()
        path = f"/models/{model}:{action}"
        try:
            response = await self._client.post(path, json=payload, timeout=None)
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(f"AI backend {action} timed out: {e}")
        except httpx.TransportError as e:
            raise NetworkError(f"AI backend {action} network error: {e}")

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(f"AI backend {action} failed ({response.status_code}): {detail}")
            raise classify_backend_error(response.status_code, detail)

        try:
            body = response.json()
        except ValueError:
            raise UnexpectedError(f"AI backend {action} returned invalid JSON")
        if not isinstance(body, dict):
            raise UnexpectedError(f"AI backend {action} returned {type(body).__name__}, expected object")
        if body.get("blocked"):
            raise SafetyRejectedError(f"Request blocked by content safety: {body['blocked']}")
        return body

    async def analyze(
        self,
        image_bytes: bytes,
        marked_areas: list[dict[str, Any]],
        *,
        system_instructions: str | None = None,
        token: CancellationToken | None = None,
    ) -> Result[str]:
        checked = self._check_size(image_bytes)
        if checked.is_failure:
            return Failure(checked.error_or_none)

        async def call() -> Result[str]:
            payload = {
                "image": _b64(image_bytes),
                "markedAreas": marked_areas,
                "systemInstruction": system_instructions,
            }
            logger.info(f"Submitting analyze request ({len(image_bytes)} bytes, {len(marked_areas)} marked areas)")
            body = await self._post(self.analyze_model, "analyze", payload)
            text = body.get("text")
            if not isinstance(text, str) or not text.strip():
                return Failure(UnexpectedError("AI backend analyze returned no text"))
            return Success(text.strip())

        return await self._dispatch("analyze", call, token=token, timeout=self.analyze_timeout)

    async def generate(
        self,
        image_bytes: bytes,
        instruction_prompt: str,
        *,
        token: CancellationToken | None = None,
    ) -> Result[bytes]:
        checked = self._check_size(image_bytes)
        if checked.is_failure:
            return Failure(checked.error_or_none)

        async def call() -> Result[bytes]:
            payload = {"image": _b64(image_bytes), "prompt": instruction_prompt}
            logger.info(f"Submitting generate request (prompt: {len(instruction_prompt)} chars)")
            body = await self._post(self.generate_model, "generate", payload)
            try:
                data = base64.b64decode(body.get("image") or "", validate=True)
            except (binascii.Error, ValueError) as e:
                return Failure(UnexpectedError(f"AI backend generate returned invalid image data: {e}"))
            if not data:
                return Failure(UnexpectedError("AI backend generate returned no image"))
            return Success(data)

        return await self._dispatch("generate", call, token=token, timeout=self.generate_timeout)

    async def segment(
        self,
        image_bytes: bytes,
        prompt: str,
        *,
        image_size: tuple[int, int],
        token: CancellationToken | None = None,
    ) -> Result[SegmentationResult]:
        checked = self._check_size(image_bytes)
        if checked.is_failure:
            return Failure(checked.error_or_none)

        async def call() -> Result[SegmentationResult]:
            t0 = time.perf_counter()
            payload = {"image": _b64(image_bytes), "prompt": prompt}
            logger.info("Submitting segmentation request")
            body = await self._post(self.segmentation_model, "segment", payload)
            elapsed_ms = int((time.perf_counter() - t0) * 1000)
            w, h = image_size
            try:
                result = SegmentationResult.from_json(body, w, h, elapsed_ms)
            except (KeyError, TypeError, ValueError) as e:
                return Failure(UnexpectedError(f"AI backend segment returned malformed masks: {e}"))
            logger.info(f"Segmentation returned {len(result.masks)} masks")
            return Success(result)

        return await self._dispatch("segment", call, token=token, timeout=self.analyze_timeout)


def _solid_mask_png(size: int = 8) -> bytes:
    buffer = BytesIO()
    Image.new("L", (size, size), 255).save(buffer, format="PNG")
    return buffer.getvalue()


@dataclass
class MockAIBackend(AIBackend):
    """
    In-process backend for development mode and tests.

    ``generate`` echoes the input image; ``segment`` returns one mask that
    covers the central half of the image.
    """
    latency_seconds: float = 0.0
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    calls: list[str] = field(default_factory=list)

    async def _sleep(self) -> None:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

    async def analyze(
        self,
        image_bytes: bytes,
        marked_areas: list[dict[str, Any]],
        *,
        system_instructions: str | None = None,
        token: CancellationToken | None = None,
    ) -> Result[str]:
        checked = self._check_size(image_bytes)
        if checked.is_failure:
            return Failure(checked.error_or_none)

        async def call() -> Result[str]:
            self.calls.append("analyze")
            await self._sleep()
            labels = [a.get("label") or "area" for a in marked_areas]
            if labels:
                return Success(f"Edit the marked regions: {', '.join(labels)}.")
            return Success("Improve the overall image quality.")

        return await self._dispatch("analyze", call, token=token, timeout=None)

    async def generate(
        self,
        image_bytes: bytes,
        instruction_prompt: str,
        *,
        token: CancellationToken | None = None,
    ) -> Result[bytes]:
        checked = self._check_size(image_bytes)
        if checked.is_failure:
            return Failure(checked.error_or_none)

        async def call() -> Result[bytes]:
            self.calls.append("generate")
            await self._sleep()
            return Success(bytes(image_bytes))

        return await self._dispatch("generate", call, token=token, timeout=None)

    async def segment(
        self,
        image_bytes: bytes,
        prompt: str,
        *,
        image_size: tuple[int, int],
        token: CancellationToken | None = None,
    ) -> Result[SegmentationResult]:
        checked = self._check_size(image_bytes)
        if checked.is_failure:
            return Failure(checked.error_or_none)

        async def call() -> Result[SegmentationResult]:
            self.calls.append("segment")
            await self._sleep()
            mask = SegmentationMask(
                bounding_box=BoundingBox2D(y0=250, x0=250, y1=750, x1=750),
                label="object",
                mask_data=_solid_mask_png(),
                confidence=0.9,
            )
            w, h = image_size
            return Success(SegmentationResult(
                masks=(mask,),
                processing_time_ms=0,
                image_width=w,
                image_height=h,
                model_version="mock",
                confidence=mask.confidence,
            ))

        return await self._dispatch("segment", call, token=token, timeout=None)
