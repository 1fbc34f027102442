"""Google Gemini client for location extraction and image verification.

Talks to the ``generateContent`` REST endpoint with ``httpx``. Errors are
not handled here: HTTP failures, malformed answers and timeouts propagate
to the enrichment pipeline, which falls back.

Usage::

    async with GeminiProvider(api_key=key) as gemini:
        place = await gemini.extract_location("Flooding in Brooklyn, NY")
"""

from __future__ import annotations

import asyncio
import base64
import ipaddress
import json
import logging
import re
import socket
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlsplit

import httpx

from disaster_relay.core.clock import IClock, WallClock
from disaster_relay.core.enums import VerificationStatus
from disaster_relay.core.models import ImageAnalysis, ImageVerification

logger = logging.getLogger(__name__)

_UNKNOWN = "unknown location"

_EXTRACT_PROMPT = (
    "Extract the most specific geographic location mentioned in the following "
    "disaster description. Answer with the location name only, formatted as "
    "'City, ST' or 'Neighborhood, City' when possible. If no location is "
    "mentioned, answer 'Unknown Location'.\n\nDescription:\n{text}"
)

_VERIFY_PROMPT = (
    "You are verifying a user-submitted disaster photo. Assess whether it "
    "appears authentic, shows signs of manipulation, and depicts a disaster "
    "scene. Respond with JSON only: "
    '{"status": "verified"|"pending"|"rejected", "confidence": 0..1, '
    '"summary": string, "authenticity_score": 0..1, '
    '"context_relevance": 0..1, "manipulation_detected": bool}'
)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.M)

MAX_IMAGE_BYTES = 10 * 1024 * 1024

Resolver = Callable[[str], Awaitable[list[str]]]


async def resolve_host(host: str) -> list[str]:
    """Every address *host* resolves to."""
    infos = await asyncio.get_running_loop().getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def _is_public(address: str) -> bool:
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def _candidate_text(body: dict[str, Any]) -> str:
    """Pull the first text part out of a generateContent response."""
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError(f"Unexpected Gemini response shape: {body!r}") from exc
    return "".join(p.get("text", "") for p in parts).strip()


class GeminiProvider:
    """Location extractor and image verifier backed by Gemini.

    Parameters
    ----------
    api_key:
        Gemini API key.
    model:
        Model name, e.g. ``"gemini-1.5-flash"``.
    endpoint:
        API base URL.
    client:
        Optional pre-built client (tests pass one with a mock transport).
    max_image_bytes:
        Image downloads larger than this are abandoned.
    resolver:
        Async ``host -> [address]`` lookup used to refuse images served
        from private, loopback or link-local addresses.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-1.5-flash",
        endpoint: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: IClock | None = None,
        max_image_bytes: int = MAX_IMAGE_BYTES,
        resolver: Resolver | None = None,
    ) -> None:
        if not api_key:
            logger.warning("Gemini API key not set; Gemini calls will fail.")
        self._api_key = api_key
        self._model = model
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._clock = clock or WallClock()
        self._max_image_bytes = max_image_bytes
        self._resolver = resolver or resolve_host

    # -- Lifecycle -----------------------------------------------------------

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
            self._owns_client = True

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GeminiProvider:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- Calls ---------------------------------------------------------------

    async def _generate(self, parts: list[dict[str, Any]]) -> str:
        await self.open()
        assert self._client is not None
        resp = await self._client.post(
            f"{self._endpoint}/models/{self._model}:generateContent",
            params={"key": self._api_key},
            json={"contents": [{"parts": parts}]},
        )
        resp.raise_for_status()
        return _candidate_text(resp.json())

    async def extract_location(self, text: str) -> str | None:
        answer = await self._generate([{"text": _EXTRACT_PROMPT.format(text=text)}])
        answer = answer.strip().strip('"').strip()
        if not answer or answer.lower() == _UNKNOWN:
            return None
        return answer

    async def _check_image_url(self, url: str) -> None:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Refusing to fetch image from {url!r}: not an http(s) URL")
        host = parts.hostname
        try:
            addresses = [str(ipaddress.ip_address(host))]
        except ValueError:
            addresses = await self._resolver(host)
        if not addresses or not all(_is_public(a) for a in addresses):
            raise ValueError(f"Refusing to fetch image from non-public host {host!r}")

    async def _fetch_image(self, url: str) -> tuple[str, bytes]:
        """Download at most ``max_image_bytes``; redirects are not followed."""
        await self._check_image_url(url)
        await self.open()
        assert self._client is not None
        async with self._client.stream("GET", url, follow_redirects=False) as resp:
            resp.raise_for_status()
            mime = resp.headers.get("content-type", "image/jpeg").split(";")[0].strip()
            if not mime.startswith("image/"):
                raise ValueError(f"Not an image: content-type {mime!r}")
            declared = resp.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self._max_image_bytes:
                raise ValueError(f"Image too large: {declared} bytes")
            body = bytearray()
            async for chunk in resp.aiter_bytes():
                body.extend(chunk)
                if len(body) > self._max_image_bytes:
                    raise ValueError(f"Image exceeds {self._max_image_bytes} bytes")
        return mime, bytes(body)

    async def verify_image(self, image_url: str) -> ImageVerification:
        started = self._clock.now()
        mime, content = await self._fetch_image(image_url)

        answer = await self._generate([
            {"text": _VERIFY_PROMPT},
            {
                "inline_data": {
                    "mime_type": mime,
                    "data": base64.b64encode(content).decode("ascii"),
                }
            },
        ])
        data = json.loads(_FENCE.sub("", answer))

        elapsed = self._clock.now() - started
        return ImageVerification(
            status=VerificationStatus(data.get("status", "pending")),
            confidence=float(data.get("confidence", 0.5)),
            verification_result=str(data.get("summary", "")),
            analysis=ImageAnalysis(
                authenticity_score=float(data.get("authenticity_score", 0.0)),
                context_relevance=float(data.get("context_relevance", 0.0)),
                manipulation_detected=bool(data.get("manipulation_detected", False)),
            ),
            processing_time_ms=int(elapsed.total_seconds() * 1000),
            timestamp=self._clock.now(),
        )
