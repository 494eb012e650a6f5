"""Off-chain token metadata: gateway rewriting, JSON fetch and image fetch.

Metadata hosts are untrusted and frequently down. Nothing in this module
raises to the caller; failures come back as ``None`` or a placeholder image.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Sequence

import httpx

from .constants import DEFAULT_IPFS_GATEWAY, DEFAULT_METADATA_TIMEOUT, FAILED_TOKEN_URI, IPFS_SCHEME
from .logging_utils import get_logger
from .models import Attribute, Metadata, Token

logger = get_logger("metadata")

_SCALAR_TYPES = (str, int, float, bool)


def to_gateway_url(uri: str, gateway: str = DEFAULT_IPFS_GATEWAY) -> str:
    """``ipfs://<cid>/<path>`` becomes ``<gateway><cid>/<path>``; anything else is unchanged."""
    if uri.startswith(IPFS_SCHEME):
        base = gateway if gateway.endswith("/") else gateway + "/"
        return base + uri[len(IPFS_SCHEME):]
    return uri


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_metadata(document: Any) -> Optional[Metadata]:
    """Shape a decoded JSON document into :class:`Metadata`.

    Returns ``None`` when the document is not a JSON object. Fields of the
    wrong type are dropped rather than rejected.
    """
    if not isinstance(document, dict):
        return None
    attributes: List[Attribute] = []
    raw_attributes = document.get("attributes")
    if isinstance(raw_attributes, list):
        for item in raw_attributes:
            if not isinstance(item, dict):
                continue
            value = item.get("value")
            if value is not None and not isinstance(value, _SCALAR_TYPES):
                value = str(value)
            attributes.append(Attribute(trait_type=_text(item.get("trait_type")), value=value))
    return Metadata(
        name=_text(document.get("name")),
        description=_text(document.get("description")),
        image=_text(document.get("image")),
        external_url=_text(document.get("external_url")),
        attributes=tuple(attributes),
    )


@dataclass(frozen=True)
class ImageResult:
    url: Optional[str]
    content: Optional[bytes] = None
    placeholder: bool = True


class MetadataResolver:
    """Fetches metadata documents and images over HTTP(S), rewriting IPFS URIs."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        gateway: str = DEFAULT_IPFS_GATEWAY,
        timeout: float = DEFAULT_METADATA_TIMEOUT,
    ):
        self._client = client
        self.gateway = gateway
        self.timeout = timeout

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await client.get(url)

    async def resolve(self, uri: Optional[str]) -> Optional[Metadata]:
        if not uri or uri == FAILED_TOKEN_URI:
            return None
        url = to_gateway_url(uri, self.gateway)
        try:
            response = await self._get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Metadata fetch %s failed: %s", url, exc)
            return None
        if not response.is_success:
            logger.warning("Metadata fetch %s returned HTTP %s", url, response.status_code)
            return None
        try:
            document = response.json()
        except ValueError as exc:
            logger.warning("Metadata at %s is not valid JSON: %s", url, exc)
            return None
        metadata = parse_metadata(document)
        if metadata is None:
            logger.warning("Metadata at %s is not a JSON object", url)
        return metadata

    async def attach(self, tokens: Sequence[Token]) -> List[Token]:
        """Return copies of ``tokens`` with metadata resolved concurrently."""
        results = await asyncio.gather(
            *(self.resolve(token.token_uri) for token in tokens), return_exceptions=True
        )
        enriched: List[Token] = []
        for token, result in zip(tokens, results):
            if isinstance(result, BaseException):
                logger.warning("Metadata for token %s failed: %s", token.token_id, result)
                result = None
            enriched.append(replace(token, metadata=result))
        return enriched

    async def resolve_image(self, metadata: Optional[Metadata]) -> ImageResult:
        if metadata is None or not metadata.image:
            return ImageResult(url=None)
        url = to_gateway_url(metadata.image, self.gateway)
        try:
            response = await self._get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Image fetch %s failed: %s", url, exc)
            return ImageResult(url=url)
        content_type = response.headers.get("content-type", "")
        if not response.is_success or not content_type.startswith("image/") or not response.content:
            logger.warning(
                "Image at %s unusable (HTTP %s, %s)", url, response.status_code, content_type or "no type"
            )
            return ImageResult(url=url)
        return ImageResult(url=url, content=response.content, placeholder=False)
