"""HTTP utilities for ringlink.

Provides federation endpoint URL derivation and bounded JSON reading for
peer responses, so a misbehaving peer cannot exhaust memory with an
oversized payload.

Note:
    This module sits in the ``utils`` layer and depends only on the
    standard library, ``aiohttp`` and [ringlink.models][ringlink.models].

See Also:
    [PeerClient][ringlink.services.common.peers.PeerClient]: Outbound
        federation client built on these helpers.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import aiohttp

from ringlink.models.constants import API_PREFIX


def endpoint_url(site_url: str, *segments: str) -> str:
    """Build the URL of a federation endpoint on the node serving *site_url*.

    Each segment is percent-encoded so ring ids can never alter the path.

    Examples:
        ```python
        endpoint_url("https://a.example/blog/", "ring", "r1", "join")
        # 'https://a.example/blog/ringlink/v1/ring/r1/join'
        ```
    """
    path = "/".join(quote(s, safe="") for s in segments)
    return f"{site_url.rstrip('/')}{API_PREFIX}/{path}"


async def _read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body, failing once it exceeds *max_size*.

    Accumulates chunks until EOF, which handles chunked transfer-encoding
    where a single read may return fewer bytes than are available.

    Raises:
        ValueError: If the response body exceeds *max_size*.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(response: aiohttp.ClientResponse, max_size: int) -> Any:
    """Read and parse a JSON response body with size enforcement.

    The size limit is checked before parsing.

    Returns:
        The parsed JSON value (dict, list, str, int, float, bool, or None).

    Raises:
        ValueError: If the response body exceeds *max_size*.
        json.JSONDecodeError: If the body is not valid JSON.
    """
    body = await _read_bounded(response, max_size)
    return json.loads(body)
