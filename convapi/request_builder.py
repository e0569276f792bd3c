"""Request Builder - Turns call arguments into a concrete Request.

Resolution rule: the resource is a plain suffix of the base URL.

    url = base_url.rstrip("/") + "/" + resource.lstrip("/")

A resource may carry its own query string ("/get?name=test"); query
parameters are then appended with "&" instead of "?", always ahead of any
"#fragment". Resources that carry their own scheme ("http://other/x") are
rejected rather than resolved; a bare colon ("users:1") is part of the path.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping
from urllib.parse import quote

import httpx

from convapi.errors import InvalidRequestError
from convapi.models import APIMethod, Request

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

Decorator = Callable[[Request], None]


def _render_param(value: Any) -> str:
    """Render a scalar query value the way a JSON API expects it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_query(params: Mapping[str, Any]) -> str:
    """Render params as name=value pairs, percent-encoding both sides.

    Pairs keep the mapping's iteration order; callers must not depend on it.
    """
    return "&".join(
        f"{quote(str(name), safe='')}={quote(_render_param(value), safe='')}"
        for name, value in params.items()
    )


def resolve_url(
    base_url: str,
    resource: str = "/",
    params: Mapping[str, Any] | None = None,
) -> str:
    """Compose base URL, resource suffix and query params into one URL.

    Args:
        base_url: Origin plus optional path prefix, e.g. "http://host/api".
        resource: Path suffix, e.g. "/users/1". Defaults to "/".
        params: Optional query parameters.

    Returns:
        The absolute URL as a string.

    Raises:
        InvalidRequestError: If base or resource cannot form a valid
                             absolute http(s) URL.
    """
    # "users:1" is a path; only "scheme://..." is an absolute URL
    if "://" in resource:
        raise InvalidRequestError(f"resource must be a path, got {resource!r}")
    try:
        base = httpx.URL(base_url)
    except httpx.InvalidURL as e:
        raise InvalidRequestError(str(e)) from e

    if base.scheme not in ("http", "https") or not base.host:
        raise InvalidRequestError(f"base URL must be absolute http(s), got {base_url!r}")

    url = base_url.rstrip("/") + "/" + resource.lstrip("/")

    if params:
        # The query goes before any fragment the resource carries
        url, hash_sign, fragment = url.partition("#")
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}{encode_query(params)}{hash_sign}{fragment}"

    try:
        resolved = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise InvalidRequestError(str(e)) from e
    if not resolved.is_absolute_url or not resolved.host:
        raise InvalidRequestError(f"cannot build an absolute URL from {url!r}")

    return str(resolved)


def build_request(
    method: APIMethod | str,
    base_url: str,
    resource: str = "/",
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    body: bytes | None = None,
    decorator: Decorator | None = None,
) -> Request:
    """Build the Request for one call.

    Content-Type: application/json is set on every request, bodyless ones
    included. Caller headers are laid over it (and may replace it). The
    decorator runs last and may rewrite anything; the result is not
    re-validated afterwards.

    Raises:
        InvalidRequestError: If the URL cannot be built or the method is unknown.
    """
    try:
        api_method = APIMethod(method.upper() if isinstance(method, str) else method)
    except ValueError as e:
        raise InvalidRequestError(f"unsupported method {method!r}") from e

    url = resolve_url(base_url, resource, params)

    request = Request(
        method=api_method,
        url=url,
        headers={"Content-Type": JSON_CONTENT_TYPE},
        body=body,
    )
    for name, value in (headers or {}).items():
        request.set_header(name, value)

    if decorator is not None:
        decorator(request)

    logger.debug("Built %s %s", request.method.value, request.url)
    return request
