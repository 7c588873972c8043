"""Plain HTTP fetching for sitemap and robots.txt resolution.

Security requirements:
- SSRF guard: ipaddress module blocks private/loopback/link-local ranges before
  any connection is established.
- Allowed URL schemes: https:// and http:// only.
- Max response body: 10 MB.
- Explicit per-request timeout (caller-supplied).
- Max redirects: 3.
"""

from __future__ import annotations

import ipaddress
import socket
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from http.client import HTTPResponse

USER_AGENT = "VectorBase-Crawler/1.0 (AI Knowledge Base; +https://vectorbase.dev)"
_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}


class InvalidUrlError(ValueError):
    """Raised when a URL is malformed or uses an unsupported scheme."""


class SsrfError(ValueError):
    """Raised when a URL resolves to a private or reserved address."""


class FetchError(RuntimeError):
    """Raised when an HTTP fetch fails (network error or non-2xx status)."""


@dataclass
class FetchResult:
    url: str
    status: int
    content_type: str
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def validate_url(url: str) -> urllib.parse.ParseResult:
    """Parse *url* and require an http(s) scheme and a hostname.

    Raises:
        InvalidUrlError: if the URL cannot be used for fetching.
    """
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError as exc:
        raise InvalidUrlError(f"Invalid URL '{url}': {exc}") from exc
    if parsed.scheme not in _ALLOWED_SCHEMES:
        raise InvalidUrlError(
            f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
        )
    if not parsed.hostname:
        raise InvalidUrlError(f"URL has no hostname: {url}")
    return parsed


def check_ssrf(url: str) -> None:
    """Resolve the hostname and block private/reserved IP ranges.

    Raises SsrfError if any resolved address is private, loopback,
    link-local, or otherwise reserved.
    """
    hostname = validate_url(url).hostname
    try:
        addrinfos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as exc:
        raise FetchError(f"DNS resolution failed for '{hostname}': {exc}") from exc

    for addrinfo in addrinfos:
        addr_str = addrinfo[4][0]
        try:
            ip = ipaddress.ip_address(addr_str)
        except ValueError:
            continue
        if (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_reserved
            or ip.is_multicast
            or ip.is_unspecified
        ):
            raise SsrfError(
                f"URL resolves to private address ({ip}). "
                "Access to internal network addresses is not allowed."
            )


def fetch(
    url: str,
    *,
    timeout: float,
    method: str = "GET",
    accept: str = "*/*",
    user_agent: str = USER_AGENT,
) -> FetchResult:
    """Fetch *url* with timeout, redirect limit, and size cap.

    HEAD requests return an empty body.

    Raises:
        InvalidUrlError / SsrfError: before any connection is made.
        FetchError: on network failure, non-2xx status, or oversize body.
    """
    check_ssrf(url)
    request = urllib.request.Request(
        url, method=method, headers={"User-Agent": user_agent, "Accept": accept}
    )
    opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))

    try:
        response: HTTPResponse = opener.open(request, timeout=timeout)
    except urllib.error.HTTPError as exc:
        raise FetchError(f"HTTP {exc.code}: {exc.reason}") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise FetchError(f"Failed to fetch URL '{url}': {exc}") from exc

    with response:
        raw_ct = response.headers.get("Content-Type", "")
        body = b""
        if method != "HEAD":
            body = response.read(_MAX_BYTES + 1)
            if len(body) > _MAX_BYTES:
                raise FetchError(
                    f"Response body exceeds {_MAX_BYTES // (1024 * 1024)} MB limit for URL '{url}'."
                )
        return FetchResult(
            url=response.geturl(),
            status=response.status,
            content_type=raw_ct.split(";")[0].strip().lower(),
            body=body,
        )


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise an error after more than *max_redirects* redirects."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise FetchError(
                f"Too many redirects (>{self._max_redirects}) for URL '{req.full_url}'."
            )
        check_ssrf(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)
