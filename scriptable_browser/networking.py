"""Networking utilities for the scriptable browser.

This module defines the :class:`URL` class used both by the page view
to load documents and by the script loader to download user scripts.
A URL knows how to parse and resolve itself and how to perform a
single synchronous HTTP/HTTPS request. Cookies set by a site are kept
per origin in ``COOKIE_JAR`` so that a session started on a login page
survives the navigations that follow it.
"""

from __future__ import annotations

import logging
import socket
import ssl
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Cookie jar: origin → cookie name → value
COOKIE_JAR: Dict[str, Dict[str, str]] = {}

MAX_REDIRECTS = 5
USER_AGENT = "ScriptableBrowser/0.1"


class InvalidURLError(ValueError):
    """Raised when an address cannot be parsed into a :class:`URL`."""


class HTTPError(OSError):
    """Raised by :func:`fetch_text` for a non-2xx response."""


class URL:
    """A simple URL parser and request helper."""

    def __init__(self, url: str) -> None:
        if "://" not in url:
            raise InvalidURLError(f"Missing scheme in URL: {url!r}")
        self.scheme, rest = url.split("://", 1)
        self.scheme = self.scheme.casefold()
        if self.scheme not in ("http", "https"):
            raise InvalidURLError(f"Unsupported scheme: {self.scheme}")
        if "/" not in rest:
            rest += "/"
        self.host, path = rest.split("/", 1)
        self.path = "/" + path
        self.port = 80 if self.scheme == "http" else 443
        if ":" in self.host:
            self.host, p = self.host.split(":", 1)
            try:
                self.port = int(p)
            except ValueError:
                raise InvalidURLError(f"Invalid port in URL: {url!r}")
        if not self.host:
            raise InvalidURLError(f"Missing host in URL: {url!r}")

    def origin(self) -> str:
        """Return the origin (scheme://host:port) of this URL."""
        return f"{self.scheme}://{self.host}:{self.port}"

    def request(self, referrer: Optional[str] = None) -> Tuple["URL", Dict[str, str], bytes]:
        """GET this URL, following redirects.

        :returns: ``(final_url, headers, body)``. ``final_url`` differs
                  from ``self`` when the server redirected.
        :raises ssl.SSLError: If the TLS handshake fails.
        :raises OSError: For connection failures or too many redirects.
        """
        url, _, headers, body = self.response(referrer)
        return url, headers, body

    def response(self, referrer: Optional[str] = None) -> Tuple["URL", int, Dict[str, str], bytes]:
        """Like :meth:`request`, but also return the final status code."""
        url: URL = self
        for _ in range(MAX_REDIRECTS + 1):
            status, headers, body = url._fetch(referrer)
            location = headers.get("location")
            if 300 <= status < 400 and location:
                logger.debug("redirect %s -> %s", url, location)
                referrer = str(url)
                url = url.resolve(location)
                continue
            return url, status, headers, body
        raise OSError(f"Too many redirects loading {self}")

    def _fetch(self, referrer: Optional[str]) -> Tuple[int, Dict[str, str], bytes]:
        sock = socket.create_connection((self.host, self.port))
        if self.scheme == "https":
            ctx = ssl.create_default_context()
            try:
                sock = ctx.wrap_socket(sock, server_hostname=self.host)
            except ssl.SSLError:
                sock.close()
                raise
        req = f"GET {self.path} HTTP/1.0\r\nHost: {self.host}\r\n"
        req += f"User-Agent: {USER_AGENT}\r\n"
        if referrer:
            req += f"Referer: {referrer}\r\n"
        jar = COOKIE_JAR.get(self.origin(), {})
        if jar:
            req += "Cookie: " + "; ".join(f"{k}={v}" for k, v in jar.items()) + "\r\n"
        req += "\r\n"
        try:
            sock.sendall(req.encode("utf8"))
            resp = sock.makefile("rb")
            statusline = resp.readline().decode("iso-8859-1")
            parts = statusline.split(" ", 2)
            try:
                status = int(parts[1])
            except (IndexError, ValueError):
                raise OSError(f"Malformed status line from {self.host}: {statusline!r}")
            headers: Dict[str, str] = {}
            while True:
                line = resp.readline().decode("iso-8859-1")
                if line in ("\r\n", "\n", ""):
                    break
                if ":" not in line:
                    continue
                k, v = line.split(":", 1)
                k = k.casefold()
                v = v.strip()
                if k == "set-cookie":
                    self._store_cookie(v)
                headers[k] = v
            body = resp.read()
        finally:
            sock.close()
        return status, headers, body

    def _store_cookie(self, header: str) -> None:
        name_value = header.split(";", 1)[0]
        if "=" not in name_value:
            return
        name, value = name_value.split("=", 1)
        COOKIE_JAR.setdefault(self.origin(), {})[name.strip()] = value.strip()

    def resolve(self, url: str) -> "URL":
        """Resolve a relative or protocol-relative URL against this URL."""
        if "://" in url:
            return URL(url)
        if url.startswith("//"):
            return URL(self.scheme + ":" + url)
        if not url.startswith("/"):
            dir_path, _ = self.path.rsplit("/", 1)
            while url.startswith("../"):
                _, url = url.split("/", 1)
                if "/" in dir_path:
                    dir_path, _ = dir_path.rsplit("/", 1)
            url = dir_path + "/" + url
        return URL(f"{self.scheme}://{self.host}:{self.port}{url}")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, URL) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))

    def __repr__(self) -> str:
        return f"URL({str(self)!r})"

    def __str__(self) -> str:
        show_port = (
            (self.scheme == "http" and self.port != 80)
            or (self.scheme == "https" and self.port != 443)
        )
        port = f":{self.port}" if show_port else ""
        return f"{self.scheme}://{self.host}{port}{self.path}"


def decode_body(headers: Dict[str, str], body: bytes) -> str:
    """Decode a response body using the charset from Content-Type, else UTF-8."""
    charset = "utf-8"
    ctype = headers.get("content-type", "")
    for param in ctype.split(";")[1:]:
        key, _, value = param.strip().partition("=")
        if key.casefold() == "charset" and value:
            charset = value.strip('"')
    try:
        return body.decode(charset)
    except LookupError:
        return body.decode("utf-8")


def fetch_text(url: str) -> str:
    """Download ``url`` and return its body decoded as UTF-8.

    :raises InvalidURLError: If ``url`` cannot be parsed.
    :raises HTTPError: If the server answers with a non-2xx status.
    :raises OSError: On network failure.
    :raises UnicodeDecodeError: If the body is not valid UTF-8.
    """
    _, status, _, body = URL(url).response()
    if not 200 <= status < 300:
        raise HTTPError(f"HTTP {status} fetching {url}")
    return body.decode("utf-8")
