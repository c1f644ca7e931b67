# request_filter.py
"""
Request ingress: diagnostic context, client certificate DN and access log.

LoggingContextMiddleware must wrap every other middleware except the access
log. It puts a few standard request properties into the MDC, makes the
client's TLS certificate DN available to handlers, and always clears the MDC
when the request is done, however it ends.
"""
import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Optional

from cryptography import x509
from fastapi import Request

import logging_context
from fhir_errors import NumberFormatError
from paging import INTEGER_RE

log = logging.getLogger("request_filter")
access_log = logging.getLogger("bluebutton_server.access")

CLIENT_SSL_HEADER = "BlueButton-ClientSSLName"
CLIENT_SSL_DN_ATTRIBUTE = "req-clientSSL-DN"

MDC_REQUEST_METHOD = "req.requestMethod"
MDC_REQUEST_URI = "req.requestURI"
MDC_REQUEST_URL = "req.requestURL"
MDC_QUERY_STRING = "req.queryString"
MDC_CLIENT_SSL_DN = "req.clientSSL.DN"

_DEFAULT_PORTS = {"http": 80, "https": 443}


def get_client_certificate(scope: Dict[str, Any]) -> Optional[x509.Certificate]:
    """
    The last certificate of the client's chain, as presented through the ASGI
    TLS extension, or None.
    """
    tls = (scope.get("extensions") or {}).get("tls") or {}
    chain = tls.get("client_cert_chain")
    if not chain:
        log.debug("No client certificate found for request.")
        return None
    cert = chain[-1]
    if isinstance(cert, x509.Certificate):
        return cert
    if isinstance(cert, str):
        cert = cert.encode("ascii")
    return x509.load_pem_x509_certificate(cert)


def get_client_ssl_principal_dn(scope: Dict[str, Any]) -> Optional[str]:
    """RFC 4514 subject name of the client certificate, or None if unavailable."""
    try:
        cert = get_client_certificate(scope)
    except (ValueError, TypeError) as e:
        log.debug("Unable to read client certificate: %s", e)
        return None
    if cert is None:
        return None
    subject = cert.subject
    if subject is None or len(subject) == 0:
        log.debug("No client SSL principal available: %s", cert)
        return None
    return subject.rfc4514_string()


def _request_url(scope: Dict[str, Any]) -> Optional[str]:
    scheme = scope.get("scheme", "http")
    host = None
    for name, value in scope.get("headers") or []:
        if name == b"host":
            host = value.decode("latin-1")
            break
    if host is None:
        server = scope.get("server")
        if not server:
            return None
        hostname, port = server
        host = hostname if port is None or _DEFAULT_PORTS.get(scheme) == port else f"{hostname}:{port}"
    return f"{scheme}://{host}{scope.get('path', '')}"


def _header_value(client_dn: str) -> bytes:
    """
    Header bytes for the DN. ASGI header values are latin-1, so characters
    outside it are written as RFC 4514 hex escapes of their UTF-8 bytes.
    """
    try:
        return client_dn.encode("latin-1")
    except UnicodeEncodeError:
        pass
    escaped = []
    for ch in client_dn:
        if ord(ch) < 0x80:
            escaped.append(ch)
        else:
            escaped.extend(f"\\{b:02X}" for b in ch.encode("utf-8"))
    return "".join(escaped).encode("ascii")


class LoggingContextMiddleware:
    """
    Pure ASGI middleware, so the downstream app runs in this task's context and
    sees the MDC entries put here.
    """

    def __init__(
        self,
        app,
        dn_extractor: Callable[[Dict[str, Any]], Optional[str]] = get_client_ssl_principal_dn,
        mdc_put: Callable[[str, Optional[str]], None] = logging_context.mdc_put,
        mdc_clear: Callable[[], None] = logging_context.mdc_clear,
    ):
        self.app = app
        self.dn_extractor = dn_extractor
        self.mdc_put = mdc_put
        self.mdc_clear = mdc_clear

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        try:
            client_dn = self.record_standard_request_entries(scope)
            scope = self.wrap(scope, client_dn)
            await self.app(scope, receive, send)
        finally:
            self.mdc_clear()

    def record_standard_request_entries(self, scope) -> Optional[str]:
        query_string = (scope.get("query_string") or b"").decode("latin-1")
        self.mdc_put(MDC_REQUEST_METHOD, scope.get("method"))
        self.mdc_put(MDC_REQUEST_URI, scope.get("path"))
        self.mdc_put(MDC_REQUEST_URL, _request_url(scope))
        self.mdc_put(MDC_QUERY_STRING, query_string or None)

        # Also kept in the request state, where the access log picks it up.
        client_dn = self.dn_extractor(scope)
        self.mdc_put(MDC_CLIENT_SSL_DN, client_dn)
        scope.setdefault("state", {})[CLIENT_SSL_DN_ATTRIBUTE] = client_dn
        return client_dn

    @staticmethod
    def wrap(scope, client_dn: Optional[str]):
        """A copy of scope whose headers carry the client DN, and never a client-supplied one."""
        header_key = CLIENT_SSL_HEADER.lower().encode("latin-1")
        headers = [(k, v) for k, v in scope.get("headers") or [] if k.lower() != header_key]
        if client_dn is not None:
            headers.append((header_key, _header_value(client_dn)))
        wrapped = dict(scope)
        wrapped["headers"] = headers
        return wrapped


class ClientSslRequest:
    """
    Wraps a Request with servlet-style header accessors; everything else is
    delegated. The client DN header is always listed, even when no
    certificate was presented.
    """

    def __init__(self, request: Request):
        self.request = request

    def __getattr__(self, name):
        return getattr(self.request, name)

    @property
    def client_ssl_dn(self) -> Optional[str]:
        return (self.scope.get("state") or {}).get(CLIENT_SSL_DN_ATTRIBUTE)

    @staticmethod
    def _is_client_ssl_header(name: str) -> bool:
        return name.lower() == CLIENT_SSL_HEADER.lower()

    def get_header_names(self) -> List[str]:
        names: List[str] = []
        for name in self.headers.keys():
            if not self._is_client_ssl_header(name) and name not in names:
                names.append(name)
        names.append(CLIENT_SSL_HEADER)
        return names

    def get_headers(self, name: str) -> List[Optional[str]]:
        if self._is_client_ssl_header(name):
            return [self.client_ssl_dn]
        return self.headers.getlist(name)

    def get_header(self, name: str) -> Optional[str]:
        values = self.get_headers(name)
        if not values:
            return None
        return values[0]

    def get_int_header(self, name: str) -> int:
        # Nobody should be parsing the DN header as a number.
        if self._is_client_ssl_header(name):
            raise NumberFormatError(f"Unable to parse {CLIENT_SSL_HEADER}")
        value = self.get_header(name)
        if value is None:
            return -1
        if not INTEGER_RE.fullmatch(value):
            raise NumberFormatError(f"Unable to parse {name}: {value!r}")
        return int(value)

    def get_date_header(self, name: str) -> int:
        """Epoch milliseconds of an HTTP-date header, or -1 when absent."""
        if self._is_client_ssl_header(name):
            raise ValueError(f"Unable to parse {CLIENT_SSL_HEADER}")
        value = self.get_header(name)
        if value is None:
            return -1
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            raise ValueError(f"Unable to parse {name}: {value!r}")
        if parsed is None:
            raise ValueError(f"Unable to parse {name}: {value!r}")
        return int(parsed.timestamp() * 1000)


def get_client_ssl_request(request: Request) -> ClientSslRequest:
    return ClientSslRequest(request)


class AccessLogMiddleware:
    """One log line per request, including the client DN left in the request state."""

    def __init__(self, app, logger: logging.Logger = access_log):
        self.app = app
        self.logger = logger

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        state = scope.setdefault("state", {})
        started = time.perf_counter()
        status = {"code": 500}

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            client = scope.get("client")
            query = (scope.get("query_string") or b"").decode("latin-1")
            target = scope.get("path", "") + (f"?{query}" if query else "")
            self.logger.info(
                '%s "%s" "%s %s" %d %.1fms',
                client[0] if client else "-",
                state.get(CLIENT_SSL_DN_ATTRIBUTE) or "-",
                scope.get("method"),
                target,
                status["code"],
                (time.perf_counter() - started) * 1000,
            )
