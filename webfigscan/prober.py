"""
Per-(address, port) probing.

Each unit runs an ordered list of attempt strategies: the two HTTP schemes in
port-dependent order, then optionally a bare TCP connect. The first strategy
that returns a result wins; a ProbeError moves on to the next one. Nothing
escapes probe() except cancellation.
"""

import asyncio
import contextlib
import enum
import ipaddress
import logging
import ssl
from dataclasses import dataclass
from typing import Optional

import aiohttp

from .config import ScanConfig
from .errors import ConnectionRefused, ProbeError, ProbeTimeout, ProtocolMismatch
from .ports import scheme_order
from .signatures import SignatureDetector

log = logging.getLogger(__name__)

OPEN_LABEL = "open port (no WebFig signature)"


class ResultKind(enum.Enum):
    SILENT = "silent"
    MATCH = "match"
    OPEN = "open"


@dataclass(frozen=True)
class ProbeResult:
    address: ipaddress.IPv4Address
    port: int
    kind: ResultKind = ResultKind.SILENT
    scheme: str = ""
    status: Optional[int] = None
    label: str = ""
    reason: str = ""

    @property
    def positive(self) -> bool:
        return self.kind is not ResultKind.SILENT

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.address}:{self.port}/"

    def format_line(self) -> str:
        tag = self.status if self.status is not None else "tcp"
        return f"{self.address}:{self.port} -> {self.label} [{tag}] {self.url}"

    def to_dict(self):
        return {
            "address": str(self.address),
            "port": self.port,
            "kind": self.kind.value,
            "scheme": self.scheme,
            "status": self.status,
            "label": self.label,
            "url": self.url,
        }


def guess_charset(resp, body: bytes) -> str:
    cs = resp.charset or None
    if cs:
        return cs
    try:
        body.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        return "latin-1"


def to_text(resp, body: bytes) -> str:
    try:
        return body.decode(guess_charset(resp, body), errors="ignore")
    except LookupError:
        # bogus charset in Content-Type
        return body.decode("latin-1")


async def read_limited(resp, limit: int) -> bytes:
    buf = bytearray()
    async for chunk in resp.content.iter_chunked(8192):
        buf.extend(chunk)
        if len(buf) >= limit:
            break
    return bytes(buf[:limit])


def insecure_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class EndpointProber:
    def __init__(self, config: ScanConfig, detector: Optional[SignatureDetector] = None):
        self.config = config
        self.detector = detector or SignatureDetector()
        self.timeout = config.timeout
        self.session = None

    async def __aenter__(self):
        # force_close: one connection per request, nothing pooled across units
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            connector=aiohttp.TCPConnector(ssl=insecure_ssl_context(), limit=0, force_close=True),
            headers={"User-Agent": self.config.user_agent},
        )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.session:
            await self.session.close()

    def plan(self, port: int):
        steps = list(scheme_order(port))
        if self.config.tcp_fallback:
            steps.append("tcp")
        return steps

    async def probe(self, address, port: int) -> ProbeResult:
        reason = "nomatch"
        for step in self.plan(port):
            try:
                if step == "tcp":
                    result = await self._tcp_attempt(address, port)
                else:
                    result = await self._http_attempt(address, port, step)
            except ProbeError as e:
                log.debug("%s %s:%s failed: %s", step, address, port, e)
                reason = e.reason
                continue
            if result is not None:
                return result
            reason = "nomatch"
        return ProbeResult(address, port, reason=reason)

    async def _fetch(self, url: str):
        """GET url and return (status, server header, body text)."""
        async with self.session.get(url, allow_redirects=True, max_redirects=self.config.max_redirects) as r:
            body = await read_limited(r, self.config.body_limit)
            return r.status, r.headers.get("Server", ""), to_text(r, body)

    async def _http_attempt(self, address, port: int, scheme: str) -> Optional[ProbeResult]:
        url = f"{scheme}://{address}:{port}/"
        try:
            status, server, text = await asyncio.wait_for(self._fetch(url), self.timeout)
        except asyncio.TimeoutError:
            raise ProbeTimeout(url) from None
        except aiohttp.ClientConnectorError as e:
            if isinstance(e.os_error, ConnectionRefusedError):
                raise ConnectionRefused(url) from None
            raise ProtocolMismatch(f"{url}: {e}") from None
        except (aiohttp.ClientError, OSError, ValueError) as e:
            raise ProtocolMismatch(f"{url}: {type(e).__name__}: {e}") from None

        det = self.detector.classify(status, server, text)
        if det is None:
            log.debug("%s answered %s without signature (server=%r)", url, status, server)
            return None
        log.debug("%s matched via %s", url, det.evidence)
        return ProbeResult(address, port, ResultKind.MATCH, scheme, status, det.label)

    async def _tcp_attempt(self, address, port: int) -> ProbeResult:
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(str(address), port), self.timeout)
        except asyncio.TimeoutError:
            raise ProbeTimeout(f"tcp {address}:{port}") from None
        except ConnectionRefusedError:
            raise ConnectionRefused(f"tcp {address}:{port}") from None
        except OSError as e:
            raise ProtocolMismatch(f"tcp {address}:{port}: {e}") from None
        writer.close()
        # the connect already succeeded; a reset while closing changes nothing
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return ProbeResult(address, port, ResultKind.OPEN, "tcp", None, OPEN_LABEL)
