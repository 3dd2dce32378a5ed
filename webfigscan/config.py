import os
from dataclasses import dataclass
from typing import Optional, Tuple

from . import __version__

DEFAULT_CONCURRENCY = 400
DEFAULT_TIMEOUT_MS = 800
DEFAULT_BODY_LIMIT = 150_000
MAX_REDIRECTS = 5
DEFAULT_USER_AGENT = f"webfigscan/{__version__} aiohttp"

# RIPEstat announced prefixes; "{asn}" is replaced with e.g. "AS13335"
DEFAULT_ASN_URL = "https://stat.ripe.net/data/announced-prefixes/data.json?resource={asn}"


def debug_from_env() -> bool:
    return bool(os.environ.get("WEBFIGSCAN_DEBUG"))


def asn_url_from_env() -> str:
    return os.environ.get("WEBFIGSCAN_ASN_URL") or DEFAULT_ASN_URL


@dataclass(frozen=True)
class ScanConfig:
    ports: Tuple[int, ...]
    concurrency: int = DEFAULT_CONCURRENCY
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    tcp_fallback: bool = False
    sample: Optional[int] = None
    user_agent: str = DEFAULT_USER_AGENT
    body_limit: int = DEFAULT_BODY_LIMIT
    max_redirects: int = MAX_REDIRECTS

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000.0
