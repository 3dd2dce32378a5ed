"""
Prefix sources: a local file of CIDRs, or the prefixes an ASN announces.
"""

import asyncio
import ipaddress
import logging
import re
from typing import List

import aiohttp

from .config import DEFAULT_USER_AGENT, asn_url_from_env
from .errors import LookupFailure
from .targets import PrefixList

log = logging.getLogger(__name__)

_ASN_RE = re.compile(r"^(?:AS)?\s*([0-9]{1,10})$", re.I)


def looks_like_asn(text: str) -> bool:
    return bool(re.match(r"^AS\s*[0-9]", (text or "").strip(), re.I))


def normalize_asn(text: str) -> str:
    """'as13335', 'AS 13335', '13335' -> 'AS13335'."""
    m = _ASN_RE.match((text or "").strip())
    if not m or int(m.group(1)) > 0xFFFFFFFF:
        raise LookupFailure(f"not a valid ASN: {text!r}")
    return f"AS{int(m.group(1))}"


def load_prefix_file(path: str) -> PrefixList:
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise LookupFailure(f"failed to read prefix file {path}: {e}") from None
    return PrefixList.from_lines(lines, source=path)


def parse_announced_prefixes(data) -> List[str]:
    """
    Pull IPv4 prefixes out of a RIPEstat announced-prefixes payload:
    {"data": {"prefixes": [{"prefix": "1.2.3.0/24", ...}, ...]}}
    """
    try:
        items = data["data"]["prefixes"]
    except (KeyError, TypeError):
        raise LookupFailure("malformed ASN lookup response") from None
    if not isinstance(items, list):
        raise LookupFailure("malformed ASN lookup response")
    out = []
    for it in items:
        prefix = it.get("prefix") if isinstance(it, dict) else None
        if not isinstance(prefix, str):
            continue
        try:
            net = ipaddress.ip_network(prefix, strict=False)
        except ValueError:
            log.warning("ASN lookup: skipping invalid prefix %r", prefix)
            continue
        if net.version == 4:
            out.append(str(net))
    return out


async def fetch_asn_prefixes(asn: str, session=None, url_template=None, timeout=30) -> PrefixList:
    """
    Resolve an ASN to its announced IPv4 prefixes. An ASN with no prefixes
    yields an empty PrefixList; transport or payload problems raise
    LookupFailure.
    """
    asn = normalize_asn(asn)
    url = (url_template or asn_url_from_env()).format(asn=asn)
    own = session is None
    if own:
        session = aiohttp.ClientSession(headers={"User-Agent": DEFAULT_USER_AGENT})
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as r:
            if r.status >= 400:
                raise LookupFailure(f"ASN lookup for {asn} failed: HTTP {r.status}")
            data = await r.json(content_type=None)
    except LookupFailure:
        raise
    except (asyncio.TimeoutError, aiohttp.ClientError, OSError, ValueError) as e:
        raise LookupFailure(f"ASN lookup for {asn} failed: {e!r}") from None
    finally:
        if own:
            await session.close()
    prefixes = parse_announced_prefixes(data)
    log.info("%s announces %d IPv4 prefixes", asn, len(prefixes))
    return PrefixList.from_lines(prefixes, source=asn)
