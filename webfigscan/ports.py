from typing import List, Optional

from .errors import InvalidPortSpec

DEFAULT_PORTS = (80, 443, 8080)

# tried https-first; every other port goes http-first
TLS_PORTS = frozenset({443, 8443})

ALL_PORTS = range(1, 65536)


def _port(token: str, whole: str) -> int:
    try:
        p = int(token.strip())
    except ValueError:
        raise InvalidPortSpec(whole) from None
    if not 1 <= p <= 65535:
        raise InvalidPortSpec(whole, "port out of range")
    return p


def parse_ports(s: str) -> List[int]:
    """
    Parse "80,443,8080-8090" into a sorted, deduplicated list.
    'all' is accepted as 1-65535.
    """
    if str(s).strip().lower() == "all":
        return list(ALL_PORTS)
    out = set()
    for chunk in str(s).split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        if "-" in chunk:
            a, b = chunk.split("-", 1)
            lo, hi = _port(a, chunk), _port(b, chunk)
            if lo > hi:
                raise InvalidPortSpec(chunk, "reversed range")
            out.update(range(lo, hi + 1))
        else:
            out.add(_port(chunk, chunk))
    if not out:
        raise InvalidPortSpec(s, "empty port list")
    return sorted(out)


def build_ports(spec: Optional[str] = None, all_ports: bool = False) -> List[int]:
    if all_ports:
        return list(ALL_PORTS)
    if spec:
        return parse_ports(spec)
    return list(DEFAULT_PORTS)


def scheme_order(port: int):
    if port in TLS_PORTS:
        return ("https", "http")
    return ("http", "https")
