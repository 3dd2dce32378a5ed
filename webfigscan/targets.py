"""
Target address specifications and their expansion into a flat IPv4 set.

Accepted textual forms:
  - single address   192.0.2.10
  - CIDR block       192.0.2.0/24   (host bits are masked off)
  - inclusive range  192.0.2.10-192.0.2.20
  - prefix list      built from lines (prefix file, ASN lookup)

CIDR host policy: /32 is its single address, /31 yields both addresses,
/30 and shorter drop the network and broadcast addresses.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple, Union

from .errors import InvalidSpec

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SingleAddress:
    address: ipaddress.IPv4Address


@dataclass(frozen=True)
class CidrBlock:
    network: ipaddress.IPv4Network


@dataclass(frozen=True)
class AddressRange:
    start: ipaddress.IPv4Address
    end: ipaddress.IPv4Address

    def __post_init__(self):
        if int(self.start) > int(self.end):
            raise InvalidSpec(f"reversed range: {self.start}-{self.end}")


@dataclass(frozen=True)
class PrefixList:
    networks: Tuple[ipaddress.IPv4Network, ...]

    @classmethod
    def from_lines(cls, lines: Iterable[str], source: str = "prefix list") -> "PrefixList":
        """
        Build from CIDR strings. Blank lines and '#' comments are ignored;
        anything that is not an IPv4 network is skipped with a warning.
        """
        nets = []
        for raw in lines:
            line = (raw or "").strip()
            if not line or line.startswith("#"):
                continue
            try:
                nets.append(ipaddress.IPv4Network(line, strict=False))
            except ValueError:
                log.warning("%s: skipping invalid prefix %r", source, line)
        return cls(tuple(nets))


AddressSpec = Union[SingleAddress, CidrBlock, AddressRange, PrefixList]


def _ipv4(text: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(text.strip())
    except ValueError:
        raise InvalidSpec(f"invalid IPv4 address: {text!r}") from None


def parse_address_spec(text: str) -> AddressSpec:
    s = (text or "").strip()
    if not s:
        raise InvalidSpec("empty target")
    if "/" in s:
        try:
            return CidrBlock(ipaddress.IPv4Network(s, strict=False))
        except ValueError:
            raise InvalidSpec(f"invalid CIDR: {s!r}") from None
    if "-" in s:
        a, b = s.split("-", 1)
        return AddressRange(_ipv4(a), _ipv4(b))
    return SingleAddress(_ipv4(s))


def block_hosts(network: ipaddress.IPv4Network, sample: Optional[int] = None) -> Iterator[ipaddress.IPv4Address]:
    first = int(network.network_address)
    last = int(network.broadcast_address)
    if network.prefixlen < 31:
        first += 1
        last -= 1
    if sample is not None:
        last = min(last, first + sample - 1)
    for n in range(first, last + 1):
        yield ipaddress.IPv4Address(n)


def iter_spec(spec: AddressSpec, sample: Optional[int] = None) -> Iterator[ipaddress.IPv4Address]:
    """Addresses of one spec in ascending order per block; may repeat across prefixes."""
    if sample is not None and sample < 1:
        raise InvalidSpec(f"sample size must be positive, got {sample}")
    if isinstance(spec, SingleAddress):
        yield spec.address
    elif isinstance(spec, CidrBlock):
        yield from block_hosts(spec.network, sample)
    elif isinstance(spec, AddressRange):
        # range() stops at end, so 255.255.255.255 is never overrun
        for n in range(int(spec.start), int(spec.end) + 1):
            yield ipaddress.IPv4Address(n)
    elif isinstance(spec, PrefixList):
        for net in spec.networks:
            yield from block_hosts(net, sample)
    else:
        raise TypeError(f"unknown address spec: {spec!r}")


class AddressSpace:
    """Deduplicated union of expanded specs. Iterates in ascending order."""

    def __init__(self):
        self._addrs = set()

    def add(self, spec: AddressSpec, sample: Optional[int] = None) -> int:
        before = len(self._addrs)
        self._addrs.update(int(a) for a in iter_spec(spec, sample))
        return len(self._addrs) - before

    def __len__(self):
        return len(self._addrs)

    def __bool__(self):
        return bool(self._addrs)

    def __contains__(self, item):
        return int(ipaddress.IPv4Address(item)) in self._addrs

    def __iter__(self) -> Iterator[ipaddress.IPv4Address]:
        for n in sorted(self._addrs):
            yield ipaddress.IPv4Address(n)


def expand(spec: AddressSpec, sample: Optional[int] = None) -> AddressSpace:
    space = AddressSpace()
    space.add(spec, sample)
    return space
