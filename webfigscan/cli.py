"""
Command line front end: parse arguments, build the target and port sets,
run the scheduler and print matches as they arrive.
"""

import argparse
import asyncio
import json
import logging
import sys
import time
from datetime import datetime, timezone

from . import __version__
from .config import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT_MS, DEFAULT_USER_AGENT, ScanConfig, debug_from_env
from .errors import InvalidSpec, LookupFailure
from .ports import build_ports
from .prober import EndpointProber
from .scheduler import AdmissionControl, ProbeScheduler
from .signatures import DETECT_SIGNATURES, LABEL_SIGNATURES, SignatureDetector
from .sources import fetch_asn_prefixes, load_prefix_file, looks_like_asn
from .targets import AddressSpace, parse_address_spec

log = logging.getLogger("webfigscan")

BANNER = f"""
============================================================
   webfigscan {__version__} - MikroTik WebFig scanner
============================================================"""


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def positive_int(value):
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be positive: {n}")
    return n


def setup_logging(verbosity: int):
    if verbosity >= 2 or debug_from_env():
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s", stream=sys.stderr, force=True)


def build_parser():
    p = argparse.ArgumentParser(prog="webfigscan",
                                description="Scan IP/CIDR/RANGE/ASN for MikroTik WebFig over HTTP/HTTPS")
    p.add_argument("target", nargs="?",
                   help="IPv4 address, CIDR (192.0.2.0/24), range (start-end) or ASN (AS13335)")
    p.add_argument("-p", "--ports", default=None, metavar="LIST",
                   help='Ports list, e.g. "80,443,8080-8090" or "all" (default: 80,443,8080)')
    p.add_argument("--all-ports", action="store_true", help="Scan all ports 1-65535")
    p.add_argument("-c", "--concurrency", type=positive_int, default=DEFAULT_CONCURRENCY,
                   help=f"Max in-flight probes (default: {DEFAULT_CONCURRENCY})")
    p.add_argument("--timeout-ms", type=positive_int, default=DEFAULT_TIMEOUT_MS,
                   help=f"Timeout per attempt in milliseconds (default: {DEFAULT_TIMEOUT_MS})")
    p.add_argument("--asn-file", default=None, help="File with IPv4 prefixes, one per line")
    p.add_argument("--asn", action="append", default=[], help="ASN to resolve into prefixes (repeatable)")
    p.add_argument("--sample", type=positive_int, default=None, metavar="N",
                   help="Only probe the first N hosts of every CIDR/prefix")
    p.add_argument("--tcp-fallback", action="store_true",
                   help="Try a plain TCP connect when HTTP finds nothing and report open ports")
    p.add_argument("-A", "--user-agent", default=DEFAULT_USER_AGENT, help="Custom User-Agent")
    p.add_argument("-o", "--json", dest="json_path", default=None, metavar="PATH",
                   help="Write positive results to a JSON report")
    p.add_argument("--no-banner", dest="banner", action="store_false", help="Do not print the banner")
    p.add_argument("--selftest", action="store_true", help="Run the detector against built-in samples and exit")
    p.add_argument("--list-signatures", action="store_true", help="List detection signatures and exit")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v info, -vv debug")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


async def resolve_targets(args, sample=None) -> AddressSpace:
    space = AddressSpace()
    target = args.target
    asns = list(args.asn or [])
    if target and looks_like_asn(target):
        asns.append(target)
        target = None
    if args.asn_file:
        added = space.add(load_prefix_file(args.asn_file), sample)
        log.info("%s: %d addresses", args.asn_file, added)
    for asn in asns:
        added = space.add(await fetch_asn_prefixes(asn), sample)
        log.info("%s: %d addresses", asn, added)
    if target:
        space.add(parse_address_spec(target), sample)
    if not space:
        raise InvalidSpec("no targets to scan")
    return space


def save_json(path, results):
    payload = {
        "generated_at": now_iso(),
        "scanner": {"name": "webfigscan", "version": __version__},
        "results": [r.to_dict() for r in results],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


async def run_scan(args) -> int:
    ports = build_ports(args.ports, args.all_ports)
    config = ScanConfig(
        ports=tuple(ports),
        concurrency=args.concurrency,
        timeout_ms=args.timeout_ms,
        tcp_fallback=args.tcp_fallback,
        sample=args.sample,
        user_agent=args.user_agent,
    )
    addresses = await resolve_targets(args, config.sample)
    log.info("scanning %d addresses x %d ports (concurrency %d, timeout %d ms)",
             len(addresses), len(ports), config.concurrency, config.timeout_ms)

    found = []
    started = time.monotonic()
    async with EndpointProber(config) as prober:
        scheduler = ProbeScheduler(prober, AdmissionControl(config.concurrency))
        async for result in scheduler.run(addresses, config.ports):
            if not result.positive:
                continue
            found.append(result)
            print(result.format_line(), flush=True)

    log.info("done: %d units, %d positive, %.1fs",
             scheduler.completed, len(found), time.monotonic() - started)
    if args.json_path:
        save_json(args.json_path, found)
        log.info("JSON saved to %s", args.json_path)
    return 0


SELFTEST_SAMPLES = [
    ("WebFig login", "", "<html><head><title>RouterOS router configuration page</title></head>"
                         "<body><h1>RouterOS v6.49.7</h1><a href='/webfig/'>Webfig</a> mikrotik</body></html>"),
    ("RouterOS v7", "", "<title>RouterOS</title><div>RouterOS 7.12.1 (stable)</div>"),
    ("Server header", "MikroTik HttpProxy", "<html>Error: not found</html>"),
    ("WebFig only", "", "<script src='/webfig/engine.js'></script><p>WebFig</p>"),
    ("nginx default", "nginx/1.25", "<title>Welcome to nginx!</title>"),
]


def run_selftest():
    print(f"[*] webfigscan {__version__} self-test:")
    det = SignatureDetector()
    for name, server, html in SELFTEST_SAMPLES:
        res = det.classify(200, server, html)
        shown = f"{res.label} ({res.evidence})" if res else "no match"
        print(f"  - {name:16} -> {shown}")
    print("[*] Done.")


def list_signatures():
    print("Detection (header 'Server' contains 'mikrotik', then body, in order):")
    for sig in DETECT_SIGNATURES:
        print(f"  {sig.name:18} {sig.pattern}")
    print("Labels (first match wins):")
    for sig in LABEL_SIGNATURES:
        print(f"  {sig.name:18} {sig.pattern} -> {sig.label}")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    if args.list_signatures:
        list_signatures()
        sys.exit(0)
    if args.selftest:
        run_selftest()
        sys.exit(0)
    if args.banner:
        print(BANNER, flush=True)
    try:
        code = asyncio.run(run_scan(args))
    except InvalidSpec as e:
        print(f"Error: {e}", file=sys.stderr); code = 2
    except LookupFailure as e:
        print(f"Error: {e}", file=sys.stderr); code = 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr); code = 130
    sys.exit(code)
