import asyncio
import json

import pytest

from webfigscan import cli
from webfigscan.errors import LookupFailure
from webfigscan.prober import EndpointProber
from webfigscan.targets import PrefixList

WEBFIG = "<title>RouterOS router configuration page</title><h1>RouterOS v6.48.6</h1>"


@pytest.fixture
def fake_network(monkeypatch):
    """Only URLs listed in `pages` answer; everything else times out."""
    pages = {}
    seen = []

    async def fake_fetch(self, url):
        seen.append(url)
        if url in pages:
            return pages[url]
        raise asyncio.TimeoutError()

    monkeypatch.setattr(EndpointProber, "_fetch", fake_fetch)
    return pages, seen


def run(argv):
    with pytest.raises(SystemExit) as ei:
        cli.main(["--no-banner"] + argv)
    return ei.value.code


def test_range_single_match(fake_network, capsys):
    pages, seen = fake_network
    pages["http://10.0.0.1:80/"] = (200, "nginx", "<title>Welcome</title>")
    pages["http://10.0.0.2:80/"] = (200, "nginx", WEBFIG)
    pages["http://10.0.0.3:80/"] = (404, "", "not found")

    assert run(["10.0.0.1-10.0.0.3", "--ports", "80"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["10.0.0.2:80 -> MikroTik RouterOS 6.48.6 [200] http://10.0.0.2:80/"]
    # unmatched endpoints fall through to https; the match stops early
    assert "https://10.0.0.2:80/" not in seen
    assert "https://10.0.0.1:80/" in seen


def test_unreachable_host_default_ports(fake_network, capsys):
    pages, seen = fake_network
    assert run(["10.0.0.5/32"]) == 0
    assert capsys.readouterr().out == ""
    assert sorted(seen) == sorted([
        "http://10.0.0.5:80/", "https://10.0.0.5:80/",
        "https://10.0.0.5:443/", "http://10.0.0.5:443/",
        "http://10.0.0.5:8080/", "https://10.0.0.5:8080/",
    ])


def test_banner_printed_by_default(fake_network, capsys):
    with pytest.raises(SystemExit) as ei:
        cli.main(["10.0.0.5"])
    assert ei.value.code == 0
    assert "webfigscan" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [
    ["10.0.0.3-10.0.0.1"],
    ["999.0.0.1"],
    ["10.0.0.0/40"],
    ["10.0.0.1", "--ports", "0"],
    ["10.0.0.1", "--ports", "70000"],
    ["10.0.0.1", "--ports", "80,x"],
    [],
])
def test_invalid_input_exits_nonzero(fake_network, capsys, argv):
    assert run(argv) == 2
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Error:" in captured.err


def test_argparse_rejects_non_positive(capsys):
    with pytest.raises(SystemExit) as ei:
        cli.main(["10.0.0.1", "-c", "0"])
    assert ei.value.code == 2
    with pytest.raises(SystemExit) as ei:
        cli.main(["10.0.0.1", "--timeout-ms", "-5"])
    assert ei.value.code == 2


def test_asn_target(fake_network, monkeypatch, capsys):
    pages, _ = fake_network
    pages["https://192.0.2.2:443/"] = (200, "", "mikrotik WebFig")
    asked = []

    async def fake_lookup(asn):
        asked.append(asn)
        return PrefixList.from_lines(["192.0.2.0/30"])

    monkeypatch.setattr(cli, "fetch_asn_prefixes", fake_lookup)
    assert run(["AS64500", "--ports", "443"]) == 0
    assert asked == ["AS64500"]
    assert capsys.readouterr().out.splitlines() == [
        "192.0.2.2:443 -> MikroTik WebFig [200] https://192.0.2.2:443/"]


def test_asn_lookup_failure_exits_one(fake_network, monkeypatch, capsys):
    async def failing(asn):
        raise LookupFailure("ASN lookup for AS64500 failed: boom")

    monkeypatch.setattr(cli, "fetch_asn_prefixes", failing)
    assert run(["--asn", "AS64500"]) == 1
    assert "boom" in capsys.readouterr().err


def test_asn_file_and_sample(fake_network, tmp_path, capsys):
    pages, seen = fake_network
    pages["http://198.51.100.1:80/"] = (200, "MikroTik", "")
    f = tmp_path / "prefixes.txt"
    f.write_text("198.51.100.0/24\nbogus\n203.0.113.0/24\n", encoding="utf-8")

    assert run(["--asn-file", str(f), "--sample", "2", "-p", "80"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "198.51.100.1:80 -> MikroTik [200] http://198.51.100.1:80/"]
    hosts = {u.split("//")[1].split(":")[0] for u in seen}
    assert hosts == {"198.51.100.1", "198.51.100.2", "203.0.113.1", "203.0.113.2"}


def test_missing_asn_file_exits_one(tmp_path, capsys):
    assert run(["--asn-file", str(tmp_path / "nope.txt")]) == 1


def test_json_report(fake_network, tmp_path, capsys):
    pages, _ = fake_network
    pages["http://10.0.0.9:8080/"] = (200, "", "RouterOS 7.14.2")
    out = tmp_path / "report.json"
    assert run(["10.0.0.9", "-p", "8080", "-o", str(out)]) == 0
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["scanner"]["name"] == "webfigscan"
    assert data["results"] == [{
        "address": "10.0.0.9", "port": 8080, "kind": "match", "scheme": "http",
        "status": 200, "label": "MikroTik RouterOS 7.14.2", "url": "http://10.0.0.9:8080/",
    }]


def test_selftest(capsys):
    with pytest.raises(SystemExit) as ei:
        cli.main(["--selftest"])
    assert ei.value.code == 0
    out = capsys.readouterr().out
    assert "MikroTik RouterOS 6.49.7" in out
    assert "nginx default" in out and "no match" in out


def test_list_signatures(capsys):
    with pytest.raises(SystemExit) as ei:
        cli.main(["--list-signatures"])
    assert ei.value.code == 0
    assert "routeros-version" in capsys.readouterr().out


def test_resolve_targets_uses_given_sample(tmp_path):
    f = tmp_path / "prefixes.txt"
    f.write_text("10.20.0.0/24\n", encoding="utf-8")
    args = cli.build_parser().parse_args(["10.30.0.0/24", "--asn-file", str(f)])
    assert args.sample is None

    space = asyncio.run(cli.resolve_targets(args, sample=2))
    assert [str(a) for a in space] == ["10.20.0.1", "10.20.0.2", "10.30.0.1", "10.30.0.2"]
    assert len(asyncio.run(cli.resolve_targets(args))) == 508
