import ipaddress

import pytest

from webfigscan.config import ScanConfig


@pytest.fixture
def make_config():
    def factory(**kw):
        kw.setdefault("ports", (80,))
        kw.setdefault("timeout_ms", 2000)
        return ScanConfig(**kw)
    return factory


@pytest.fixture
def ip():
    return ipaddress.IPv4Address
