"""
MikroTik WebFig detection.

Two stages: the Server header is checked first, then the body against
DETECT_SIGNATURES in order. A generic 200 with no marker is not a match.
When matched, LABEL_SIGNATURES are tried most specific first and the first
hit names the product; GENERIC_LABEL is the fallback.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

VENDOR = "mikrotik"
GENERIC_LABEL = "MikroTik"


@dataclass(frozen=True)
class Signature:
    name: str
    pattern: str
    label: Optional[str] = None  # "{0}" is replaced with capture group 1
    regex: "re.Pattern" = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "regex", re.compile(self.pattern, re.I))

    def search(self, text: str):
        return self.regex.search(text or "")

    def render(self, m) -> str:
        if not self.label:
            return m.group(0)
        groups = m.groups()
        return self.label.format(*groups) if groups else self.label


DETECT_SIGNATURES = [
    Signature("mikrotik", r"mikrotik"),
    Signature("webfig", r"webfig"),
    Signature("routeros", r"routeros"),
]

LABEL_SIGNATURES = [
    Signature("routeros-version", r"RouterOS\s+v?([0-9]+(?:\.[0-9]+)+(?:(?:rc|beta)[0-9]+)?)",
              "MikroTik RouterOS {0}"),
    Signature("routeros", r"\bRouterOS\b", "MikroTik RouterOS"),
    Signature("webfig", r"\bWebFig\b", "MikroTik WebFig"),
]


@dataclass(frozen=True)
class Detection:
    label: str
    evidence: str


class SignatureDetector:
    def __init__(self, detect=None, labels=None, vendor=VENDOR, generic_label=GENERIC_LABEL):
        self.detect = list(DETECT_SIGNATURES if detect is None else detect)
        self.labels = list(LABEL_SIGNATURES if labels is None else labels)
        self.vendor = vendor.lower()
        self.generic_label = generic_label

    def evidence(self, server: str, body: str) -> Optional[str]:
        if self.vendor in (server or "").lower():
            return "header"
        for sig in self.detect:
            if sig.search(body):
                return f"body:{sig.name}"
        return None

    def label_for(self, body: str) -> str:
        for sig in self.labels:
            m = sig.search(body)
            if m:
                return sig.render(m)
        return self.generic_label

    def classify(self, status, server: str, body: str) -> Optional[Detection]:
        """
        Returns a Detection or None. status is accepted for callers that
        want to log it; it never decides a match on its own.
        """
        ev = self.evidence(server, body)
        if ev is None:
            return None
        return Detection(self.label_for(body), ev)
