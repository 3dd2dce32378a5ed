"""
Error taxonomy.

InvalidSpec / LookupFailure are fatal and stop the run before scanning.
ProbeError and its subclasses are per-attempt and never leave the prober.
"""


class ScanError(Exception):
    pass


class InvalidSpec(ScanError, ValueError):
    """Address or port specification cannot be parsed."""


class InvalidPortSpec(InvalidSpec):
    def __init__(self, token, reason="bad port"):
        self.token = token
        super().__init__(f"{reason}: {token!r}")


class LookupFailure(ScanError):
    """ASN lookup or prefix file could not be read."""


class ProbeError(ScanError):
    reason = "error"


class ProbeTimeout(ProbeError):
    reason = "timeout"


class ConnectionRefused(ProbeError):
    reason = "refused"


class ProtocolMismatch(ProbeError):
    reason = "mismatch"
