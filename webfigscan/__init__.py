"""
webfigscan: MikroTik WebFig scanner for IPv4 targets (IP/CIDR/range/ASN).
"""

__version__ = "1.0.0"
