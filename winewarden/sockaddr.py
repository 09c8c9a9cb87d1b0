"""Decoding of socket addresses captured from connect and bind calls."""

from __future__ import annotations

import ipaddress
import sys
from typing import Optional

from winewarden.types import NetworkTarget

AF_INET = 2
AF_INET6 = 10

_PROTOCOL = "tcp/udp"


def _format_ipv6(address: ipaddress.IPv6Address) -> str:
    mapped = address.ipv4_mapped
    if mapped is not None:
        return f"::ffff:{mapped}"
    return address.compressed


def parse_sockaddr(data: bytes) -> Optional[NetworkTarget]:
    """Decode a raw sockaddr_in or sockaddr_in6; other families give None.

    The family field is in host byte order, the port and address in
    network byte order.
    """
    data = bytes(data)
    if len(data) < 2:
        return None
    family = int.from_bytes(data[0:2], sys.byteorder)
    if family == AF_INET and len(data) >= 8:
        port = int.from_bytes(data[2:4], "big")
        host = str(ipaddress.IPv4Address(data[4:8]))
    elif family == AF_INET6 and len(data) >= 24:
        port = int.from_bytes(data[2:4], "big")
        host = _format_ipv6(ipaddress.IPv6Address(data[8:24]))
    else:
        return None
    return NetworkTarget(host=host, port=port, protocol=_PROTOCOL)