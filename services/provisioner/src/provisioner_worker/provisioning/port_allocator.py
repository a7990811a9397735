"""Deterministic gateway port allocation.

Each instance name hashes to a preferred port in 19000-19999. If that port is
taken the allocator scans upward and wraps around, so the same name and the
same set of used ports always give the same answer.
"""

from collections.abc import Iterable

from ..errors import PortExhaustedError

PORT_RANGE_START = 19000
PORT_RANGE_END = 19999
_RANGE_SIZE = PORT_RANGE_END - PORT_RANGE_START + 1


def name_hash(name: str) -> int:
    """32-bit signed rolling hash: h = h * 31 + ord(c), wrapped."""
    h = 0
    for char in name:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def preferred_port(name: str) -> int:
    return PORT_RANGE_START + abs(name_hash(name)) % _RANGE_SIZE


def allocate_port(name: str, used_ports: Iterable[int]) -> int:
    """First free port at or after the preferred port, wrapping within the range."""
    used = set(used_ports)
    offset = preferred_port(name) - PORT_RANGE_START
    for step in range(_RANGE_SIZE):
        port = PORT_RANGE_START + (offset + step) % _RANGE_SIZE
        if port not in used:
            return port
    raise PortExhaustedError(PORT_RANGE_START, PORT_RANGE_END)


def parse_used_ports(output: str) -> set[int]:
    """Ports listed one per line by the host port scan; anything else is ignored."""
    return {int(line) for line in (raw.strip() for raw in output.splitlines()) if line.isdigit()}
