"""Text renderings of 32-bit register values."""

from __future__ import annotations

_LIMIT = 1 << 32


def _bytes_of(data: int) -> bytes:
    if not 0 <= data < _LIMIT:
        raise ValueError(f"{data} is not a 32-bit unsigned value")
    return data.to_bytes(4, "big")


def format_hex(data: int) -> str:
    """Render ``data`` as four upper-case hex bytes joined by colons."""
    return ":".join(f"{byte:02X}" for byte in _bytes_of(data))


def format_bin(data: int) -> str:
    """Render ``data`` as four groups of eight bits joined by dots."""
    return ".".join(f"{byte:08b}" for byte in _bytes_of(data))