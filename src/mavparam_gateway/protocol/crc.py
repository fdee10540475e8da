"""X.25 CRC-16 as used by MAVLink packet checksums."""

from collections.abc import Iterable

CRC_SEED = 0xFFFF


def crc_accumulate(byte: int, crc: int) -> int:
    """
    Fold one byte into a running X.25 checksum.

    Args:
        byte: Byte value (0-255)
        crc: Current 16-bit accumulator

    Returns:
        Updated 16-bit accumulator
    """
    tmp = byte ^ (crc & 0xFF)
    tmp = (tmp ^ (tmp << 4)) & 0xFF
    return ((crc >> 8) ^ (tmp << 8) ^ (tmp << 3) ^ (tmp >> 4)) & 0xFFFF


def calculate_crc16(data: Iterable[int], crc_extra: int | None = None) -> int:
    """
    Calculate the packet checksum.

    The accumulator is seeded with 0xFFFF, every byte of ``data`` is folded
    in, and when ``crc_extra`` is given it is folded in last.

    Args:
        data: Bytes to calculate CRC over (LEN through end of payload)
        crc_extra: Optional per-message seed byte

    Returns:
        16-bit CRC value

    Example:
        >>> hex(calculate_crc16(b""))
        '0xffff'
    """
    crc = CRC_SEED
    for byte in data:
        crc = crc_accumulate(byte, crc)
    if crc_extra is not None:
        crc = crc_accumulate(crc_extra, crc)
    return crc


def verify_crc16(data: bytes, expected_crc: int, crc_extra: int | None = None) -> bool:
    """
    Verify CRC-16 matches expected value.

    Args:
        data: Data bytes (excluding CRC)
        expected_crc: Expected CRC value
        crc_extra: Optional per-message seed byte

    Returns:
        True if CRC matches, False otherwise
    """
    return calculate_crc16(data, crc_extra) == expected_crc
