"""Chunk encoder — splits a secret into circuit field elements.

The circuit takes a sub-flag as k fixed-width unsigned integers. The
secret's UTF-8 bytes are rendered as hex, cut into k contiguous slices
of ceil(len/k) digits, and each slice is right-padded with '0' to the
chunk width before being parsed.

Chunks are emitted as decimal strings, which is what snarkjs input
files expect for field elements.

A slice longer than the chunk width would not fit the circuit's
native integer, so encode() rejects it instead of truncating. The
largest secret that fits is max_secret_bytes(k, width).
"""

from __future__ import annotations

import math

from zkctf.errors import EncodingError


DEFAULT_CHUNK_WIDTH = 16  # hex digits: 64-bit chunks


def encode(
    secret: str,
    chunk_count: int,
    chunk_width: int = DEFAULT_CHUNK_WIDTH,
) -> list[str]:
    """Encode a secret into chunk_count decimal-string chunks.

    Raises:
        EncodingError: If chunk_count or chunk_width is not positive,
            or the secret is too long for chunk_count * chunk_width.
    """
    if chunk_count <= 0:
        raise EncodingError(f"Chunk count must be positive, got {chunk_count}")
    if chunk_width <= 0:
        raise EncodingError(f"Chunk width must be positive, got {chunk_width}")

    hex_string = secret.encode("utf-8").hex()
    slice_len = math.ceil(len(hex_string) / chunk_count)
    if slice_len > chunk_width:
        raise EncodingError(
            f"Secret of {len(hex_string) // 2} bytes does not fit {chunk_count} "
            f"chunks of {chunk_width} hex digits "
            f"(max {max_secret_bytes(chunk_count, chunk_width)} bytes)"
        )

    chunks: list[str] = []
    for i in range(chunk_count):
        piece = hex_string[i * slice_len:(i + 1) * slice_len]
        chunks.append(str(int(piece.ljust(chunk_width, "0"), 16)))
    return chunks


def decode(
    chunks: list[str],
    byte_length: int,
    chunk_width: int = DEFAULT_CHUNK_WIDTH,
) -> str:
    """Reassemble the secret from its chunks.

    byte_length is the UTF-8 length of the original secret; it tells
    how much of each padded chunk is payload.
    """
    hex_len = byte_length * 2
    if not chunks:
        raise EncodingError("Cannot decode an empty chunk set")
    slice_len = math.ceil(hex_len / len(chunks))

    pieces: list[str] = []
    remaining = hex_len
    for chunk in chunks:
        take = min(slice_len, remaining)
        padded = format(int(chunk), "x").rjust(chunk_width, "0")
        pieces.append(padded[:take])
        remaining -= take
    try:
        return bytes.fromhex("".join(pieces)).decode("utf-8")
    except ValueError as e:
        raise EncodingError(f"Chunks do not decode to a UTF-8 secret: {e}") from e


def max_secret_bytes(chunk_count: int, chunk_width: int = DEFAULT_CHUNK_WIDTH) -> int:
    """Largest secret (in UTF-8 bytes) that encode() accepts."""
    if chunk_count <= 0 or chunk_width <= 0:
        return 0
    return (chunk_count * chunk_width) // 2
