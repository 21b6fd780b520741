"""
Constants for the streamcrypt wire format.

Stream layout:
┌─────────┬───────────┬────────────┬──────────┬─────────────────────────────┐
│ Version │ Cipher ID │ Chunk size │   Salt   │ Chunk 0 .. Chunk N (final)  │
│  (1B)   │   (1B)    │  (4B BE)   │   (8B)   │                             │
└─────────┴───────────┴────────────┴──────────┴─────────────────────────────┘

Chunk layout:
┌──────┬──────────────┬─────────────────────────────┐
│ Flag │ Length (4B)  │ Ciphertext || Tag (Length)  │
└──────┴──────────────┴─────────────────────────────┘
"""

from enum import IntEnum

# =============================================================================
# Cipher Selection
# =============================================================================


class Cipher(IntEnum):
    """AEAD cipher identifiers (written into the stream header)."""

    AES_256_GCM = 0x01
    """AES-256-GCM, hardware accelerated on most platforms (default)."""

    CHACHA20_POLY1305 = 0x02
    """ChaCha20-Poly1305, faster on platforms without AES instructions."""


DEFAULT_CIPHER: Cipher = Cipher.AES_256_GCM

# =============================================================================
# Primitive Sizes
# =============================================================================

KEY_SIZE: int = 32
"""Key size shared by both ciphers (256 bits)."""

NONCE_SIZE: int = 12
"""Nonce size shared by both ciphers (96 bits)."""

TAG_SIZE: int = 16
"""Authentication tag appended to every sealed chunk."""

# =============================================================================
# Stream Header
# =============================================================================

FORMAT_VERSION: int = 0x01

SALT_SIZE: int = 8
"""Random per-stream nonce prefix."""

SEQUENCE_SIZE: int = NONCE_SIZE - SALT_SIZE
"""Big-endian chunk counter filling the rest of the nonce."""

MAX_SEQUENCE: int = (1 << (8 * SEQUENCE_SIZE)) - 1
"""Last valid chunk sequence index. A stream holds at most MAX_SEQUENCE + 1 chunks."""

HEADER_SIZE: int = 1 + 1 + 4 + SALT_SIZE

# =============================================================================
# Chunk Framing
# =============================================================================


class ChunkFlag(IntEnum):
    """Leading byte of every chunk frame."""

    DATA = 0x00
    FINAL = 0x01


CHUNK_LENGTH_SIZE: int = 4
CHUNK_HEADER_SIZE: int = 1 + CHUNK_LENGTH_SIZE

CHUNK_SIZE: int = 64 * 1024
"""Default plaintext bytes per chunk (64KB)."""

MIN_CHUNK_SIZE: int = 1
MAX_CHUNK_SIZE: int = 16 * 1024 * 1024
"""Upper bound accepted from a stream header, caps reader memory per chunk."""
