"""Core module - Chunk geometry, secret sealing, flags and session config."""

from kwclient.core.bitflag import BitFlag
from kwclient.core.chunking import (
    MAX_CHUNK_SIZE,
    MIN_CHUNK_SIZE,
    ChunkGeometry,
    chunk_geometry,
    clamp_chunk_size,
    total_chunks,
)
from kwclient.core.config import DEFAULT_AGENT, DEFAULT_API_VERSION, SessionConfig
from kwclient.core.crypto import SealedSecrets, decrypt_secret, encrypt_secret, generate_key, sign

__all__ = [
    # Flags
    "BitFlag",
    # Chunking
    "ChunkGeometry",
    "MAX_CHUNK_SIZE",
    "MIN_CHUNK_SIZE",
    "chunk_geometry",
    "clamp_chunk_size",
    "total_chunks",
    # Config
    "DEFAULT_AGENT",
    "DEFAULT_API_VERSION",
    "SessionConfig",
    # Crypto
    "SealedSecrets",
    "decrypt_secret",
    "encrypt_secret",
    "generate_key",
    "sign",
]
