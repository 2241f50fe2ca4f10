"""An in-memory RESP key-value server with hashes, pub/sub and an append-only file."""

__version__ = "0.1.0"