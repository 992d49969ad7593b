"""Storage, manifest records, sorted table writing and block decoding for an LSM key/value store."""

__version__ = "0.1.0"