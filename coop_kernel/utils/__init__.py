"""Kernel utilities."""

from coop_kernel.utils.serialization import canonicalize_json, hash_payload

__all__ = ["canonicalize_json", "hash_payload"]
