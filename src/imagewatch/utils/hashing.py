"""Consistent hashing utilities."""

import base64
import hashlib
import secrets


def compute_hash(data: bytes, algorithm: str = "sha256") -> str:
    """Compute hash of bytes data.

    Args:
        data: Bytes to hash
        algorithm: Hash algorithm to use

    Returns:
        Hex digest of the hash
    """
    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def generate_auth_token(num_bytes: int = 20) -> str:
    """Generate a URL-safe random token for inbound webhook URLs."""
    return base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).decode("ascii")
