"""
Content fingerprinting for uploaded documents.
"""

import hashlib


def compute_fingerprint(content: bytes) -> str:
    """SHA-256 hex digest: the idempotency key for drafts and the cache."""
    return hashlib.sha256(content).hexdigest()


def looks_like_pdf(content: bytes) -> bool:
    """PDF header within the first KiB (some producers prepend junk)."""
    return b"%PDF-" in content[:1024]
