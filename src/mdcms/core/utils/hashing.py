"""Content hashing: git blob ids for file versioning, SHA-256 for client IPs"""

import hashlib


def git_blob_sha(content: str) -> str:
    """Return the git blob id of content, the same token the GitHub contents API reports."""
    data = content.encode("utf-8")
    header = f"blob {len(data)}\0".encode("ascii")
    return hashlib.sha1(header + data).hexdigest()


def sha256(content: str) -> str:
    """Return hex-encoded SHA-256 hash of content (64 chars)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
