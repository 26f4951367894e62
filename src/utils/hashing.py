"""Deterministic identifiers for vector records."""

from __future__ import annotations

import hashlib


def vector_id(content: str, namespace: str) -> str:
    """Return the vector-store id for *content* stored under *namespace*.

    A pure function of ``(content, namespace)``: re-ingesting identical text
    for the same bot overwrites the existing record instead of adding a
    duplicate, while the same text under another bot gets a different id.
    """
    return hashlib.sha256(f"{content}{namespace}".encode("utf-8")).hexdigest()

