"""Deterministic object keys and public URLs for stored images."""

from __future__ import annotations


def _is_safe(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def sanitize_name(name: str) -> str:
    """'Fells Point' → 'fells_point'.

    One underscore per unsafe UTF-16 code unit, so a character outside the
    Basic Multilingual Plane ('🌊') becomes two underscores. Keys written by
    the existing JavaScript jobs are built the same way.
    """
    out = []
    for ch in name:
        if _is_safe(ch):
            out.append(ch)
        else:
            out.append("__" if ord(ch) > 0xFFFF else "_")
    return "".join(out).lower()


def object_key(table: str, name: str, row_id: object) -> str:
    """``{table}/{sanitized-name}_{id}.jpg``. Same row, same key, every run."""
    return f"{table}/{sanitize_name(name)}_{row_id}.jpg"


def public_url(base: str, bucket: str, key: str) -> str:
    return f"{base.rstrip('/')}/{bucket}/{key}"
