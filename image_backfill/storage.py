"""
Object Store Writer on Supabase Storage.

Uploads are upserts, so a re-run for the same row overwrites the object at
its key. The returned URL is rebuilt from ``(bucket, key)`` rather than asked
of the server.
"""

from __future__ import annotations

import logging

from supabase import Client

from . import results
from .keys import public_url
from .results import StageResult

log = logging.getLogger(__name__)

CONTENT_TYPE = "image/jpeg"


class SupabaseObjectStore:
    def __init__(self, supabase: Client, public_base: str):
        self.supabase = supabase
        self.public_base = public_base

    def url_for(self, bucket: str, key: str) -> str:
        return public_url(self.public_base, bucket, key)

    def put(self, bucket: str, key: str, data: bytes, content_type: str = CONTENT_TYPE) -> StageResult:
        log.debug("Uploading to: %s/%s (%d bytes)", bucket, key, len(data))
        try:
            self.supabase.storage.from_(bucket).upload(
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as e:
            return results.error(results.STORAGE_ERROR, f"Upload error: {e}")
        return results.ok(self.url_for(bucket, key))
