"""
Image Resolver backed by the Pexels search API.

One request per query, first page only. Selection is either the first photo
(deterministic, the default) or a uniform pick from the page (``random``).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from . import results
from .results import StageResult

log = logging.getLogger(__name__)

PEXELS_SEARCH_URL = "https://api.pexels.com/v1/search"
SIZE_PREFERENCE   = ("large", "original")


@dataclass(frozen=True)
class ImageCandidate:
    source_url: str
    photo_id: Optional[Any] = None


def photo_url(photo: Dict[str, Any]) -> Optional[str]:
    src = photo.get("src") or {}
    for size in SIZE_PREFERENCE:
        url = src.get(size)
        if url:
            return url
    return None


class PexelsResolver:
    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        per_page: int = 5,
        selection: str = "first",
        rng: Optional[random.Random] = None,
        timeout: float = 15.0,
    ):
        self.http = http
        self.api_key = api_key
        self.per_page = per_page
        self.selection = selection
        self.rng = rng or random.Random()
        self.timeout = timeout

    async def resolve(self, query: str) -> StageResult:
        """Return ok(ImageCandidate), skip(NoCandidate) or error(ProviderError)."""
        log.debug("Pexels search: %r, per_page=%d", query, self.per_page)
        try:
            resp = await self.http.get(
                PEXELS_SEARCH_URL,
                params={"query": query, "per_page": self.per_page},
                headers={"Authorization": self.api_key},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            return results.error(
                results.PROVIDER_ERROR, f"Pexels request failed: {e}", retryable=True
            )

        if resp.status_code == 429 or resp.status_code >= 500:
            return results.error(
                results.PROVIDER_ERROR, f"Pexels → HTTP {resp.status_code}", retryable=True
            )
        if resp.status_code != 200:
            return results.error(results.PROVIDER_ERROR, f"Pexels → HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            return results.error(results.PROVIDER_ERROR, f"Pexels returned invalid JSON: {e}")
        photos = (body.get("photos") if isinstance(body, dict) else None) or []

        candidates = self._candidates(photos)
        if not candidates:
            return results.skip(results.NO_CANDIDATE, f"No Pexels image for \"{query}\"")
        return results.ok(self._select(candidates))

    def _candidates(self, photos: List[Dict[str, Any]]) -> List[ImageCandidate]:
        out = []
        for photo in photos[: self.per_page]:
            url = photo_url(photo)
            if url:
                out.append(ImageCandidate(source_url=url, photo_id=photo.get("id")))
        return out

    def _select(self, candidates: List[ImageCandidate]) -> ImageCandidate:
        if self.selection == "random":
            return self.rng.choice(candidates)
        return candidates[0]
