"""Image Fetcher: download raw image bytes. No retries at this layer."""

from __future__ import annotations

import httpx

from . import results
from .results import StageResult

IMAGE_MAX_BYTES = 10 * 1024 * 1024   # 10 MB hard cap
USER_AGENT      = "Mozilla/5.0 (compatible; ImageBackfillBot/1.0)"


class ImageFetcher:
    def __init__(self, http: httpx.AsyncClient, timeout: float = 15.0, max_bytes: int = IMAGE_MAX_BYTES):
        self.http = http
        self.timeout = timeout
        self.max_bytes = max_bytes

    async def download(self, url: str) -> StageResult:
        try:
            resp = await self.http.get(
                url,
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        except httpx.HTTPError as e:
            return results.error(results.DOWNLOAD_ERROR, f"Error downloading image: {e}")

        if not 200 <= resp.status_code < 300:
            return results.error(
                results.DOWNLOAD_ERROR, f"Error downloading image: HTTP {resp.status_code}"
            )

        data = resp.content
        if not data:
            return results.error(results.DOWNLOAD_ERROR, "Error downloading image: empty body")
        if len(data) > self.max_bytes:
            return results.error(
                results.DOWNLOAD_ERROR, f"Image too large ({len(data) // 1024}KB): {url}"
            )
        return results.ok(data)
