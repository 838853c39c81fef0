"""
Run configuration for the image backfill job.

Values come from the environment (``.env`` and ``web/.env.local`` are loaded
first, same as the other pipeline scripts) and may be overridden from the CLI.

Requirements (add to .env):
    PEXELS_API_KEY=...
    SUPABASE_URL=...
    SUPABASE_SERVICE_ROLE_KEY=...       (or SUPABASE_ANON_KEY)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

# ─── Defaults ─────────────────────────────────────────────────────────────────

DEFAULT_BUCKET      = "activity-images"
PRIMARY_TABLE       = "places"    # curated by hand, never backfilled
DEFAULT_TABLES      = (
    "categories",
    "food_categories",
    "neighborhoods",
    "place_food_categories",
    "place_subcategories",
    "reviews",
    "subcategories",
)
DEFAULT_CHUNK_SIZE  = 10
DEFAULT_PER_PAGE    = 5
MAX_PER_PAGE        = 80          # Pexels hard limit
DEFAULT_TIMEOUT     = 15.0        # seconds per HTTP request
SELECTION_MODES     = ("first", "random")

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    """Configuration is missing or malformed. Fatal to the run."""


@dataclass(frozen=True)
class BackfillConfig:
    pexels_api_key: str = ""
    supabase_url: str = ""
    supabase_key: str = ""
    bucket: str = DEFAULT_BUCKET
    storage_public_base: str = ""
    tables: Tuple[str, ...] = DEFAULT_TABLES
    primary_table: str = PRIMARY_TABLE
    chunk_size: int = DEFAULT_CHUNK_SIZE
    inter_row_delay: float = 0.0
    per_page: int = DEFAULT_PER_PAGE
    selection: str = "first"
    only_missing: bool = True
    max_chunks: Optional[int] = None
    table_concurrency: int = 1
    retry_delays: Tuple[float, ...] = ()
    request_timeout: float = DEFAULT_TIMEOUT
    dry_run: bool = False
    # env var names that held each value, for reporting
    sources: Dict[str, str] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ConfigError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.inter_row_delay < 0:
            raise ConfigError(f"inter_row_delay must be >= 0, got {self.inter_row_delay}")
        if not 1 <= self.per_page <= MAX_PER_PAGE:
            raise ConfigError(f"per_page must be within 1..{MAX_PER_PAGE}, got {self.per_page}")
        if self.selection not in SELECTION_MODES:
            raise ConfigError(
                f"selection must be one of {', '.join(SELECTION_MODES)}, got {self.selection!r}"
            )
        if self.max_chunks is not None and self.max_chunks < 1:
            raise ConfigError(f"max_chunks must be >= 1, got {self.max_chunks}")
        if self.table_concurrency < 1:
            raise ConfigError(f"table_concurrency must be >= 1, got {self.table_concurrency}")
        if any(d < 0 for d in self.retry_delays):
            raise ConfigError("retry delays must be >= 0")

    # ── Derived values ────────────────────────────────────────────────────────

    @property
    def scope(self) -> List[str]:
        """Tables to backfill, in order, de-duplicated, primary table removed."""
        seen: set = set()
        out: List[str] = []
        for t in self.tables:
            t = t.strip()
            if not t or t == self.primary_table or t in seen:
                continue
            seen.add(t)
            out.append(t)
        return out

    @property
    def public_base(self) -> str:
        if self.storage_public_base:
            return self.storage_public_base.rstrip("/")
        return f"{self.supabase_url.rstrip('/')}/storage/v1/object/public"

    def missing_settings(self) -> List[str]:
        """Env var names of required values that are absent."""
        missing = []
        if not self.pexels_api_key:
            missing.append("PEXELS_API_KEY")
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if not self.bucket:
            missing.append("SUPABASE_BUCKET")
        if not self.scope:
            missing.append("BACKFILL_TABLES")
        return missing

    def env_summary(self) -> List[str]:
        """``ENV - NAME: FOUND`` lines; never echoes secrets."""
        def _found(v: str) -> str:
            return "FOUND" if v else "NOT FOUND"

        return [
            f"ENV - PEXELS_API_KEY: {_found(self.pexels_api_key)}",
            f"ENV - {self.sources.get('supabase_url', 'SUPABASE_URL')}: "
            f"{self.supabase_url or 'NOT FOUND'}",
            f"ENV - {self.sources.get('supabase_key', 'SUPABASE_SERVICE_ROLE_KEY')}: "
            f"{_found(self.supabase_key)}",
            f"ENV - SUPABASE_BUCKET: {self.bucket}",
        ]

    def with_overrides(self, **overrides) -> "BackfillConfig":
        """Copy with non-None overrides applied (CLI flags)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    # ── Loading ───────────────────────────────────────────────────────────────

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_root: Optional[Path] = None,
    ) -> "BackfillConfig":
        if environ is None:
            root = dotenv_root or Path.cwd()
            load_dotenv(root / ".env")
            load_dotenv(root / "web" / ".env.local")
            environ = os.environ

        sources: Dict[str, str] = {}
        url = _first(environ, ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"), sources, "supabase_url")
        key = _first(
            environ,
            ("SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
            sources,
            "supabase_key",
        )

        tables_raw = environ.get("BACKFILL_TABLES", "")
        tables = tuple(parse_list(tables_raw)) if tables_raw.strip() else DEFAULT_TABLES

        return cls(
            pexels_api_key=environ.get("PEXELS_API_KEY", "").strip(),
            supabase_url=url,
            supabase_key=key,
            bucket=environ.get("SUPABASE_BUCKET", "").strip() or DEFAULT_BUCKET,
            storage_public_base=environ.get("STORAGE_PUBLIC_BASE", "").strip(),
            tables=tables,
            primary_table=environ.get("BACKFILL_PRIMARY_TABLE", "").strip() or PRIMARY_TABLE,
            chunk_size=_int(environ, "BACKFILL_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            inter_row_delay=_float(environ, "BACKFILL_DELAY_SECONDS", 0.0),
            per_page=_int(environ, "PEXELS_PER_PAGE", DEFAULT_PER_PAGE),
            selection=environ.get("PEXELS_SELECTION", "").strip().lower() or "first",
            only_missing=environ.get("BACKFILL_REFETCH", "").strip().lower() not in _TRUTHY,
            max_chunks=_int(environ, "BACKFILL_MAX_CHUNKS", None),
            table_concurrency=_int(environ, "BACKFILL_TABLE_CONCURRENCY", 1),
            retry_delays=tuple(
                _to_float("BACKFILL_RETRY_DELAYS", v)
                for v in parse_list(environ.get("BACKFILL_RETRY_DELAYS", ""))
            ),
            request_timeout=_float(environ, "BACKFILL_HTTP_TIMEOUT", DEFAULT_TIMEOUT),
            sources=sources,
        )


# ─── Parsing helpers ──────────────────────────────────────────────────────────


def parse_list(raw: str) -> List[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


def _first(environ: Mapping[str, str], names, sources: Dict[str, str], slot: str) -> str:
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            sources[slot] = name
            return value
    return ""


def _int(environ: Mapping[str, str], name: str, default):
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    return _to_float(name, raw)


def _to_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
