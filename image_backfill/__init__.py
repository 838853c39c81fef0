"""Image backfill: give every named row an image via Pexels + Supabase Storage."""

from .cli import run_once
from .config import BackfillConfig, ConfigError
from .orchestrator import Backfill
from .report import RunReport

__all__ = ["Backfill", "BackfillConfig", "ConfigError", "RunReport", "run_once"]
