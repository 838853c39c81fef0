"""Tagged stage outcomes.

Every pipeline stage returns a ``StageResult`` instead of raising, and the
orchestrator dispatches on ``status``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

OK    = "ok"
SKIP  = "skip"
ERROR = "error"

# Error kinds
FETCH_ERROR    = "FetchError"
PROVIDER_ERROR = "ProviderError"
NO_CANDIDATE   = "NoCandidate"
EMPTY_NAME     = "EmptyName"
MISSING_ID     = "MissingId"
DOWNLOAD_ERROR = "DownloadError"
STORAGE_ERROR  = "StorageError"
UPDATE_ERROR   = "UpdateError"
DRY_RUN        = "DryRun"
GENERAL_ERROR  = "GeneralError"


@dataclass(frozen=True)
class StageResult:
    status: str
    value: Any = None
    kind: Optional[str] = None
    reason: str = ""
    retryable: bool = False

    @property
    def ok(self) -> bool:
        return self.status == OK


def ok(value: Any = None) -> StageResult:
    return StageResult(OK, value=value)


def skip(kind: str, reason: str) -> StageResult:
    return StageResult(SKIP, kind=kind, reason=reason)


def error(kind: str, reason: str, retryable: bool = False) -> StageResult:
    return StageResult(ERROR, kind=kind, reason=reason, retryable=retryable)
