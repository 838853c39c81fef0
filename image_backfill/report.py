"""
Run report: ordered log entries, per-table tallies, terminal status.

Built fresh for every run and returned to the caller; never persisted.
Appends are lock-guarded so concurrent table workers can share one report.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .results import GENERAL_ERROR

log = logging.getLogger(__name__)

# Entry outcomes
INFO    = "info"
SUCCESS = "success"
SKIPPED = "skipped"
FAILED  = "failed"
FATAL   = "fatal"
TABLE_FAILED = "table_failed"

DONE         = "DONE"
FAILED_FATAL = "FAILED_FATAL"

_LEVELS = {
    INFO: logging.INFO,
    SUCCESS: logging.INFO,
    SKIPPED: logging.INFO,
    FAILED: logging.WARNING,
    TABLE_FAILED: logging.WARNING,
    FATAL: logging.ERROR,
}


@dataclass(frozen=True)
class ReportEntry:
    message: str
    outcome: str = INFO
    table: Optional[str] = None
    row_id: Any = None
    kind: Optional[str] = None

    def render(self) -> str:
        prefix = f"[{self.table}] " if self.table else ""
        if self.row_id is not None:
            prefix += f"Row ID:{self.row_id} - "
        return prefix + self.message


@dataclass
class TableTally:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    fetch_error: Optional[str] = None
    error: Optional[str] = None

    @property
    def processed(self) -> int:
        return self.succeeded + self.skipped + self.failed


@dataclass
class RunReport:
    entries: List[ReportEntry] = field(default_factory=list)
    tables: Dict[str, TableTally] = field(default_factory=dict)
    state: str = "STARTING"
    fatal: Optional[str] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    # ── Recording ─────────────────────────────────────────────────────────────

    def add(self, message: str, outcome: str = INFO, table: Optional[str] = None,
            row_id: Any = None, kind: Optional[str] = None) -> ReportEntry:
        entry = ReportEntry(message=message, outcome=outcome, table=table, row_id=row_id, kind=kind)
        with self._lock:
            self.entries.append(entry)
            if table is not None and outcome in (SUCCESS, SKIPPED, FAILED):
                tally = self.tables.setdefault(table, TableTally())
                if outcome == SUCCESS:
                    tally.succeeded += 1
                elif outcome == SKIPPED:
                    tally.skipped += 1
                else:
                    tally.failed += 1
        log.log(_LEVELS.get(outcome, logging.INFO), entry.render())
        return entry

    def start_table(self, table: str) -> None:
        with self._lock:
            self.tables.setdefault(table, TableTally())
        self.add(f"=== Table: \"{table}\" ===", table=table)

    def table_failed(self, table: str, reason: str, kind: Optional[str] = None) -> None:
        with self._lock:
            self.tables.setdefault(table, TableTally()).fetch_error = reason
        self.add(reason, TABLE_FAILED, table=table, kind=kind)

    def table_error(self, table: str, reason: str) -> None:
        """The table stopped part-way; rows already recorded keep their tallies."""
        with self._lock:
            self.tables.setdefault(table, TableTally()).error = reason
        self.add(reason, TABLE_FAILED, table=table, kind=GENERAL_ERROR)

    def fail_fatal(self, message: str) -> "RunReport":
        self.add(message, FATAL)
        self.fatal = message
        self.state = FAILED_FATAL
        return self

    def finish(self) -> "RunReport":
        self.state = DONE
        return self

    # ── Reading ───────────────────────────────────────────────────────────────

    @property
    def status(self) -> int:
        return 500 if self.state == FAILED_FATAL else 200

    @property
    def logs(self) -> List[str]:
        with self._lock:
            return [e.render() for e in self.entries]

    def entries_for(self, table: str, row_id: Any = None) -> List[ReportEntry]:
        with self._lock:
            return [
                e for e in self.entries
                if e.table == table and (row_id is None or e.row_id == row_id)
            ]

    def summary(self) -> str:
        lines = ["=" * 60, f"Image backfill {self.state.lower()}", "=" * 60]
        if self.fatal:
            lines.append(f"  Fatal: {self.fatal}")
        for table, t in self.tables.items():
            if t.fetch_error:
                lines.append(f"  {table:<24}: fetch failed")
            else:
                line = (
                    f"  {table:<24}: {t.succeeded:,} updated, "
                    f"{t.skipped:,} skipped, {t.failed:,} failed"
                )
                if t.error:
                    line += " (stopped early: general error)"
                lines.append(line)
        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "state": self.state,
            "error": self.fatal,
            "logs": self.logs,
            "tables": {name: asdict(t) for name, t in self.tables.items()},
        }
