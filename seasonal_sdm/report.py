"""Accumulation of recoverable problems over a batch run."""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, List, Optional

import pandas as pd

from seasonal_sdm.exceptions import GeometryError, MissingInputError, PipelineError

logger = logging.getLogger(__name__)


class IssueKind(StrEnum):
    MISSING_INPUT = "missing_input"
    GEOMETRY = "geometry"


@dataclass(frozen=True)
class Issue:
    kind: IssueKind
    period: str
    key: str
    message: str = ""
    count: int = 1


@dataclass
class RunReport:
    """Missing-input and geometry issues collected over a run.

    Reports for independent periods are combined with `merge`, so each period's
    computation can return its own report rather than sharing an accumulator.
    """
    issues: List[Issue] = field(default_factory=list)

    def add(
        self,
        kind: IssueKind,
        period: str,
        key: str,
        message: str = "",
        count: int = 1,
    ) -> None:
        self.issues.append(Issue(IssueKind(kind), str(period), str(key), message, int(count)))

    def record(self, period: str, error: PipelineError, count: int = 1) -> None:
        """Adds a recoverable error as an issue, keyed by the error's `key`."""
        if isinstance(error, MissingInputError):
            kind = IssueKind.MISSING_INPUT
        elif isinstance(error, GeometryError):
            kind = IssueKind.GEOMETRY
        else:
            raise TypeError(f"{type(error).__name__} is not a recoverable issue")
        self.add(kind, period, error.key or type(error).__name__, str(error), count)

    @classmethod
    def merge(cls, reports: Iterable[Optional["RunReport"]]) -> "RunReport":
        merged = cls()
        for report in reports:
            if report is not None:
                merged.issues.extend(report.issues)
        return merged

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)

    def count(self, kind: Optional[IssueKind] = None) -> int:
        return sum(i.count for i in self.issues if kind is None or i.kind == kind)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {"kind": str(i.kind), "period": i.period, "key": i.key, "message": i.message, "count": i.count}
                for i in self.issues
            ],
            columns=["kind", "period", "key", "message", "count"],
        )

    def summary(self) -> pd.DataFrame:
        """Issue counts per kind and period."""
        frame = self.to_frame()
        if frame.empty:
            return pd.DataFrame(columns=["kind", "period", "count"])
        return (
            frame.groupby(["kind", "period"], sort=True)["count"]
            .sum()
            .reset_index()
        )

    def log_summary(self, log: logging.Logger = logger) -> None:
        if not self.has_issues:
            log.info("Run completed with no missing inputs or geometry failures")
            return
        for kind in IssueKind:
            n = self.count(kind)
            if n:
                log.warning("%d %s issue(s) recorded", n, kind.value.replace("_", " "))
        for _, row in self.summary().iterrows():
            log.info("  %s %s: %d", row["kind"], row["period"], row["count"])
