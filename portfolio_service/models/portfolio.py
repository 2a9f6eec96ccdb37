"""
Record set containers passed between the pipeline stages.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional

import polars as pl

from portfolio_service.utils.constants import AVERAGE_MONTH_DAYS
from portfolio_service.utils.dates import parse_date, validate_range


@dataclass(frozen=True)
class Period:
    """An inclusive calendar window [start, end]."""
    start: date
    end: date
    label: str = ""

    def __post_init__(self):
        start, end = validate_range(self.start, self.end)
        object.__setattr__(self, 'start', start)
        object.__setattr__(self, 'end', end)
        if not self.label:
            object.__setattr__(self, 'label', f"{start.isoformat()}..{end.isoformat()}")

    @classmethod
    def quarter(cls, year: int, quarter: int) -> "Period":
        if quarter not in (1, 2, 3, 4):
            raise ValueError(f"Quarter must be 1-4, got {quarter}")
        first_month = 3 * (quarter - 1) + 1
        start = date(year, first_month, 1)
        end = date(year + 1, 1, 1) if quarter == 4 else date(year, first_month + 3, 1)
        return cls(start, date.fromordinal(end.toordinal() - 1), f"Q{quarter} {year}")

    @classmethod
    def of(cls, value: Any) -> "Period":
        """Coerce a Period, (start, end) pair or {'startDate', 'endDate'} dict."""
        if isinstance(value, Period):
            return value
        if isinstance(value, dict):
            return cls(value.get('startDate', value.get('start')),
                       value.get('endDate', value.get('end')),
                       value.get('label', ""))
        start, end = value
        return cls(start, end)

    def months(self) -> float:
        return (self.end - self.start).days / AVERAGE_MONTH_DAYS


@dataclass(frozen=True)
class FlattenedPortfolio:
    """Flat, independently addressable collections built from one raw snapshot."""
    customers: pl.DataFrame
    policies: pl.DataFrame
    covers: pl.DataFrame
    claims: pl.DataFrame
    period: Optional[Period] = None
    diagnostics: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class RecordSet:
    """A filtered or reconstructed selection ready for the metrics calculator."""
    policies: pl.DataFrame
    covers: pl.DataFrame
    claims: pl.DataFrame
    label: str = ""
    as_of: Optional[date] = None
    period: Optional[Period] = None
    diagnostics: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ViewDateSnapshot(RecordSet):
    """Portfolio state as it was knowable on view_date, with historical_status per policy."""
    view_date: Optional[date] = None

    def __post_init__(self):
        view_date = parse_date(self.view_date)
        object.__setattr__(self, 'view_date', view_date)
        if self.as_of is None:
            object.__setattr__(self, 'as_of', view_date)
        if not self.label and view_date is not None:
            object.__setattr__(self, 'label', f"ViewDate {view_date.isoformat()}")
