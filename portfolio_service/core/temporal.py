"""
Temporal expressions - interval status and earned premium as Polars expressions.
"""

from datetime import date
from typing import Optional

import polars as pl

from portfolio_service.utils.constants import (
    STATUS_ACTIVE, STATUS_EXPIRED, STATUS_FUTURE, STATUS_RENEWED, HISTORICAL_STATUS_IDS
)


def _days(later: pl.Expr, earlier: pl.Expr) -> pl.Expr:
    return (later - earlier).dt.total_days()


def historical_status_expr(view_date: date,
                           start_column: str = "inception_date",
                           end_column: str = "end_date",
                           later_version_column: str = "has_later_version") -> pl.Expr:
    """
    Status of a version as it was on view_date, derived from its interval only.

    Args:
        view_date: Date the status is reconstructed for
        start_column: Column holding the inception date
        end_column: Column holding the end date
        later_version_column: Boolean column, True when a later known version exists

    Returns:
        Utf8 expression with Fremtidig / Aktiv / Fornyet / Utgått
    """
    d = pl.lit(view_date, dtype=pl.Date)
    return (pl.when(d < pl.col(start_column)).then(pl.lit(STATUS_FUTURE))
            .when(d <= pl.col(end_column)).then(pl.lit(STATUS_ACTIVE))
            .when(pl.col(later_version_column)).then(pl.lit(STATUS_RENEWED))
            .otherwise(pl.lit(STATUS_EXPIRED)))


def historical_status_id_expr(status_column: str = "historical_status") -> pl.Expr:
    """Map a reconstructed status name to its status id (null for Fremtidig)."""
    return pl.col(status_column).replace_strict(
        HISTORICAL_STATUS_IDS, default=None, return_dtype=pl.Int64
    ).alias("historical_status_id")


def earned_fraction_expr(as_of: date,
                         start_column: str = "start_date",
                         end_column: str = "end_date") -> pl.Expr:
    """
    Share of the term [start, end] elapsed on as_of, clamped to [0, 1].

    Uses actual day counts: (min(as_of, end) - start) / (end - start). A zero
    length term counts as fully earned once as_of reaches its start.
    """
    d = pl.lit(as_of, dtype=pl.Date)
    start, end = pl.col(start_column), pl.col(end_column)
    term_days = _days(end, start)
    elapsed_days = _days(pl.min_horizontal(d, end), start)

    return (pl.when(term_days <= 0)
            .then(pl.when(d >= start).then(pl.lit(1.0)).otherwise(pl.lit(0.0)))
            .otherwise(elapsed_days.cast(pl.Float64) / term_days.cast(pl.Float64))
            .clip(0.0, 1.0))


def earned_premium_expr(as_of: date,
                        premium_column: str = "premium",
                        status_column: Optional[str] = None) -> pl.Expr:
    """
    Earned premium per row as of a date.

    Without a status column the status is implied by the interval itself.
    With one, Utgått/Fornyet earn the full premium, Fremtidig earns nothing
    and everything else is prorated. Rows without dates earn nothing.
    """
    prorated = pl.col(premium_column) * earned_fraction_expr(as_of)
    if status_column is not None:
        status = pl.col(status_column)
        prorated = (pl.when(status.is_in([STATUS_EXPIRED, STATUS_RENEWED])).then(pl.col(premium_column))
                    .when(status == STATUS_FUTURE).then(pl.lit(0.0))
                    .otherwise(prorated))
    return prorated.fill_null(0.0)


def window_earned_premium_expr(start: date, end: date, premium_column: str = "premium") -> pl.Expr:
    """Premium earned inside [start, end]: cumulative earned at end minus cumulative earned at start."""
    return (earned_premium_expr(end, premium_column) - earned_premium_expr(start, premium_column)).clip(lower_bound=0.0)
