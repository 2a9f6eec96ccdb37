"""
Output Formatter - Formats metrics, comparisons and record rows for the caller.
"""

from typing import Any, Dict, List, Optional

import polars as pl

from portfolio_service.models.portfolio import FlattenedPortfolio, Period
from portfolio_service.models.results import PeriodMetrics, ComparisonResult, RuleTestResult
from portfolio_service.utils.constants import (
    is_undefined, STATUS_ACTIVE, STATUS_EXPIRED, STATUS_RENEWED
)

# Column order of the per-cover export used for reconciliation against reference extracts
COVER_ROW_COLUMNS = [
    'CustomerNumber', 'CustomerCompanyName', 'CustomerFirstName', 'CustomerSurname',
    'OrganizationNumber', 'SocialSecurityNumber', 'IsBusiness', 'CustomerEmail',
    'PolicyNumber', 'PolicyVersionNumber', 'PolicyStatus', 'PolicyStartDate', 'PolicyEndDate',
    'ProductNumber', 'ProductName', 'Cover', 'Insurer',
    'ObjectNumber', 'InsuredObjectAdress',
    'PeriodPremium', 'BMFProvisjon', 'NetPremium', 'Naturskade', 'AnnualPremium', 'SumInsured',
    'CoverStartDate', 'CoverEndDate',
    '_PolicyStatusID', '_ProductPremium', '_IsValidForUI', '_IsValidForHistorical',
]

VALID_FOR_UI = [STATUS_ACTIVE, STATUS_EXPIRED]
VALID_FOR_HISTORICAL = [STATUS_ACTIVE, STATUS_EXPIRED, STATUS_RENEWED]


def camel_case(name: str) -> str:
    head, *tail = name.split("_")
    return head + "".join(part.capitalize() for part in tail)


class OutputFormatter:
    """Formats results into plain dicts with camelCase keys."""

    @staticmethod
    def _number_fields(values: Dict[str, Any], always_flag: bool = False) -> Dict[str, Any]:
        """
        camelCase the keys; UNDEFINED becomes None with a '<key>Defined': False flag.

        With always_flag every key gets its Defined flag, True for real numbers.
        """
        formatted = {}
        for name, value in values.items():
            key = camel_case(name)
            undefined = is_undefined(value)
            formatted[key] = None if undefined else value
            if undefined or always_flag:
                formatted[f"{key}Defined"] = not undefined
        return formatted

    @staticmethod
    def format_metrics(metrics: PeriodMetrics, category: Optional[str] = None) -> Dict[str, Any]:
        """Format PeriodMetrics; lossRatioDefined is always present."""
        result = {"label": metrics.label}
        result.update(OutputFormatter._number_fields({
            "total_premium": metrics.total_premium,
            "earned_premium": metrics.earned_premium,
            "total_claim_cost": metrics.total_claim_cost,
            "nature_damage_premium": metrics.nature_damage_premium,
            "paid": metrics.paid,
            "reserve": metrics.reserve,
            "regress": metrics.regress,
        }))
        result.update(OutputFormatter._number_fields({"loss_ratio": metrics.loss_ratio}, always_flag=True))
        if category is not None:
            result["lossRatioCategory"] = category
        result["recordCounts"] = {camel_case(k): v for k, v in metrics.record_counts.items()}
        result["diagnostics"] = {camel_case(k): v for k, v in metrics.diagnostics.items()}
        return result

    @staticmethod
    def format_comparison(comparison: ComparisonResult) -> Dict[str, Any]:
        """Format a ComparisonResult as {a, b, delta, percentChange}."""
        return {
            "a": OutputFormatter.format_metrics(comparison.a),
            "b": OutputFormatter.format_metrics(comparison.b),
            "delta": OutputFormatter._number_fields(comparison.delta, always_flag=True),
            "percentChange": OutputFormatter._number_fields(comparison.percent_change, always_flag=True),
        }

    @staticmethod
    def format_rule_test(result: RuleTestResult) -> Dict[str, Any]:
        formatted = {
            "ruleId": result.rule_id,
            "total": result.total,
            "matched": result.matched,
        }
        formatted.update(OutputFormatter._number_fields({"percent": result.percent}, always_flag=True))
        formatted["statusDistribution"] = [
            {camel_case(k): v for k, v in row.items()} for row in result.status_distribution
        ]
        return formatted

    @staticmethod
    def format_groups(groups: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [
            {
                "dimension": camel_case(group["dimension"]),
                "value": group["value"],
                **OutputFormatter.format_metrics(group["metrics"], group["category"]),
            }
            for group in groups
        ]

    @staticmethod
    def format_overview(overview: Dict[str, Any]) -> Dict[str, Any]:
        """Format the dict returned by PortfolioEngine.get_basic_overview."""
        formatted = {camel_case(k): v for k, v in overview.items() if k not in ("period", "diagnostics")}
        formatted["period"] = OutputFormatter.format_period(overview.get("period"))
        formatted["diagnostics"] = {camel_case(k): v for k, v in (overview.get("diagnostics") or {}).items()}
        return formatted

    @staticmethod
    def format_period(period: Optional[Period]) -> Optional[Dict[str, Any]]:
        if period is None:
            return None
        return {
            "startDate": period.start.isoformat(),
            "endDate": period.end.isoformat(),
            "label": period.label,
        }

    @staticmethod
    def cover_rows(flat: FlattenedPortfolio) -> pl.DataFrame:
        """
        One row per cover in the reference export layout (COVER_ROW_COLUMNS).

        Every policy version is included; _IsValidForUI and
        _IsValidForHistorical mark the rows each portfolio view counts.
        Cover dates are the policy's dates, as in the reference extract.
        """
        customers = flat.customers.select(
            "customer_ref", "customer_type", "customer_name", "given_name", "surname",
            "identification_number", "email",
        )
        policies = flat.policies.select(
            "policy_ref",
            pl.col("status_id").alias("_policy_status_id"),
            pl.col("status_name").alias("_policy_status"),
            pl.col("inception_date").alias("_policy_start"),
            pl.col("end_date").alias("_policy_end"),
        )
        is_business = pl.col("customer_type") == "business"
        is_private = pl.col("customer_type") == "private"

        def when_customer(condition: pl.Expr, column: str) -> pl.Expr:
            return pl.when(condition).then(pl.col(column)).otherwise(pl.lit(None, dtype=pl.Utf8))

        rows = (flat.covers
                .drop("customer_type")
                .join(customers, on="customer_ref", how="left")
                .join(policies, on="policy_ref", how="left")
                .sort("cover_ref")
                .select(
                    pl.col("customer_number").alias("CustomerNumber"),
                    when_customer(is_business, "customer_name").alias("CustomerCompanyName"),
                    when_customer(is_private, "given_name").alias("CustomerFirstName"),
                    when_customer(is_private, "surname").alias("CustomerSurname"),
                    when_customer(is_business, "identification_number").alias("OrganizationNumber"),
                    when_customer(is_private, "identification_number").alias("SocialSecurityNumber"),
                    is_business.fill_null(False).cast(pl.Int8).alias("IsBusiness"),
                    pl.col("email").alias("CustomerEmail"),
                    pl.col("policy_number").alias("PolicyNumber"),
                    pl.col("version_number").alias("PolicyVersionNumber"),
                    pl.col("_policy_status").alias("PolicyStatus"),
                    pl.col("_policy_start").alias("PolicyStartDate"),
                    pl.col("_policy_end").alias("PolicyEndDate"),
                    pl.col("product_number").alias("ProductNumber"),
                    pl.col("product_name").alias("ProductName"),
                    pl.col("cover_name").alias("Cover"),
                    pl.col("insurer_name").alias("Insurer"),
                    pl.col("object_number").alias("ObjectNumber"),
                    pl.col("object_name").alias("InsuredObjectAdress"),
                    pl.col("premium").alias("PeriodPremium"),
                    pl.lit(0.0).alias("BMFProvisjon"),
                    pl.lit(0.0).alias("NetPremium"),
                    pl.col("nature_damage_premium").alias("Naturskade"),
                    pl.col("net_year_premium").alias("AnnualPremium"),
                    pl.col("insured_amount").alias("SumInsured"),
                    pl.col("_policy_start").alias("CoverStartDate"),
                    pl.col("_policy_end").alias("CoverEndDate"),
                    pl.col("_policy_status_id").alias("_PolicyStatusID"),
                    pl.col("product_premium").alias("_ProductPremium"),
                    pl.col("_policy_status").is_in(VALID_FOR_UI).fill_null(False).alias("_IsValidForUI"),
                    pl.col("_policy_status").is_in(VALID_FOR_HISTORICAL).fill_null(False)
                    .alias("_IsValidForHistorical"),
                ))
        return rows

    @staticmethod
    def cover_row_summary(rows: pl.DataFrame) -> Dict[str, Any]:
        """Totals of the cover export: all rows against the rows the portfolio view counts."""
        total_premium = float(rows["PeriodPremium"].sum()) if rows.height else 0.0
        ui_premium = float(rows.filter(pl.col("_IsValidForUI"))["PeriodPremium"].sum()) if rows.height else 0.0
        status_counts = (rows.group_by("PolicyStatus", maintain_order=True).agg(pl.len().alias("count"))
                         if rows.height else pl.DataFrame({"PolicyStatus": [], "count": []}))
        return {
            "totalRows": rows.height,
            "uniquePolicies": rows["PolicyNumber"].n_unique() if rows.height else 0,
            "uniqueCustomers": rows["CustomerNumber"].n_unique() if rows.height else 0,
            "totalPremiumAll": total_premium,
            "totalPremiumValidForUI": ui_premium,
            "filteredPremium": total_premium - ui_premium,
            "statusDistribution": {row["PolicyStatus"]: row["count"] for row in status_counts.iter_rows(named=True)},
        }
