"""
Data Ingestion - Flattens the nested portfolio snapshot into typed record frames.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple, Union

import polars as pl

from portfolio_service.models.portfolio import FlattenedPortfolio, Period
from portfolio_service.models.records import (
    CUSTOMER_SCHEMA, POLICY_SCHEMA, COVER_SCHEMA, CLAIM_SCHEMA, empty_frame
)
from portfolio_service.utils.constants import CUSTOMER_TYPES
from portfolio_service.utils.dates import parse_date

logger = logging.getLogger(__name__)


class MalformedSnapshotError(ValueError):
    """Raised when a required top-level key of the snapshot is missing."""
    pass


class DataIngestion:
    """Handles flattening of the Customer -> Policy -> Product -> Cover hierarchy and the claim list."""

    @staticmethod
    def flatten(snapshot: Dict[str, Any]) -> FlattenedPortfolio:
        """
        Build customer, policy, cover and claim frames from a raw snapshot.

        Args:
            snapshot: Raw snapshot with 'customers', 'claimData' and optionally 'summary'

        Returns:
            FlattenedPortfolio with one frame per entity and per-record diagnostics

        Raises:
            MalformedSnapshotError: If 'customers' or 'claimData' is missing
        """
        DataIngestion._validate(snapshot)
        diagnostics: Counter = Counter()

        customer_rows, policy_rows, cover_rows = DataIngestion._extract_portfolio(
            snapshot['customers'], diagnostics
        )
        latest_versions = DataIngestion._latest_versions(policy_rows)
        claim_rows = DataIngestion._extract_claims(
            snapshot['claimData'].get('SkadeDetaljer') or [], latest_versions, diagnostics
        )

        customers_df = DataIngestion._frame(customer_rows, CUSTOMER_SCHEMA)
        covers_df = DataIngestion._frame(cover_rows, COVER_SCHEMA)
        policies_df = DataIngestion._attach_premium(DataIngestion._frame(policy_rows, POLICY_SCHEMA), covers_df)
        claims_df = DataIngestion._frame(claim_rows, CLAIM_SCHEMA)

        orphaned = int(claims_df['is_orphaned'].sum()) if claims_df.height else 0
        diagnostics['orphaned_claims'] = orphaned
        if orphaned:
            logger.warning(f"{orphaned} claims reference policy numbers not present in the snapshot; "
                           f"they are excluded from metrics")

        logger.info(f"Flattened snapshot: customers={customers_df.height}, policies={policies_df.height}, "
                    f"covers={covers_df.height}, claims={claims_df.height}")

        return FlattenedPortfolio(
            customers=customers_df,
            policies=policies_df,
            covers=covers_df,
            claims=claims_df,
            period=DataIngestion._extract_period(snapshot),
            diagnostics=dict(diagnostics),
        )

    @staticmethod
    def overview(source: Union[Dict[str, Any], FlattenedPortfolio]) -> Dict[str, Any]:
        """
        Basic counts of a snapshot.

        Args:
            source: Raw snapshot or an already flattened one

        Returns:
            Dict with customers, policies (distinct policy numbers), policy_versions,
            covers, claims and the snapshot period
        """
        flat = source if isinstance(source, FlattenedPortfolio) else DataIngestion.flatten(source)
        return {
            "customers": flat.customers.height,
            "policies": flat.policies["policy_number"].drop_nulls().n_unique() if flat.policies.height else 0,
            "policy_versions": flat.policies.height,
            "covers": flat.covers.height,
            "claims": flat.claims.height,
            "period": flat.period,
        }

    @staticmethod
    def _validate(snapshot: Any):
        if not isinstance(snapshot, dict):
            raise MalformedSnapshotError(f"Snapshot must be a JSON object, got {type(snapshot).__name__}")
        if 'customers' not in snapshot:
            raise MalformedSnapshotError("Snapshot is missing required key 'customers'")
        if 'claimData' not in snapshot:
            raise MalformedSnapshotError("Snapshot is missing required key 'claimData'")
        if not isinstance(snapshot['customers'], list):
            raise MalformedSnapshotError("'customers' must be a list")
        if not isinstance(snapshot['claimData'], dict):
            raise MalformedSnapshotError("'claimData' must be an object")

    @staticmethod
    def _extract_portfolio(customers: List[Dict],
                           diagnostics: Counter) -> Tuple[List[Dict], List[Dict], List[Dict]]:
        """Walk customer -> policy -> product -> cover, annotating each row with its owners."""
        customer_rows, policy_rows, cover_rows = [], [], []
        product_ref = 0

        for customer in customers:
            if not isinstance(customer, dict):
                diagnostics['skipped_records'] += 1
                continue

            customer_info = {
                "customer_ref": len(customer_rows),
                "customer_number": _text(customer.get("InsuredNumber", customer.get("CustomerNumber"))),
                "customer_name": _customer_name(customer),
                "customer_type": CUSTOMER_TYPES.get(customer.get("CustomerType")),
            }
            customer_rows.append({
                **customer_info,
                "given_name": _text(customer.get("GivenName")),
                "surname": _text(customer.get("Surname")),
                "identification_number": _text(customer.get("IdentificationNumber")),
                "email": _text(customer.get("EMail")),
            })

            for policy in customer.get("PolicyList") or []:
                if not isinstance(policy, dict):
                    diagnostics['skipped_records'] += 1
                    continue

                inception = _date(policy.get("InceptionDate"), diagnostics)
                end = _date(policy.get("EndDate"), diagnostics)
                policy_info = {
                    "policy_ref": len(policy_rows),
                    "policy_number": _text(policy.get("PolicyNumber")),
                    "version_number": _int(policy.get("PolicyVersion", policy.get("PolicyVersionNumber"))),
                }
                policy_rows.append({
                    **customer_info,
                    **policy_info,
                    "status_id": _int(policy.get("PolicyStatusID")),
                    "status_name": _text(policy.get("PolicyStatusName")),
                    "inception_date": inception,
                    "end_date": end,
                    "produced_date": _date(policy.get("ProductionDate"), diagnostics),
                    "cancellation_date": _date(policy.get("CancellationDate"), diagnostics),
                    "uw_year": inception.year if inception else None,
                })

                for product in policy.get("PolicyProduct") or []:
                    if not isinstance(product, dict):
                        diagnostics['skipped_records'] += 1
                        continue

                    product_own_start = _date(product.get("InceptionDate"), diagnostics)
                    product_own_end = _date(product.get("EndDate"), diagnostics)
                    product_start = product_own_start or inception
                    product_end = product_own_end or end
                    insurable_object = product.get("InsurableObject") or {}
                    product_info = {
                        "product_ref": product_ref,
                        "product_number": _text(product.get("ProductNumber")),
                        "product_name": _text(product.get("ProductName")),
                        "product_premium": _float(product.get("Premium")),
                        "object_number": _text(insurable_object.get("ExternalID")),
                        "object_name": _text(insurable_object.get("Name")),
                    }
                    product_ref += 1

                    for cover in product.get("PolicyCover") or []:
                        if not isinstance(cover, dict):
                            diagnostics['skipped_records'] += 1
                            continue

                        own_start = _date(cover.get("InceptionDate"), diagnostics)
                        own_end = _date(cover.get("EndDate"), diagnostics)
                        cover_start = own_start or product_start
                        cover_rows.append({
                            **customer_info,
                            **policy_info,
                            **product_info,
                            "cover_ref": len(cover_rows),
                            "cover_name": _text(cover.get("CoverName")),
                            "insurer_name": _text(cover.get("InsurerName")),
                            "premium": _float(cover.get("Premium")),
                            "nature_damage_premium": _float(cover.get("NaturePremium")),
                            "net_year_premium": _float(cover.get("NetYearPremium")),
                            "insured_amount": _float(cover.get("InsuranceAmount")),
                            "start_date": cover_start,
                            "end_date": own_end or product_end,
                            "has_own_interval": any(d is not None for d in (own_start, own_end, product_own_start, product_own_end)),
                            "uw_year": cover_start.year if cover_start else None,
                        })

        return customer_rows, policy_rows, cover_rows

    @staticmethod
    def _latest_versions(policy_rows: List[Dict]) -> Dict[str, int]:
        """Map policy_number to the policy_ref of its highest version (first seen wins ties)."""
        latest: Dict[str, Tuple[int, int]] = {}
        for row in policy_rows:
            number = row["policy_number"]
            if number is None:
                continue
            version = row["version_number"] if row["version_number"] is not None else -1
            if number not in latest or version > latest[number][0]:
                latest[number] = (version, row["policy_ref"])
        return {number: ref for number, (_, ref) in latest.items()}

    @staticmethod
    def _extract_claims(claims: List[Dict],
                        latest_versions: Dict[str, int],
                        diagnostics: Counter) -> List[Dict]:
        """Extract claim records and resolve each to the latest version of its policy."""
        claim_rows = []
        for claim in claims:
            if not isinstance(claim, dict):
                diagnostics['skipped_records'] += 1
                continue

            paid, reserve, regress = DataIngestion._claim_cost_components(claim)
            policy_number = _text(claim.get("Polisenummer"))
            policy_ref = latest_versions.get(policy_number) if policy_number is not None else None

            claim_rows.append({
                "claim_ref": len(claim_rows),
                "claim_number": _text(claim.get("Skadenummer")),
                "policy_number": policy_number,
                "policy_ref": policy_ref,
                "is_orphaned": policy_ref is None,
                "status_id": _int(claim.get("SkadestatusID")),
                "status_name": _text(claim.get("Skadestatus")),
                "amount": paid + reserve + regress,
                "paid": paid,
                "reserve": reserve,
                "regress": regress,
                "reported_date": _date(claim.get("Skademeldtdato"), diagnostics),
                "event_date": _date(claim.get("Hendelsesdato"), diagnostics),
                "closed_date": _date(claim.get("Skadeavsluttetdato"), diagnostics),
                "claim_type": _text(claim.get("Skadetype")),
                "product_name": _text(claim.get("Produktnavn")),
            })
        return claim_rows

    @staticmethod
    def _claim_cost_components(claim: Dict) -> Tuple[float, float, float]:
        """
        Net claim cost split into paid, reserve and regress.

        Transactions take precedence when present: payments are paid, non-negative
        reservations are reserve and negative reservations are regress (kept negative).
        """
        transactions = claim.get("Transaksjoner")
        if isinstance(transactions, list) and transactions:
            paid = reserve = regress = 0.0
            for transaction in transactions:
                if not isinstance(transaction, dict):
                    continue
                amount = _float(transaction.get("Transaksjonsbeløp"))
                kind = transaction.get("Transaksjonstype")
                if kind == "Payment":
                    paid += amount
                elif kind == "Reservation":
                    if amount >= 0:
                        reserve += amount
                    else:
                        regress += amount
            return paid, reserve, regress

        return _float(claim.get("Utbetalt")), _float(claim.get("Skadereserve")), _float(claim.get("Regress"))

    @staticmethod
    def _attach_premium(policies_df: pl.DataFrame, covers_df: pl.DataFrame) -> pl.DataFrame:
        """Add each policy's cover premium total and cover count."""
        per_policy = covers_df.group_by("policy_ref").agg(
            pl.col("premium").sum().alias("premium"),
            pl.len().cast(pl.Int64).alias("cover_count"),
        )
        return (policies_df
                .join(per_policy, on="policy_ref", how="left")
                .with_columns(
                    pl.col("premium").fill_null(0.0),
                    pl.col("cover_count").fill_null(0),
                )
                .sort("policy_ref"))

    @staticmethod
    def _extract_period(snapshot: Dict) -> Optional[Period]:
        periode = (snapshot.get("summary") or {}).get("periode") or {}
        if not (periode.get("startDate") and periode.get("endDate")):
            return None
        try:
            return Period(periode["startDate"], periode["endDate"])
        except ValueError as e:
            raise MalformedSnapshotError(f"Invalid summary.periode: {e}") from e

    @staticmethod
    def _frame(rows: List[Dict], schema: Dict) -> pl.DataFrame:
        if not rows:
            return empty_frame(schema)
        return pl.from_dicts(rows, schema=schema)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value).strip()


def _int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _date(value: Any, diagnostics: Counter):
    try:
        return parse_date(value)
    except ValueError:
        diagnostics['unparseable_dates'] += 1
        logger.warning(f"Unparseable date {value!r}; treated as missing")
        return None


def _customer_name(customer: Dict) -> Optional[str]:
    if customer.get("Name"):
        return _text(customer["Name"])
    parts = [customer.get("GivenName"), customer.get("Surname")]
    joined = " ".join(p for p in parts if p)
    return joined or None
