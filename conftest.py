"""
Shared fixtures: snapshot builders in the shape the snapshot producer emits.
"""

from typing import Any, Dict, List, Optional

import pytest

from portfolio_service.config import EngineConfig
from portfolio_service.core.data_ingestion import DataIngestion
from portfolio_service.core.rule_registry import RuleRegistry


# =============================================================================
# BUILDERS
# =============================================================================

def make_cover(name: str = "Brann", premium: float = 1000.0, **extra) -> Dict[str, Any]:
    cover = {
        "CoverName": name,
        "InsurerName": "Fjordforsikring",
        "Premium": premium,
        "NaturePremium": extra.pop("nature", 0),
        "NetYearPremium": premium,
        "InsuranceAmount": extra.pop("insured", 1_000_000),
    }
    cover.update(extra)
    return cover


def make_product(name: str = "Villa", covers: Optional[List[Dict]] = None, **extra) -> Dict[str, Any]:
    covers = covers if covers is not None else [make_cover()]
    product = {
        "ProductNumber": extra.pop("number", f"PRD-{name}"),
        "ProductName": name,
        "Premium": sum(c["Premium"] for c in covers),
        "InsurableObject": {"ExternalID": f"OBJ-{name}", "Name": f"{name}veien 1"},
        "PolicyCover": covers,
    }
    product.update(extra)
    return product


def make_policy(number: str, version: int = 1, status: str = "Aktiv", status_id: Optional[int] = 3,
                inception: Optional[str] = "2024-01-01", end: Optional[str] = "2024-12-31",
                produced: Optional[str] = "2024-01-01", products: Optional[List[Dict]] = None,
                **extra) -> Dict[str, Any]:
    policy = {
        "PolicyNumber": number,
        "PolicyVersion": version,
        "PolicyStatusID": status_id,
        "PolicyStatusName": status,
        "InceptionDate": inception,
        "EndDate": end,
        "ProductionDate": produced,
        "PolicyProduct": products if products is not None else [make_product()],
    }
    policy.update(extra)
    return policy


def make_customer(number: str, name: str, customer_type: str = "Privatkunde",
                  policies: Optional[List[Dict]] = None, **extra) -> Dict[str, Any]:
    customer = {
        "InsuredNumber": number,
        "Name": name,
        "CustomerType": customer_type,
    }
    if policies is not None:
        customer["PolicyList"] = policies
    customer.update(extra)
    return customer


def make_claim(number: str, policy_number: str, status: str = "Åpen", paid: float = 0.0,
               reserve: float = 0.0, reported: Optional[str] = "2024-03-01",
               event: Optional[str] = None, **extra) -> Dict[str, Any]:
    claim = {
        "Skadenummer": number,
        "Polisenummer": policy_number,
        "Skadestatus": status,
        "Utbetalt": paid,
        "Skadereserve": reserve,
        "Regress": 0,
        "Skademeldtdato": reported,
        "Hendelsesdato": event or reported,
        "Skadetype": "Vannskade",
        "Produktnavn": extra.pop("product", "Villa"),
    }
    claim.update(extra)
    return claim


def make_snapshot(customers: List[Dict], claims: Optional[List[Dict]] = None,
                  period: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    snapshot = {
        "customers": customers,
        "claimData": {"SkadeDetaljer": claims or []},
    }
    if period is not None:
        snapshot["summary"] = {"periode": period}
    return snapshot


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def portfolio_snapshot() -> Dict[str, Any]:
    """
    Small portfolio covering the interesting cases.

    Policy refs after flattening:
        0  P100 v1  Fornyet     2024 term, produced 2024-01-01, Brann 1000
        1  P100 v2  Endret      2024 term, produced 2024-06-01, Brann 1200
        2  P100 v3  Aktiv       2025 term, produced 2025-01-01, Brann 1300
        3  P400 v1  Ukjent(99)  2024 term, produced 2024-01-01, Brann 800
        4  P200 v1  Kansellert  2024 term, produced 2023-12-15, Ansvar 120000
        5  P300 v1  Aktiv       2024-03-01..2025-02-28, produced 2024-02-01,
                                Kasko 4000 (nature 100) and Garanti 500
    """
    ola = make_customer("K1", "Ola Nordmann", "Privatkunde", policies=[
        make_policy("P100", 1, "Fornyet", 12, produced="2024-01-01",
                    products=[make_product("Villa", [make_cover("Brann", 1000.0)])]),
        make_policy("P100", 2, "Endret", 5, produced="2024-06-01",
                    products=[make_product("Villa", [make_cover("Brann", 1200.0)])]),
        make_policy("P100", 3, "Aktiv", 3, inception="2025-01-01", end="2025-12-31", produced="2025-01-01",
                    products=[make_product("Villa", [make_cover("Brann", 1300.0)])]),
        make_policy("P400", 1, "Ukjent", 99, produced="2024-01-01",
                    products=[make_product("Hytte", [make_cover("Brann", 800.0)])]),
    ], GivenName="Ola", Surname="Nordmann", IdentificationNumber="01019012345", EMail="ola@example.no")

    fjord = make_customer("K2", "Fjord AS", "Bedriftskunde", policies=[
        make_policy("P200", 1, "Kansellert", 6, produced="2023-12-15",
                    products=[make_product("Ansvar", [make_cover("Ansvar", 120000.0)])]),
        make_policy("P300", 1, "Aktiv", 3, inception="2024-03-01", end="2025-02-28", produced="2024-02-01",
                    products=[
                        make_product("Bil", [make_cover("Kasko", 4000.0, nature=100)]),
                        make_product("Garanti", [make_cover("Garanti", 500.0)]),
                    ]),
    ], IdentificationNumber="912345678", EMail="post@fjord.no")

    empty = make_customer("K3", "Kari Tom", "Privatkunde")

    claims = [
        make_claim("S1", "P100", "Åpen", paid=300, reserve=200, reported="2024-03-01", event="2024-02-20"),
        make_claim("S2", "P200", "Avsluttet", reported="2024-05-01", event="2024-04-15", Transaksjoner=[
            {"Transaksjonstype": "Payment", "Transaksjonsbeløp": 5000},
            {"Transaksjonstype": "Reservation", "Transaksjonsbeløp": 1000},
            {"Transaksjonstype": "Reservation", "Transaksjonsbeløp": -500},
        ]),
        make_claim("S3", "P300", "Feilregistrert", paid=999, reported="2024-04-01"),
        make_claim("S4", "P999", "Åpen", paid=700, reported="2024-02-01"),
        make_claim("S5", "P200", "Åpen", paid=2000, reported="2024-09-01", event="2024-08-20"),
        make_claim("S6", "P300", "Åpen", paid=400, reported="2024-06-01", event="2024-05-30", product="Garanti"),
    ]
    return make_snapshot([ola, fjord, empty], claims, {"startDate": "2024-01-01", "endDate": "2024-12-31"})


@pytest.fixture
def flat(portfolio_snapshot):
    return DataIngestion.flatten(portfolio_snapshot)


@pytest.fixture
def registry() -> RuleRegistry:
    return RuleRegistry.from_definitions()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()
