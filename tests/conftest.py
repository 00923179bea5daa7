"""Shared fixtures for resolution, quality, and prioritization tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from supplierlens.config import Settings
from supplierlens.models import (
    Address,
    BusinessRecord,
    BusinessType,
    Certification,
    CertificationType,
    Contact,
    FinancialInfo,
    ProcurementReadiness,
    SourceDescriptor,
)
from supplierlens.store import InMemoryStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def settings() -> Settings:
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture()
def eagle_a() -> BusinessRecord:
    return BusinessRecord(
        id="biz-a",
        name="Eagle Technologies Inc.",
        business_number="123456789",
        phone="613-555-0100",
        discovered_at=NOW - timedelta(days=10),
    )


@pytest.fixture()
def eagle_b() -> BusinessRecord:
    return BusinessRecord(
        id="biz-b",
        name="Eagle Technologies",
        business_number="123456789",
        phone="6135550100",
        discovered_at=NOW - timedelta(days=5),
    )


@pytest.fixture()
def unrelated() -> BusinessRecord:
    return BusinessRecord(
        id="biz-z",
        name="Birch Tree Accounting",
        phone="204-555-7788",
        email="hello@birchtree.ca",
        discovered_at=NOW - timedelta(days=20),
    )


@pytest.fixture()
def rich_record() -> BusinessRecord:
    """A verified, enriched record with every critical field populated."""
    return BusinessRecord(
        id="biz-rich",
        name="Raven Construction Ltd.",
        type=BusinessType.INDIGENOUS_OWNED,
        business_number="987654321",
        description="General contractor for civil infrastructure",
        phone="416-555-0199",
        email="jane.doe@ravenconstruction.ca",
        website="https://ravenconstruction.ca",
        address=Address(
            street="100 King St W",
            city="Toronto",
            province="ON",
            postal_code="M5X 1A9",
        ),
        industry=["Construction", "Engineering"],
        financial_info=FinancialInfo(
            estimated_revenue=12_000_000,
            employee_count=80,
            has_government_contracts=True,
        ),
        verified=True,
        certifications=[Certification(type=CertificationType.CCAB, issuer="CCAB")],
        contacts=[
            Contact(name="Jane Doe", title="Owner", email="jane.doe@ravenconstruction.ca",
                    is_primary=True),
        ],
        procurement_readiness=ProcurementReadiness(
            score=40, has_insurance=True, has_bonding=True, naics_codes=["236220"]
        ),
        source=SourceDescriptor(type="business_registry", reliability=0.9),
        discovered_at=NOW - timedelta(days=60),
        enriched_at=NOW - timedelta(days=3),
    )
