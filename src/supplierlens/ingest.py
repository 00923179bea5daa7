"""Conversion of upstream discovery/enrichment payloads into BusinessRecords.

Upstream hunters emit loosely-typed dicts (camelCase or snake_case keys,
CSV exports with NaN cells, ISO timestamps as strings).  Optional fields
that are missing or malformed are dropped to ``None`` rather than raising;
only a record without an identifier is rejected.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
import structlog

from supplierlens.errors import InvalidRecordError
from supplierlens.models import (
    Address,
    BusinessRecord,
    BusinessType,
    Certification,
    CertificationType,
    Contact,
    FieldMergeRule,
    FinancialInfo,
    IndigenousDetails,
    MergeStrategy,
    ProcurementReadiness,
    SourceDescriptor,
    TaxDebtStatus,
    VerificationDetails,
)

logger = structlog.get_logger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class LoadResult:
    """Records accepted from a batch plus the per-record rejections."""

    records: list[BusinessRecord] = field(default_factory=list)
    rejected: list[tuple[str | None, str]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Scalar coercion
# ---------------------------------------------------------------------------

def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _snake_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {_snake(str(k)): v for k, v in raw.items()}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _str(value: Any) -> str | None:
    if _is_missing(value):
        return None
    return str(value).strip()


def _float(value: Any) -> float | None:
    if _is_missing(value) or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(result) else result


def _int(value: Any) -> int | None:
    result = _float(value)
    return None if result is None else int(result)


def _bool(value: Any) -> bool:
    if _is_missing(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "y")
    return bool(value)


def parse_datetime(value: Any) -> datetime | None:
    """Parse a timestamp, returning a timezone-aware datetime or ``None``."""
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _list(value: Any) -> list:
    if _is_missing(value):
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                loaded = json.loads(text)
            except ValueError:
                loaded = None
            if isinstance(loaded, list):
                return loaded
        return [part.strip() for part in re.split(r"[;|]", text) if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return []


def _mapping(value: Any) -> dict[str, Any] | None:
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    if isinstance(value, Mapping):
        return _snake_keys(value)
    return None


def _enum(enum_cls: type, value: Any, default: Any) -> Any:
    text = _str(value)
    if text is None:
        return default
    try:
        return enum_cls(text.lower())
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# Nested parts
# ---------------------------------------------------------------------------

def _address(raw: Any) -> Address | None:
    data = _mapping(raw)
    if not data:
        return None
    address = Address(
        street=_str(data.get("street")),
        city=_str(data.get("city")),
        province=(_str(data.get("province")) or "").upper() or None,
        postal_code=_str(data.get("postal_code")),
        country=_str(data.get("country")) or "CA",
        is_on_reserve=_bool(data.get("is_on_reserve")),
        territory_name=_str(data.get("territory_name")),
    )
    if not any((address.street, address.city, address.province, address.postal_code)):
        return None
    return address


def _financial(raw: Any) -> FinancialInfo | None:
    data = _mapping(raw)
    if not data:
        return None
    return FinancialInfo(
        estimated_revenue=_float(data.get("estimated_revenue")),
        employee_count=_int(data.get("employee_count")),
        year_established=_int(data.get("year_established")),
        has_government_contracts=_bool(data.get("has_government_contracts")),
    )


def _verification(raw: Any) -> VerificationDetails | None:
    data = _mapping(raw)
    if not data:
        return None
    confidence = _float(data.get("confidence"))
    return VerificationDetails(
        verified=_bool(data.get("verified")),
        confidence=None if confidence is None else min(max(confidence, 0.0), 1.0),
        province=_str(data.get("province")),
        federal_status=_str(data.get("federal_status")),
        last_verified=parse_datetime(data.get("last_verified")),
        issues=[str(i) for i in _list(data.get("issues"))],
    )


def _tax_debt(raw: Any) -> TaxDebtStatus | None:
    data = _mapping(raw)
    if not data:
        return None
    return TaxDebtStatus(
        has_debt=_bool(data.get("has_debt")),
        total_debt=_float(data.get("total_debt")),
        procurement_eligible=_bool(data.get("procurement_eligible", True)),
        last_checked=parse_datetime(data.get("last_checked")),
    )


def _certifications(raw: Any) -> list[Certification]:
    certs: list[Certification] = []
    for item in _list(raw):
        data = _mapping(item)
        if not data:
            continue
        cert_type = _enum(CertificationType, data.get("type"), None)
        if cert_type is None:
            continue
        certs.append(
            Certification(
                type=cert_type,
                issuer=_str(data.get("issuer")) or "",
                number=_str(data.get("number")),
                status=(_str(data.get("status")) or "active").lower(),
            )
        )
    return certs


def _contacts(raw: Any) -> list[Contact]:
    contacts: list[Contact] = []
    for item in _list(raw):
        data = _mapping(item)
        if not data or not _str(data.get("name")):
            continue
        contacts.append(
            Contact(
                name=_str(data.get("name")) or "",
                title=_str(data.get("title")),
                email=_str(data.get("email")),
                phone=_str(data.get("phone")),
                is_primary=_bool(data.get("is_primary")),
            )
        )
    return contacts


def _indigenous(raw: Any) -> IndigenousDetails | None:
    data = _mapping(raw)
    if not data:
        return None
    return IndigenousDetails(
        ownership_percentage=_float(data.get("ownership_percentage")),
        nation=_str(data.get("nation")),
        community=_str(data.get("community")),
        indigenous_employee_percentage=_float(data.get("indigenous_employee_percentage")),
        community_benefit_agreements=_bool(data.get("community_benefit_agreements")),
        traditional_territory_work=_bool(data.get("traditional_territory_work")),
    )


def _procurement(raw: Any) -> ProcurementReadiness | None:
    data = _mapping(raw)
    if not data:
        return None
    return ProcurementReadiness(
        score=_float(data.get("score")),
        has_insurance=_bool(data.get("has_insurance")),
        has_bonding=_bool(data.get("has_bonding")),
        has_health_safety=_bool(data.get("has_health_safety")),
        past_performance=_float(data.get("past_performance")),
        capabilities=[str(c) for c in _list(data.get("capabilities"))],
        naics_codes=[str(c) for c in _list(data.get("naics_codes"))],
    )


def _source(raw: Any) -> SourceDescriptor | None:
    data = _mapping(raw)
    if not data:
        return None
    reliability = _float(data.get("reliability"))
    return SourceDescriptor(
        type=_str(data.get("type")) or "web_crawl",
        name=_str(data.get("name")) or "",
        url=_str(data.get("url")),
        reliability=0.5 if reliability is None else min(max(reliability, 0.0), 1.0),
    )


def _merge_strategy(raw: Any) -> MergeStrategy | None:
    data = _mapping(raw)
    if not data or not _str(data.get("primary_record")):
        return None
    rules = []
    for item in _list(data.get("fields_to_merge")):
        rule = _mapping(item)
        if rule and _str(rule.get("field")):
            rules.append(
                FieldMergeRule(
                    field=str(rule["field"]),
                    source=_str(rule.get("source")) or "primary",
                    conflict_resolution=_str(rule.get("conflict_resolution")) or "primary_wins",
                )
            )
    return MergeStrategy(
        primary_record=str(data["primary_record"]),
        fields_to_merge=tuple(rules),
        preserve_history=_bool(data.get("preserve_history", True)),
        notify_affected_systems=_bool(data.get("notify_affected_systems", True)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def record_from_dict(raw: Mapping[str, Any]) -> BusinessRecord:
    """Build a BusinessRecord from a loosely-typed dict.

    Raises:
        InvalidRecordError: If the record has no identifier.
    """
    data = _snake_keys(raw)
    record_id = _str(data.get("id"))
    if record_id is None:
        msg = "Record is missing its identifier"
        raise InvalidRecordError(msg)

    industry = data.get("industry", data.get("industries"))

    return BusinessRecord(
        id=record_id,
        name=_str(data.get("name")) or "",
        type=_enum(BusinessType, data.get("type"), BusinessType.UNKNOWN),
        legal_name=_str(data.get("legal_name")),
        business_number=_str(data.get("business_number")),
        description=_str(data.get("description")),
        phone=_str(data.get("phone")),
        email=_str(data.get("email")),
        website=_str(data.get("website")),
        address=_address(data.get("address")),
        industry=[str(i).strip() for i in _list(industry) if str(i).strip()],
        financial_info=_financial(data.get("financial_info")),
        verified=_bool(data.get("verified")),
        verification_details=_verification(data.get("verification_details")),
        tax_debt_status=_tax_debt(data.get("tax_debt_status")),
        certifications=_certifications(data.get("certifications")),
        contacts=_contacts(data.get("contacts")),
        indigenous_details=_indigenous(data.get("indigenous_details")),
        procurement_readiness=_procurement(data.get("procurement_readiness")),
        source=_source(data.get("source")),
        discovered_at=parse_datetime(data.get("discovered_at")),
        enriched_at=parse_datetime(data.get("enriched_at")),
        merged_from=[str(i) for i in _list(data.get("merged_from"))],
        merged_at=parse_datetime(data.get("merged_at")),
        merge_strategy=_merge_strategy(data.get("merge_strategy")),
    )


def load_records(rows: Iterable[Mapping[str, Any]]) -> LoadResult:
    """Convert a batch of raw dicts, rejecting bad rows without aborting.

    A record whose identifier already appeared earlier in the batch is
    rejected so identifiers stay unique within the batch.
    """
    result = LoadResult()
    seen: set[str] = set()

    for index, row in enumerate(rows):
        try:
            record = record_from_dict(row)
        except InvalidRecordError as exc:
            logger.warning("record_rejected", index=index, reason=str(exc))
            result.rejected.append((None, str(exc)))
            continue

        if record.id in seen:
            reason = f"Duplicate identifier in batch: {record.id!r}"
            logger.warning("record_rejected", index=index, record_id=record.id, reason=reason)
            result.rejected.append((record.id, reason))
            continue

        seen.add(record.id)
        result.records.append(record)

    logger.info(
        "records_loaded",
        accepted=len(result.records),
        rejected=len(result.rejected),
    )
    return result


def read_records_file(path: Path) -> LoadResult:
    """Read a CSV or JSON export of upstream records.

    Nested fields in CSV exports are expected as JSON-encoded cells
    (``address``, ``financial_info`` ...); list fields may be JSON arrays or
    ``;``-separated strings.
    """
    if path.suffix.lower() == ".json":
        df = pd.read_json(path, orient="records", dtype=False, convert_dates=False)
    else:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)

    rows = df.to_dict(orient="records")
    logger.info("records_file_read", path=str(path), rows=len(rows))
    return load_records(rows)
