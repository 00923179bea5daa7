"""In-memory lookup tables over one batch of records."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

import structlog

from supplierlens.models import BusinessRecord
from supplierlens.normalize import (
    extract_domain,
    extract_email_domain,
    normalize_business_number,
    normalize_phone,
    normalize_string,
    phonetic_key,
    postal_prefix,
)

logger = structlog.get_logger(__name__)


@dataclass
class SearchIndices:
    """Seven key -> records tables built once per batch and then read-only."""

    by_name: dict[str, list[BusinessRecord]] = field(default_factory=lambda: defaultdict(list))
    by_phonetic: dict[str, list[BusinessRecord]] = field(
        default_factory=lambda: defaultdict(list)
    )
    by_phone: dict[str, list[BusinessRecord]] = field(default_factory=lambda: defaultdict(list))
    by_email_domain: dict[str, list[BusinessRecord]] = field(
        default_factory=lambda: defaultdict(list)
    )
    by_website: dict[str, list[BusinessRecord]] = field(default_factory=lambda: defaultdict(list))
    # Business numbers are globally unique, so one record per key.
    by_business_number: dict[str, BusinessRecord] = field(default_factory=dict)
    by_postal_prefix: dict[str, list[BusinessRecord]] = field(
        default_factory=lambda: defaultdict(list)
    )

    @property
    def names(self) -> list[str]:
        return list(self.by_name)

    def size(self) -> dict[str, int]:
        return {
            "names": len(self.by_name),
            "phonetic": len(self.by_phonetic),
            "phones": len(self.by_phone),
            "email_domains": len(self.by_email_domain),
            "websites": len(self.by_website),
            "business_numbers": len(self.by_business_number),
            "postal_prefixes": len(self.by_postal_prefix),
        }


def build_search_indices(
    records: list[BusinessRecord],
    *,
    phonetic: bool = True,
) -> SearchIndices:
    """Index *records* by every blocking key they carry.

    Records missing a field simply do not appear in that table.  When two
    records share a business number the first one seen keeps the slot.
    """
    indices = SearchIndices()

    for record in records:
        name = normalize_string(record.name)
        if name:
            indices.by_name[name].append(record)
            if phonetic:
                key = phonetic_key(record.name)
                if key:
                    indices.by_phonetic[key].append(record)

        phone = normalize_phone(record.phone)
        if phone:
            indices.by_phone[phone].append(record)

        email_domain = extract_email_domain(record.email)
        if email_domain:
            indices.by_email_domain[email_domain].append(record)

        website = extract_domain(record.website)
        if website:
            indices.by_website[website].append(record)

        bn = normalize_business_number(record.business_number)
        if bn:
            if bn in indices.by_business_number:
                logger.warning(
                    "duplicate_business_number_in_batch",
                    business_number=bn,
                    kept=indices.by_business_number[bn].id,
                    record_id=record.id,
                )
            else:
                indices.by_business_number[bn] = record

        if record.address is not None:
            prefix = postal_prefix(record.address.postal_code)
            if len(prefix) == 3:
                indices.by_postal_prefix[prefix].append(record)

    logger.debug("search_indices_built", records=len(records), **indices.size())
    return indices
