"""Blocking: turn the search indices into a bounded candidate set per record."""

from __future__ import annotations

import threading

from supplierlens.entity_resolution.indexing import SearchIndices
from supplierlens.models import BusinessRecord, pair_key
from supplierlens.normalize import (
    extract_domain,
    extract_email_domain,
    normalize_business_number,
    normalize_phone,
    normalize_string,
    phonetic_key,
    postal_prefix,
    string_similarity,
)

FUZZY_NAME_THRESHOLD = 0.8


class ProcessedPairs:
    """Synchronised set of pair keys; each pair can be claimed exactly once."""

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def claim(self, id1: str, id2: str) -> bool:
        """Return True if this call is the first to claim the pair."""
        key = pair_key(id1, id2)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


def _length_compatible(left: str, right: str) -> bool:
    # Levenshtein distance is at least the length difference, so pairs whose
    # lengths differ by more than the allowed edit budget cannot clear the bar.
    longest = max(len(left), len(right))
    return abs(len(left) - len(right)) < (1.0 - FUZZY_NAME_THRESHOLD) * longest


def fuzzy_name_matches(name: str, indices: SearchIndices) -> list[BusinessRecord]:
    """Records whose normalised name is similar to *name* but not identical."""
    matches: list[BusinessRecord] = []
    for other in indices.names:
        if other == name or not _length_compatible(name, other):
            continue
        if string_similarity(name, other) > FUZZY_NAME_THRESHOLD:
            matches.extend(indices.by_name[other])
    return matches


def find_candidates(
    record: BusinessRecord,
    indices: SearchIndices,
    *,
    phonetic: bool = True,
) -> list[BusinessRecord]:
    """Union every index hit for *record*, excluding the record itself.

    Order is stable: business number, exact name, phonetic name, fuzzy
    name, phone, email domain, website domain, postal prefix.
    """
    found: dict[str, BusinessRecord] = {}

    def add(records: list[BusinessRecord]) -> None:
        for candidate in records:
            if candidate.id != record.id and candidate.id not in found:
                found[candidate.id] = candidate

    bn = normalize_business_number(record.business_number)
    if bn and bn in indices.by_business_number:
        add([indices.by_business_number[bn]])

    name = normalize_string(record.name)
    if name:
        add(indices.by_name.get(name, []))
        if phonetic:
            add(indices.by_phonetic.get(phonetic_key(record.name), []))
        add(fuzzy_name_matches(name, indices))

    phone = normalize_phone(record.phone)
    if phone:
        add(indices.by_phone.get(phone, []))

    email_domain = extract_email_domain(record.email)
    if email_domain:
        add(indices.by_email_domain.get(email_domain, []))

    website = extract_domain(record.website)
    if website:
        add(indices.by_website.get(website, []))

    if record.address is not None:
        prefix = postal_prefix(record.address.postal_code)
        if len(prefix) == 3:
            add(indices.by_postal_prefix.get(prefix, []))

    return list(found.values())
