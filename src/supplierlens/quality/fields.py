"""Field-level format validation and quality assessment."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from supplierlens.models import Address, BusinessRecord, Contact, round_half_up
from supplierlens.normalize import (
    extract_domain,
    extract_email_domain,
    normalize_phone,
    province_code,
    provinces_for_postal_code,
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[\d\s\-+()]+$")
WEBSITE_PATTERN = re.compile(r"^(https?://)?([\w\-]+\.)+[\w\-]+(/.*)?$")
BUSINESS_NUMBER_PATTERN = re.compile(r"^\d{9}(\d{6})?$")
POSTAL_CODE_PATTERN = re.compile(r"^[A-Z]\d[A-Z]\s?\d[A-Z]\d$", re.IGNORECASE)

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15

GENERIC_EMAIL_PREFIXES = frozenset({"info", "admin", "contact", "hello", "support"})
FREE_EMAIL_PROVIDERS = frozenset({"gmail.com", "yahoo.com", "hotmail.com", "outlook.com"})

# Importance of each assessed field; drives recommendation impact.
FIELD_IMPORTANCE: dict[str, int] = {
    "business_number": 3,
    "name": 3,
    "phone": 2,
    "email": 2,
    "address": 2,
    "industry": 2,
    "website": 1,
    "description": 1,
    "legal_name": 1,
    "contacts": 1,
    "certifications": 1,
    "financial_info": 1,
    "procurement_readiness": 1,
    "indigenous_details": 1,
}

DEFAULT_PRESENT_QUALITY = 75


@dataclass
class FieldAssessment:
    field: str
    quality: int
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def flag(self, issue: str, suggestion: str, penalty: int) -> None:
        self.issues.append(issue)
        self.suggestions.append(suggestion)
        self.quality -= penalty


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------

def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def is_valid_phone(phone: str) -> bool:
    digits = normalize_phone(phone)
    return (
        PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS
        and bool(PHONE_PATTERN.match(phone))
    )


def is_valid_website(website: str) -> bool:
    return bool(WEBSITE_PATTERN.match(website))


def is_valid_business_number(business_number: str) -> bool:
    return bool(BUSINESS_NUMBER_PATTERN.match(business_number))


def is_valid_postal_code(postal_code: str) -> bool:
    return bool(POSTAL_CODE_PATTERN.match(postal_code.strip()))


# ---------------------------------------------------------------------------
# Per-field assessments
# ---------------------------------------------------------------------------

def assess_email(email: str) -> FieldAssessment:
    result = FieldAssessment("email", 100)
    if not is_valid_email(email):
        result.flag("Invalid email format", "Verify and correct email format", 50)
    local, _, domain = email.lower().partition("@")
    if local in GENERIC_EMAIL_PREFIXES:
        result.flag(
            "Generic email address", "Find personal contact email for better engagement", 20
        )
    if domain in FREE_EMAIL_PROVIDERS:
        result.flag("Free email provider", "Verify business email domain", 10)
    return result


def assess_phone(phone: str) -> FieldAssessment:
    result = FieldAssessment("phone", 100)
    if not is_valid_phone(phone):
        result.flag("Invalid phone format", "Format phone number correctly", 40)
    digits = normalize_phone(phone)
    if len(digits) < PHONE_MIN_DIGITS:
        result.flag("Phone number too short", "Ensure phone number includes area code", 30)
    elif len(digits) > PHONE_MAX_DIGITS:
        result.flag("Phone number too long", "Remove extra digits or extensions", 20)
    return result


def assess_website(website: str) -> FieldAssessment:
    result = FieldAssessment("website", 100)
    if not is_valid_website(website):
        result.flag("Invalid website format", "Correct website URL format", 40)
    if not website.startswith("https://"):
        result.flag("Website not using HTTPS", "Verify if website supports HTTPS", 10)
    if "://www." in website:
        result.flag("Using www subdomain", "Consider using canonical domain format", 5)
    return result


def assess_business_number(business_number: str) -> FieldAssessment:
    result = FieldAssessment("business_number", 100)
    if not is_valid_business_number(business_number.strip()):
        result.flag(
            "Invalid business number format",
            "Verify business number with government registry",
            60,
        )
    return result


def assess_address(address: Address) -> FieldAssessment:
    result = FieldAssessment("address", 100)
    if not address.street:
        result.flag("Missing street address", "Add complete street address", 30)
    if not address.city:
        result.flag("Missing city", "Add city information", 20)
    if not address.province:
        result.flag("Missing province", "Add province/territory", 20)
    if not address.postal_code:
        result.flag("Missing postal code", "Add postal code", 20)
    elif not is_valid_postal_code(address.postal_code):
        result.flag("Invalid postal code format", "Correct postal code format (A1A 1A1)", 15)
    return result


def _is_decision_maker(contact: Contact) -> bool:
    return contact.is_primary or "owner" in (contact.title or "").lower()


def assess_contacts(contacts: list[Contact]) -> FieldAssessment:
    """Base 60 for having contacts, adjusted for decision makers and reachability."""
    result = FieldAssessment("contacts", 60)
    if not any(_is_decision_maker(c) for c in contacts):
        result.flag(
            "No decision maker identified", "Identify and add key decision maker contact", 20
        )
    unreachable = [c for c in contacts if not c.email and not c.phone]
    if unreachable:
        result.flag(
            f"{len(unreachable)} contacts missing email and phone",
            "Add email or phone for all contacts",
            10,
        )
    if len(contacts) >= 3:
        result.quality += 20
    elif len(contacts) >= 2:
        result.quality += 10
    return result


_ASSESSORS = {
    "email": assess_email,
    "phone": assess_phone,
    "website": assess_website,
    "business_number": assess_business_number,
    "address": assess_address,
    "contacts": assess_contacts,
}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, tuple)):
        return len(value) > 0
    return True


def assess_field(record: BusinessRecord, name: str) -> FieldAssessment:
    value = getattr(record, name)
    if not _present(value):
        return FieldAssessment(
            name, 0, [f"{name} is missing"], [f"Add {name} to improve completeness"]
        )
    assessor = _ASSESSORS.get(name)
    if assessor is None:
        return FieldAssessment(name, DEFAULT_PRESENT_QUALITY)
    result = assessor(value)
    result.quality = min(max(result.quality, 0), 100)
    return result


def assess_fields(record: BusinessRecord) -> list[FieldAssessment]:
    """Assess every field in :data:`FIELD_IMPORTANCE`, in that order."""
    return [assess_field(record, name) for name in FIELD_IMPORTANCE]


# ---------------------------------------------------------------------------
# Record-level checks
# ---------------------------------------------------------------------------

# Industry tags that should not appear on the same record.
CONFLICTING_INDUSTRIES: tuple[tuple[str, str], ...] = (
    ("retail", "wholesale"),
    ("manufacturing", "retail"),
    ("construction", "demolition"),
)

_MAIL_SUBDOMAIN = re.compile(r"^(www|mail|email)\.")


def domains_match(first: str, second: str) -> bool:
    """Same domain once mail/www subdomains are dropped, or one contains the other."""
    a, b = _MAIL_SUBDOMAIN.sub("", first), _MAIL_SUBDOMAIN.sub("", second)
    return a == b or a in b or b in a


def has_industry_conflict(industries: list[str]) -> bool:
    tags = [i.lower() for i in industries]
    return any(
        any(left in t for t in tags) and any(right in t for t in tags)
        for left, right in CONFLICTING_INDUSTRIES
    )


def find_inconsistencies(record: BusinessRecord) -> list[str]:
    """Contradictions between fields of one record."""
    issues = []
    email_domain = extract_email_domain(record.email)
    website_domain = extract_domain(record.website)
    if email_domain and website_domain and not domains_match(email_domain, website_domain):
        issues.append("Email and website domains do not match")

    address = record.address
    if address is not None and address.postal_code and address.province:
        expected = provinces_for_postal_code(address.postal_code)
        if expected and province_code(address.province) not in expected:
            issues.append("Postal code does not match province")

    if has_industry_conflict(record.industry):
        issues.append("Conflicting industry classifications")
    return issues


def format_checks(record: BusinessRecord) -> dict[str, bool]:
    """Format validity of every populated field that has a format rule."""
    checks = {}
    if record.email:
        checks["email"] = is_valid_email(record.email)
    if record.phone:
        checks["phone"] = is_valid_phone(record.phone)
    if record.website:
        checks["website"] = is_valid_website(record.website)
    if record.address is not None and record.address.postal_code:
        checks["postal_code"] = is_valid_postal_code(record.address.postal_code)
    if record.business_number:
        checks["business_number"] = is_valid_business_number(record.business_number.strip())
    return checks


def validity_score(record: BusinessRecord) -> int:
    """Percentage of format-checked fields that pass; 50 when nothing can be checked."""
    checks = format_checks(record)
    if not checks:
        return 50
    return round_half_up(sum(checks.values()) / len(checks) * 100)
