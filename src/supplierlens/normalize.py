"""String, phone, email, and domain canonicalisation shared by all stages.

Every comparison in the resolution engine goes through these helpers so
that the index keys and the similarity scorer agree on what "equal" means.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

import phonetics
from rapidfuzz.distance import Levenshtein
from unidecode import unidecode

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")
_NON_ALPHA = re.compile(r"[^a-z]")


def normalize_string(value: str | None) -> str:
    """Normalise free text for matching.

    Steps:
      1. Transliterate Unicode to ASCII (e.g. é -> e).
      2. Lowercase.
      3. Remove non-alphanumeric characters (keep spaces).
      4. Collapse whitespace and strip leading/trailing spaces.
    """
    if not value:
        return ""
    text = unidecode(str(value)).lower()
    text = _NON_ALNUM.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_phone(phone: str | None) -> str:
    """Keep only the digits of a phone number."""
    if not phone:
        return ""
    return _NON_DIGIT.sub("", str(phone))


def normalize_postal_code(postal_code: str | None) -> str:
    """Uppercase a postal code and drop embedded whitespace."""
    if not postal_code:
        return ""
    return _WHITESPACE.sub("", str(postal_code)).upper()


def postal_prefix(postal_code: str | None) -> str:
    """Return the 3-character forward sortation area of a postal code."""
    return normalize_postal_code(postal_code)[:3]


def extract_email_domain(email: str | None) -> str:
    """Return the lowercased domain part of an email address, or ``""``."""
    if not email or "@" not in email:
        return ""
    return str(email).lower().rsplit("@", 1)[1].strip()


def extract_domain(url: str | None) -> str:
    """Return the hostname of a website URL without a leading ``www.``.

    Bare domains (``example.ca``) are accepted.  Unparseable values yield
    ``""``.
    """
    if not url:
        return ""
    text = str(url).strip()
    if not text.lower().startswith("http"):
        text = f"https://{text}"
    try:
        host = urlsplit(text).hostname
    except ValueError:
        return ""
    if not host:
        return ""
    return host.lower().removeprefix("www.")


def string_similarity(left: str, right: str) -> float:
    """Normalised Levenshtein similarity ``1 - distance / max_len``.

    Two empty strings are considered identical.
    """
    longest = max(len(left), len(right))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(left, right) / longest


def jaccard_similarity(left: set[str] | list[str], right: set[str] | list[str]) -> float:
    """Jaccard similarity of two token collections (0 when both are empty)."""
    a, b = set(left), set(right)
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def phonetic_key(name: str | None) -> str:
    """Encode the primary token of *name* with Metaphone and Soundex.

    The two codes are concatenated (``"MTPH:S530"``) so two names share a
    key only when both algorithms agree.  Tokens without letters (numbered
    companies) are used verbatim.
    """
    tokens = normalize_string(name).split(" ")
    primary = tokens[0] if tokens else ""
    letters = _NON_ALPHA.sub("", primary)
    if not letters:
        return primary
    return f"{phonetics.metaphone(letters)}:{phonetics.soundex(letters)}"


def is_abbreviation(short: str, long: str) -> bool:
    """Return True if normalised *short* is the initials of normalised *long*.

    ``"ibm"`` abbreviates ``"international business machines"``; so does
    ``"i b m"``.
    """
    long_tokens = [t for t in long.split(" ") if t]
    if len(long_tokens) < 2:
        return False
    initials = "".join(t[0] for t in long_tokens)
    if initials == short:
        return True
    short_chars = short.replace(" ", "")
    if len(short_chars) == len(long_tokens):
        return all(tok.startswith(ch) for ch, tok in zip(short_chars, long_tokens))
    return False


def normalize_business_number(business_number: str | None) -> str:
    """Strip spaces, dashes, and other separators from a business number."""
    if not business_number:
        return ""
    return re.sub(r"[^0-9A-Za-z]", "", str(business_number)).upper()


# ---------------------------------------------------------------------------
# Provinces
# ---------------------------------------------------------------------------

PROVINCE_CODES: dict[str, str] = {
    "alberta": "AB",
    "british columbia": "BC",
    "manitoba": "MB",
    "new brunswick": "NB",
    "newfoundland and labrador": "NL",
    "nova scotia": "NS",
    "northwest territories": "NT",
    "nunavut": "NU",
    "ontario": "ON",
    "prince edward island": "PE",
    "quebec": "QC",
    "saskatchewan": "SK",
    "yukon": "YT",
}


def province_code(province: str | None) -> str:
    """Two-letter code for a province given as a code or a full name."""
    if not province:
        return ""
    text = province.strip()
    return PROVINCE_CODES.get(text.lower(), text.upper())


# First letter of a Canadian postal code -> provinces it can belong to.
POSTAL_LETTER_PROVINCES: dict[str, tuple[str, ...]] = {
    "A": ("NL",),
    "B": ("NS",),
    "C": ("PE",),
    "E": ("NB",),
    "G": ("QC",),
    "H": ("QC",),
    "J": ("QC",),
    "K": ("ON",),
    "L": ("ON",),
    "M": ("ON",),
    "N": ("ON",),
    "P": ("ON",),
    "R": ("MB",),
    "S": ("SK",),
    "T": ("AB",),
    "V": ("BC",),
    "X": ("NT", "NU"),
    "Y": ("YT",),
}


def provinces_for_postal_code(postal_code: str | None) -> tuple[str, ...]:
    """Provinces a postal code may belong to; empty when unknown."""
    code = normalize_postal_code(postal_code)
    return POSTAL_LETTER_PROVINCES.get(code[:1], ())
