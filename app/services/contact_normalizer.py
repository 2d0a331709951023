"""
Canonical forms for customer phones and e-mails.

Phones become bare digit strings in international form (Russian trunk
prefix "8" rewritten to country code "7"); e-mails are lower-cased and
de-obfuscated ("ivan (at) example (dot) com"). Candidate extraction pulls
every phone- or e-mail-shaped piece out of free text; pieces that do not
normalize are dropped silently.
"""
import re

EMAIL_RE = re.compile(r"[A-Z0-9._%+\-]+@[A-Z0-9.\-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_CHUNK_RE = re.compile(r"(?:\+|00)?[\d\s\-().]{7,}")

_AT_RE = re.compile(r"\s*(?:\(at\)|\[at\]|\{at\}|(?<!\S)собака(?!\S))\s*", re.IGNORECASE)
_DOT_RE = re.compile(r"\s*(?:\(dot\)|\[dot\]|\{dot\}|(?<!\S)точка(?!\S))\s*", re.IGNORECASE)
_SPACED_AT_RE = re.compile(r"\s+@\s+")
_SPACED_DOT_RE = re.compile(r"\s+\.\s+")
_EMAIL_TRIM = "\"'<>,;:)([]{}"

PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15


def normalize_phone(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    digits = "".join(ch for ch in value if ch.isdigit())
    if not digits:
        return None
    if digits.startswith("00"):
        digits = digits[2:]
    if len(digits) == 11 and digits.startswith("8"):
        digits = "7" + digits[1:]
    elif len(digits) == 10 and digits.startswith("9"):
        digits = "7" + digits
    if len(digits) < PHONE_MIN_DIGITS or len(digits) > PHONE_MAX_DIGITS:
        return None
    return digits


def canonicalize_email_text(value: str) -> str:
    """Undo the usual "(at)" / "точка" obfuscations and drop control characters."""
    text = _AT_RE.sub("@", value)
    text = _DOT_RE.sub(".", text)
    text = _SPACED_AT_RE.sub("@", text)
    text = _SPACED_DOT_RE.sub(".", text)
    return "".join(" " if not ch.isprintable() else ch for ch in text)


def normalize_email(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    normalized = canonicalize_email_text(value).strip().strip(_EMAIL_TRIM).strip().lower()
    if not EMAIL_RE.fullmatch(normalized):
        return None
    return normalized


def extract_phone_candidates(text: str | None) -> set[str]:
    result: set[str] = set()
    if not text or not text.strip():
        return result
    for piece in [text, *(m.group(0) for m in PHONE_CHUNK_RE.finditer(text))]:
        phone = normalize_phone(piece)
        if phone:
            result.add(phone)
    return result


def extract_email_candidates(text: str | None) -> set[str]:
    result: set[str] = set()
    if not text or not text.strip():
        return result
    canonical = canonicalize_email_text(text)
    for piece in [canonical, *(m.group(0) for m in EMAIL_RE.finditer(canonical))]:
        email = normalize_email(piece)
        if email:
            result.add(email)
    return result
