"""Derive a stable email-like identity from verified token claims."""

from collections.abc import Callable, Mapping
from typing import Any

ClaimExtractor = Callable[[Mapping[str, Any]], str | None]


def _normalize(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    return normalized or None


def _claim(name: str) -> ClaimExtractor:
    def extract(claims: Mapping[str, Any]) -> str | None:
        return _normalize(claims.get(name))

    extract.__name__ = f"claim_{name}"
    return extract


def _first_of_emails(claims: Mapping[str, Any]) -> str | None:
    emails = claims.get("emails")
    if isinstance(emails, (list, tuple)) and emails:
        return _normalize(emails[0])
    return None


# Priority order matters: Entra External ID puts the sign-in name in
# preferred_username, B2C-style flows use emails[], older AAD tokens use upn/unique_name.
EMAIL_EXTRACTORS: tuple[ClaimExtractor, ...] = (
    _claim("preferred_username"),
    _claim("email"),
    _first_of_emails,
    _claim("upn"),
    _claim("unique_name"),
    _claim("nameid"),
)


def email_from_claims(claims: Mapping[str, Any] | None) -> str:
    """Return the first populated email-like claim, trimmed and lower-cased, or ''."""
    if not isinstance(claims, Mapping):
        return ""
    for extract in EMAIL_EXTRACTORS:
        value = extract(claims)
        if value:
            return value
    return ""


def resolve_email(
    claims: Mapping[str, Any] | None,
    lookup: Callable[[str], str] | None = None,
) -> str:
    """
    Email from the token, falling back to the stored email for the token's subject.

    Returns '' when neither source yields a value; callers must treat that as an
    unknown identity.
    """
    from_token = email_from_claims(claims)
    if from_token:
        return from_token
    if lookup is None or not isinstance(claims, Mapping):
        return ""
    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        return ""
    return _normalize(lookup(sub.strip())) or ""


def display_name_from_claims(claims: Mapping[str, Any], email: str) -> str | None:
    """name claim, else 'given family', else the local part of the email."""
    name = claims.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    parts = [claims.get("given_name"), claims.get("family_name")]
    full = " ".join(p.strip() for p in parts if isinstance(p, str) and p.strip())
    if full:
        return full
    if email:
        return email.split("@", 1)[0] or None
    return None
