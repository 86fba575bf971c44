"""Business-email screening for founder sign-up.

Personal mailbox providers and disposable/temporary inbox services are
rejected so that every founder profile is tied to an organisation domain.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

log = logging.getLogger(__name__)

PERSONAL_EMAIL_DOMAINS = frozenset({
    "gmail.com", "yahoo.com", "hotmail.com", "outlook.com", "live.com",
    "icloud.com", "me.com", "mac.com", "aol.com", "msn.com", "comcast.net",
    "verizon.net", "att.net", "cox.net", "charter.net", "earthlink.net",
    "juno.com", "netzero.net", "sbcglobal.net", "bellsouth.net",
    "protonmail.com", "tutanota.com", "yandex.com", "mail.ru", "zoho.com",
})

TEMP_EMAIL_DOMAINS = frozenset({
    "10minutemail.com", "guerrillamail.com", "mailinator.com", "tempmail.org",
    "temp-mail.org", "throwaway.email", "maildrop.cc", "sharklasers.com",
    "guerrillamailblock.com", "pokemail.net", "spam4.me", "tempail.com",
    "temp-mail.io", "fakemailgenerator.com", "mohmal.com", "mytemp.email",
    "emailtemp.org", "tempemailgen.com", "disposable.email", "temp-email.org",
    "burnermail.io", "minuteinbox.com", "emailfake.com", "tempinbox.com",
    "tempmailo.com", "throwawaymail.com", "yopmail.com", "getnada.com",
    "inboxkitten.com", "tempmail.plus", "temp.email", "emaildrop.io",
    "snapmail.cc", "trashmail.com", "dispostable.com", "mailcatch.com",
    "tempmail.ninja", "fakeinbox.com", "tempmail.dev", "emailondeck.com",
    "mailnesia.com", "tempmail.io", "tempr.email", "mail7.io",
    "spamgourmet.com", "mailexpire.com", "tempmail.email", "discard.email",
})

SUSPICIOUS_PATTERNS = (
    re.compile(r"^\d+[a-z]+\.(com|net|org)$", re.IGNORECASE),
    re.compile(r"^[a-z]{1,4}\d+\.(com|net|org)$", re.IGNORECASE),
    re.compile(r"^(temp|fake|test|spam|trash|disposable|throw)[a-z0-9]*\.", re.IGNORECASE),
    re.compile(r"^mail[a-z0-9]*\.", re.IGNORECASE),
)

_EMAIL_RE = re.compile(r"^[^\s@]+@([^\s@]+\.[^\s@]+)$")

_SUGGESTIONS = {
    "personal_email": "Try using your company email (e.g., yourname@yourcompany.com)",
    "temp_email": "Use a permanent business email from your organization",
    "suspicious_pattern": "Use a permanent business email from your organization",
}


@dataclass
class EmailCheck:
    is_valid: bool
    domain: str | None = None
    error: str | None = None
    error_type: str | None = None  # invalid_format | personal_email | temp_email | suspicious_pattern


def extract_domain(email: str) -> str | None:
    m = _EMAIL_RE.match(email.strip().lower())
    return m.group(1) if m else None


def validate_email(email: str | None) -> EmailCheck:
    """Check *email* against personal, temporary and suspicious domains."""
    if not email or not isinstance(email, str):
        return EmailCheck(False, error="Please provide a valid email address", error_type="invalid_format")

    domain = extract_domain(email)
    if not domain:
        return EmailCheck(False, error="Please provide a valid email address", error_type="invalid_format")

    if domain in PERSONAL_EMAIL_DOMAINS:
        log.info("Personal email blocked during registration (domain=%s)", domain)
        return EmailCheck(
            False, domain,
            "Please use your business email address instead of personal email",
            "personal_email",
        )
    if domain in TEMP_EMAIL_DOMAINS:
        log.info("Temporary email blocked during registration (domain=%s)", domain)
        return EmailCheck(
            False, domain,
            "Temporary email addresses are not permitted. Please use a permanent business email",
            "temp_email",
        )
    if any(p.search(domain) for p in SUSPICIOUS_PATTERNS):
        log.info("Suspicious email pattern blocked during registration (domain=%s)", domain)
        return EmailCheck(
            False, domain,
            "This email address appears to be temporary. Please use a permanent business email",
            "suspicious_pattern",
        )
    return EmailCheck(True, domain)


def email_suggestion(error_type: str | None) -> str:
    return _SUGGESTIONS.get(error_type or "", "Please provide a valid business email address")
