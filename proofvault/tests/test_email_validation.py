from __future__ import annotations

import pytest

from proofvault.email_validation import email_suggestion, extract_domain, validate_email


class TestExtractDomain:
    def test_lowercases_domain(self):
        assert extract_domain("Ada@Lovelace-Labs.IO") == "lovelace-labs.io"

    @pytest.mark.parametrize("value", ["", "ada", "ada@", "ada@labs", "a b@labs.io"])
    def test_invalid(self, value):
        assert extract_domain(value) is None


class TestValidateEmail:
    def test_business_email_accepted(self):
        check = validate_email("ada@lovelace-labs.io")
        assert check.is_valid
        assert check.domain == "lovelace-labs.io"
        assert check.error is None

    @pytest.mark.parametrize("value", [None, "", "not-an-email"])
    def test_invalid_format(self, value):
        check = validate_email(value)
        assert not check.is_valid
        assert check.error_type == "invalid_format"

    def test_personal_domain_rejected(self):
        check = validate_email("ada@gmail.com")
        assert not check.is_valid
        assert check.error_type == "personal_email"
        assert "business email" in check.error

    def test_temporary_domain_rejected(self):
        check = validate_email("ada@mailinator.com")
        assert check.error_type == "temp_email"

    @pytest.mark.parametrize("domain", ["123abc.com", "ab12.net", "tempbox.io", "fakeco.de", "mailer.io"])
    def test_suspicious_patterns_rejected(self, domain):
        check = validate_email(f"ada@{domain}")
        assert not check.is_valid
        assert check.error_type == "suspicious_pattern"


class TestEmailSuggestion:
    def test_known_types(self):
        assert "company email" in email_suggestion("personal_email")
        assert "permanent" in email_suggestion("temp_email")

    def test_default(self):
        assert email_suggestion(None) == "Please provide a valid business email address"
