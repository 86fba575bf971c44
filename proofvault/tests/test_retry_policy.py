"""Tests for failed-attempt tracking, start-over and email reuse."""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from proofvault import retry_policy
from proofvault.errors import SessionNotFoundError, StartOverLimitError, StartOverNotAllowedError
from proofvault.models import Base, OnboardingSession
from proofvault.sessions import SessionStore


@pytest.fixture()
def store():
    eng = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    SessionLocal = sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)
    sess = SessionLocal()
    try:
        yield SessionStore(sess)
    finally:
        sess.close()


def _failed(store, times, **fields):
    record = store.create(**fields)
    for _ in range(times):
        retry_policy.record_failure(store, record, "validation_failed")
    return record


# ---------------------------------------------------------------------------
# Status and eligibility
# ---------------------------------------------------------------------------


class TestStatus:
    def test_fresh_session(self, store):
        status = retry_policy.status(store.create())
        assert status.upload_attempt_count == 0
        assert not status.show_start_over
        assert not status.show_contact_support
        assert not status.can_start_over

    def test_two_failures_not_eligible(self, store):
        record = _failed(store, 2)
        assert record.upload_attempt_count == 2
        assert not retry_policy.can_start_over(record)

    def test_three_failures_eligible(self, store):
        record = _failed(store, 3)
        status = retry_policy.status(record)
        assert status.can_start_over
        assert status.show_start_over
        assert not status.show_contact_support

    def test_disabled_blocks_start_over(self, store):
        record = _failed(store, 3, start_over_disabled=True)
        assert not retry_policy.can_start_over(record)
        assert retry_policy.show_contact_support(record)

    def test_used_start_over_needs_support_at_six(self, store):
        record = _failed(store, 5, start_over_count=1, start_over_disabled=True)
        assert not retry_policy.show_contact_support(record)
        retry_policy.record_failure(store, record, "user_action_required")
        assert retry_policy.show_contact_support(record)
        assert not retry_policy.can_start_over(record)

    def test_missing_session(self):
        assert not retry_policy.can_start_over(None)

    def test_to_dict_keys(self, store):
        data = retry_policy.status(store.create()).to_dict()
        assert set(data) == {
            "session_id", "upload_attempt_count", "start_over_count",
            "show_start_over", "show_contact_support", "can_start_over",
        }


# ---------------------------------------------------------------------------
# execute_start_over
# ---------------------------------------------------------------------------


class TestExecuteStartOver:
    def test_creates_fresh_session(self, store):
        old = _failed(store, 3, founder_email="ada@lovelace-labs.io")
        store.advance(old, "founder", "venture")
        fresh = retry_policy.execute_start_over(store, old.session_id)

        assert fresh.session_id != old.session_id
        assert fresh.current_step == "founder"
        assert fresh.upload_attempt_count == 3
        assert fresh.start_over_count == 1
        assert fresh.start_over_disabled
        assert fresh.founder_email == "ada@lovelace-labs.io"
        assert fresh.previous_session_id == old.session_id
        assert old.status == "abandoned"
        assert store.get(old.session_id) is not None

    def test_second_start_over_rejected(self, store):
        old = _failed(store, 3)
        fresh = retry_policy.execute_start_over(store, old.session_id)
        for _ in range(3):
            retry_policy.record_failure(store, fresh, "validation_failed")
        with pytest.raises(StartOverLimitError, match="Maximum start over attempts reached"):
            retry_policy.execute_start_over(store, fresh.session_id)

    def test_original_id_cannot_start_over_twice(self, store):
        old = _failed(store, 3)
        retry_policy.execute_start_over(store, old.session_id)
        with pytest.raises(StartOverLimitError):
            retry_policy.execute_start_over(store, old.session_id)
        assert len(store.session.execute(select(OnboardingSession)).scalars().all()) == 2
        assert old.start_over_count == 1
        assert old.start_over_disabled

    def test_abandoned_session_status(self, store):
        old = _failed(store, 3)
        retry_policy.execute_start_over(store, old.session_id)
        status = retry_policy.status(old)
        assert not status.can_start_over
        assert not status.show_start_over
        assert not status.show_contact_support

    def test_below_threshold_rejected(self, store):
        record = _failed(store, 2)
        with pytest.raises(StartOverNotAllowedError):
            retry_policy.execute_start_over(store, record.session_id)

    def test_limit_checked_before_threshold(self, store):
        record = store.create(start_over_count=1)
        with pytest.raises(StartOverLimitError):
            retry_policy.execute_start_over(store, record.session_id)

    def test_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            retry_policy.execute_start_over(store, "1b4e28ba-2fa1-41d2-883f-0016d3cca427")

    def test_attempt_count_never_resets(self, store):
        old = _failed(store, 4)
        fresh = retry_policy.execute_start_over(store, old.session_id)
        retry_policy.record_failure(store, fresh, "validation_failed")
        assert fresh.upload_attempt_count == 5


# ---------------------------------------------------------------------------
# email_reusable
# ---------------------------------------------------------------------------


class TestEmailReusable:
    EMAIL = "ada@lovelace-labs.io"

    def test_rejected_without_grounds(self, store):
        store.create(founder_email=self.EMAIL, is_complete=True)
        current = store.create()
        assert not retry_policy.email_reusable(store, self.EMAIL, current)

    def test_other_incomplete_session(self, store):
        store.create(founder_email=self.EMAIL, is_complete=True)
        store.create(founder_email=self.EMAIL)
        assert retry_policy.email_reusable(store, self.EMAIL, store.create())

    def test_current_from_start_over(self, store):
        store.create(founder_email=self.EMAIL, is_complete=True)
        current = store.create(start_over_count=1)
        assert retry_policy.email_reusable(store, self.EMAIL, current)

    def test_current_has_same_email(self, store):
        store.create(founder_email=self.EMAIL, is_complete=True)
        current = store.create(founder_email=self.EMAIL)
        assert retry_policy.email_reusable(store, "ADA@lovelace-labs.io", current)
