"""Tests for the versioned onboarding session store."""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from proofvault.errors import SessionConflictError, SessionNotFoundError, StepOrderError
from proofvault.models import Base
from proofvault.sessions import STEP_ORDER, SessionStore, completed_steps, step_data, step_index

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    sess = SessionLocal()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def store(session):
    return SessionStore(session)


# ---------------------------------------------------------------------------
# Create / get
# ---------------------------------------------------------------------------


class TestCreate:
    def test_new_session_starts_at_founder(self, store):
        record = store.create()
        assert record.current_step == "founder"
        assert step_data(record) == {}
        assert completed_steps(record) == []
        assert record.version == 1
        assert record.status == "active"

    def test_keeps_valid_uuid(self, store):
        sid = "1b4e28ba-2fa1-41d2-883f-0016d3cca427"
        assert store.create(sid).session_id == sid

    def test_replaces_invalid_id(self, store):
        record = store.create("not-a-uuid")
        assert record.session_id != "not-a-uuid"
        assert len(record.session_id) == 36

    def test_get_or_create(self, store):
        record, created = store.get_or_create(None)
        assert created
        again, created = store.get_or_create(record.session_id)
        assert not created
        assert again is record

    def test_require_missing(self, store):
        with pytest.raises(SessionNotFoundError, match="may have expired"):
            store.require("1b4e28ba-2fa1-41d2-883f-0016d3cca427")


# ---------------------------------------------------------------------------
# Update / advance
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_step_data_merges(self, store):
        record = store.create(step_data={"founder_id": "f1"})
        store.update(record, step_data={"venture_id": "v1"})
        assert step_data(record) == {"founder_id": "f1", "venture_id": "v1"}

    def test_completed_steps_unique(self, store):
        record = store.create()
        store.update(record, completed="founder")
        store.update(record, completed="founder")
        assert completed_steps(record) == ["founder"]

    def test_version_increments(self, store, session):
        record = store.create()
        session.commit()
        store.update(record, upload_attempt_count=1)
        session.commit()
        assert record.version == 2

    def test_expected_version_mismatch(self, store):
        record = store.create()
        with pytest.raises(SessionConflictError):
            store.update(record, expected_version=record.version + 1, is_complete=True)

    def test_unknown_field(self, store):
        record = store.create()
        with pytest.raises(AttributeError):
            store.update(record, no_such_field=1)


class TestAdvance:
    def test_moves_forward_one_step(self, store):
        record = store.create()
        store.advance(record, "founder", "venture")
        assert record.current_step == "venture"
        assert completed_steps(record) == ["founder"]

    def test_never_moves_backward(self, store):
        record = store.create()
        store.advance(record, "founder", "venture")
        store.advance(record, "venture", "team")
        store.advance(record, "founder", "venture")
        assert record.current_step == "team"

    def test_cannot_skip(self, store):
        record = store.create()
        with pytest.raises(StepOrderError):
            store.advance(record, "team", "upload")
        assert record.current_step == "founder"

    def test_step_order(self):
        assert STEP_ORDER[0] == "founder"
        assert STEP_ORDER[-1] == "complete"
        assert step_index("processing") == 4
        with pytest.raises(ValueError):
            step_index("scoring")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:
    def test_find_by_email_case_insensitive(self, store):
        store.create(founder_email="ada@lovelace-labs.io")
        store.create(founder_email="other@lovelace-labs.io")
        found = store.find_by_email("ADA@lovelace-labs.io ")
        assert len(found) == 1

    def test_for_founder_matches_id_or_email(self, store):
        a = store.create(founder_email="ada@lovelace-labs.io")
        store.create()
        found = store.for_founder("missing-founder", "ada@lovelace-labs.io")
        assert [r.session_id for r in found] == [a.session_id]


# ---------------------------------------------------------------------------
# Optimistic concurrency
# ---------------------------------------------------------------------------


class TestConcurrentWriters:
    def test_stale_write_raises_conflict(self, tmp_path):
        eng = create_engine(f"sqlite:///{tmp_path / 'sessions.db'}")
        Base.metadata.create_all(eng)
        SessionLocal = sessionmaker(bind=eng, autoflush=False, expire_on_commit=False)

        setup = SessionLocal()
        sid = SessionStore(setup).create().session_id
        setup.commit()
        setup.close()

        first, second = SessionLocal(), SessionLocal()
        try:
            a = SessionStore(first)
            b = SessionStore(second)
            rec_a = a.require(sid)
            rec_b = b.require(sid)

            a.update(rec_a, step_data={"writer": "a"})
            a.commit()

            with pytest.raises(SessionConflictError):
                b.update(rec_b, step_data={"writer": "b"})
        finally:
            first.close()
            second.close()

        check = SessionLocal()
        try:
            assert step_data(SessionStore(check).require(sid)) == {"writer": "a"}
        finally:
            check.close()
