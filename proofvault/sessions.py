"""Durable onboarding session records.

Sessions are versioned rows: the ``version`` column is SQLAlchemy's
``version_id_col`` so every UPDATE is conditional on the version that was
read.  A concurrent writer therefore surfaces as :class:`SessionConflictError`
instead of one request silently overwriting the other's step data.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from proofvault.errors import SessionConflictError, SessionNotFoundError, StepOrderError
from proofvault.models import OnboardingSession
from proofvault.utils import is_valid_uuid, json_parse, new_session_id

log = logging.getLogger(__name__)

STEP_ORDER = ("founder", "venture", "team", "upload", "processing", "complete")


def step_index(step: str) -> int:
    try:
        return STEP_ORDER.index(step)
    except ValueError:
        raise ValueError(f"Unknown onboarding step: {step!r}") from None


def step_data(record: OnboardingSession) -> dict[str, Any]:
    return json_parse(record.step_data_json, {})


def completed_steps(record: OnboardingSession) -> list[str]:
    return json_parse(record.completed_steps_json, [])


class SessionStore:
    def __init__(self, session: Session):
        self.session = session

    def get(self, session_id: str | None) -> OnboardingSession | None:
        if not session_id:
            return None
        return self.session.get(OnboardingSession, session_id)

    def require(self, session_id: str | None, message: str | None = None) -> OnboardingSession:
        record = self.get(session_id)
        if record is None:
            raise SessionNotFoundError(
                message or f"Session {session_id} not found - onboarding may have expired",
            )
        return record

    def create(self, session_id: str | None = None, **fields: Any) -> OnboardingSession:
        """Create a session at the founder step.

        Ids that are not UUIDs are replaced by a fresh one.
        """
        if not is_valid_uuid(session_id):
            session_id = new_session_id()
        record = OnboardingSession(
            session_id=session_id,
            current_step="founder",
            step_data_json=json.dumps(fields.pop("step_data", {})),
            completed_steps_json="[]",
            **fields,
        )
        self.session.add(record)
        self._flush()
        log.info("Created onboarding session %s", session_id)
        return record

    def get_or_create(self, session_id: str | None) -> tuple[OnboardingSession, bool]:
        record = self.get(session_id) if is_valid_uuid(session_id) else None
        if record is not None:
            return record, False
        return self.create(session_id), True

    def update(
        self,
        record: OnboardingSession,
        *,
        expected_version: int | None = None,
        step_data: dict[str, Any] | None = None,
        completed: str | None = None,
        **fields: Any,
    ) -> OnboardingSession:
        """Apply an explicit partial update.

        ``step_data`` keys are merged into the stored blob; ``completed`` is
        appended to the completed-step list once.
        """
        if expected_version is not None and record.version != expected_version:
            raise SessionConflictError(
                "Session was modified by another request; reload and try again",
                details={"expected_version": expected_version, "current_version": record.version},
            )
        if step_data:
            merged = json_parse(record.step_data_json, {})
            merged.update(step_data)
            record.step_data_json = json.dumps(merged)
        if completed:
            done = json_parse(record.completed_steps_json, [])
            if completed not in done:
                done.append(completed)
                record.completed_steps_json = json.dumps(done)
        for key, val in fields.items():
            if not hasattr(OnboardingSession, key):
                raise AttributeError(f"OnboardingSession has no field {key!r}")
            setattr(record, key, val)
        self._flush()
        return record

    def advance(
        self,
        record: OnboardingSession,
        completed: str,
        next_step: str,
        **kwargs: Any,
    ) -> OnboardingSession:
        """Mark *completed* done and move forward to *next_step*.

        ``current_step`` never moves backward and never skips: re-submitting an
        earlier step keeps the session where it is.
        """
        current = step_index(record.current_step)
        target = step_index(next_step)
        if target > current + 1:
            raise StepOrderError(
                f"Cannot move from '{record.current_step}' to '{next_step}' without completing the steps in between",
            )
        if target > current:
            kwargs["current_step"] = next_step
        return self.update(record, completed=completed, **kwargs)

    def find_by_email(self, email: str) -> list[OnboardingSession]:
        return list(self.session.execute(
            select(OnboardingSession)
            .where(OnboardingSession.founder_email == email.strip().lower())
            .order_by(OnboardingSession.created_at.desc())
        ).scalars())

    def for_founder(self, founder_id: str, email: str | None = None) -> list[OnboardingSession]:
        conds = [OnboardingSession.founder_id == founder_id]
        if email:
            conds.append(OnboardingSession.founder_email == email.strip().lower())
        return list(self.session.execute(
            select(OnboardingSession).where(or_(*conds)).order_by(OnboardingSession.created_at.desc())
        ).scalars())

    def commit(self) -> None:
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            raise SessionConflictError("Session was modified by another request; reload and try again") from exc

    def _flush(self) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            self.session.rollback()
            raise SessionConflictError("Session was modified by another request; reload and try again") from exc
