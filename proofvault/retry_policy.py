"""Failed-analysis tracking and the one-time start-over workflow.

States a session moves through::

    normal            attempts 0-2
    start-over ready  attempts >= 3, no start-over used yet
    start-over used   new session, counters carried over
    support required  start-over used and attempts >= 6

``upload_attempt_count`` is never reset, not even by a start-over, so the
history of failed analyses follows the founder into the new session.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from proofvault.errors import StartOverLimitError, StartOverNotAllowedError
from proofvault.models import OnboardingSession
from proofvault.sessions import SessionStore

log = logging.getLogger(__name__)

START_OVER_ATTEMPT_THRESHOLD = 3
MAX_START_OVERS = 1
SUPPORT_ATTEMPT_THRESHOLD = 6


@dataclass
class StartOverStatus:
    session_id: str
    upload_attempt_count: int
    start_over_count: int
    show_start_over: bool
    show_contact_support: bool
    can_start_over: bool

    def to_dict(self) -> dict:
        return asdict(self)


def record_failure(store: SessionStore, record: OnboardingSession, reason: str) -> OnboardingSession:
    """Count one failed analysis attempt against the session."""
    attempts = (record.upload_attempt_count or 0) + 1
    store.update(record, upload_attempt_count=attempts)
    log.info("Analysis attempt failed for session %s (%s), attempts=%d", record.session_id, reason, attempts)
    return record


def can_start_over(record: OnboardingSession | None) -> bool:
    if record is None:
        return False
    return (
        not record.start_over_disabled
        and (record.start_over_count or 0) < MAX_START_OVERS
        and (record.upload_attempt_count or 0) >= START_OVER_ATTEMPT_THRESHOLD
    )


def show_contact_support(record: OnboardingSession) -> bool:
    attempts = record.upload_attempt_count or 0
    if (record.start_over_count or 0) >= MAX_START_OVERS:
        return attempts >= SUPPORT_ATTEMPT_THRESHOLD
    # Start-over switched off without ever being used (e.g. by support).
    return bool(record.start_over_disabled) and attempts >= START_OVER_ATTEMPT_THRESHOLD


def status(record: OnboardingSession) -> StartOverStatus:
    allowed = can_start_over(record)
    return StartOverStatus(
        session_id=record.session_id,
        upload_attempt_count=record.upload_attempt_count or 0,
        start_over_count=record.start_over_count or 0,
        show_start_over=allowed,
        show_contact_support=show_contact_support(record),
        can_start_over=allowed,
    )


def execute_start_over(store: SessionStore, session_id: str) -> OnboardingSession:
    """Abandon *session_id* and issue a fresh session at the founder step.

    Only one start-over is ever granted: the new session is born with
    start-over disabled and the abandoned one is marked as used, so replaying
    the old id is refused.  Caller must commit.
    """
    old = store.require(session_id)
    used = (old.start_over_count or 0) >= MAX_START_OVERS
    if old.status == "abandoned" or old.start_over_disabled or used:
        raise StartOverLimitError(
            "Maximum start over attempts reached. Please contact support for help with your analysis.",
            details={"start_over_count": old.start_over_count or 0},
        )
    if (old.upload_attempt_count or 0) < START_OVER_ATTEMPT_THRESHOLD:
        raise StartOverNotAllowedError(
            f"Start over becomes available after {START_OVER_ATTEMPT_THRESHOLD} failed analysis attempts",
            details={"upload_attempt_count": old.upload_attempt_count or 0},
        )

    new_count = (old.start_over_count or 0) + 1
    fresh = store.create(
        upload_attempt_count=old.upload_attempt_count or 0,
        start_over_count=new_count,
        start_over_disabled=new_count >= MAX_START_OVERS,
        founder_email=old.founder_email,
        previous_session_id=old.session_id,
    )
    store.update(old, status="abandoned", start_over_count=new_count, start_over_disabled=True)
    log.info(
        "Start over: session %s abandoned, new session %s (attempts=%d, start_over_count=%d)",
        old.session_id, fresh.session_id, fresh.upload_attempt_count, new_count,
    )
    return fresh


def email_reusable(store: SessionStore, email: str, current: OnboardingSession | None) -> bool:
    """Whether an email bound to a completed founder may sign up again.

    Allowed when an incomplete session exists for the email, when the current
    session came from a start-over, or when it already carries this email.
    """
    email = email.strip().lower()
    if current is not None:
        if (current.start_over_count or 0) > 0:
            return True
        if (current.founder_email or "").lower() == email:
            return True
    return any(
        not s.is_complete and (current is None or s.session_id != current.session_id)
        for s in store.find_by_email(email)
    )
