"""Onboarding step processors and the scoring orchestration.

One :class:`OnboardingService` is built per request around a SQLAlchemy
session.  Each step validates its input before touching the database, so a
rejected request leaves the session untouched; successful steps commit and
then fire notifications that never affect the response.
"""
from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from proofvault import retry_policy, services
from proofvault.db import DATA_DIR
from proofvault.document_store import DocumentStoreClient, DocumentStoreError
from proofvault.email_validation import email_suggestion, validate_email
from proofvault.errors import (
    AnalysisError, EmailConflictError, EmailRejectedError, RecordNotFoundError, StepOrderError,
    UploadMissingError, ValidationFailedError,
)
from proofvault.folders import (
    OVERVIEW, display_name, folder_mapping, latest_venture, normalize_category, resolve_folder_id,
    save_folder_structure,
)
from proofvault.models import (
    DocumentUpload, Evaluation, Founder, LeaderboardEntry, OnboardingSession, TeamMember, Venture,
)
from proofvault.notifications import FollowUpContext, Notifier
from proofvault.schemas import (
    PRODUCT_STATUSES, REVENUE_STAGES, FounderStepIn, TeamMemberIn, VentureStepIn,
)
from proofvault.scoring import (
    dimension_scores, extract_team_members, is_cofounder_role, is_technical_role,
    parse_scoring_response, validate_scoring_result,
)
from proofvault.sessions import SessionStore, completed_steps, step_data
from proofvault.utils import json_parse, utcnow

log = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
})
ALLOWED_EXTENSIONS = frozenset({".pdf", ".ppt", ".pptx"})

FOUNDER_REQUIRED = ("full_name", "email", "startup_name", "stage")
VENTURE_REQUIRED = (
    "name", "industry", "geography", "business_model", "revenue_stage", "product_status", "description",
)

STALE_SESSION_HOURS = 24


def _missing(payload: Any, fields: tuple[str, ...]) -> list[str]:
    return [f for f in fields if not getattr(payload, f)]


def _check_pitch_deck(filename: str, content: bytes, mime_type: str | None) -> None:
    if not filename or not content:
        raise ValidationFailedError("No pitch deck uploaded")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationFailedError(
            "File too large. Maximum size is 10MB.",
            details={"file_size": len(content), "max_size": MAX_UPLOAD_BYTES},
        )
    ext = Path(filename).suffix.lower()
    if (mime_type or "") not in ALLOWED_MIME_TYPES and ext not in ALLOWED_EXTENSIONS:
        raise ValidationFailedError(
            "Invalid file type. Only PDF, PPT, and PPTX files are allowed.",
            details={"mime_type": mime_type, "file_name": filename},
        )


class OnboardingService:
    def __init__(
        self,
        session: Session,
        store: DocumentStoreClient,
        notifier: Notifier,
        upload_dir: str | Path | None = None,
    ):
        self.session = session
        self.sessions = SessionStore(session)
        self.store = store
        self.notifier = notifier
        self.upload_dir = Path(
            upload_dir or os.environ.get("PROOFVAULT_UPLOAD_DIR") or DATA_DIR / "uploads"
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def initialize_session(self, session_id: str | None = None) -> OnboardingSession:
        record, created = self.sessions.get_or_create(session_id)
        self.sessions.commit()
        if created:
            self.notifier.notify(record.session_id, "Onboarding Started")
        return record

    def get_session_summary(self, session_id: str) -> dict[str, Any]:
        return services.session_summary(self.sessions.require(session_id))

    def get_status(self, session_id: str) -> dict[str, Any]:
        return retry_policy.status(self.sessions.require(session_id)).to_dict()

    def start_over(self, session_id: str) -> dict[str, Any]:
        fresh = retry_policy.execute_start_over(self.sessions, session_id)
        self.sessions.commit()
        self.notifier.notify(
            fresh.session_id,
            f"Start Over - previous session {session_id} abandoned after {fresh.upload_attempt_count} failed analyses",
        )
        status = retry_policy.status(fresh).to_dict()
        return {
            **status,
            "previous_session_id": session_id,
            "current_step": fresh.current_step,
        }

    # ------------------------------------------------------------------
    # Founder step
    # ------------------------------------------------------------------

    def _has_complete_session(self, founder: Founder) -> bool:
        return any(s.is_complete for s in self.sessions.for_founder(founder.id, founder.email))

    def complete_founder_step(self, session_id: str | None, data: FounderStepIn) -> dict[str, Any]:
        missing = _missing(data, FOUNDER_REQUIRED)
        if missing:
            raise ValidationFailedError("Missing required fields", details={"missing_fields": missing})
        if data.stage not in REVENUE_STAGES:
            raise ValidationFailedError(
                f"Invalid stage '{data.stage}'", details={"allowed_stages": list(REVENUE_STAGES)},
            )
        check = validate_email(data.email)
        if not check.is_valid:
            raise EmailRejectedError(
                check.error or "Invalid email address",
                reason=check.error_type or "invalid_format",
                suggestion=email_suggestion(check.error_type),
            )

        email = data.email.lower()
        current = self.sessions.get(session_id)
        founder = self.session.execute(
            select(Founder).where(Founder.email == email)
        ).scalars().first()

        if founder is not None and self._has_complete_session(founder):
            if not retry_policy.email_reusable(self.sessions, email, current):
                raise EmailConflictError(
                    "Email already taken",
                    details={"message": "A user with this email address already exists"},
                )
            log.info("Reusing completed founder %s for session %s", founder.id, session_id)

        if founder is None:
            founder = Founder(email=email)
            self.session.add(founder)
        values = data.model_dump(exclude={"session_id", "email"})
        services.apply_updates(founder, values, services.FOUNDER_FIELDS)
        founder.updated_at = utcnow()
        self.session.flush()

        record = current or self.sessions.create(session_id)
        self.sessions.advance(
            record, "founder", "venture",
            founder_id=founder.id,
            founder_email=email,
            step_data={"founder": services.founder_summary(founder), "founder_id": founder.id},
        )
        self.sessions.commit()
        log.info("Founder step completed for session %s (founder %s)", record.session_id, founder.id)
        self.notifier.notify(
            record.session_id, f"Founder Profile Completed - {founder.full_name} ({founder.email})",
        )
        return {
            "session_id": record.session_id,
            "founder_id": founder.id,
            "founder": services.founder_summary(founder),
            "next_step": "venture",
        }

    # ------------------------------------------------------------------
    # Venture step
    # ------------------------------------------------------------------

    def _founder_not_completed(self, record: OnboardingSession) -> StepOrderError:
        age_hours = (utcnow() - record.created_at).total_seconds() / 3600 if record.created_at else 0.0
        if age_hours > STALE_SESSION_HOURS:
            message = (
                "Founder step not completed - this session is over 24 hours old and may have expired. "
                "Please start onboarding again."
            )
        else:
            message = "Founder step not completed - please complete the founder step before the venture step"
        return StepOrderError(
            message,
            details={"session_age_hours": round(age_hours, 1), "current_step": record.current_step},
        )

    async def complete_venture_step(self, session_id: str, data: VentureStepIn) -> dict[str, Any]:
        record = self.sessions.require(session_id, "Session not found - founder step must be completed first")
        founder_id = step_data(record).get("founder_id") or record.founder_id
        if not founder_id or self.session.get(Founder, founder_id) is None:
            raise self._founder_not_completed(record)

        missing = _missing(data, VENTURE_REQUIRED)
        if missing:
            raise ValidationFailedError("Missing required fields", details={"missing_fields": missing})
        if data.revenue_stage not in REVENUE_STAGES:
            raise ValidationFailedError(
                f"Invalid revenue stage '{data.revenue_stage}'",
                details={"allowed_revenue_stages": list(REVENUE_STAGES)},
            )
        if data.product_status not in PRODUCT_STATUSES:
            raise ValidationFailedError(
                f"Invalid product status '{data.product_status}'",
                details={"allowed_product_statuses": list(PRODUCT_STATUSES)},
            )

        # Re-submitting the step edits the venture it already created.
        venture = self._session_venture(record, fallback=False)
        if venture is None:
            venture = Venture(founder_id=founder_id)
            self.session.add(venture)
        values = data.model_dump(exclude={"session_id", "product_status"})
        values["mvp_status"] = data.product_status
        for field in services.VENTURE_FIELDS:
            if field in values:
                setattr(venture, field, values[field])
        self.session.flush()

        structure = None
        if self.store.is_configured():
            structure = await self.store.create_folder_structure(venture.name)
        if structure is not None:
            save_folder_structure(self.session, venture, structure)
        else:
            log.warning("Continuing without folder structure for venture %s", venture.name)

        self.sessions.advance(
            record, "venture", "team",
            step_data={
                "venture": services.venture_summary(venture),
                "venture_id": venture.id,
                "folder_structure": structure.to_dict() if structure else None,
            },
        )
        self.sessions.commit()
        log.info("Venture step completed for session %s (venture %s)", session_id, venture.id)
        self.notifier.notify(session_id, f"Venture Info Completed - {venture.name} ({venture.industry})")
        return {
            "session_id": session_id,
            "venture_id": venture.id,
            "venture": services.venture_summary(venture),
            "folder_structure": structure.to_dict() if structure else None,
            "next_step": "team",
        }

    # ------------------------------------------------------------------
    # Team step
    # ------------------------------------------------------------------

    def _session_venture(self, record: OnboardingSession, fallback: bool = True) -> Venture | None:
        """The venture in session state, else the founder's most recent one."""
        data = step_data(record)
        venture_id = data.get("venture_id")
        if venture_id:
            venture = self.session.get(Venture, venture_id)
            if venture is not None:
                return venture
        if not fallback:
            return None
        founder_id = data.get("founder_id") or record.founder_id
        if founder_id:
            return latest_venture(self.session, founder_id)
        return None

    def _require_venture(self, record: OnboardingSession) -> Venture:
        venture = self._session_venture(record)
        if venture is None:
            raise StepOrderError("Venture information missing - please complete the venture step first")
        return venture

    def _new_member(self, venture: Venture, member: TeamMemberIn, source: str = "manual") -> TeamMember:
        row = TeamMember(venture_id=venture.id, source=source, **member.model_dump())
        self.session.add(row)
        return row

    def add_team_member(self, session_id: str, member: TeamMemberIn) -> dict[str, Any]:
        record = self.sessions.require(session_id)
        venture = self._require_venture(record)
        row = self._new_member(venture, member)
        self.session.commit()
        self.notifier.notify(session_id, f"Team Member Added - {row.full_name} ({row.role})")
        return services.team_member_summary(row)

    def list_team_members(self, session_id: str) -> list[dict[str, Any]]:
        record = self.sessions.get(session_id)
        if record is None:
            return []
        venture = self._session_venture(record)
        if venture is None:
            return []
        rows = self.session.execute(
            select(TeamMember).where(TeamMember.venture_id == venture.id).order_by(TeamMember.created_at)
        ).scalars().all()
        return [services.team_member_summary(r) for r in rows]

    def _require_member(self, member_id: str) -> TeamMember:
        row = self.session.get(TeamMember, member_id)
        if row is None:
            raise RecordNotFoundError(f"Team member {member_id} not found")
        return row

    def update_team_member(self, member_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        row = self._require_member(member_id)
        services.apply_updates(row, updates, services.TEAM_MEMBER_FIELDS)
        self.session.commit()
        return services.team_member_summary(row)

    def delete_team_member(self, member_id: str) -> None:
        row = self._require_member(member_id)
        self.session.delete(row)
        self.session.commit()

    def complete_team_step(self, session_id: str, members: list[TeamMemberIn] | None = None) -> dict[str, Any]:
        record = self.sessions.require(session_id)
        venture = self._require_venture(record)
        for member in members or []:
            self._new_member(venture, member)
        self.sessions.advance(record, "team", "upload", step_data={"venture_id": venture.id})
        self.sessions.commit()
        size = self.session.execute(
            select(func.count()).select_from(TeamMember).where(TeamMember.venture_id == venture.id)
        ).scalar_one()
        log.info("Team step completed for session %s (%d members)", session_id, size)
        self.notifier.notify(session_id, f"Team Step Completed - {venture.name} ({size} members)")
        return {"session_id": session_id, "venture_id": venture.id, "next_step": "upload"}

    # ------------------------------------------------------------------
    # Upload step
    # ------------------------------------------------------------------

    def _write_upload(self, session_id: str, filename: str, content: bytes) -> Path:
        target_dir = self.upload_dir / session_id
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"{uuid.uuid4().hex}_{Path(filename).name}"
        path.write_bytes(content)
        return path

    def handle_document_upload(
        self, session_id: str, filename: str, content: bytes, mime_type: str | None,
    ) -> dict[str, Any]:
        _check_pitch_deck(filename, content, mime_type)
        record = self.sessions.require(session_id)
        if "team" not in completed_steps(record):
            raise StepOrderError(
                "Team step not completed - please complete the team step before uploading",
                details={"current_step": record.current_step},
            )
        if record.is_complete:
            raise StepOrderError("Onboarding is already complete for this session")
        venture = self._require_venture(record)
        previous_id = (step_data(record).get("upload") or {}).get("upload_id")
        previous_upload = self.session.get(DocumentUpload, previous_id) if previous_id else None

        path = self._write_upload(session_id, filename, content)
        upload = DocumentUpload(
            session_id=session_id,
            venture_id=venture.id,
            file_name=Path(filename).name,
            original_name=filename,
            file_path=str(path),
            file_size=len(content),
            mime_type=mime_type or "",
            category=OVERVIEW,
            upload_status="pending",
            processing_status="pending",
        )
        self.session.add(upload)
        self.session.flush()
        self.sessions.advance(
            record, "upload", "processing", step_data={"upload": services.upload_summary(upload)},
        )
        self.sessions.commit()
        if previous_upload is not None and previous_upload.file_path:
            # Replaced deck; only the latest upload is ever scored.
            Path(previous_upload.file_path).unlink(missing_ok=True)
        log.info("Stored pitch deck %s for session %s (%d bytes)", upload.file_name, session_id, len(content))
        self.notifier.notify(
            session_id, f"Document Uploaded - {upload.original_name} ({round(len(content) / 1024)}KB)",
        )
        return {"session_id": session_id, "upload": services.upload_summary(upload), "next_step": "processing"}

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def _ensure_folder_structure(self, record: OnboardingSession, venture: Venture) -> str:
        """Return the Overview folder id, re-creating the structure once if missing."""
        if OVERVIEW not in folder_mapping(self.session, venture.id) and self.store.is_configured():
            log.info("Folder structure missing for %s, creating it before scoring", venture.name)
            structure = await self.store.create_folder_structure(venture.name)
            if structure is not None:
                save_folder_structure(self.session, venture, structure)
                self.sessions.update(record, step_data={"folder_structure": structure.to_dict()})
        return resolve_folder_id(self.session, OVERVIEW, venture_id=venture.id)

    def _recoverable_failure(
        self,
        record: OnboardingSession,
        upload: DocumentUpload,
        error_type: str,
        message: str,
        missing_data: list[str] | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        retry_policy.record_failure(self.sessions, record, error_type)
        upload.processing_status = "failed"
        upload.can_retry = True
        upload.error_message = message
        self.sessions.commit()
        self.notifier.notify(record.session_id, f"Analysis Rejected ({error_type}) - {message}")
        return {
            **retry_policy.status(record).to_dict(),
            "has_error": True,
            "error_type": error_type,
            "missing_data": missing_data or [],
            "message": message,
            "can_retry": True,
            "is_complete": False,
            **extra,
        }

    def _merge_team(self, venture: Venture, result) -> list[TeamMember]:
        existing = {
            (m.full_name or "").strip().lower()
            for m in self.session.execute(
                select(TeamMember).where(TeamMember.venture_id == venture.id)
            ).scalars()
        }
        added: list[TeamMember] = []
        for person in extract_team_members(result):
            key = person.name.strip().lower()
            if key in existing:
                log.debug("Skipping duplicate team member %s", person.name)
                continue
            existing.add(key)
            role = person.role or "Team Member"
            row = TeamMember(
                venture_id=venture.id,
                full_name=person.name,
                role=role,
                experience=person.experience or person.background,
                background=person.background,
                is_technical=is_technical_role(role),
                is_cofounder=is_cofounder_role(role),
                source="analysis",
            )
            self.session.add(row)
            added.append(row)
        return added

    def _record_evaluation(self, venture: Venture, result, score: int, dims: dict[str, float]) -> Evaluation:
        self.session.execute(
            update(Evaluation)
            .where(Evaluation.venture_id == venture.id, Evaluation.is_current.is_(True))
            .values(is_current=False)
        )
        structure = json_parse(venture.folder_structure_json, {})
        evaluation = Evaluation(
            venture_id=venture.id,
            proof_score=score,
            tags_json=json.dumps(result.tags),
            dimension_scores_json=json.dumps(dims),
            raw_response_json=json.dumps(result.raw),
            folder_id=structure.get("id") or "",
            folder_url=structure.get("url") or "",
            is_current=True,
        )
        self.session.add(evaluation)

        entry = self.session.execute(
            select(LeaderboardEntry).where(LeaderboardEntry.venture_id == venture.id)
        ).scalars().first()
        if entry is None:
            self.session.add(LeaderboardEntry(
                venture_id=venture.id, venture_name=venture.name, total_score=score,
                dimension_scores_json=json.dumps(dims), analysis_date=utcnow(),
            ))
            log.info("Created leaderboard entry for %s with score %d", venture.name, score)
        elif score > entry.total_score:
            entry.total_score = score
            entry.dimension_scores_json = json.dumps(dims)
            entry.analysis_date = utcnow()
            log.info("Raised leaderboard score for %s to %d", venture.name, score)
        venture.proof_score = score
        self.session.flush()
        return evaluation

    async def submit_for_scoring(self, session_id: str) -> dict[str, Any]:
        record = self.sessions.require(session_id, "Session not found")
        data = step_data(record)
        processing = data.get("processing") or {}
        if record.is_complete and processing.get("scoring_result"):
            log.info("Returning stored scoring result for session %s", session_id)
            venture = self._session_venture(record)
            evaluation = services.current_evaluation(self.session, venture.id) if venture else None
            return {
                "session_id": session_id,
                "has_error": False,
                "is_complete": True,
                "cached": True,
                "proof_score": evaluation.proof_score if evaluation else processing.get("proof_score"),
                "evaluation": services.evaluation_summary(evaluation) if evaluation else None,
                "scoring_result": processing["scoring_result"],
            }

        upload_info = data.get("upload")
        if not upload_info:
            raise StepOrderError("Document upload step not completed")
        venture = self._session_venture(record)
        if venture is None:
            raise StepOrderError("Venture step not completed")
        upload = self.session.get(DocumentUpload, upload_info.get("upload_id"))
        if upload is None:
            raise UploadMissingError("Upload record not found. Please upload your pitch deck again.")

        path = Path(upload.file_path)
        if not path.is_file():
            raise UploadMissingError(
                "Uploaded file no longer exists - file may have been cleaned up. Please upload your pitch deck again.",
            )

        folder_id = await self._ensure_folder_structure(record, venture)
        content = path.read_bytes()

        stored = await self.store.upload_file(content, upload.file_name, folder_id, allow_share=True)
        upload.folder_id = folder_id
        if stored.synthetic:
            upload.upload_status = "failed"
            log.warning("Vault upload failed for %s, proceeding with scoring", upload.file_name)
        else:
            upload.upload_status = "completed"
            upload.external_file_id = stored.id
            upload.shared_url = stored.url or ""

        try:
            raw = await self.store.score_pitch_deck(content, upload.file_name)
        except DocumentStoreError as exc:
            if exc.user_action_required:
                return self._recoverable_failure(record, upload, "user_action_required", str(exc))
            retry_policy.record_failure(self.sessions, record, "provider_error")
            upload.processing_status = "failed"
            upload.can_retry = True
            upload.error_message = str(exc)
            self.sessions.commit()
            message = str(exc) if exc.timeout else f"Analysis failed: {exc}"
            raise AnalysisError(
                message,
                details={"retryable": exc.retryable, **retry_policy.status(record).to_dict()},
            ) from exc

        result = parse_scoring_response(raw)
        founder = self.session.get(Founder, record.founder_id) if record.founder_id else None
        outcome = validate_scoring_result(
            result, founder.full_name if founder else None, venture.name,
        )
        if not outcome.is_valid:
            return self._recoverable_failure(
                record, upload, "validation_failed", outcome.message, outcome.missing_data,
                validation_kind=outcome.kind,
            )

        score = result.total_score or 0
        dims = dimension_scores(result)
        added = self._merge_team(venture, result)
        self._record_evaluation(venture, result, score, dims)
        upload.processing_status = "completed"
        upload.can_retry = False
        upload.error_message = ""
        self.sessions.advance(
            record, "processing", "complete",
            is_complete=True,
            step_data={"processing": {"scoring_result": raw, "is_complete": True, "proof_score": score}},
        )
        self.sessions.commit()

        try:
            path.unlink()
        except OSError as exc:
            log.warning("Could not remove analysed file %s: %s", path, exc)

        log.info("Scoring complete for session %s: %s scored %d", session_id, venture.name, score)
        for row in added:
            self.notifier.notify(session_id, f"Team Member Auto-Added from Analysis - {row.full_name} ({row.role})")
        self.notifier.notify(session_id, f"ProofScore Analysis Complete - Total Score: {score}/100")
        if founder is not None:
            self.notifier.schedule_follow_up(FollowUpContext(
                session_id=session_id,
                founder_id=founder.id,
                founder_name=founder.full_name,
                founder_email=founder.email,
                venture_id=venture.id,
                venture_name=venture.name,
                proof_score=score,
            ))
        return {
            "session_id": session_id,
            "has_error": False,
            "is_complete": True,
            "cached": False,
            "proof_score": score,
            "tags": result.tags,
            "dimension_scores": dims,
            "team_members_added": len(added),
            "scoring_result": raw,
        }

    # ------------------------------------------------------------------
    # Vault uploads after onboarding
    # ------------------------------------------------------------------

    async def upload_to_category(
        self, founder_id: str, category: str, filename: str, content: bytes, mime_type: str | None,
    ) -> dict[str, Any]:
        if not filename or not content:
            raise ValidationFailedError("No file uploaded")
        if len(content) > MAX_UPLOAD_BYTES:
            raise ValidationFailedError("File too large. Maximum size is 10MB.")
        category = normalize_category(category)
        if self.session.get(Founder, founder_id) is None:
            raise RecordNotFoundError(f"Founder {founder_id} not found")
        folder_id = resolve_folder_id(self.session, category, founder_id=founder_id)
        venture = latest_venture(self.session, founder_id)

        stored = await self.store.upload_file(content, Path(filename).name, folder_id, allow_share=True)
        upload = DocumentUpload(
            venture_id=venture.id,
            file_name=Path(filename).name,
            original_name=filename,
            file_size=len(content),
            mime_type=mime_type or "",
            category=category,
            folder_id=folder_id,
            external_file_id="" if stored.synthetic else stored.id,
            shared_url="" if stored.synthetic else (stored.url or ""),
            upload_status="failed" if stored.synthetic else "completed",
            processing_status="completed",
            can_retry=stored.synthetic,
        )
        self.session.add(upload)
        self.session.commit()
        log.info("Vault upload %s -> %s (%s) for venture %s", filename, category, folder_id, venture.name)
        return {**services.upload_summary(upload), "display_name": display_name(category)}
