"""Serialization and small query helpers shared by the API and MCP server."""
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from proofvault import retry_policy
from proofvault.folders import display_name
from proofvault.models import (
    DocumentUpload, Evaluation, Founder, LeaderboardEntry, OnboardingSession, ProofVaultFolder,
    TeamMember, Venture,
)
from proofvault.sessions import completed_steps, step_data
from proofvault.utils import json_parse

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

FOUNDER_FIELDS = (
    "full_name", "email", "position_role", "linkedin_profile", "residence",
    "gender", "age", "is_technical", "startup_name", "stage",
)

VENTURE_FIELDS = (
    "name", "industry", "geography", "business_model", "revenue_stage",
    "mvp_status", "description", "website", "linkedin_url", "twitter_url",
    "instagram_url", "has_testimonials",
)

TEAM_MEMBER_FIELDS = (
    "full_name", "email", "role", "experience", "background",
    "linkedin_profile", "is_cofounder", "is_technical",
)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def founder_summary(founder: Founder) -> dict[str, Any]:
    return {"id": founder.id, **{f: getattr(founder, f) for f in FOUNDER_FIELDS}}


def venture_summary(venture: Venture) -> dict[str, Any]:
    return {
        "id": venture.id, "founder_id": venture.founder_id,
        **{f: getattr(venture, f) for f in VENTURE_FIELDS},
        "folder_structure": json_parse(venture.folder_structure_json, {}) or None,
        "proof_score": venture.proof_score,
        "vault_score": venture.vault_score,
    }


def team_member_summary(member: TeamMember) -> dict[str, Any]:
    return {
        "id": member.id, "venture_id": member.venture_id,
        **{f: getattr(member, f) for f in TEAM_MEMBER_FIELDS},
        "source": member.source,
    }


def upload_summary(upload: DocumentUpload) -> dict[str, Any]:
    return {
        "upload_id": upload.id,
        "file_name": upload.file_name,
        "original_name": upload.original_name,
        "file_path": upload.file_path,
        "file_size": upload.file_size,
        "mime_type": upload.mime_type,
        "category": upload.category,
        "folder_id": upload.folder_id,
        "external_file_id": upload.external_file_id,
        "shared_url": upload.shared_url,
        "upload_status": upload.upload_status,
        "processing_status": upload.processing_status,
        "can_retry": upload.can_retry,
    }


def evaluation_summary(ev: Evaluation) -> dict[str, Any]:
    return {
        "id": ev.id, "venture_id": ev.venture_id,
        "proof_score": ev.proof_score,
        "tags": json_parse(ev.tags_json, []),
        "dimension_scores": json_parse(ev.dimension_scores_json, {}),
        "evaluation_date": _iso(ev.evaluation_date),
        "folder_id": ev.folder_id, "folder_url": ev.folder_url,
        "is_current": ev.is_current,
    }


def leaderboard_summary(entry: LeaderboardEntry) -> dict[str, Any]:
    return {
        "venture_id": entry.venture_id,
        "venture_name": entry.venture_name,
        "total_score": entry.total_score,
        "dimension_scores": json_parse(entry.dimension_scores_json, {}),
        "analysis_date": _iso(entry.analysis_date),
    }


def folder_summary(folder: ProofVaultFolder) -> dict[str, Any]:
    return {
        "category": folder.category,
        "display_name": display_name(folder.category),
        "folder_id": folder.folder_id,
        "shared_url": folder.shared_url,
    }


def session_summary(record: OnboardingSession) -> dict[str, Any]:
    data = step_data(record)
    processing = data.get("processing") or {}
    return {
        "session_id": record.session_id,
        "current_step": record.current_step,
        "completed_steps": completed_steps(record),
        "is_complete": record.is_complete,
        "founder_id": data.get("founder_id"),
        "venture_id": data.get("venture_id"),
        "upload": data.get("upload"),
        "has_folder_structure": bool(data.get("folder_structure")),
        "proof_score": processing.get("proof_score"),
        "status": record.status,
        "version": record.version,
        "created_at": _iso(record.created_at),
        "updated_at": _iso(record.updated_at),
        **retry_policy.status(record).to_dict(),
    }


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def apply_updates(obj, updates: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to an ORM object."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            setattr(obj, field, val)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_leaderboard(session: Session, limit: int = 50) -> list[dict[str, Any]]:
    entries = session.execute(
        select(LeaderboardEntry).order_by(LeaderboardEntry.total_score.desc()).limit(limit)
    ).scalars().all()
    return [leaderboard_summary(e) for e in entries]


def list_folders(session: Session, venture_id: str) -> list[dict[str, Any]]:
    rows = session.execute(
        select(ProofVaultFolder)
        .where(ProofVaultFolder.venture_id == venture_id)
        .order_by(ProofVaultFolder.category)
    ).scalars().all()
    return [folder_summary(r) for r in rows]


def current_evaluation(session: Session, venture_id: str) -> Evaluation | None:
    return session.execute(
        select(Evaluation).where(Evaluation.venture_id == venture_id, Evaluation.is_current.is_(True))
    ).scalars().first()
