from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from proofvault.utils import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Founder(Base):
    __tablename__ = "founders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    position_role: Mapped[str] = mapped_column(String(100), default="")
    linkedin_profile: Mapped[str] = mapped_column(String(200), default="")
    residence: Mapped[str] = mapped_column(String(100), default="")
    gender: Mapped[str] = mapped_column(String(20), default="")
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_technical: Mapped[bool] = mapped_column(Boolean, default=False)
    startup_name: Mapped[str] = mapped_column(String(200), default="")
    stage: Mapped[str] = mapped_column(String(50), default="")
    verification_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    ventures: Mapped[list[Venture]] = relationship(
        "Venture", back_populates="founder", order_by="Venture.created_at.desc()",
    )


class Venture(Base):
    __tablename__ = "ventures"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    founder_id: Mapped[str] = mapped_column(String(36), ForeignKey("founders.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    industry: Mapped[str] = mapped_column(String(100), default="")
    geography: Mapped[str] = mapped_column(String(100), default="")
    business_model: Mapped[str] = mapped_column(Text, default="")
    revenue_stage: Mapped[str] = mapped_column(String(30), default="None")
    mvp_status: Mapped[str] = mapped_column(String(30), default="Mockup")
    description: Mapped[str] = mapped_column(Text, default="")
    website: Mapped[str] = mapped_column(String(200), default="")
    linkedin_url: Mapped[str] = mapped_column(String(255), default="")
    twitter_url: Mapped[str] = mapped_column(String(255), default="")
    instagram_url: Mapped[str] = mapped_column(String(255), default="")
    has_testimonials: Mapped[bool] = mapped_column(Boolean, default=False)
    folder_structure_json: Mapped[str] = mapped_column(Text, default="{}")
    proof_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vault_score: Mapped[int] = mapped_column(Integer, default=0)
    certificate_url: Mapped[str] = mapped_column(String(500), default="")
    report_url: Mapped[str] = mapped_column(String(500), default="")
    # Microsecond precision keeps "most recent venture" ordering stable.
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    founder: Mapped[Founder] = relationship("Founder", back_populates="ventures")
    team_members: Mapped[list[TeamMember]] = relationship(
        "TeamMember", back_populates="venture", cascade="all, delete-orphan",
    )
    evaluations: Mapped[list[Evaluation]] = relationship(
        "Evaluation", back_populates="venture", cascade="all, delete-orphan",
    )
    folders: Mapped[list[ProofVaultFolder]] = relationship(
        "ProofVaultFolder", back_populates="venture", cascade="all, delete-orphan",
    )


class TeamMember(Base):
    __tablename__ = "team_members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    venture_id: Mapped[str] = mapped_column(String(36), ForeignKey("ventures.id"), nullable=False)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(100), default="")
    role: Mapped[str] = mapped_column(String(100), default="")
    experience: Mapped[str] = mapped_column(Text, default="")
    background: Mapped[str] = mapped_column(Text, default="")
    linkedin_profile: Mapped[str] = mapped_column(String(200), default="")
    is_cofounder: Mapped[bool] = mapped_column(Boolean, default=False)
    is_technical: Mapped[bool] = mapped_column(Boolean, default=False)
    source: Mapped[str] = mapped_column(String(20), default="manual")  # "manual" | "analysis"
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    venture: Mapped[Venture] = relationship("Venture", back_populates="team_members")


class OnboardingSession(Base):
    __tablename__ = "onboarding_sessions"

    session_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    founder_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("founders.id"), nullable=True)
    current_step: Mapped[str] = mapped_column(String(30), default="founder")
    step_data_json: Mapped[str] = mapped_column(Text, default="{}")
    completed_steps_json: Mapped[str] = mapped_column(Text, default="[]")
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    upload_attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    start_over_count: Mapped[int] = mapped_column(Integer, default=0)
    start_over_disabled: Mapped[bool] = mapped_column(Boolean, default=False)
    founder_email: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default="active")  # "active" | "abandoned"
    previous_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class DocumentUpload(Base):
    __tablename__ = "document_uploads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("onboarding_sessions.session_id"), nullable=True,
    )
    venture_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("ventures.id"), nullable=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), default="")
    file_size: Mapped[int] = mapped_column(Integer, default=0)
    mime_type: Mapped[str] = mapped_column(String(100), default="")
    category: Mapped[str] = mapped_column(String(50), default="0_Overview")
    folder_id: Mapped[str] = mapped_column(String(255), default="")
    external_file_id: Mapped[str] = mapped_column(String(255), default="")
    shared_url: Mapped[str] = mapped_column(String(500), default="")
    upload_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending | completed | failed
    processing_status: Mapped[str] = mapped_column(String(20), default="pending")
    can_retry: Mapped[bool] = mapped_column(Boolean, default=False)
    error_message: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Evaluation(Base):
    __tablename__ = "evaluations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    venture_id: Mapped[str] = mapped_column(String(36), ForeignKey("ventures.id"), nullable=False)
    evaluation_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    proof_score: Mapped[int] = mapped_column(Integer, nullable=False)
    tags_json: Mapped[str] = mapped_column(Text, default="[]")
    dimension_scores_json: Mapped[str] = mapped_column(Text, default="{}")
    raw_response_json: Mapped[str] = mapped_column(Text, default="{}")
    folder_id: Mapped[str] = mapped_column(String(255), default="")
    folder_url: Mapped[str] = mapped_column(String(500), default="")
    is_current: Mapped[bool] = mapped_column(Boolean, default=True)

    venture: Mapped[Venture] = relationship("Venture", back_populates="evaluations")


class LeaderboardEntry(Base):
    __tablename__ = "leaderboard"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    venture_id: Mapped[str] = mapped_column(String(36), ForeignKey("ventures.id"), nullable=False, unique=True)
    venture_name: Mapped[str] = mapped_column(String(255), nullable=False)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False)
    dimension_scores_json: Mapped[str] = mapped_column(Text, default="{}")
    analysis_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ProofVaultFolder(Base):
    __tablename__ = "proof_vault_folders"
    __table_args__ = (UniqueConstraint("venture_id", "category", name="uq_vault_folder_category"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    venture_id: Mapped[str] = mapped_column(String(36), ForeignKey("ventures.id"), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    folder_id: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_folder_id: Mapped[str] = mapped_column(String(255), default="")
    shared_url: Mapped[str] = mapped_column(String(500), default="")

    venture: Mapped[Venture] = relationship("Venture", back_populates="folders")
