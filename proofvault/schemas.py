"""Pydantic request/response schemas for the ProofVault onboarding API."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, field_validator

REVENUE_STAGES = ("None", "Pre-Revenue", "Early Revenue", "Scaling")
PRODUCT_STATUSES = ("Mockup", "Prototype", "Launched")


def _strip(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


class SessionRef(BaseModel):
    session_id: str | None = None


class FounderStepIn(BaseModel):
    session_id: str | None = None
    full_name: str = ""
    email: str = ""
    startup_name: str = ""
    stage: str = ""
    position_role: str = "Founder"
    linkedin_profile: str = ""
    residence: str = ""
    gender: str = ""
    age: int | None = None
    is_technical: bool = False

    @field_validator(
        "full_name", "email", "startup_name", "stage", "position_role", "linkedin_profile", "residence",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)


class VentureStepIn(BaseModel):
    session_id: str | None = None
    name: str = ""
    industry: str = ""
    geography: str = ""
    business_model: str = ""
    revenue_stage: str = ""
    product_status: str = ""
    description: str = ""
    website: str = ""
    has_testimonials: bool = False
    linkedin_url: str = ""
    twitter_url: str = ""
    instagram_url: str = ""

    @field_validator(
        "name", "industry", "geography", "business_model", "revenue_stage", "product_status",
        "description", "website", "linkedin_url", "twitter_url", "instagram_url",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        return _strip(v)


class TeamMemberIn(BaseModel):
    full_name: str
    email: str = ""
    role: str = ""
    experience: str = ""
    background: str = ""
    linkedin_profile: str = ""
    is_cofounder: bool = False
    is_technical: bool = False

    @field_validator("full_name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("full_name is required")
        return v.strip()


class TeamMemberUpdate(BaseModel):
    full_name: str | None = None
    email: str | None = None
    role: str | None = None
    experience: str | None = None
    background: str | None = None
    linkedin_profile: str | None = None
    is_cofounder: bool | None = None
    is_technical: bool | None = None


class TeamMemberCreate(TeamMemberIn):
    session_id: str


class TeamStepIn(BaseModel):
    session_id: str
    members: list[TeamMemberIn] = []


class StartOverStatusOut(BaseModel):
    session_id: str
    upload_attempt_count: int
    start_over_count: int
    show_start_over: bool
    show_contact_support: bool
    can_start_over: bool


class TeamMemberOut(BaseModel):
    id: str
    venture_id: str
    full_name: str
    email: str
    role: str
    experience: str
    background: str
    linkedin_profile: str
    is_cofounder: bool
    is_technical: bool
    source: str


class FolderOut(BaseModel):
    category: str
    display_name: str
    folder_id: str
    shared_url: str


class LeaderboardOut(BaseModel):
    venture_id: str
    venture_name: str
    total_score: int
    dimension_scores: dict[str, float] = {}
    analysis_date: str
