from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Generator

from fastapi import Depends, FastAPI, File, Form, Query, UploadFile
from fastapi.requests import Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from proofvault import services
from proofvault.db import get_session, init_db
from proofvault.document_store import DocumentStoreClient
from proofvault.errors import OnboardingError
from proofvault.notifications import BackgroundJobs, Notifier
from proofvault.onboarding import OnboardingService
from proofvault.schemas import (
    FolderOut,
    FounderStepIn,
    LeaderboardOut,
    SessionRef,
    StartOverStatusOut,
    TeamMemberCreate,
    TeamMemberIn,
    TeamMemberOut,
    TeamMemberUpdate,
    TeamStepIn,
    VentureStepIn,
)

log = logging.getLogger(__name__)

_jobs = BackgroundJobs()
_store: DocumentStoreClient | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    if _jobs.pending:
        log.info("Waiting for %d background jobs", _jobs.pending)
    await _jobs.drain()


app = FastAPI(
    title="ProofVault",
    version="0.1.0",
    description=(
        "Founder onboarding API: collects founder, venture and team details, "
        "takes a pitch deck, scores it through the document store and files "
        "the founder's evidence into their ProofVault folders."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Onboarding", "description": "Step-by-step founder onboarding."},
        {"name": "Team", "description": "Team members of the onboarding venture."},
        {"name": "Scoring", "description": "Pitch deck analysis. Requires DOCUMENT_STORE_BASE_URL."},
        {"name": "Vault", "description": "Category folders and uploads after onboarding."},
        {"name": "Leaderboard", "description": "Best ProofScore per venture."},
    ],
)


@app.exception_handler(OnboardingError)
async def onboarding_error_handler(request: Request, exc: OnboardingError):
    if exc.status_code >= 500:
        log.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_document_store() -> DocumentStoreClient:
    global _store
    if _store is None:
        _store = DocumentStoreClient()
    return _store


def get_notifier(store: DocumentStoreClient = Depends(get_document_store)) -> Notifier:
    return Notifier(store, jobs=_jobs, session_factory=get_session)


def onboarding_service(
    session: Session = Depends(db_session),
    store: DocumentStoreClient = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
) -> OnboardingService:
    return OnboardingService(session, store, notifier)


# ---------------------------------------------------------------------------
# Routes: Onboarding steps
# ---------------------------------------------------------------------------


@app.post("/api/onboarding/session", tags=["Onboarding"], summary="Start or resume an onboarding session")
async def start_session(body: SessionRef | None = None, svc: OnboardingService = Depends(onboarding_service)):
    record = svc.initialize_session(body.session_id if body else None)
    return {"session_id": record.session_id, "current_step": record.current_step}


@app.post("/api/onboarding/founder", tags=["Onboarding"], summary="Submit the founder profile")
async def submit_founder(body: FounderStepIn, svc: OnboardingService = Depends(onboarding_service)):
    return svc.complete_founder_step(body.session_id, body)


@app.post("/api/onboarding/venture", tags=["Onboarding"], summary="Submit venture details and create vault folders")
async def submit_venture(body: VentureStepIn, svc: OnboardingService = Depends(onboarding_service)):
    return await svc.complete_venture_step(body.session_id, body)


@app.post("/api/onboarding/team/members", response_model=TeamMemberOut, status_code=201,
          tags=["Team"], summary="Add a team member to the session's venture")
async def add_team_member(body: TeamMemberCreate, svc: OnboardingService = Depends(onboarding_service)):
    member = TeamMemberIn(**body.model_dump(exclude={"session_id"}))
    return svc.add_team_member(body.session_id, member)


@app.get("/api/onboarding/{session_id}/team", response_model=list[TeamMemberOut],
         tags=["Team"], summary="List team members of the session's venture")
async def list_team_members(session_id: str, svc: OnboardingService = Depends(onboarding_service)):
    return svc.list_team_members(session_id)


@app.put("/api/team-members/{member_id}", response_model=TeamMemberOut,
         tags=["Team"], summary="Update a team member")
async def update_team_member(member_id: str, body: TeamMemberUpdate,
                             svc: OnboardingService = Depends(onboarding_service)):
    return svc.update_team_member(member_id, body.model_dump(exclude_unset=True))


@app.delete("/api/team-members/{member_id}", tags=["Team"], summary="Delete a team member")
async def delete_team_member(member_id: str, svc: OnboardingService = Depends(onboarding_service)):
    svc.delete_team_member(member_id)
    return {"ok": True}


@app.post("/api/onboarding/team", tags=["Onboarding"], summary="Complete the team step")
async def submit_team(body: TeamStepIn, svc: OnboardingService = Depends(onboarding_service)):
    return svc.complete_team_step(body.session_id, body.members)


@app.post("/api/onboarding/upload", tags=["Onboarding"], summary="Upload the pitch deck (PDF, PPT or PPTX, max 10MB)")
async def upload_pitch_deck(
    session_id: str = Form(...),
    file: UploadFile = File(...),
    svc: OnboardingService = Depends(onboarding_service),
):
    content = await file.read()
    return svc.handle_document_upload(session_id, file.filename or "", content, file.content_type)


@app.post("/api/onboarding/submit-for-scoring", tags=["Scoring"], summary="Analyse the uploaded pitch deck")
async def submit_for_scoring(body: SessionRef, svc: OnboardingService = Depends(onboarding_service)):
    return await svc.submit_for_scoring(body.session_id)


@app.get("/api/onboarding/{session_id}", tags=["Onboarding"], summary="Session progress summary")
async def get_onboarding_session(session_id: str, svc: OnboardingService = Depends(onboarding_service)):
    return svc.get_session_summary(session_id)


@app.get("/api/onboarding/{session_id}/status", response_model=StartOverStatusOut,
         tags=["Onboarding"], summary="Failed-attempt counters and start-over eligibility")
async def get_onboarding_status(session_id: str, svc: OnboardingService = Depends(onboarding_service)):
    return svc.get_status(session_id)


@app.post("/api/onboarding/start-over", tags=["Onboarding"], summary="Abandon the session and start again once")
async def start_over(body: SessionRef, svc: OnboardingService = Depends(onboarding_service)):
    return svc.start_over(body.session_id)


# ---------------------------------------------------------------------------
# Routes: Vault & Leaderboard
# ---------------------------------------------------------------------------


@app.post("/api/vault/upload", tags=["Vault"], summary="Upload a file into a ProofVault category folder")
async def vault_upload(
    founder_id: str = Form(...),
    category: str = Form(...),
    file: UploadFile = File(...),
    svc: OnboardingService = Depends(onboarding_service),
):
    content = await file.read()
    return await svc.upload_to_category(founder_id, category, file.filename or "", content, file.content_type)


@app.get("/api/ventures/{venture_id}/folders", response_model=list[FolderOut],
         tags=["Vault"], summary="Category folders of a venture")
async def venture_folders(venture_id: str, session: Session = Depends(db_session)):
    return services.list_folders(session, venture_id)


@app.get("/api/leaderboard", response_model=list[LeaderboardOut],
         tags=["Leaderboard"], summary="Ventures ranked by best ProofScore")
async def leaderboard(limit: int = Query(50, ge=1, le=500), session: Session = Depends(db_session)):
    return services.list_leaderboard(session, limit)


@app.get("/api/health", tags=["Onboarding"], summary="Service health and document store configuration")
async def health(store: DocumentStoreClient = Depends(get_document_store)) -> dict[str, Any]:
    return {"status": "ok", "document_store": store.status(), "background_jobs": _jobs.pending}


def main():
    import uvicorn
    uvicorn.run("proofvault.app:app", host="127.0.0.1", port=5000, reload=True)
