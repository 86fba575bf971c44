from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP
from sqlalchemy import select

from proofvault import retry_policy, services
from proofvault.db import get_session, init_db, session_scope
from proofvault.document_store import DocumentStoreClient
from proofvault.errors import OnboardingError
from proofvault.models import Venture
from proofvault.notifications import BackgroundJobs, Notifier
from proofvault.onboarding import OnboardingService
from proofvault.sessions import SessionStore

log = logging.getLogger(__name__)

_jobs = BackgroundJobs()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def proofvault_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield
    await _jobs.drain()


mcp = FastMCP(
    "ProofVault",
    instructions=(
        "ProofVault support tools for founder onboarding. "
        "Use find_sessions(email) to locate a founder's sessions, then "
        "get_onboarding_status(session_id) to see step progress and start-over eligibility."
    ),
    lifespan=proofvault_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("proofvault://overview")
def proofvault_overview() -> str:
    """Onboarding steps, retry thresholds and vault categories."""
    from proofvault.folders import CATEGORIES
    from proofvault.sessions import STEP_ORDER

    return json.dumps({
        "system": "ProofVault founder onboarding",
        "steps": list(STEP_ORDER),
        "retry_policy": {
            "start_over_after_failed_attempts": retry_policy.START_OVER_ATTEMPT_THRESHOLD,
            "max_start_overs": retry_policy.MAX_START_OVERS,
            "contact_support_after_failed_attempts": retry_policy.SUPPORT_ATTEMPT_THRESHOLD,
        },
        "vault_categories": CATEGORIES,
        "workflow": [
            "1. find_sessions(email) - sessions for a founder, newest first.",
            "2. get_onboarding_status(session_id) - progress, attempts and start-over flags.",
            "3. get_venture_folders(venture_id) - ProofVault folder mapping.",
            "4. start_over(session_id) - grant the one-time start-over when eligible.",
        ],
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Sessions
# ---------------------------------------------------------------------------


@mcp.tool()
def get_onboarding_status(session_id: str) -> dict:
    """Step progress, failed-analysis count and start-over/support flags for a session."""
    with session_scope() as session:
        record = SessionStore(session).get(session_id)
        if record is None:
            return {"error": f"Session {session_id} not found"}
        return services.session_summary(record)


@mcp.tool()
def find_sessions(email: str) -> list[dict]:
    """All onboarding sessions bound to a founder email, newest first."""
    with session_scope() as session:
        return [services.session_summary(r) for r in SessionStore(session).find_by_email(email)]


@mcp.tool()
async def start_over(session_id: str) -> dict:
    """Abandon a session and issue a fresh one, subject to the retry policy."""
    with session_scope() as session:
        store = DocumentStoreClient()
        svc = OnboardingService(session, store, Notifier(store, jobs=_jobs, session_factory=get_session))
        try:
            return svc.start_over(session_id)
        except OnboardingError as exc:
            return exc.to_dict()


# ---------------------------------------------------------------------------
# Tools: Vault & Leaderboard
# ---------------------------------------------------------------------------


@mcp.tool()
def get_venture_folders(venture_id: str) -> dict:
    """ProofVault category folders for a venture."""
    with session_scope() as session:
        venture = session.execute(select(Venture).where(Venture.id == venture_id)).scalars().first()
        if venture is None:
            return {"error": f"Venture {venture_id} not found"}
        return {
            "venture_id": venture.id,
            "venture_name": venture.name,
            "folders": services.list_folders(session, venture.id),
        }


@mcp.tool()
def get_leaderboard(limit: int = 20) -> list[dict]:
    """Ventures ranked by their best ProofScore."""
    with session_scope() as session:
        return services.list_leaderboard(session, max(1, min(limit, 500)))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the ProofVault MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
