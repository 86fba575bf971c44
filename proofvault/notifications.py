"""Fire-and-forget notification fan-out and post-scoring follow-up jobs.

Nothing in here may affect an HTTP response: jobs are detached ``asyncio``
tasks, their failures are logged and dropped.
"""
from __future__ import annotations

import asyncio
import logging
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Coroutine

from sqlalchemy.orm import Session

from proofvault.document_store import DocumentStoreClient
from proofvault.models import Founder
from proofvault.utils import utcnow

log = logging.getLogger(__name__)

TOKEN_TTL = timedelta(hours=24)

# async (session_id) -> url or None
ArtifactGenerator = Callable[[str], Awaitable[str | None]]


class BackgroundJobs:
    """Detached asyncio tasks with strong references and an error log sink."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task | None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            log.warning("No running event loop, dropped background job %s", label)
            return None
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finish(t, label))
        return task

    def _finish(self, task: asyncio.Task, label: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            log.warning("Background job %s was cancelled", label)
            return
        exc = task.exception()
        if exc is not None:
            log.warning("Background job %s failed: %s", label, exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every job spawned so far (shutdown, tests)."""
        while self._tasks:
            tasks = list(self._tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(t for t in tasks if t.done())


@dataclass
class FollowUpContext:
    session_id: str
    founder_id: str
    founder_name: str
    founder_email: str
    venture_id: str
    venture_name: str
    proof_score: int


class Notifier:
    def __init__(
        self,
        store: DocumentStoreClient,
        jobs: BackgroundJobs | None = None,
        channel: str | None = None,
        session_factory: Callable[[], Session] | None = None,
        certificate_generator: ArtifactGenerator | None = None,
        report_generator: ArtifactGenerator | None = None,
        base_url: str | None = None,
    ):
        self.store = store
        self.jobs = jobs or BackgroundJobs()
        self.channel = channel or os.environ.get("NOTIFICATION_CHANNEL", "#notifications")
        self.session_factory = session_factory
        self.certificate_generator = certificate_generator
        self.report_generator = report_generator
        self.base_url = (base_url or os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")).rstrip("/")

    def notify(self, session_id: str, message: str) -> None:
        """Post a chat-ops message without waiting for it."""
        if not self.store.is_configured():
            return
        text = f"`Onboarding Id : {session_id}`\n{message}"
        self.jobs.spawn(self.store.send_notification(text, self.channel, session_id), "notify")

    def schedule_follow_up(self, ctx: FollowUpContext) -> None:
        """Certificate, report and welcome email after a successful analysis."""
        self.jobs.spawn(self._follow_up(ctx), f"follow-up:{ctx.session_id}")

    async def _follow_up(self, ctx: FollowUpContext) -> None:
        try:
            certificate_url = await self._generate("certificate", self.certificate_generator, ctx.session_id)
            report_url = await self._generate("report", self.report_generator, ctx.session_id)
            if certificate_url is False or report_url is False:
                log.info("Skipping onboarding email for %s: artifact generation failed", ctx.venture_name)
                return
            await self.send_onboarding_email(ctx, certificate_url or None, report_url or None)
        except Exception:
            log.exception("Follow-up generation failed for venture %s", ctx.venture_name)

    async def _generate(self, label: str, generator: ArtifactGenerator | None, session_id: str) -> str | bool | None:
        """Return the artifact url, ``None`` when not configured, ``False`` on failure."""
        if generator is None:
            log.debug("No %s generator configured", label)
            return None
        try:
            url = await generator(session_id)
        except Exception as exc:
            log.warning("%s generation failed for session %s: %s", label.capitalize(), session_id, exc)
            return False
        log.info("%s generated for session %s: %s", label.capitalize(), session_id, url)
        return url

    async def send_onboarding_email(
        self, ctx: FollowUpContext, certificate_url: str | None, report_url: str | None,
    ) -> None:
        if not self.store.is_configured():
            log.info("Document store not configured, skipping onboarding email")
            return
        if not (ctx.founder_email and ctx.venture_name):
            log.warning("Missing email fields for session %s", ctx.session_id)
            return

        token = secrets.token_urlsafe(32)
        if self.session_factory is not None:
            session = self.session_factory()
            try:
                founder = session.get(Founder, ctx.founder_id)
                if founder is not None:
                    founder.verification_token = token
                    founder.token_expires_at = utcnow() + TOKEN_TTL
                    session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

        first_name = (ctx.founder_name or "Founder").split(" ")[0] or "Founder"
        payload = {
            "type": "onboarding",
            "name": first_name,
            "email": ctx.founder_email,
            "certificate": certificate_url,
            "report": report_url,
            "verificationUrl": f"{self.base_url}/api/auth/verify-email/{token}",
        }
        await self.store.send_email(payload)
        log.info("Onboarding email sent to %s for %s", ctx.founder_email, ctx.venture_name)
        self.notify(ctx.session_id, f"Welcome Email Sent to {first_name} ({ctx.founder_email}) - {ctx.venture_name}")
