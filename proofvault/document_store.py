"""Async adapter for the external document-store / pitch-deck scoring provider.

The provider exposes webhook-style endpoints under ``{base_url}/webhook``:

- ``/vault/folder/create-structure`` creates a venture root folder and the
  seven ProofVault category folders
- ``/vault/folder/create`` creates a sub-folder
- ``/vault/file/upload`` stores a file in a folder
- ``/score/pitch-deck`` runs the AI analysis and returns the ProofScore payload
- ``/notification/slack`` and ``/email/send`` relay chat-ops and email

Storage calls are secondary to the onboarding flow, so they never fail the
caller: folder-structure creation returns ``None`` and file/folder creation
return clearly marked synthetic responses.  Scoring is the primary operation
and always raises :class:`DocumentStoreError` on failure.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

log = logging.getLogger(__name__)

_USER_AGENT = "ProofVault/1.0"
_DEFAULT_TIMEOUT = 30.0

TIMEOUT_MESSAGE = (
    "Analysis is taking longer than expected. Please try again in a few minutes."
)


class DocumentStoreError(Exception):
    """Provider call failed or returned an unusable payload."""
    def __init__(
        self,
        message: str,
        retryable: bool = False,
        user_action_required: bool = False,
        timeout: bool = False,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.user_action_required = user_action_required
        self.timeout = timeout


@dataclass
class FolderStructure:
    id: str
    url: str
    folders: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url, "folders": dict(self.folders)}


@dataclass
class FolderRef:
    id: str
    url: str = ""
    synthetic: bool = False


@dataclass
class UploadedFile:
    id: str
    name: str
    url: str | None = None
    download_url: str | None = None
    synthetic: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


def _user_action_flag(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    for source in (payload, payload.get("output") or {}):
        if isinstance(source, dict) and (
            source.get("isUserActionRequired") or source.get("is_user_action_required")
        ):
            return True
    return False


def _payload_message(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            val = payload.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
        output = payload.get("output")
        if isinstance(output, dict):
            return _payload_message(output, default)
    return default


class DocumentStoreClient:
    """Thin async client; one short-lived ``httpx.AsyncClient`` per call."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url if base_url is not None else os.environ.get("DOCUMENT_STORE_BASE_URL", "")).rstrip("/")
        self._api_key = api_key or os.environ.get("DOCUMENT_STORE_API_KEY", "")
        self.timeout = timeout or float(os.environ.get("DOCUMENT_STORE_TIMEOUT", _DEFAULT_TIMEOUT))
        self._transport = transport
        if not self.base_url:
            log.warning("DOCUMENT_STORE_BASE_URL not configured")

    def is_configured(self) -> bool:
        return bool(self.base_url)

    def status(self) -> dict[str, Any]:
        return {
            "configured": self.is_configured(),
            "base_url": "[CONFIGURED]" if self.base_url else "[NOT_CONFIGURED]",
        }

    def _endpoint(self, path: str) -> str:
        return f"{self.base_url}/webhook{path}"

    def _client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": _USER_AGENT}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout), headers=headers, transport=self._transport,
        )

    async def _post(
        self, path: str, *, data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None, json: Any = None,
    ) -> httpx.Response:
        if not self.is_configured():
            raise DocumentStoreError("Document store is not configured (DOCUMENT_STORE_BASE_URL)")
        async with self._client() as client:
            return await client.post(self._endpoint(path), data=data, files=files, json=json)

    # ------------------------------------------------------------------
    # Folders and files (best effort)
    # ------------------------------------------------------------------

    async def create_folder_structure(self, folder_name: str) -> FolderStructure | None:
        """Create the venture root folder plus the seven category folders.

        Returns ``None`` on any failure; no synthetic folder ids are invented so
        that category resolution later fails loudly instead of misdirecting.
        """
        try:
            resp = await self._post("/vault/folder/create-structure", data={"folderName": folder_name})
            resp.raise_for_status()
            body = resp.json()
            folders = body.get("folders") or {}
            if not body.get("id") or not isinstance(folders, dict) or not folders:
                log.warning("Folder structure response for %r is incomplete: %s", folder_name, body)
                return None
            return FolderStructure(
                id=str(body["id"]), url=str(body.get("url") or ""),
                folders={str(k): str(v) for k, v in folders.items() if v},
            )
        except Exception as exc:
            log.warning("Folder structure creation failed for %r: %s", folder_name, exc)
            return None

    async def create_folder(self, folder_name: str, parent_folder_id: str) -> FolderRef:
        try:
            resp = await self._post(
                "/vault/folder/create",
                data={"folderName": folder_name, "folder_id": parent_folder_id},
            )
            resp.raise_for_status()
            body = resp.json()
            return FolderRef(id=str(body["id"]), url=str(body.get("url") or ""))
        except Exception as exc:
            log.warning("Folder creation failed for %r in %s, using fallback: %s",
                        folder_name, parent_folder_id, exc)
            return FolderRef(
                id=f"folder-{int(time.time() * 1000)}",
                url=f"https://app.box.com/folder/{parent_folder_id}",
                synthetic=True,
            )

    async def upload_file(
        self, content: bytes, filename: str, folder_id: str, allow_share: bool = True,
    ) -> UploadedFile:
        try:
            resp = await self._post(
                "/vault/file/upload",
                data={"folder_id": folder_id, "allowShare": "true" if allow_share else "false"},
                files={"data": (filename, content)},
            )
            resp.raise_for_status()
            body = resp.json()
            return UploadedFile(
                id=str(body["id"]),
                name=str(body.get("name") or filename),
                url=body.get("url"),
                download_url=body.get("download_url") or body.get("downloadUrl"),
                extra={k: v for k, v in body.items() if k not in ("id", "name", "url", "download_url")},
            )
        except Exception as exc:
            log.warning("Upload of %s to folder %s failed, using fallback: %s", filename, folder_id, exc)
            stamp = int(time.time() * 1000)
            return UploadedFile(
                id=f"file-{stamp}",
                name=filename,
                url=f"https://app.box.com/file/{folder_id}/{filename}",
                download_url=f"https://api.box.com/2.0/files/{stamp}/content",
                synthetic=True,
            )

    # ------------------------------------------------------------------
    # Scoring (always surfaces failure)
    # ------------------------------------------------------------------

    async def score_pitch_deck(self, content: bytes, filename: str) -> dict[str, Any]:
        """Submit a pitch deck for analysis and return the raw provider payload."""
        try:
            resp = await self._post("/score/pitch-deck", files={"data": (filename, content)})
        except DocumentStoreError:
            raise
        except httpx.TimeoutException as exc:
            raise DocumentStoreError(TIMEOUT_MESSAGE, retryable=True, timeout=True) from exc
        except httpx.HTTPError as exc:
            raise DocumentStoreError(f"Scoring request failed: {exc}", retryable=True) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if _user_action_flag(payload):
            raise DocumentStoreError(
                _payload_message(payload, "The document could not be read. Please upload a text-based PDF."),
                user_action_required=True,
            )
        if resp.status_code >= 400:
            raise DocumentStoreError(
                f"Scoring request failed: {resp.status_code} - {_payload_message(payload, resp.text[:200])}",
                retryable=resp.status_code >= 500 or resp.status_code == 429,
            )
        if not isinstance(payload, dict):
            raise DocumentStoreError(f"Scoring returned invalid JSON: {resp.text[:200]}")
        return payload

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def send_notification(self, message: str, channel: str, session_id: str | None = None) -> dict[str, Any]:
        resp = await self._post(
            "/notification/slack",
            json={"message": message, "channel": channel, "onboarding_id": session_id},
        )
        resp.raise_for_status()
        return resp.json() if resp.content else {}

    async def send_email(self, payload: dict[str, Any]) -> dict[str, Any]:
        resp = await self._post("/email/send", json=payload)
        resp.raise_for_status()
        return resp.json() if resp.content else {}
