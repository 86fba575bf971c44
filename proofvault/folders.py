"""ProofVault category folders and the single category -> folder id lookup."""
from __future__ import annotations

import json
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from proofvault.document_store import FolderStructure
from proofvault.errors import FolderStructureMissingError, ValidationFailedError
from proofvault.models import ProofVaultFolder, Venture

log = logging.getLogger(__name__)

CATEGORIES: dict[str, str] = {
    "0_Overview": "Overview",
    "1_Problem_Proof": "Problem Proofs",
    "2_Solution_Proof": "Solution Proofs",
    "3_Demand_Proof": "Demand Proofs",
    "4_Credibility_Proof": "Credibility Proofs",
    "5_Commercial_Proof": "Commercial Proofs",
    "6_Investor_Pack": "Investor Pack",
}

OVERVIEW = "0_Overview"

_BY_DISPLAY = {label.lower(): key for key, label in CATEGORIES.items()}


def display_name(category: str) -> str:
    return CATEGORIES.get(category, category)


def normalize_category(value: str) -> str:
    """Accept ``3_Demand_Proof`` or a display name like ``Demand Proofs``."""
    v = (value or "").strip()
    if v in CATEGORIES:
        return v
    key = _BY_DISPLAY.get(v.lower())
    if key:
        return key
    raise ValidationFailedError(
        f"Unknown ProofVault category '{value}'",
        details={"allowed_categories": list(CATEGORIES)},
    )


def latest_venture(session: Session, founder_id: str) -> Venture | None:
    return session.execute(
        select(Venture).where(Venture.founder_id == founder_id).order_by(Venture.created_at.desc())
    ).scalars().first()


def save_folder_structure(session: Session, venture: Venture, structure: FolderStructure) -> list[ProofVaultFolder]:
    """Persist the provider's folder ids on the venture and as category rows."""
    venture.folder_structure_json = json.dumps(structure.to_dict())
    existing = {
        f.category: f for f in session.execute(
            select(ProofVaultFolder).where(ProofVaultFolder.venture_id == venture.id)
        ).scalars()
    }
    rows: list[ProofVaultFolder] = []
    for category, folder_id in structure.folders.items():
        if category not in CATEGORIES:
            log.warning("Ignoring unknown category %r in folder structure for %s", category, venture.name)
            continue
        row = existing.get(category)
        if row is None:
            row = ProofVaultFolder(venture_id=venture.id, category=category)
            session.add(row)
        row.folder_id = folder_id
        row.parent_folder_id = structure.id
        row.shared_url = structure.url
        rows.append(row)
    session.flush()
    return rows


def folder_mapping(session: Session, venture_id: str) -> dict[str, str]:
    rows = session.execute(
        select(ProofVaultFolder).where(ProofVaultFolder.venture_id == venture_id)
    ).scalars().all()
    return {r.category: r.folder_id for r in rows}


def resolve_folder_id(
    session: Session,
    category: str,
    *,
    founder_id: str | None = None,
    venture_id: str | None = None,
) -> str:
    """Return the external folder id for *category*.

    The venture is either given directly or the founder's most recent one.
    Raises :class:`FolderStructureMissingError` when the category is unmapped.
    """
    category = normalize_category(category)
    if venture_id is None:
        if founder_id is None:
            raise ValueError("resolve_folder_id needs founder_id or venture_id")
        venture = latest_venture(session, founder_id)
        if venture is None:
            raise FolderStructureMissingError(
                "ProofVault folder structure not found: no venture exists for this founder",
            )
        venture_id = venture.id

    folder_id = folder_mapping(session, venture_id).get(category)
    if not folder_id:
        raise FolderStructureMissingError(
            f"ProofVault folder structure not found for category '{category}'",
            details={"category": category, "venture_id": venture_id},
        )
    return folder_id
