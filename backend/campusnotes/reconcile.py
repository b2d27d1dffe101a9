"""
CampusNotes Backend: Storage Reconciliation Sweep
===================================================

What:  Brings the object store and the notes table back into agreement after
       crashes that the upload workflow cannot compensate for.
How:   Compares stored object keys with note ids.

Findings:
    orphan_files        PDFs/previews whose note id has no row and whose
                        mtime is older than ORPHAN_GRACE_SECONDS (younger
                        files may belong to an upload still in flight)
    stale_preview_flags notes flagged has_preview_image whose preview file
                        is missing
    missing_pdfs        notes whose PDF is missing (reported only)

Without --apply nothing is changed.

Usage:
    python -m campusnotes.reconcile [--apply]
"""

import argparse
import asyncio
import logging
import sys
import time
import uuid
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campusnotes.config import Settings, settings
from campusnotes.database import async_session_factory, dispose_engine
from campusnotes.exceptions import FileStorageError
from campusnotes.models.note import Note
from campusnotes.services.object_store import ObjectStore

logger = logging.getLogger(__name__)


class ReconcileReport(BaseModel):
    applied: bool = False
    orphan_files: List[str] = Field(default_factory=list)
    deleted_files: List[str] = Field(default_factory=list)
    stale_preview_flags: List[uuid.UUID] = Field(default_factory=list)
    missing_pdfs: List[uuid.UUID] = Field(default_factory=list)


def note_id_from_key(key: str) -> Optional[uuid.UUID]:
    """`notes/uploaded/<uuid>.pdf` → UUID, None for foreign files."""
    stem = key.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    try:
        return uuid.UUID(stem)
    except ValueError:
        return None


async def reconcile(
    db: AsyncSession,
    store: ObjectStore,
    config: Settings,
    apply: bool = False,
    now: Optional[float] = None,
) -> ReconcileReport:
    report = ReconcileReport(applied=apply)
    cutoff = (now if now is not None else time.time()) - config.orphan_grace_seconds

    rows = (await db.execute(select(Note.id, Note.has_preview_image))).all()
    known_ids = {row.id for row in rows}

    # ── Orphaned objects ──────────────────────────────────────────────────
    for prefix in (store.notes_prefix, store.previews_prefix):
        for key in await store.list_keys(prefix):
            note_id = note_id_from_key(key)
            if note_id is None or note_id in known_ids:
                continue
            if await store.modified_at(key) > cutoff:
                logger.debug("Skipping recent unreferenced object %s", key)
                continue
            report.orphan_files.append(key)
            if apply:
                try:
                    if await store.delete(key):
                        report.deleted_files.append(key)
                except FileStorageError as e:
                    logger.error("Could not delete orphan %s: %s", key, e.message)

    # ── Rows whose objects are missing ────────────────────────────────────
    for row in rows:
        if not await store.exists(store.note_key(row.id)):
            report.missing_pdfs.append(row.id)
            logger.warning("Note %s has no PDF in the object store", row.id)
        if row.has_preview_image and not await store.exists(store.preview_key(row.id)):
            report.stale_preview_flags.append(row.id)

    if apply and report.stale_preview_flags:
        await db.execute(
            update(Note)
            .where(Note.id.in_(report.stale_preview_flags))
            .values(has_preview_image=False)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    logger.info(
        "Reconciliation %s: %d orphan files (%d deleted), %d stale preview flags, %d missing PDFs",
        "applied" if apply else "dry run",
        len(report.orphan_files),
        len(report.deleted_files),
        len(report.stale_preview_flags),
        len(report.missing_pdfs),
    )
    return report


async def _run(apply: bool) -> ReconcileReport:
    store = ObjectStore(settings)
    try:
        async with async_session_factory() as db:
            return await reconcile(db, store, settings, apply=apply)
    finally:
        await dispose_engine()


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="campusnotes-reconcile",
        description="Find and remove stored files that no note references.",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Delete orphan files and clear stale preview flags (default: report only)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    from campusnotes.main import setup_logging

    args = create_parser().parse_args(argv)
    setup_logging()
    report = asyncio.run(_run(args.apply))
    print(report.model_dump_json(indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
