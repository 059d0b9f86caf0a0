# demarcation/services/documents.py
"""
Supporting documents attached to plots or log entries.

Files live on disk under UPLOAD_DIR; only their metadata is stored in the
database. A document is visible to whoever can see its plot, except that
citizens only see public documents and their own uploads.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import List, Optional

from sqlalchemy import desc, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation import config
from demarcation.errors import AuthorizationError, NotFoundError, ValidationError
from demarcation.models import DemarcationLog, Document, VerificationStatus, utcnow
from demarcation.permissions import Capability, Role, as_role, has_capability, is_staff
from demarcation.services.plots import get_plot
from demarcation.services.scoping import Scope

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: Optional[str]) -> str:
    name = Path(name or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "file"


def _visibility(query, actor):
    if as_role(actor.role) == Role.CITIZEN:
        return query.where(or_(Document.is_public.is_(True), Document.uploaded_by_id == actor.id))
    return query


async def _resolve_target(session: AsyncSession, actor, plot_id: Optional[int], log_id: Optional[int]):
    """Return (plot, log) for an upload/list target, enforcing plot visibility."""
    log = None
    if log_id is not None:
        log = await session.get(DemarcationLog, log_id)
        if log is None or log.is_deleted:
            raise NotFoundError("Log entry not found")
        if plot_id is not None and plot_id != log.plot_id:
            raise ValidationError("Log entry does not belong to that plot")
        plot_id = log.plot_id
    if plot_id is None:
        raise ValidationError("plotId or logId is required")
    plot = await get_plot(session, Scope.for_user(actor), plot_id)
    return plot, log


async def upload_document(
    session: AsyncSession,
    actor,
    *,
    filename: str,
    content: bytes,
    mime_type: str,
    document_type: str,
    plot_id: Optional[int] = None,
    log_id: Optional[int] = None,
    is_public: bool = False,
) -> Document:
    if not has_capability(actor.role, Capability.UPLOAD_DOCUMENTS):
        raise AuthorizationError("You are not allowed to upload documents")
    if not document_type or not document_type.strip():
        raise ValidationError("documentType is required")
    mime_type = (mime_type or "").split(";")[0].strip().lower()
    if mime_type not in config.ALLOWED_MIME_TYPES:
        raise ValidationError(f"File type '{mime_type or 'unknown'}' is not allowed")
    if not content:
        raise ValidationError("Uploaded file is empty")
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise ValidationError(f"File exceeds the {config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit")

    plot, log = await _resolve_target(session, actor, plot_id, log_id)

    folder = Path("logs", str(log.id)) if log is not None else Path("plots", str(plot.id))
    stored_name = f"{uuid.uuid4().hex}-{safe_filename(filename)}"
    relative_path = folder / stored_name
    target = config.UPLOAD_DIR / relative_path
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "wb") as f:
        f.write(content)

    document = Document(
        filename=stored_name,
        original_filename=filename or stored_name,
        file_size=len(content),
        mime_type=mime_type,
        file_path=relative_path.as_posix(),
        document_type=document_type.strip(),
        plot_id=plot.id,
        log_id=log.id if log is not None else None,
        uploaded_by_id=actor.id,
        verification_status=VerificationStatus.PENDING.value,
        is_public=bool(is_public),
        is_active=True,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    try:
        session.add(document)
        await session.flush()
        document.file_url = f"/api/documents/{document.id}/file"
        await session.commit()
    except Exception:
        await session.rollback()
        target.unlink(missing_ok=True)
        raise

    logger.info("document=%s (%s, %d bytes) uploaded to plot=%s by user=%s",
                document.id, mime_type, len(content), plot.id, actor.id)
    return document


async def list_documents(
    session: AsyncSession,
    actor,
    plot_id: Optional[int] = None,
    log_id: Optional[int] = None,
) -> List[Document]:
    plot, log = await _resolve_target(session, actor, plot_id, log_id)
    query = select(Document).where(Document.is_active.is_(True))
    if log is not None:
        query = query.where(Document.log_id == log.id)
    else:
        query = query.where(Document.plot_id == plot.id)
    query = _visibility(query, actor).order_by(desc(Document.created_at), desc(Document.id))
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_document(session: AsyncSession, actor, document_id: int) -> Document:
    query = _visibility(
        select(Document).where(Document.id == document_id, Document.is_active.is_(True)),
        actor,
    )
    document = (await session.execute(query)).scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found")
    # the plot must be visible too
    try:
        await get_plot(session, Scope.for_user(actor), document.plot_id)
    except NotFoundError:
        raise NotFoundError("Document not found") from None
    return document


async def verify_document(
    session: AsyncSession,
    actor,
    document_id: int,
    status: str,
    notes: Optional[str] = None,
) -> Document:
    if not has_capability(actor.role, Capability.VERIFY_DOCUMENTS):
        raise AuthorizationError("Only officers can verify documents")
    status = (status or "").strip().lower()
    if status not in (VerificationStatus.VERIFIED.value, VerificationStatus.REJECTED.value):
        raise ValidationError("status must be 'verified' or 'rejected'")

    document = await get_document(session, actor, document_id)
    document.verification_status = status
    document.verification_notes = notes
    document.verified_by_id = actor.id
    document.verified_at = utcnow()
    document.updated_at = utcnow()
    await session.commit()
    logger.info("document=%s marked %s by user=%s", document.id, status, actor.id)
    return document


async def deactivate_document(session: AsyncSession, actor, document_id: int) -> Document:
    document = await get_document(session, actor, document_id)
    if document.uploaded_by_id != actor.id and not is_staff(actor.role):
        raise AuthorizationError("Only the uploader or staff can delete this document")
    document.is_active = False
    document.updated_at = utcnow()
    await session.commit()
    logger.info("document=%s deactivated by user=%s", document.id, actor.id)
    return document


def document_file(document: Document) -> Path:
    path = config.UPLOAD_DIR / document.file_path
    if not path.is_file():
        raise NotFoundError("File not found on server")
    return path
