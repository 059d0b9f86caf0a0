# demarcation/routes/documents.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation import config
from demarcation.db import get_db
from demarcation.models import User
from demarcation.permissions import Capability
from demarcation.routes.auth import get_current_user, require
from demarcation.schemas import DocumentOut, DocumentVerify, MessageOut
from demarcation.services import documents

router = APIRouter(prefix="/api/documents", tags=["documents"])

can_upload = require(Capability.UPLOAD_DOCUMENTS)
can_verify = require(Capability.VERIFY_DOCUMENTS)


@router.post("", response_model=DocumentOut, status_code=201)
async def upload(
    file: UploadFile = File(...),
    document_type: str = Form(..., alias="documentType"),
    plot_id: Optional[int] = Form(None, alias="plotId"),
    log_id: Optional[int] = Form(None, alias="logId"),
    is_public: bool = Form(False, alias="isPublic"),
    user: User = Depends(can_upload),
    db: AsyncSession = Depends(get_db),
):
    # one byte past the limit is enough for the size check to reject it
    content = await file.read(config.MAX_UPLOAD_BYTES + 1)
    return await documents.upload_document(
        db,
        user,
        filename=file.filename,
        content=content,
        mime_type=file.content_type,
        document_type=document_type,
        plot_id=plot_id,
        log_id=log_id,
        is_public=is_public,
    )


@router.get("/plot/{plot_id}", response_model=List[DocumentOut])
async def plot_documents(plot_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await documents.list_documents(db, user, plot_id=plot_id)


@router.get("/log/{log_id}", response_model=List[DocumentOut])
async def log_documents(log_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await documents.list_documents(db, user, log_id=log_id)


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(document_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await documents.get_document(db, user, document_id)


@router.get("/{document_id}/file")
async def download(document_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    document = await documents.get_document(db, user, document_id)
    return FileResponse(
        documents.document_file(document),
        media_type=document.mime_type,
        filename=document.original_filename,
    )


@router.patch("/{document_id}/verify", response_model=DocumentOut)
async def verify(
    document_id: int,
    payload: DocumentVerify,
    user: User = Depends(can_verify),
    db: AsyncSession = Depends(get_db),
):
    return await documents.verify_document(db, user, document_id, payload.status, payload.notes)


@router.delete("/{document_id}", response_model=MessageOut)
async def delete(document_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await documents.deactivate_document(db, user, document_id)
    return {"message": "Document deleted"}
