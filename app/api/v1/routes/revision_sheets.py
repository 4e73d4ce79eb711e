import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.api.v1.deps import get_revision_service
from app.core.database import get_db
from app.core.middleware import get_current_account
from app.models.user import User
from app.services.revision_service import RevisionService, serialize_sheet

router = APIRouter()
logger = logging.getLogger(__name__)

ExportFormatName = Literal['PDF', 'WORD', 'TXT']


class RevisionSheetCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    grade_level: str = Field(..., alias="gradeLevel", min_length=1)
    question_ids: List[str] = Field(..., alias="questionIds", min_length=1)
    export_format: ExportFormatName = Field('PDF', alias="exportFormat")


class RevisionSheetUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    subject: Optional[str] = None
    grade_level: Optional[str] = Field(None, alias="gradeLevel")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_revision_sheet(
    body: RevisionSheetCreate,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    revision_service: RevisionService = Depends(get_revision_service)
):
    """Build a markdown revision sheet from the caller's questions"""
    logger.info(f"create_revision_sheet: Entry - user: {account.id}, questions: {len(body.question_ids)}")

    try:
        sheet = revision_service.create_sheet(
            db,
            account.id,
            title=body.title,
            subject=body.subject,
            grade_level=body.grade_level,
            question_ids=body.question_ids,
            export_format=body.export_format,
        )
        logger.info(f"create_revision_sheet: Success - sheet: {sheet.id}")
        return serialize_sheet(sheet)
    except Exception as e:
        logger.error(f"create_revision_sheet: Failure - {e}")
        raise


@router.get("")
async def list_revision_sheets(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    subject: Optional[str] = None,
    grade_level: Optional[str] = Query(None, alias="gradeLevel"),
    export_format: Optional[ExportFormatName] = Query(None, alias="exportFormat"),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    revision_service: RevisionService = Depends(get_revision_service)
):
    return revision_service.list_sheets(
        db,
        account.id,
        page=page,
        limit=limit,
        subject=subject,
        grade_level=grade_level,
        export_format=export_format,
        search=search,
    )


@router.get("/stats/overview")
async def get_revision_stats(
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    revision_service: RevisionService = Depends(get_revision_service)
):
    return revision_service.get_stats(db, account.id)


@router.get("/{sheet_id}")
async def get_revision_sheet(
    sheet_id: str,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    revision_service: RevisionService = Depends(get_revision_service)
):
    return serialize_sheet(revision_service.get_sheet(db, sheet_id, account.id))


@router.patch("/{sheet_id}")
async def update_revision_sheet(
    sheet_id: str,
    body: RevisionSheetUpdate,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    revision_service: RevisionService = Depends(get_revision_service)
):
    sheet = revision_service.update_sheet(
        db,
        sheet_id,
        account.id,
        title=body.title,
        subject=body.subject,
        grade_level=body.grade_level,
    )
    return serialize_sheet(sheet)


@router.delete("/{sheet_id}")
async def delete_revision_sheet(
    sheet_id: str,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    revision_service: RevisionService = Depends(get_revision_service)
):
    revision_service.delete_sheet(db, sheet_id, account.id)
    return {"success": True, "message": "Revision sheet deleted"}


@router.get("/{sheet_id}/download")
async def download_revision_sheet(
    sheet_id: str,
    export_format: Optional[ExportFormatName] = Query(None, alias="format"),
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    revision_service: RevisionService = Depends(get_revision_service)
):
    """Sheet content with the MIME type and filename of the requested format"""
    logger.info(f"download_revision_sheet: Entry - user: {account.id}, sheet: {sheet_id}")
    return revision_service.download(db, sheet_id, account.id, export_format)
