import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.api.v1.deps import get_question_service, get_quota_service
from app.core.config import settings
from app.core.database import get_db
from app.core.middleware import get_current_account
from app.core.rate_limiter import limiter
from app.models.user import User
from app.services.question_service import QuestionService, serialize_question
from app.services.quota_service import QuotaService

router = APIRouter()
logger = logging.getLogger(__name__)


class QuestionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)  # Allows both question_text and questionText

    subject: str = Field(..., min_length=1)
    grade_level: str = Field(..., alias="gradeLevel", min_length=1)
    question_text: str = Field(..., alias="questionText", min_length=5)
    question_type: Literal['explanation', 'exercise', 'quiz'] = Field('explanation', alias="questionType")


class TagsUpdate(BaseModel):
    tags: List[str]


class BulkDeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_ids: List[str] = Field(..., alias="questionIds", min_length=1, max_length=50)


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.question_rate_limit)
async def create_question(
    request: Request,
    body: QuestionCreate,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    """
    Ask the tutor a question.
    Consumes one question from the caller's daily quota; 429 once it is used up.
    """
    logger.info(f"create_question: Entry - user: {account.id}, subject: {body.subject}")

    try:
        result = await question_service.create_question(
            db,
            account.id,
            subject=body.subject,
            grade_level=body.grade_level,
            question_text=body.question_text,
            question_type=body.question_type,
        )
        logger.info(f"create_question: Success - question: {result['question']['id']}")
        return {**result['question'], 'quota': result['quota']}
    except Exception as e:
        logger.error(f"create_question: Failure - {e}")
        raise


@router.get("")
async def list_questions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    subject: Optional[str] = None,
    grade_level: Optional[str] = Query(None, alias="gradeLevel"),
    question_type: Optional[Literal['explanation', 'exercise', 'quiz']] = Query(None, alias="questionType"),
    is_bookmarked: Optional[bool] = Query(None, alias="isBookmarked"),
    search: Optional[str] = None,
    sort_by: Literal['createdAt', 'updatedAt', 'subject', 'gradeLevel'] = Query('createdAt', alias="sortBy"),
    sort_order: Literal['asc', 'desc'] = Query('desc', alias="sortOrder"),
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    """Question history for the current user"""
    return question_service.list_questions(
        db,
        account.id,
        page=page,
        limit=limit,
        subject=subject,
        grade_level=grade_level,
        question_type=question_type,
        is_bookmarked=is_bookmarked,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/quota/status")
async def get_quota_status(
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    quota_service: QuotaService = Depends(get_quota_service)
):
    """Today's usage: {used, limit, remaining, resetAt}"""
    logger.info(f"get_quota_status: Entry - user: {account.id}")

    try:
        quota = quota_service.status(db, account.id)
        logger.info(f"get_quota_status: Success - user: {account.id}")
        return quota
    except Exception as e:
        logger.error(f"get_quota_status: Failure - {e}")
        raise


@router.get("/stats/overview")
async def get_question_stats(
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    return question_service.get_stats(db, account.id)


@router.get("/subjects")
async def get_available_subjects(account: User = Depends(get_current_account)):
    return QuestionService.available_subjects()


@router.post("/bulk-delete")
async def bulk_delete_questions(
    body: BulkDeleteRequest,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    logger.info(f"bulk_delete_questions: Entry - user: {account.id}, count: {len(body.question_ids)}")
    return question_service.bulk_delete(db, account.id, body.question_ids)


@router.get("/{question_id}")
async def get_question(
    question_id: str,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    return serialize_question(question_service.get_question(db, question_id, account.id))


@router.patch("/{question_id}/bookmark")
async def toggle_bookmark(
    question_id: str,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    question = question_service.toggle_bookmark(db, question_id, account.id)
    return {'id': question.id, 'isBookmarked': question.is_bookmarked}


@router.patch("/{question_id}/tags")
async def update_tags(
    question_id: str,
    body: TagsUpdate,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    question = question_service.update_tags(db, question_id, account.id, body.tags)
    return {'id': question.id, 'tags': question.tags}


@router.delete("/{question_id}")
async def delete_question(
    question_id: str,
    db: Session = Depends(get_db),
    account: User = Depends(get_current_account),
    question_service: QuestionService = Depends(get_question_service)
):
    """Delete a question. Quota already consumed is not refunded."""
    question_service.delete_question(db, question_id, account.id)
    return {"success": True, "message": "Question deleted"}
