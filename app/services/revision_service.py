import logging
import math
import re
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.question import Question
from app.models.revision_sheet import ExportFormat, RevisionSheet
from app.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200

MIME_TYPES = {
    ExportFormat.PDF: ('application/pdf', 'pdf'),
    ExportFormat.WORD: ('application/vnd.openxmlformats-officedocument.wordprocessingml.document', 'docx'),
    ExportFormat.TXT: ('text/plain', 'txt'),
}


def serialize_sheet(sheet: RevisionSheet, include_content: bool = True) -> dict:
    data = {
        'id': sheet.id,
        'title': sheet.title,
        'subject': sheet.subject,
        'gradeLevel': sheet.grade_level,
        'exportFormat': sheet.export_format,
        'questionCount': sheet.question_count,
        'downloadCount': sheet.download_count,
        'createdAt': sheet.created_at.isoformat() if sheet.created_at else None,
        'updatedAt': sheet.updated_at.isoformat() if sheet.updated_at else None,
    }
    if include_content:
        data['content'] = sheet.content
    else:
        content = sheet.content or ''
        data['preview'] = content[:PREVIEW_LENGTH] + ('...' if len(content) > PREVIEW_LENGTH else '')
    return data


def export_filename(title: str, extension: str) -> str:
    return f"{re.sub(r'[^a-zA-Z0-9]', '_', title)}.{extension}"


def render_sheet_content(
    questions: List[Question],
    title: str,
    subject: str,
    grade_level: str,
    generated_on: datetime
) -> str:
    """Markdown revision sheet: header, one section per question, checklist footer."""
    lines = [
        f"# {title}",
        "",
        f"**Subject:** {subject}  ",
        f"**Level:** {grade_level}  ",
        f"**Questions:** {len(questions)}  ",
        f"**Generated on:** {generated_on.strftime('%Y-%m-%d')}  ",
        "",
        "---",
        "",
        "## Questions and answers",
        "",
    ]

    for index, question in enumerate(questions, start=1):
        steps = (question.steps or {}).get('steps', [])
        quiz = (question.quiz or {}).get('questions', [])

        lines += [
            f"### Question {index}: {question.subject}",
            "",
            f"**Question:** {question.question_text}",
            "",
            "**Answer:**",
            question.ai_response,
            "",
        ]

        if steps:
            lines += ["**Step by step:**", ""]
            for step_index, step in enumerate(steps, start=1):
                lines += [f"{step_index}. **{step.get('title', '')}**  ", f"   {step.get('content', '')}", ""]

        if quiz:
            lines += ["**Revision quiz:**", ""]
            for quiz_index, item in enumerate(quiz, start=1):
                lines.append(f"**Q{quiz_index}:** {item.get('question', '')}  ")
                for option_index, option in enumerate(item.get('options', [])):
                    lines.append(f"   {chr(97 + option_index)}) {option}  ")
                lines += ["", f"   *Answer: {chr(97 + int(item.get('correct_answer', 0)))})*", ""]

        lines += ["---", ""]

    lines += [
        "## Revision notes",
        "",
        "- [ ] Re-read every answer",
        "- [ ] Redo the quizzes without looking at the answers",
        "- [ ] List the points that need more work",
        "- [ ] Ask follow-up questions where needed",
        "",
    ]
    return "\n".join(lines)


class RevisionService:
    def __init__(self, analytics: Optional[AnalyticsService] = None):
        self.analytics = analytics or AnalyticsService()
        self.logger = logging.getLogger(__name__)

    def create_sheet(
        self,
        db: Session,
        user_id: str,
        title: str,
        subject: str,
        grade_level: str,
        question_ids: List[str],
        export_format: str = ExportFormat.PDF
    ) -> RevisionSheet:
        """Build a revision sheet from questions the user owns"""
        self.logger.info(f"create_sheet: Entry - user: {user_id}, questions: {len(question_ids)}")

        try:
            requested = list(dict.fromkeys(question_ids))
            if not requested:
                raise ValidationError("At least one question is required", code="NO_QUESTIONS_FOUND")
            if export_format not in ExportFormat.ALL:
                raise ValidationError(f"Invalid export format: {export_format}", code="INVALID_EXPORT_FORMAT")

            owned = {
                q.id: q for q in db.query(Question).filter(
                    Question.user_id == user_id,
                    Question.id.in_(requested)
                ).all()
            }
            invalid = [question_id for question_id in requested if question_id not in owned]
            if invalid:
                raise ValidationError(
                    f"Invalid question IDs: {', '.join(invalid)}",
                    code="INVALID_QUESTION_IDS"
                )

            questions = [owned[question_id] for question_id in requested]
            now = datetime.utcnow()
            sheet = RevisionSheet(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=title,
                subject=subject,
                grade_level=grade_level,
                content=render_sheet_content(questions, title, subject, grade_level, now),
                export_format=export_format,
                question_count=len(questions),
                created_at=now,
            )
            db.add(sheet)
            db.commit()
            db.refresh(sheet)

            self.analytics.log_success(
                action='create_revision_sheet',
                user_id=user_id,
                parameters={'sheet_id': sheet.id, 'question_count': len(questions)}
            )
            self.logger.info(f"create_sheet: Success - sheet: {sheet.id}")
            return sheet
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='create_revision_sheet',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"create_sheet: Failure - {e}")
            raise

    def list_sheets(
        self,
        db: Session,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        subject: Optional[str] = None,
        grade_level: Optional[str] = None,
        export_format: Optional[str] = None,
        search: Optional[str] = None
    ) -> dict:
        self.logger.info(f"list_sheets: Entry - user: {user_id}, page: {page}")

        query = db.query(RevisionSheet).filter(RevisionSheet.user_id == user_id)
        if subject:
            query = query.filter(RevisionSheet.subject == subject)
        if grade_level:
            query = query.filter(RevisionSheet.grade_level == grade_level)
        if export_format:
            query = query.filter(RevisionSheet.export_format == export_format)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(RevisionSheet.title).like(pattern),
                func.lower(RevisionSheet.content).like(pattern),
            ))

        total = query.count()
        sheets = query.order_by(RevisionSheet.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

        self.logger.info(f"list_sheets: Success - user: {user_id}, total: {total}")
        return {
            'sheets': [serialize_sheet(sheet, include_content=False) for sheet in sheets],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': math.ceil(total / limit) if limit else 0,
            },
        }

    def get_sheet(self, db: Session, sheet_id: str, user_id: str) -> RevisionSheet:
        sheet = db.query(RevisionSheet).filter(
            RevisionSheet.id == sheet_id,
            RevisionSheet.user_id == user_id
        ).first()
        if not sheet:
            raise NotFoundError("Revision sheet not found", code="SHEET_NOT_FOUND")
        return sheet

    def update_sheet(
        self,
        db: Session,
        sheet_id: str,
        user_id: str,
        title: Optional[str] = None,
        subject: Optional[str] = None,
        grade_level: Optional[str] = None
    ) -> RevisionSheet:
        self.logger.info(f"update_sheet: Entry - user: {user_id}, sheet: {sheet_id}")

        try:
            sheet = self.get_sheet(db, sheet_id, user_id)
            if title:
                sheet.title = title
            if subject:
                sheet.subject = subject
            if grade_level:
                sheet.grade_level = grade_level
            db.commit()
            db.refresh(sheet)

            self.logger.info(f"update_sheet: Success - sheet: {sheet_id}")
            return sheet
        except Exception as e:
            db.rollback()
            self.logger.error(f"update_sheet: Failure - {e}")
            raise

    def delete_sheet(self, db: Session, sheet_id: str, user_id: str):
        self.logger.info(f"delete_sheet: Entry - user: {user_id}, sheet: {sheet_id}")

        try:
            sheet = self.get_sheet(db, sheet_id, user_id)
            db.delete(sheet)
            db.commit()
            self.logger.info(f"delete_sheet: Success - sheet: {sheet_id}")
        except Exception as e:
            db.rollback()
            self.logger.error(f"delete_sheet: Failure - {e}")
            raise

    def download(self, db: Session, sheet_id: str, user_id: str, export_format: Optional[str] = None) -> dict:
        """
        Return the sheet as a downloadable document and count the download.

        The body is always the markdown text; only the MIME type and file
        extension follow the requested format.
        """
        self.logger.info(f"download: Entry - user: {user_id}, sheet: {sheet_id}, format: {export_format}")

        try:
            sheet = self.get_sheet(db, sheet_id, user_id)
            export_format = (export_format or sheet.export_format).upper()
            if export_format not in MIME_TYPES:
                raise ValidationError(f"Invalid export format: {export_format}", code="INVALID_EXPORT_FORMAT")

            db.query(RevisionSheet).filter(RevisionSheet.id == sheet_id).update(
                {RevisionSheet.download_count: RevisionSheet.download_count + 1},
                synchronize_session=False
            )
            db.commit()

            mime_type, extension = MIME_TYPES[export_format]
            self.analytics.log_success(
                action='download_revision_sheet',
                user_id=user_id,
                parameters={'sheet_id': sheet_id, 'format': export_format}
            )
            self.logger.info(f"download: Success - sheet: {sheet_id}")
            return {
                'content': sheet.content,
                'mimeType': mime_type,
                'filename': export_filename(sheet.title, extension),
            }
        except Exception as e:
            db.rollback()
            self.logger.error(f"download: Failure - {e}")
            raise

    def get_stats(self, db: Session, user_id: str, now: Optional[datetime] = None) -> dict:
        self.logger.info(f"get_stats: Entry - user: {user_id}")

        now = now or datetime.utcnow()
        base = db.query(RevisionSheet).filter(RevisionSheet.user_id == user_id)

        def grouped(column):
            rows = db.query(column, func.count(RevisionSheet.id)).filter(
                RevisionSheet.user_id == user_id
            ).group_by(column).all()
            return {key: count for key, count in rows}

        total_downloads = db.query(func.coalesce(func.sum(RevisionSheet.download_count), 0)).filter(
            RevisionSheet.user_id == user_id
        ).scalar()

        stats = {
            'total': base.count(),
            'thisWeek': base.filter(RevisionSheet.created_at >= now - timedelta(days=7)).count(),
            'thisMonth': base.filter(RevisionSheet.created_at >= now - timedelta(days=30)).count(),
            'totalDownloads': int(total_downloads),
            'bySubject': grouped(RevisionSheet.subject),
            'byFormat': grouped(RevisionSheet.export_format),
            'byGradeLevel': grouped(RevisionSheet.grade_level),
        }
        self.logger.info(f"get_stats: Success - user: {user_id}, total: {stats['total']}")
        return stats
