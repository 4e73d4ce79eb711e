from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime


class ExportFormat:
    PDF = "PDF"
    WORD = "WORD"
    TXT = "TXT"

    ALL = (PDF, WORD, TXT)


class RevisionSheet(Base):
    __tablename__ = "revision_sheets"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    subject = Column(String, nullable=False, index=True)
    grade_level = Column(String, nullable=False)
    content = Column(Text, nullable=False)  # markdown
    export_format = Column(String, nullable=False, default=ExportFormat.PDF)
    question_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="revision_sheets")
