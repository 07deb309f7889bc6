# pdfpipe/models.py
import uuid

from sqlalchemy import (
    TIMESTAMP,
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from pdfpipe.stages import DocumentStatus

Base = declarative_base()


class Document(Base):
    __tablename__ = "documents"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)   # user id who uploaded
    filename = Column(String, nullable=False)
    source_key = Column(String, nullable=False)                          # blob key of the original PDF
    status = Column(String, nullable=False, default=DocumentStatus.UPLOADED.value, index=True)
    page_count = Column(Integer, nullable=True)
    markdown_chunk_count = Column(Integer, nullable=False, default=0)
    text_chunk_count = Column(Integer, nullable=False, default=0)

    # generated artifacts (blob keys)
    raw_html_key = Column(String, nullable=True)
    clean_html_key = Column(String, nullable=True)
    markdown_key = Column(String, nullable=True)
    # full markdown when small enough, always a preview
    markdown_text = Column(Text, nullable=True)
    markdown_preview = Column(Text, nullable=True)
    markdown_char_count = Column(Integer, nullable=True)
    # whole-document plain text, pages joined by a blank line
    text_key = Column(String, nullable=True)
    text_char_count = Column(Integer, nullable=True)

    error = Column(Text, nullable=True)
    failed_stage = Column(String, nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    html_converted_at = Column(TIMESTAMP(timezone=True), nullable=True)
    markdown_converted_at = Column(TIMESTAMP(timezone=True), nullable=True)
    text_extracted_at = Column(TIMESTAMP(timezone=True), nullable=True)

    markdown_chunks = relationship(
        "MarkdownChunk", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )
    text_chunks = relationship(
        "TextChunk", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self):
        return f"<Document id={self.id} status={self.status}>"


class MarkdownChunk(Base):
    __tablename__ = "markdown_chunks"
    __table_args__ = (UniqueConstraint("document_id", "chunk_index", name="uq_markdown_chunks_doc_index"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    char_count = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    document = relationship("Document", back_populates="markdown_chunks")


class TextChunk(Base):
    __tablename__ = "text_chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "page_number", "chunk_index", name="uq_text_chunks_doc_page_index"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page_number = Column(Integer, nullable=False)
    chunk_index = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    char_count = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    document = relationship("Document", back_populates="text_chunks")
