from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from datetime import datetime

class Base(DeclarativeBase):
    pass

class PipelineRevision(Base):
    __tablename__ = "pipeline_revisions"
    __table_args__ = (sa.UniqueConstraint("project_id", "revision"),)
    id: Mapped[str] = mapped_column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    project_id: Mapped[str] = mapped_column(sa.Text, nullable=False, index=True)
    revision: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    repo: Mapped[str] = mapped_column(sa.Text, nullable=False)
    fingerprint: Mapped[str] = mapped_column(sa.Text, nullable=False)
    graph_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
    stages_json: Mapped[list] = mapped_column(JSONB, nullable=False, server_default=sa.text("'[]'::jsonb"))
    created_at: Mapped[datetime] = mapped_column(sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False)

class PipelineRunRecord(Base):
    __tablename__ = "pipeline_runs"
    id: Mapped[str] = mapped_column(UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))
    revision_id: Mapped[str] = mapped_column(UUID(as_uuid=True), sa.ForeignKey("pipeline_revisions.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False)
    state_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = mapped_column(sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False)
