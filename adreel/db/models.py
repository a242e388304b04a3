from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from adreel.core.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class Platform(str, enum.Enum):
    youtube = "youtube"
    meta = "meta"
    tiktok = "tiktok"
    user_upload = "user_upload"
    auto_ingested = "auto_ingested"
    user_url = "user_url"


class SourceType(str, enum.Enum):
    auto_ingested = "auto_ingested"
    user_upload = "user_upload"
    user_url = "user_url"


class AdJobType(str, enum.Enum):
    REPOST = "REPOST"
    REFRESH = "REFRESH"


ad_tags = Table(
    "ad_tags",
    Base.metadata,
    Column("ad_id", ForeignKey("ads.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    ads: Mapped[List["Ad"]] = relationship(secondary=ad_tags, back_populates="tags")


class Ad(Base):
    __tablename__ = "ads"
    __table_args__ = (
        Index("ix_ads_source_url", "source_url"),
        Index("ix_ads_published_created_at", "published", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    platform: Mapped[Platform] = mapped_column(Enum(Platform), nullable=False)
    industry: Mapped[str | None] = mapped_column(String(128), nullable=True)
    hook_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cta_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    source_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    source_type: Mapped[SourceType] = mapped_column(Enum(SourceType), nullable=False)
    original_owner: Mapped[str | None] = mapped_column(String(128), nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    thumbnail: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    duration_sec: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    tags: Mapped[List[Tag]] = relationship(secondary=ad_tags, back_populates="ads", lazy="selectin")
    jobs: Mapped[List["AdJob"]] = relationship(back_populates="ad", cascade="all, delete-orphan")


class AdUpload(Base):
    __tablename__ = "ad_uploads"
    __table_args__ = (Index("ix_ad_uploads_processed_created_at", "processed", "created_at"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    storage_path: Mapped[str] = mapped_column(String(2048), nullable=False)
    filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    duration_sec: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    remote: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class AdJob(Base):
    __tablename__ = "ad_jobs"
    __table_args__ = (Index("ix_ad_jobs_ad_id_type", "ad_id", "type"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    ad_id: Mapped[str] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[AdJobType] = mapped_column(Enum(AdJobType), nullable=False)
    interval_min: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )

    ad: Mapped[Ad] = relationship(back_populates="jobs")


__all__ = [
    "Ad",
    "AdJob",
    "AdJobType",
    "AdUpload",
    "Platform",
    "SourceType",
    "Tag",
    "ad_tags",
    "new_id",
    "utcnow",
]
