from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, ForeignKey, CheckConstraint, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from database import Base
from constants import ROOT_PARENT_ID, THUMBNAIL_SIZES
from utils.uuid_helper import generate_uuid, utcnow


class User(Base):
    __tablename__ = 'users'

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("email != ''"),
    )


class AuthSession(Base):
    """
    Opaque login token → user mapping with a fixed expiry.

    Rows are never touched on read, so expires_at is exactly issue time + TTL.
    """
    __tablename__ = 'auth_sessions'

    token = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_auth_sessions_expires', 'expires_at'),
        Index('idx_auth_sessions_user', 'user_id'),
    )


class FileEntry(Base):
    """
    Catalog entry for a folder, file or image.

    - parent_id is ROOT_PARENT_ID or the id of a folder
    - storage_ref is a generated blob path, set once at creation (never for folders)
    - owner_id never changes; is_public is the only mutable attribute
    - seq preserves insertion order for listings
    """
    __tablename__ = 'files'

    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, default=generate_uuid)
    owner_id = Column(String, ForeignKey('users.id'), nullable=False)
    name = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    parent_id = Column(String, nullable=False, default=ROOT_PARENT_ID)
    is_public = Column(Boolean, nullable=False, default=False)
    storage_ref = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    thumbnails = relationship(
        "Thumbnail",
        back_populates="file",
        order_by=lambda: Thumbnail.size.desc(),
        cascade="all, delete-orphan",
    )

    @property
    def is_folder(self) -> bool:
        return self.kind == 'folder'

    @property
    def thumbnail_refs(self) -> dict[int, str]:
        """size → path for every rendition attached so far"""
        return {thumb.size: thumb.path for thumb in self.thumbnails}

    __table_args__ = (
        CheckConstraint("kind IN ('folder', 'file', 'image')"),
        CheckConstraint("name != ''"),
        CheckConstraint("kind != 'folder' OR storage_ref IS NULL", name='ck_folder_has_no_blob'),
        Index('idx_files_owner_parent', 'owner_id', 'parent_id'),
    )


class Thumbnail(Base):
    """One rendition per (file, size); re-rendering overwrites in place."""
    __tablename__ = 'thumbnails'

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_id = Column(String, ForeignKey('files.id'), nullable=False)
    size = Column(Integer, nullable=False)
    path = Column(String, nullable=False)
    generated_at = Column(DateTime, nullable=False, default=utcnow)

    file = relationship("FileEntry", back_populates="thumbnails")

    __table_args__ = (
        UniqueConstraint('file_id', 'size', name='uq_thumbnail_file_size'),
        CheckConstraint("size > 0"),
    )


class Job(Base):
    """
    Durable queue row for a thumbnail job.

    file_id/user_id are nullable on purpose: a malformed job still has to be
    representable so it can be dead-lettered.
    """
    __tablename__ = 'jobs'

    id = Column(String, primary_key=True, default=generate_uuid)
    kind = Column(String, nullable=False, default='THUMBNAIL')
    file_id = Column(String, nullable=True)
    user_id = Column(String, nullable=True)
    sizes = Column(String, nullable=False, default=lambda: ",".join(str(s) for s in THUMBNAIL_SIZES))
    state = Column(String, nullable=False, default='QUEUED')
    retries = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    deliveries = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    failure_category = Column(String, nullable=True)
    available_at = Column(DateTime, nullable=False, default=utcnow)  # Backoff gate
    lease_expires_at = Column(DateTime, nullable=True)
    worker_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    dead_lettered_at = Column(DateTime)

    @property
    def size_list(self) -> list[int]:
        return [int(size) for size in self.sizes.split(",") if size.strip()]

    __table_args__ = (
        CheckConstraint("kind IN ('THUMBNAIL')"),
        CheckConstraint("state IN ('QUEUED', 'RUNNING', 'DONE', 'DEAD')"),
        Index('idx_jobs_state_available', 'state', 'available_at'),
        Index('idx_jobs_file', 'file_id'),
    )
