"""SQLAlchemy ORM models for call owners and their recorded calls."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from callguard.common.models import (
    RedactionErrorCode,
    RedactionResult,
    RedactionSegment,
    RedactionStatus,
)
from callguard.config import SSH_BASE_PATH_DEFAULT


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CallOwnerModel(Base):
    """Account whose PBX host stores the call recordings."""

    __tablename__ = "call_owners"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    ssh_host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ssh_port: Mapped[int] = mapped_column(Integer, nullable=False, server_default="22")
    ssh_username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ssh_password: Mapped[str | None] = mapped_column(Text, nullable=True)
    ssh_private_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    ssh_passphrase: Mapped[str | None] = mapped_column(Text, nullable=True)
    ssh_base_path: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=SSH_BASE_PATH_DEFAULT
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Relationships
    calls: Mapped[list["CallModel"]] = relationship(back_populates="owner")


class CallModel(Base):
    """Recorded call with its sanitized transcript and redaction record."""

    __tablename__ = "calls"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    owner_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("call_owners.id"),
        nullable=False,
        index=True,
    )
    recording_path: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )  # on the owner's PBX host, relative or absolute
    local_audio_path: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )  # under LOCAL_RECORDINGS_DIR
    audio_duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)  # sanitized only

    redaction_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=RedactionStatus.NOT_NEEDED.value,
        index=True,
    )  # not_needed, processing, completed, failed
    redacted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="false"
    )
    redacted_segments: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    redacted_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    redaction_error: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    owner: Mapped["CallOwnerModel"] = relationship(back_populates="calls")

    @property
    def redaction_result(self) -> RedactionResult:
        """Redaction fields of this row as a RedactionResult."""
        return RedactionResult(
            status=RedactionStatus(self.redaction_status),
            redacted=bool(self.redacted),
            redacted_segments=[
                RedactionSegment.model_validate(s) for s in self.redacted_segments or []
            ],
            redacted_at=self.redacted_at,
            error_code=(
                RedactionErrorCode(self.redaction_error)
                if self.redaction_error
                else None
            ),
        )
