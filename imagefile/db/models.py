"""SQLAlchemy models for the application."""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, LargeBinary, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from imagefile.db.base import Base


class ImageFile(Base):
    """An uploaded image with its derived thumbnail and basic metadata.

    Instances are built transiently by the ingestion layer and only get an
    ``id`` once the repository persists them.
    """
    __tablename__ = "image_files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Declared by the uploader, stored as-is
    file_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    file_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Encoded image content
    file: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    thumbnail: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)

    # Decoded once from `file` at ingestion time
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.current_timestamp(),
        nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<ImageFile id={self.id!r} file_name={self.file_name!r} "
            f"{self.width}x{self.height}>"
        )
