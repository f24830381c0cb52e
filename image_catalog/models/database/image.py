"""Image database model."""
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from image_catalog.core.database import Base
from image_catalog.core.timeutil import utcnow

if TYPE_CHECKING:
    from .tag import ImageTag


class Image(Base):
    """Catalog entry for one stored image file."""

    __tablename__ = "images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(255), nullable=False, unique=True)
    original_filename = Column(String(255), nullable=False)
    content_type = Column(String(50), nullable=False, index=True)
    file_size = Column(BigInteger, nullable=False)
    storage_path = Column(Text, nullable=False, unique=True)
    thumbnail_path = Column(Text, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False)
    # JSON text, checked for well-formedness only; "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", Text, default="{}", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    # Junction rows are removed by ON DELETE CASCADE, never loaded for deletion
    image_tags = relationship(
        "ImageTag",
        back_populates="image",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_images_uploaded_at_id", "uploaded_at", "id"),
        Index("ix_images_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Image(id={self.id}, filename='{self.filename}')>"
