"""Tag database models."""
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from image_catalog.core.database import Base
from image_catalog.core.timeutil import utcnow

if TYPE_CHECKING:
    from .image import Image


class Tag(Base):
    """Tag model for categorization."""

    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    is_predefined = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    category = Column(String(50), nullable=True, index=True)
    display_order = Column(Integer, default=0, nullable=False)

    # Relationships
    image_tags = relationship(
        "ImageTag",
        back_populates="tag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class ImageTag(Base):
    """Association table for image-tag many-to-many relationship."""

    __tablename__ = "image_tags"

    image_id = Column(
        Integer,
        ForeignKey("images.id", ondelete="CASCADE"),
        primary_key=True
    )
    tag_id = Column(
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
        index=True
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    image = relationship("Image", back_populates="image_tags")
    tag = relationship("Tag", back_populates="image_tags")

    def __repr__(self) -> str:
        return f"<ImageTag(image_id={self.image_id}, tag_id={self.tag_id})>"
