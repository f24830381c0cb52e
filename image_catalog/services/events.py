"""Domain events emitted after image mutations."""
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field

from image_catalog.core.timeutil import utcnow
from image_catalog.models.schemas import ImageResponse

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    IMAGE_CREATED = "image.created"
    IMAGE_UPDATED = "image.updated"
    IMAGE_DELETED = "image.deleted"


class DomainEvent(BaseModel):
    """Envelope for a published event."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: EventType
    aggregate_id: str
    version: int = 1
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


def _image_data(image: ImageResponse) -> Dict[str, Any]:
    return {
        "image_id": image.id,
        "filename": image.filename,
        "original_filename": image.original_filename,
        "content_type": image.content_type,
        "file_size": image.file_size,
        "storage_path": image.storage_path,
        "tags": [tag.name for tag in image.tags],
    }


class EventPublisher:
    """
    Event sink used when nothing listens.

    Subclasses override :meth:`publish`. Callers treat publishing as best
    effort and never let a failure here undo a committed mutation.
    """

    async def publish(self, event: DomainEvent) -> None:
        return None

    async def on_image_created(self, image: ImageResponse) -> None:
        await self.publish(
            DomainEvent(
                type=EventType.IMAGE_CREATED,
                aggregate_id=str(image.id),
                data=_image_data(image),
            )
        )

    async def on_image_updated(self, image: ImageResponse) -> None:
        await self.publish(
            DomainEvent(
                type=EventType.IMAGE_UPDATED,
                aggregate_id=str(image.id),
                data=_image_data(image),
            )
        )

    async def on_image_deleted(self, image: ImageResponse) -> None:
        await self.publish(
            DomainEvent(
                type=EventType.IMAGE_DELETED,
                aggregate_id=str(image.id),
                data=_image_data(image),
            )
        )


class LoggingEventPublisher(EventPublisher):
    """Write every event to the application log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    async def publish(self, event: DomainEvent) -> None:
        logger.log(self.level, f"event {event.type.value}: {event.model_dump_json()}")
