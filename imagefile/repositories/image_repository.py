"""Repository for ImageFile models."""

from uuid import uuid4
from sqlalchemy.ext.asyncio import AsyncSession

from imagefile.db.models import ImageFile
from imagefile.repositories.base import BaseRepository


class ImageRepository(BaseRepository[ImageFile]):
    """Persistence collaborator for image records."""

    def __init__(self, session: AsyncSession):
        super().__init__(ImageFile, session)

    async def save(self, image: ImageFile) -> ImageFile:
        """Assign a durable identifier to a transient record and flush it."""
        if not image.id:
            image.id = str(uuid4())
        return await self.add(image)
