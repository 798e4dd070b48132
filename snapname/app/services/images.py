"""Image management on top of the upstream image store.

Every upstream call runs under the retry policy. Uploads, searches and
destroys are safe to repeat: a failed call has not confirmed any effect.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from snapname.app.core.logging import get_logger
from snapname.app.exceptions import ImageNotFoundError, InvalidImageError
from snapname.app.providers.base import GenerationService, ImageStore, UploadedImage
from snapname.app.providers.retry import RetryPolicy, execute_with_retry
from snapname.app.services.validation import validate_image

logger = get_logger(__name__)


def build_transformation(max_dimension: int) -> str:
    """Incoming transformation: fit within the limit, auto quality and format."""
    return f"c_limit,h_{max_dimension},w_{max_dimension}/q_auto:good,f_auto"


@dataclass
class CleanupResult:
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class ImageService:
    """Upload, generate, list and delete images in one store folder."""

    def __init__(
        self,
        store: ImageStore,
        generator: GenerationService,
        retry_policy: Optional[RetryPolicy] = None,
        folder: str = "nicknames",
        max_dimension: int = 2048,
    ):
        self.store = store
        self.generator = generator
        self.retry_policy = retry_policy or RetryPolicy()
        self.folder = folder
        self.transformation = build_transformation(max_dimension)

    async def _upload(
        self,
        file: str,
        cancel_event: Optional[asyncio.Event],
        deadline: Optional[float],
    ) -> UploadedImage:
        return await execute_with_retry(
            lambda: self.store.upload(file, folder=self.folder, transformation=self.transformation),
            self.retry_policy,
            cancel_event=cancel_event,
            deadline=deadline,
        )

    async def upload(
        self,
        data_uri: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> UploadedImage:
        """Validate and store an image sent as a data URI.

        Raises:
            InvalidImageError: If the image fails validation
        """
        validation = validate_image(data_uri)
        if not validation.valid:
            raise InvalidImageError(validation.error or "Invalid image")

        image = await self._upload(data_uri, cancel_event, deadline)
        logger.info(
            f"Uploaded image {image.public_id} ({validation.size_bytes} bytes)",
            extra={"upstream": self.store.name},
        )
        return image

    async def generate_image(
        self,
        prompt: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> UploadedImage:
        """Generate an image from ``prompt`` and keep a copy in the store."""
        generated_url = await execute_with_retry(
            lambda: self.generator.generate_image(prompt),
            self.retry_policy,
            cancel_event=cancel_event,
            deadline=deadline,
        )
        return await self._upload(generated_url, cancel_event, deadline)

    async def delete(self, public_id: str) -> None:
        """Delete an image.

        Raises:
            ImageNotFoundError: If the store has no such image
        """
        deleted = await execute_with_retry(
            lambda: self.store.destroy(public_id), self.retry_policy
        )
        if not deleted:
            raise ImageNotFoundError(public_id)
        logger.info(f"Deleted image {public_id}", extra={"upstream": self.store.name})

    async def list_images(self, max_results: int = 100) -> List[Dict[str, Any]]:
        return await execute_with_retry(
            lambda: self.store.search(f"folder:{self.folder}", max_results=max_results),
            self.retry_policy,
        )

    async def cleanup(self, max_age: str = "1d") -> CleanupResult:
        """Delete images in the folder uploaded more than ``max_age`` ago.

        A failure to delete one image is logged and reported in
        ``CleanupResult.failed``; the remaining images are still processed.
        An image the store no longer has counts as deleted.
        """
        resources = await execute_with_retry(
            lambda: self.store.search(f"folder:{self.folder} AND uploaded_at<{max_age}"),
            self.retry_policy,
        )

        result = CleanupResult()
        for resource in resources:
            public_id = resource["public_id"]
            try:
                deleted = await execute_with_retry(
                    lambda: self.store.destroy(public_id), self.retry_policy
                )
            except Exception as e:
                logger.error(
                    f"Failed to delete image {public_id}: {type(e).__name__}: {e}",
                    extra={"upstream": self.store.name},
                )
                result.failed.append(public_id)
                continue
            if not deleted:
                logger.debug(f"Image {public_id} was already gone during cleanup")
            result.deleted.append(public_id)

        logger.info(
            f"Cleanup completed: {len(result.deleted)} deleted, {len(result.failed)} failed"
        )
        return result
