"""Image and nickname endpoints."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Annotated, Any, AsyncIterator

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from snapname.app.core.config import settings
from snapname.app.core.logging import get_logger
from snapname.app.exceptions import InvalidRequestError
from snapname.app.middleware.deadline import get_deadline
from snapname.app.services.images import ImageService
from snapname.app.services.nickname import NicknameService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/image", tags=["image"])

DISCONNECT_POLL_INTERVAL = 0.5


class UploadRequest(BaseModel):
    image: str = ""


class NicknameRequest(BaseModel):
    image_url: str = Field(default="", validation_alias="imageUrl")


class GenerateImageRequest(BaseModel):
    prompt: str = Field(default="", max_length=4000)


class ImageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    image_url: str = Field(alias="imageUrl")
    public_id: str


class NicknameData(BaseModel):
    nickname: str
    analysis: str


class NicknameResponse(BaseModel):
    success: bool = True
    data: NicknameData
    cached: bool


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ImageListResponse(BaseModel):
    success: bool = True
    images: list[dict[str, Any]]


class CleanupResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    deleted_count: int = Field(alias="deletedCount")
    deleted_images: list[str] = Field(alias="deletedImages")
    failed_images: list[str] = Field(alias="failedImages")


def get_nickname_service(request: Request) -> NicknameService:
    return request.app.state.nickname_service


def get_image_service(request: Request) -> ImageService:
    return request.app.state.image_service


NicknameServiceDep = Annotated[NicknameService, Depends(get_nickname_service)]
ImageServiceDep = Annotated[ImageService, Depends(get_image_service)]


@asynccontextmanager
async def cancel_on_disconnect(request: Request) -> AsyncIterator[asyncio.Event]:
    """Yield an event that is set once the client goes away."""
    cancel_event = asyncio.Event()

    async def watch() -> None:
        while not cancel_event.is_set():
            await asyncio.sleep(DISCONNECT_POLL_INTERVAL)
            if await request.is_disconnected():
                logger.info(
                    "Client disconnected, cancelling upstream work",
                    extra={"path": request.url.path},
                )
                cancel_event.set()

    watcher = asyncio.create_task(watch())
    try:
        yield cancel_event
    finally:
        watcher.cancel()
        try:
            await watcher
        except asyncio.CancelledError:
            pass


@router.post("/upload", response_model=ImageResponse)
async def upload_image(body: UploadRequest, request: Request, service: ImageServiceDep) -> ImageResponse:
    """Validate and store an image sent as a base64 data URI."""
    if not body.image:
        raise InvalidRequestError("No image provided")

    async with cancel_on_disconnect(request) as cancel_event:
        image = await service.upload(
            body.image, cancel_event=cancel_event, deadline=get_deadline(request)
        )
    return ImageResponse(image_url=image.url, public_id=image.public_id)


@router.post("/generate-nickname", response_model=NicknameResponse)
async def generate_nickname(
    body: NicknameRequest, request: Request, service: NicknameServiceDep
) -> NicknameResponse:
    """Generate (or fetch from cache) a nickname for an uploaded image."""
    if not body.image_url:
        raise InvalidRequestError("No image URL provided")

    async with cancel_on_disconnect(request) as cancel_event:
        result = await service.generate(
            body.image_url, cancel_event=cancel_event, deadline=get_deadline(request)
        )
    return NicknameResponse(
        data=NicknameData(nickname=result.nickname, analysis=result.analysis),
        cached=result.cached,
    )


@router.post("/generate-image", response_model=ImageResponse)
async def generate_image(
    body: GenerateImageRequest, request: Request, service: ImageServiceDep
) -> ImageResponse:
    """Generate an image from a prompt and store it."""
    if not body.prompt.strip():
        raise InvalidRequestError("No prompt provided")

    async with cancel_on_disconnect(request) as cancel_event:
        image = await service.generate_image(
            body.prompt, cancel_event=cancel_event, deadline=get_deadline(request)
        )
    return ImageResponse(image_url=image.url, public_id=image.public_id)


@router.get("/list", response_model=ImageListResponse)
async def list_images(service: ImageServiceDep) -> ImageListResponse:
    return ImageListResponse(images=await service.list_images())


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_images(service: ImageServiceDep) -> CleanupResponse:
    """Delete images older than the configured maximum age."""
    result = await service.cleanup(settings.cleanup_max_age)
    return CleanupResponse(
        message="Cleanup completed",
        deleted_count=len(result.deleted),
        deleted_images=result.deleted,
        failed_images=result.failed,
    )


@router.delete("/{public_id:path}", response_model=MessageResponse)
async def delete_image(public_id: str, service: ImageServiceDep) -> MessageResponse:
    await service.delete(public_id)
    return MessageResponse(message="Image deleted successfully")
