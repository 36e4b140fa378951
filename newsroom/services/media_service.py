"""
Media service: uploads to object storage plus the ``media`` table.

Uploads are read in chunks and refused as soon as they pass
``MAX_FILE_SIZE``, so an oversized file is never fully buffered.  Every file
of a batch is checked before any of them is stored.
"""
import logging

from fastapi import UploadFile
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from newsroom.config import settings
from newsroom.errors import BadRequestError, NotFoundError, UploadError
from newsroom.models import Media, User
from newsroom.permissions import ensure_owner_or_permitted, is_permitted
from newsroom.services.serializers import iso
from newsroom.storage import ObjectStorage

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _media_to_dict(media: Media) -> dict:
    uploader = media.uploader
    return {
        "id": media.id,
        "filename": media.filename,
        "originalName": media.original_name,
        "url": media.url,
        "mimeType": media.mime_type,
        "size": media.size,
        "uploadedBy": media.uploaded_by,
        "uploader": {"id": uploader.id, "name": uploader.name, "email": uploader.email} if uploader else None,
        "createdAt": iso(media.created_at),
    }


def _size_label(size: int) -> str:
    return f"{size / (1024 * 1024):g}MB"


async def read_upload(file: UploadFile) -> bytes:
    """Validate type and size of *file* and return its content."""
    if not file.filename:
        raise UploadError("No file provided")
    allowed = settings.allowed_file_types
    if file.content_type not in allowed:
        raise UploadError(f"Invalid file type. Allowed types: {', '.join(allowed)}")

    chunks: list[bytes] = []
    received = 0
    while chunk := await file.read(CHUNK_SIZE):
        received += len(chunk)
        if received > settings.MAX_FILE_SIZE:
            raise UploadError(f"File too large. Maximum size is {_size_label(settings.MAX_FILE_SIZE)}")
        chunks.append(chunk)
    if received == 0:
        raise UploadError("File is empty")
    return b"".join(chunks)


def _visible_to(viewer: User) -> list:
    if is_permitted(viewer, "media", "view_all"):
        return []
    return [Media.uploaded_by == viewer.id]


async def _page(db: AsyncSession, filters: list, offset: int, limit: int) -> tuple[list[dict], int]:
    total = (await db.execute(select(func.count()).select_from(Media).where(*filters))).scalar_one()
    q = (
        select(Media)
        .where(*filters)
        .options(joinedload(Media.uploader))
        .order_by(Media.created_at.desc(), Media.id.desc())
        .offset(offset)
        .limit(limit)
    )
    rows = (await db.execute(q)).unique().scalars().all()
    return [_media_to_dict(m) for m in rows], total


async def _load(db: AsyncSession, media_id: int) -> Media:
    q = (
        select(Media)
        .where(Media.id == media_id)
        .options(joinedload(Media.uploader))
        .execution_options(populate_existing=True)
    )
    media = (await db.execute(q)).unique().scalar_one_or_none()
    if media is None:
        raise NotFoundError("Media not found")
    return media


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def upload_many(
    db: AsyncSession, storage: ObjectStorage, files: list[UploadFile], uploader: User
) -> list[dict]:
    if not files:
        raise UploadError("No file provided")
    if len(files) > settings.MAX_FILES_PER_UPLOAD:
        raise UploadError(f"Too many files. Maximum is {settings.MAX_FILES_PER_UPLOAD} per upload")

    contents = [await read_upload(f) for f in files]

    stored = []
    try:
        for file, content in zip(files, contents):
            obj = await storage.upload(content, file.filename, file.content_type, folder="media")
            stored.append(obj)
            db.add(
                Media(
                    filename=obj.key,
                    original_name=file.filename,
                    url=obj.url,
                    mime_type=obj.mime_type,
                    size=obj.size,
                    uploaded_by=uploader.id,
                )
            )
        await db.flush()
    except Exception:
        for obj in stored:
            await storage.delete(obj.key)
        raise

    keys = [obj.key for obj in stored]
    rows = (
        await db.execute(
            select(Media)
            .where(Media.filename.in_(keys))
            .options(joinedload(Media.uploader))
            .order_by(Media.id)
            .execution_options(populate_existing=True)
        )
    ).unique().scalars().all()
    logger.info("User id=%d uploaded %d file(s)", uploader.id, len(rows))
    return [_media_to_dict(m) for m in rows]


async def upload_one(db: AsyncSession, storage: ObjectStorage, file: UploadFile, uploader: User) -> dict:
    return (await upload_many(db, storage, [file], uploader))[0]


async def list_media(db: AsyncSession, viewer: User, offset: int, limit: int) -> tuple[list[dict], int]:
    """All media for admins, the viewer's own uploads for everyone else."""
    return await _page(db, _visible_to(viewer), offset, limit)


async def my_uploads(db: AsyncSession, viewer: User, offset: int, limit: int) -> tuple[list[dict], int]:
    return await _page(db, [Media.uploaded_by == viewer.id], offset, limit)


async def search_media(
    db: AsyncSession, term: str | None, viewer: User, offset: int, limit: int
) -> tuple[list[dict], int]:
    if not term:
        raise BadRequestError("Search query is required")
    pattern = f"%{term.lower()}%"
    filters = _visible_to(viewer) + [
        or_(func.lower(Media.filename).like(pattern), func.lower(Media.original_name).like(pattern))
    ]
    return await _page(db, filters, offset, limit)


async def get_media(db: AsyncSession, media_id: int, viewer: User) -> dict:
    media = await _load(db, media_id)
    ensure_owner_or_permitted(viewer, media.uploaded_by, "media", "view_all")
    return _media_to_dict(media)


async def delete_media(db: AsyncSession, storage: ObjectStorage, media_id: int, actor: User) -> None:
    """Remove the stored object first, then the row."""
    media = await _load(db, media_id)
    ensure_owner_or_permitted(actor, media.uploaded_by, "media", "delete_any")
    await storage.delete(media.filename)
    await db.delete(media)
    await db.flush()
    logger.info("Media id=%d deleted by user id=%d", media_id, actor.id)


async def get_media_stats(db: AsyncSession, viewer: User) -> dict:
    filters = _visible_to(viewer)
    files, size = (
        await db.execute(
            select(func.count(), func.coalesce(func.sum(Media.size), 0)).select_from(Media).where(*filters)
        )
    ).one()
    return {
        "totalFiles": files,
        "totalSize": int(size),
        "totalSizeMB": round(int(size) / (1024 * 1024), 2),
    }
