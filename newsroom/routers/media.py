from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.dependencies import PaginationParams
from newsroom.models import User
from newsroom.permissions import require_permission
from newsroom.ratelimit import api_rate_limit, upload_rate_limit
from newsroom.responses import paginated, success
from newsroom.schemas import SearchQuery
from newsroom.services import media_service
from newsroom.storage import ObjectStorage, get_storage
from newsroom.validation import validate_request

require_uploader = require_permission("media", "upload")

router = APIRouter(
    prefix="/api/media",
    tags=["media"],
    dependencies=[Depends(api_rate_limit), Depends(require_uploader)],
)


@router.post("/upload", status_code=201, dependencies=[Depends(upload_rate_limit)])
async def upload(
    file: UploadFile = File(...),
    user: User = Depends(require_uploader),
    storage: ObjectStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    return success(await media_service.upload_one(db, storage, file, user), "File uploaded successfully")


@router.post("/upload-multiple", status_code=201, dependencies=[Depends(upload_rate_limit)])
async def upload_multiple(
    files: list[UploadFile] = File(...),
    user: User = Depends(require_uploader),
    storage: ObjectStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    media = await media_service.upload_many(db, storage, files, user)
    return success(media, f"{len(media)} files uploaded successfully")


@router.get("")
async def list_media(
    pagination: PaginationParams = Depends(),
    user: User = Depends(require_uploader),
    db: AsyncSession = Depends(get_db),
):
    items, total = await media_service.list_media(db, user, pagination.offset, pagination.limit)
    return paginated(items, pagination.page, pagination.limit, total)


@router.get("/stats")
async def media_stats(user: User = Depends(require_uploader), db: AsyncSession = Depends(get_db)):
    return success(await media_service.get_media_stats(db, user))


@router.get("/search")
async def search_media(
    query: SearchQuery = Depends(validate_request(SearchQuery, "query")),
    pagination: PaginationParams = Depends(),
    user: User = Depends(require_uploader),
    db: AsyncSession = Depends(get_db),
):
    items, total = await media_service.search_media(db, query.q, user, pagination.offset, pagination.limit)
    return paginated(items, pagination.page, pagination.limit, total)


@router.get("/my-uploads")
async def my_uploads(
    pagination: PaginationParams = Depends(),
    user: User = Depends(require_uploader),
    db: AsyncSession = Depends(get_db),
):
    items, total = await media_service.my_uploads(db, user, pagination.offset, pagination.limit)
    return paginated(items, pagination.page, pagination.limit, total)


@router.get("/{media_id}")
async def get_media(
    media_id: int,
    user: User = Depends(require_uploader),
    db: AsyncSession = Depends(get_db),
):
    return success(await media_service.get_media(db, media_id, user))


@router.delete("/{media_id}")
async def delete_media(
    media_id: int,
    user: User = Depends(require_uploader),
    storage: ObjectStorage = Depends(get_storage),
    db: AsyncSession = Depends(get_db),
):
    await media_service.delete_media(db, storage, media_id, user)
    return success(message="Media deleted successfully")
