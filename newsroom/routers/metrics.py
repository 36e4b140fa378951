from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.database import get_db
from newsroom.models import Article, Category, Comment, Media, Tag, User
from newsroom.permissions import require_permission
from newsroom.ratelimit import limiter
from newsroom.responses import success

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.get("", dependencies=[Depends(require_permission("metrics", "read"))])
async def get_metrics(request: Request, db: AsyncSession = Depends(get_db)):
    totals = {}
    for name, model in (
        ("users", User),
        ("articles", Article),
        ("categories", Category),
        ("tags", Tag),
        ("comments", Comment),
        ("media", Media),
    ):
        totals[name] = (await db.execute(select(func.count()).select_from(model))).scalar_one()

    return success(
        {
            "requests": request.app.state.metrics.snapshot(),
            "entities": totals,
            "rateLimitBackend": limiter.backend,
        }
    )
