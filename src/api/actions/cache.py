from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from api.dependencies import get_engine
from schemas.requests import CacheInvalidateRequest
from schemas.responses import CacheStageStats, CacheStatsResponse
from services.engine import Engine

router = APIRouter(prefix="/cache", tags=["Cache"])


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(engine: Annotated[Engine, Depends(get_engine)]):
    """Entry counts per cached stage."""
    stats = await run_in_threadpool(engine.cache.stats)
    return CacheStatsResponse(
        scope=engine.cache.scope,
        stages=[CacheStageStats(stage=item["stage"], count=item["count"]) for item in stats],
    )


@router.post("/invalidate")
async def invalidate_cache(
    request: CacheInvalidateRequest,
    engine: Annotated[Engine, Depends(get_engine)],
):
    removed = await run_in_threadpool(engine.cache.invalidate, stage=request.stage, key=request.key)
    return {"removed": removed}
