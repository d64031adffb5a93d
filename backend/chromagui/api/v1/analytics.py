"""
统计分析 API
"""
from fastapi import APIRouter, Depends

from chromagui.api.deps import get_analytics
from chromagui.services.analytics import AnalyticsService

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/overview")
async def overview(refresh: bool = False, analytics: AnalyticsService = Depends(get_analytics)):
    """
    系统总览（缓存 5 小时）

    refresh=true 时跳过缓存重新计算
    """
    result = await analytics.overview(refresh=refresh)
    return {"success": True, **result}


@router.get("/collection/{name}")
async def collection_analytics(name: str, analytics: AnalyticsService = Depends(get_analytics)):
    data = await analytics.collection(name)
    return {"success": True, "data": data}


@router.post("/cache/clear")
async def clear_cache(analytics: AnalyticsService = Depends(get_analytics)):
    analytics.cache.clear()
    return {"success": True, "message": "Analytics cache cleared"}


@router.get("/cache/status")
async def cache_status(analytics: AnalyticsService = Depends(get_analytics)):
    return {"success": True, "data": analytics.cache.status()}
