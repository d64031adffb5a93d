"""
请求日志 API
"""
import json
import time
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from chromagui.api.deps import get_log_store
from chromagui.services.request_log import RequestLogStore

router = APIRouter(prefix="/api/logs", tags=["logs"])


@router.get("")
async def get_logs(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    level: Optional[str] = None,
    query: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    store: RequestLogStore = Depends(get_log_store),
):
    result = store.get_logs(
        start_date=startDate,
        end_date=endDate,
        level=level,
        query=query,
        page=page,
        limit=limit,
    )
    return {"success": True, "data": result}


@router.get("/export")
async def export_logs(
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    level: Optional[str] = None,
    query: Optional[str] = None,
    store: RequestLogStore = Depends(get_log_store),
):
    """导出全部匹配日志为 JSON 附件"""
    logs = store.export_logs(start_date=startDate, end_date=endDate, level=level, query=query)
    filename = f"chromagui-logs-{int(time.time() * 1000)}.json"
    return Response(
        content=json.dumps(logs, indent=2, ensure_ascii=False),
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/stats")
async def log_stats(store: RequestLogStore = Depends(get_log_store)):
    return {"success": True, "data": store.get_stats()}


@router.delete("")
async def clear_logs(store: RequestLogStore = Depends(get_log_store)):
    return store.clear_logs()
