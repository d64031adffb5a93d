"""
导入导出 API
"""
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from chromagui.api.deps import get_analytics, get_client
from chromagui.services.analytics import AnalyticsService
from chromagui.services.chroma_client import ChromaAPIClient
from chromagui.services.export import build_csv_export, build_json_export, normalize_import_documents

router = APIRouter(prefix="/api/chroma", tags=["import_export"])


class ImportRequest(BaseModel):
    documents: Optional[List[Dict[str, Any]]] = None
    idField: str = "id"


@router.get("/collections/{name}/export")
async def export_collection(
    name: str,
    format: str = "json",
    client: ChromaAPIClient = Depends(get_client),
):
    """导出集合，format 为 json（默认，含向量）或 csv"""
    data = await client.list_documents(name, include=["embeddings", "documents", "metadatas"])

    if format == "csv":
        return Response(
            content=build_csv_export(data),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{name}_export.csv"'},
        )

    return Response(
        content=json.dumps(build_json_export(name, data), ensure_ascii=False),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{name}_export.json"'},
    )


@router.post("/collections/{name}/import", status_code=201)
async def import_collection(
    name: str,
    request: ImportRequest,
    client: ChromaAPIClient = Depends(get_client),
    analytics: AnalyticsService = Depends(get_analytics),
):
    if request.documents is None:
        raise HTTPException(status_code=400, detail="Collection name and documents array are required")

    result = await client.batch_add_documents(
        name,
        normalize_import_documents(request.documents),
        request.idField,
    )
    analytics.invalidate()

    if result["failed"]:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"{result['failed']} document(s) failed", "data": result},
        )
    return {
        "success": True,
        "data": result,
        "message": f"Import complete: {result['successful']} successful, {result['failed']} failed",
    }
