"""
集合管理 API
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from chromagui.api.deps import get_analytics, get_client
from chromagui.exceptions import ChromaAPIError
from chromagui.services.analytics import AnalyticsService
from chromagui.services.chroma_client import ChromaAPIClient, extract_list

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chroma", tags=["collections"])


class CreateCollectionRequest(BaseModel):
    name: Optional[str] = None


class RenameCollectionRequest(BaseModel):
    newName: Optional[str] = None


@router.get("/health")
async def chroma_health(client: ChromaAPIClient = Depends(get_client)):
    """检查远端 ChromaDB 连接状态"""
    data = await client.health()
    return {"success": True, "data": data}


@router.get("/collections")
async def list_collections(client: ChromaAPIClient = Depends(get_client)):
    """列出所有集合，兼容 {collections: [...]} 与直接返回列表两种格式"""
    data = await client.list_collections()
    return {"success": True, "data": extract_list(data, "collections")}


@router.post("/collections", status_code=201)
async def create_collection(
    request: CreateCollectionRequest,
    client: ChromaAPIClient = Depends(get_client),
    analytics: AnalyticsService = Depends(get_analytics),
):
    if not request.name:
        raise HTTPException(status_code=400, detail="Collection name is required and must be a string")

    data = await client.create_collection(request.name)
    analytics.invalidate()
    return {
        "success": True,
        "data": data,
        "message": f"Collection '{request.name}' created successfully",
    }


@router.delete("/collections/{name}")
async def delete_collection(
    name: str,
    client: ChromaAPIClient = Depends(get_client),
    analytics: AnalyticsService = Depends(get_analytics),
):
    data = await client.delete_collection(name)
    analytics.invalidate()
    return {
        "success": True,
        "data": data,
        "message": f"Collection '{name}' deleted successfully",
    }


@router.get("/collections/{name}")
async def get_collection(name: str, client: ChromaAPIClient = Depends(get_client)):
    """集合详情与统计；远端失败时返回 404"""
    try:
        data = await client.get_collection_stats(name)
    except ChromaAPIError as e:
        logger.warning(f"获取集合 {name} 失败: {e}")
        return JSONResponse(status_code=404, content={"success": False, "error": str(e)})
    return {"success": True, "data": data}


@router.post("/collections/{old_name}/rename")
async def rename_collection(
    old_name: str,
    request: RenameCollectionRequest,
    client: ChromaAPIClient = Depends(get_client),
    analytics: AnalyticsService = Depends(get_analytics),
):
    if not request.newName:
        raise HTTPException(status_code=400, detail="Both old and new collection names are required")

    data = await client.rename_collection(old_name, request.newName)
    analytics.invalidate()
    return {
        "success": True,
        "data": data,
        "message": f"Collection '{old_name}' renamed to '{request.newName}' successfully",
    }


@router.get("/collections/{name}/embeddings")
async def get_embeddings(
    name: str,
    limit: Optional[int] = None,
    client: ChromaAPIClient = Depends(get_client),
):
    """获取集合全部向量，用于前端可视化"""
    data = await client.list_documents(
        name,
        include=["embeddings", "documents", "metadatas"],
        limit=limit,
    )

    ids = extract_list(data, "ids")
    embeddings = extract_list(data, "embeddings")
    documents = extract_list(data, "documents")
    metadatas = extract_list(data, "metadatas")

    if not embeddings:
        return {
            "success": True,
            "data": {
                "hasEmbeddings": False,
                "message": "No embeddings found. Documents may not have been embedded yet.",
            },
        }

    points = [
        {
            "id": doc_id,
            "embedding": embeddings[i] if i < len(embeddings) else None,
            "document": (documents[i] if i < len(documents) else None) or "",
            "metadata": (metadatas[i] if i < len(metadatas) else None) or {},
        }
        for i, doc_id in enumerate(ids)
    ]

    return {
        "success": True,
        "data": {
            "hasEmbeddings": True,
            "count": len(points),
            "dimensions": len(embeddings[0]) if embeddings[0] else 0,
            "points": points,
        },
    }
