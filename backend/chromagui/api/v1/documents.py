"""
文档管理 API
提供文档的增删查、批量写入、URL 导入、相似度检索与切分预览接口
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chromagui.api.deps import get_analytics, get_client, get_url_fetcher
from chromagui.services.analytics import AnalyticsService
from chromagui.services.chroma_client import ChromaAPIClient
from chromagui.services.chunking import chunk_text, estimate_chunks
from chromagui.services.ingestion import build_documents_from_fetch
from chromagui.services.url_fetcher import URLFetcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chroma", tags=["documents"])


class AddDocumentRequest(BaseModel):
    """新增/更新文档请求"""
    idField: Optional[str] = None
    document: Optional[Dict[str, Any]] = None
    metadata: List[str] = Field(default_factory=list)
    additionalParams: Dict[str, Any] = Field(default_factory=dict)


class DeleteDocumentRequest(BaseModel):
    additionalParams: Dict[str, Any] = Field(default_factory=dict)


class BatchAddRequest(BaseModel):
    idField: Optional[str] = None
    documents: Optional[List[Dict[str, Any]]] = None
    metadata: List[str] = Field(default_factory=list)


class URLFetchRequest(BaseModel):
    """URL 导入请求"""
    url: Optional[str] = None
    baseId: Optional[str] = None
    authToken: Optional[str] = None
    authType: Optional[str] = None
    enableChunking: bool = False
    chunkingOptions: Dict[str, Any] = Field(default_factory=dict)
    baseMetadata: Dict[str, Any] = Field(default_factory=dict)


class QueryRequest(BaseModel):
    queryText: Optional[str] = None
    nResults: int = 10
    where: Optional[Dict[str, Any]] = None


class ChunkPreviewRequest(BaseModel):
    text: str = ""
    chunkingOptions: Dict[str, Any] = Field(default_factory=dict)


@router.get("/collections/{name}/documents")
async def list_documents(
    name: str,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    client: ChromaAPIClient = Depends(get_client),
):
    """列出集合中的文档，支持 limit / offset 分页"""
    data = await client.list_documents(name, limit=limit, offset=offset)
    return {"success": True, "data": data}


@router.post("/collections/{name}/documents/url-fetch", status_code=201)
async def fetch_url_documents(
    name: str,
    request: URLFetchRequest,
    client: ChromaAPIClient = Depends(get_client),
    fetcher: URLFetcher = Depends(get_url_fetcher),
    analytics: AnalyticsService = Depends(get_analytics),
):
    """
    从 URL 抓取内容并写入集合

    完整流程：
    1. 抓取并解析 URL 内容
    2. 按类型生成文档（CSV 每行一个文档，其它可选切分）
    3. 逐条写入远端集合
    """
    if not request.url or not request.baseId:
        raise HTTPException(status_code=400, detail="Collection name, URL, and base ID are required")

    # URLFetchError 由全局异常处理转换为 400
    fetch_result = await _run_blocking(
        fetcher.fetch, request.url, request.authToken, request.authType
    )

    documents = build_documents_from_fetch(
        request.baseId,
        fetch_result,
        enable_chunking=request.enableChunking,
        chunking_options=request.chunkingOptions,
        base_metadata=request.baseMetadata,
    )
    if not documents:
        raise HTTPException(status_code=400, detail="No content to create documents from")

    result = await client.batch_add_documents(name, documents, "id")
    analytics.invalidate()

    if result["failed"]:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Some documents failed to be created", "data": result},
        )

    logger.info(f"URL 导入完成: {request.url} -> {name}, 文档数: {len(documents)}")
    return {
        "success": True,
        "data": {
            **result,
            "documentsCreated": len(documents),
            "source": fetch_result.type,
            "sourceUrl": request.url,
        },
        "message": f"Successfully created {len(documents)} document(s) from URL",
    }


@router.post("/collections/{name}/documents/batch", status_code=201)
async def batch_add_documents(
    name: str,
    request: BatchAddRequest,
    client: ChromaAPIClient = Depends(get_client),
    analytics: AnalyticsService = Depends(get_analytics),
):
    if not request.idField or request.documents is None:
        raise HTTPException(status_code=400, detail="Collection name, idField, and documents array are required")

    result = await client.batch_add_documents(name, request.documents, request.idField)
    analytics.invalidate()

    if result["failed"]:
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"{result['failed']} document(s) failed", "data": result},
        )
    return {
        "success": True,
        "data": result,
        "message": f"Batch operation complete: {result['successful']} successful, {result['failed']} failed",
    }


@router.post("/collections/{name}/documents", status_code=201)
async def add_document(
    name: str,
    request: AddDocumentRequest,
    client: ChromaAPIClient = Depends(get_client),
    analytics: AnalyticsService = Depends(get_analytics),
):
    if not request.idField or not request.document:
        raise HTTPException(status_code=400, detail="Collection name, idField, and document are required")

    data = await client.add_or_update_document(
        name,
        request.document,
        request.idField,
        request.metadata,
        request.additionalParams,
    )
    analytics.invalidate()
    return {"success": True, "data": data, "message": "Document added/updated successfully"}


@router.delete("/collections/{name}/documents/{document_id}")
async def delete_document(
    name: str,
    document_id: str,
    request: Optional[DeleteDocumentRequest] = None,
    client: ChromaAPIClient = Depends(get_client),
    analytics: AnalyticsService = Depends(get_analytics),
):
    additional_params = request.additionalParams if request else {}
    data = await client.delete_document(name, document_id, additional_params)
    analytics.invalidate()
    return {"success": True, "data": data, "message": f"Document '{document_id}' deleted successfully"}


@router.post("/collections/{name}/query")
async def query_collection(
    name: str,
    request: QueryRequest,
    client: ChromaAPIClient = Depends(get_client),
):
    """相似度检索"""
    if not request.queryText:
        raise HTTPException(status_code=400, detail="Collection name and query text are required")

    data = await client.query(name, request.queryText, request.nResults, request.where)
    return {"success": True, "data": data}


@router.post("/chunking/preview")
async def preview_chunks(request: ChunkPreviewRequest):
    """按给定配置预览切分结果（不写入）"""
    chunks = chunk_text(request.text, request.chunkingOptions)
    return {
        "success": True,
        "data": {
            "estimated": estimate_chunks(request.text, request.chunkingOptions),
            "count": len(chunks),
            "chunks": [chunk.model_dump() for chunk in chunks],
        },
    }


async def _run_blocking(func, *args):
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, func, *args)
