"""
FastAPI 应用入口
"""
import logging
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chromagui.api.deps import get_log_store
from chromagui.api.middleware import RequestLoggingMiddleware
from chromagui.api.v1 import analytics, collections, documents, import_export, logs
from chromagui.exceptions import ChromaAPIError, ChunkingConfigError, URLFetchError

load_dotenv()

# 配置日志
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

# 设置第三方库的日志级别
logging.getLogger("urllib3").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

app = FastAPI(
    title="ChromaGUI API",
    version=API_VERSION,
    description="ChromaDB 管理界面后端，代理远端 Chroma API"
)

# 配置 CORS（跨域资源共享）
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 请求日志
app.add_middleware(RequestLoggingMiddleware, get_store=get_log_store)

# 注册路由
app.include_router(collections.router)
app.include_router(documents.router)
app.include_router(import_export.router)
app.include_router(analytics.router)
app.include_router(logs.router)


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error(404, "Endpoint not found", path=str(request.url.path), method=request.method)
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request", details=jsonable_errors(exc))


@app.exception_handler(ChromaAPIError)
async def chroma_api_exception_handler(request: Request, exc: ChromaAPIError):
    return _error(500, str(exc))


@app.exception_handler(URLFetchError)
async def url_fetch_exception_handler(request: Request, exc: URLFetchError):
    return _error(400, str(exc))


@app.exception_handler(ChunkingConfigError)
async def chunking_config_exception_handler(request: Request, exc: ChunkingConfigError):
    return _error(400, str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"处理请求时发生错误: {request.method} {request.url.path}: {exc}", exc_info=True)
    return _error(500, str(exc) or "Internal server error")


def jsonable_errors(exc: RequestValidationError):
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "ChromaGUI Backend",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "env": os.getenv("APP_ENV", "development"),
    }


@app.get("/api/info")
async def info():
    return {
        "name": "ChromaGUI API",
        "version": API_VERSION,
        "chromaUrl": os.getenv("CHROMA_API_URL"),
        "docs": "/docs",
        "endpoints": {
            "health": "GET /health",
            "collections": {
                "list": "GET /api/chroma/collections",
                "create": "POST /api/chroma/collections",
                "get": "GET /api/chroma/collections/{name}",
                "delete": "DELETE /api/chroma/collections/{name}",
                "rename": "POST /api/chroma/collections/{old_name}/rename",
            },
            "documents": {
                "list": "GET /api/chroma/collections/{name}/documents",
                "create": "POST /api/chroma/collections/{name}/documents",
                "delete": "DELETE /api/chroma/collections/{name}/documents/{id}",
                "batch": "POST /api/chroma/collections/{name}/documents/batch",
                "urlFetch": "POST /api/chroma/collections/{name}/documents/url-fetch",
            },
            "query": {
                "search": "POST /api/chroma/collections/{name}/query",
            },
            "chunking": {
                "preview": "POST /api/chroma/chunking/preview",
            },
            "importExport": {
                "export": "GET /api/chroma/collections/{name}/export?format=json|csv",
                "import": "POST /api/chroma/collections/{name}/import",
            },
            "analytics": {
                "overview": "GET /api/analytics/overview",
                "collection": "GET /api/analytics/collection/{name}",
                "cacheClear": "POST /api/analytics/cache/clear",
                "cacheStatus": "GET /api/analytics/cache/status",
            },
            "visualization": {
                "embeddings": "GET /api/chroma/collections/{name}/embeddings",
            },
            "logs": {
                "list": "GET /api/logs",
                "export": "GET /api/logs/export",
                "stats": "GET /api/logs/stats",
                "clear": "DELETE /api/logs",
            },
        },
    }
