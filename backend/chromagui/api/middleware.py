"""
请求日志中间件
记录每个 API 请求的动作、集合、状态码与耗时，写入 RequestLogStore
"""
import json
import re
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qsl, unquote

from chromagui.services.request_log import RequestLogStore

BODY_SUMMARY_LENGTH = 200
MAX_CAPTURED_RESPONSE = 64 * 1024

_COLLECTION_PATH = re.compile(r"/api/chroma/collections/([^/]+)")
_COLLECTION_ITEM = re.compile(r"/collections/[^/]+")


def extract_collection_name(path: str) -> Optional[str]:
    match = _COLLECTION_PATH.search(path)
    return unquote(match.group(1)) if match else None


def extract_action(method: str, path: str) -> str:
    """根据请求方法和路径推断操作类型"""
    if "/health" in path:
        return "health_check"
    if "/query" in path:
        return "query"
    if "/documents/batch" in path:
        return "batch_add"
    if "/documents" in path:
        if method == "GET":
            return "list_documents"
        if method == "POST":
            return "create_document"
        if method == "DELETE":
            return "delete_document"
    if "/rename" in path:
        return "rename_collection"
    if "/collections" in path:
        if method == "GET":
            return "get_collection" if _COLLECTION_ITEM.search(path) else "list_collections"
        if method == "POST":
            return "create_collection"
        if method == "DELETE":
            return "delete_collection"
    return "unknown"


def level_for_status(status: int) -> str:
    if status >= 500:
        return "error"
    if status >= 400:
        return "warn"
    return "info"


class RequestLoggingMiddleware:
    """ASGI 中间件：透传请求与响应，同时截取请求体摘要和错误信息"""

    def __init__(self, app, get_store: Callable[[], RequestLogStore]):
        self.app = app
        self.get_store = get_store

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        request_body = bytearray()
        response_body = bytearray()
        state: Dict[str, Any] = {"status": 500, "json": False}

        async def receive_wrapper():
            message = await receive()
            if message["type"] == "http.request" and len(request_body) < BODY_SUMMARY_LENGTH * 4:
                request_body.extend(message.get("body", b""))
            return message

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                state["status"] = message["status"]
                headers = dict(message.get("headers") or [])
                state["json"] = b"json" in headers.get(b"content-type", b"")
            elif message["type"] == "http.response.body" and state["json"]:
                if len(response_body) < MAX_CAPTURED_RESPONSE:
                    response_body.extend(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except Exception as e:
            self._record(scope, 500, start_time, request_body, b"", error=str(e))
            raise

        self._record(scope, state["status"], start_time, request_body, bytes(response_body))

    def _record(self, scope, status: int, start_time: float, request_body: bytes, response_body: bytes, error: Optional[str] = None):
        method = scope["method"]
        path = scope["path"]
        latency = int((time.time() - start_time) * 1000)

        client = scope.get("client")
        data: Dict[str, Any] = {
            "action": extract_action(method, path),
            "collection": extract_collection_name(path),
            "method": method,
            "path": path,
            "status": status,
            "latency": latency,
            "ip": client[0] if client else None,
        }

        query_string = scope.get("query_string", b"").decode("latin-1")
        if query_string:
            data["query"] = dict(parse_qsl(query_string))

        if method in ("POST", "PUT", "PATCH") and request_body:
            data["bodySummary"] = bytes(request_body).decode("utf-8", errors="replace")[:BODY_SUMMARY_LENGTH]

        if error is None and response_body:
            try:
                payload = json.loads(response_body)
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("success") is False:
                error = payload.get("error") or "Unknown error"
        if error is not None:
            data["error"] = error

        message = f"{method} {path} - {status} ({latency}ms)"
        self.get_store().log(level_for_status(status), message, data)
