"""
远端 Chroma API 客户端
封装自定义 ChromaDB HTTP API（x-api-key 鉴权），接口均为同步 requests 调用，
对外暴露的异步方法在线程池中执行
"""
import asyncio
import json
import logging
import os
from functools import partial
from typing import Any, Dict, List, Optional

import requests

from chromagui.exceptions import ChromaAPIError

logger = logging.getLogger(__name__)


class ChromaAPIClient:
    """远端 Chroma API 客户端"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_key_header: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        初始化客户端

        Args:
            base_url: API 地址（默认读取 CHROMA_API_URL）
            api_key: API 密钥（默认读取 CHROMA_API_KEY）
            api_key_header: 密钥所在请求头（默认读取 CHROMA_API_KEY_HEADER，缺省 x-api-key）
            timeout: 请求超时秒数（默认读取 CHROMA_API_TIMEOUT，缺省 30）
            session: 可注入的 requests.Session
        """
        self.base_url = (base_url or os.getenv("CHROMA_API_URL", "http://localhost:5000")).rstrip("/")
        self.api_key = api_key if api_key is not None else os.getenv("CHROMA_API_KEY", "")
        self.api_key_header = api_key_header or os.getenv("CHROMA_API_KEY_HEADER", "x-api-key")
        self.timeout = timeout or float(os.getenv("CHROMA_API_TIMEOUT", "30"))

        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            self.api_key_header: self.api_key,
        })

    def _request_sync(self, method: str, path: str, payload: Optional[Dict] = None) -> Any:
        """
        同步调用远端 API

        Raises:
            ChromaAPIError: 网络错误或非 2xx 响应
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            body = _response_body(e.response)
            logger.error(f"[ChromaAPI] {method} {path} 失败: status={status}, body={body}")
            raise ChromaAPIError(str(e), status_code=status, payload=body) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"[ChromaAPI] {method} {path} 请求异常: {e}")
            raise ChromaAPIError(str(e)) from e

        return _response_body(response)

    async def _request(self, method: str, path: str, payload: Optional[Dict] = None) -> Any:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            partial(self._request_sync, method, path, payload),
        )

    async def health(self) -> Any:
        return await self._request("GET", "/health")

    async def list_collections(self) -> Any:
        return await self._request("GET", "/list_collections")

    async def create_collection(self, name: str) -> Any:
        return await self._request("POST", "/create_collection", {"name": name})

    async def delete_collection(self, name: str) -> Any:
        return await self._request("POST", "/delete_collection", {"name": name})

    async def list_documents(self, collection_name: str, **options) -> Any:
        """
        列出集合中的文档

        Args:
            collection_name: 集合名称
            **options: include / limit / offset / where 等透传参数
        """
        body = {"name": collection_name}
        body.update({k: v for k, v in options.items() if v is not None})
        return await self._request("POST", "/list_documents", body)

    async def add_or_update_document(
        self,
        collection_name: str,
        document: Dict[str, Any],
        id_field: str,
        metadata: Optional[List[str]] = None,
        additional_params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        body = {
            "collection_name": collection_name,
            "id_field": id_field,
            "document": document,
            "metadata": metadata or [],
            "additional_params": additional_params or {},
        }
        logger.debug(f"[ChromaAPI] add_update 请求体: {json.dumps(body, ensure_ascii=False)[:500]}")
        return await self._request("POST", "/add_update", body)

    async def query(
        self,
        collection_name: str,
        query_text: str,
        n_results: int = 10,
        where: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """相似度检索，where 为空时不下发过滤条件"""
        body = {
            "collection_name": collection_name,
            "query_text": query_text,
            "n_results": n_results,
        }
        if where:
            body["where"] = where
        return await self._request("POST", "/query", body)

    async def delete_document(
        self,
        collection_name: str,
        document_id: str,
        additional_params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        body = {
            "collection_name": collection_name,
            "id": document_id,
            "additional_params": additional_params or {},
        }
        return await self._request("POST", "/delete", body)

    async def rename_collection(self, old_name: str, new_name: str) -> Any:
        return await self._request("POST", "/rename_collection", {"old_name": old_name, "new_name": new_name})

    async def get_collection_stats(self, collection_name: str) -> Dict[str, Any]:
        """集合概况：名称、文档数量、文档列表"""
        data = await self.list_documents(collection_name)
        documents = extract_list(data, "documents")
        return {
            "name": collection_name,
            "count": len(documents),
            "documents": documents,
        }

    async def batch_add_documents(
        self,
        collection_name: str,
        documents: List[Dict[str, Any]],
        id_field: str,
    ) -> Dict[str, Any]:
        """
        逐条写入文档

        每个文档中的 metadata 对象会被展开到文档字段中，其键名作为 metadata 字段列表下发；
        embedding 字段不会下发。单条失败不会中断整个批次。

        Returns:
            {successful, failed, results, errors}
        """
        results = []
        errors = []

        for doc in documents:
            document_to_send = {k: v for k, v in doc.items() if k not in ("metadata", "embedding")}
            metadata_obj = doc.get("metadata")
            metadata_fields: List[str] = []
            if isinstance(metadata_obj, dict) and metadata_obj:
                document_to_send.update(metadata_obj)
                metadata_fields = list(metadata_obj.keys())

            try:
                result = await self.add_or_update_document(
                    collection_name,
                    document_to_send,
                    id_field,
                    metadata_fields,
                    {
                        "resource_id": document_to_send.get(id_field),
                        "resource_type": "document",
                        "event_type": "add",
                    },
                )
                results.append(result)
            except ChromaAPIError as e:
                errors.append({"document": doc, "error": str(e)})

        if errors:
            logger.warning(f"[ChromaAPI] 批量写入 {collection_name}: 成功 {len(results)}，失败 {len(errors)}")

        return {
            "successful": len(results),
            "failed": len(errors),
            "results": results,
            "errors": errors,
        }


def _response_body(response: Optional[requests.Response]) -> Any:
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def extract_list(data: Any, key: str) -> List[Any]:
    """兼容 {key: [...]} 和直接返回列表两种响应格式"""
    if isinstance(data, dict):
        value = data.get(key)
        if value is None:
            return []
        return value if isinstance(value, list) else []
    if isinstance(data, list):
        return data
    return []
