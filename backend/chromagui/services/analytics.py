"""
统计分析服务
汇总所有集合的文档数、向量维度、元数据字段等信息；总览结果缓存 5 小时以减轻远端压力
"""
import logging
import os
import time
from typing import Any, Callable, Dict, List, Optional

from chromagui.exceptions import ChromaAPIError
from chromagui.services.chroma_client import ChromaAPIClient, extract_list

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 5 * 60 * 60

DISTRIBUTION_BUCKETS = (
    ("0", 0, 0),
    ("1-10", 1, 10),
    ("11-100", 11, 100),
    ("101-1000", 101, 1000),
    ("1001-10000", 1001, 10000),
)


class AnalyticsCache:
    """带过期时间的单值缓存，时间戳单位为毫秒"""

    def __init__(self, ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self.data: Optional[Dict[str, Any]] = None
        self.timestamp: Optional[int] = None
        self.expires_at: Optional[int] = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def is_valid(self) -> bool:
        if self.data is None or self.expires_at is None:
            return False
        return self._now_ms() < self.expires_at

    def get(self) -> Optional[Dict[str, Any]]:
        return self.data if self.is_valid() else None

    def set(self, data: Dict[str, Any]) -> None:
        now = self._now_ms()
        self.data = data
        self.timestamp = now
        self.expires_at = now + self.ttl_ms

    def clear(self) -> None:
        self.data = None
        self.timestamp = None
        self.expires_at = None

    def status(self) -> Dict[str, Any]:
        remaining = max(0, self.expires_at - self._now_ms()) if self.expires_at else 0
        return {
            "cached": self.data is not None,
            "timestamp": self.timestamp,
            "expiresAt": self.expires_at,
            "valid": self.is_valid(),
            "remainingTimeMs": remaining,
        }


def _median(values: List[int]) -> int:
    if not values:
        return 0
    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return round((ordered[middle - 1] + ordered[middle]) / 2)
    return ordered[middle]


def _bucket_for(count: int) -> str:
    for label, low, high in DISTRIBUTION_BUCKETS:
        if low <= count <= high:
            return label
    return "10000+"


def _collection_name(entry: Any) -> str:
    if isinstance(entry, dict):
        return str(entry.get("name", ""))
    return str(entry)


def build_overview(collection_docs: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    计算系统总览

    Args:
        collection_docs: 每个集合一项 {name, data, metadata, error}；
            data 为 list_documents 的响应，metadata 为集合自身元数据（可为空），
            error 为 True 表示该集合拉取失败

    Returns:
        总览统计字典
    """
    total_collections = len(collection_docs)
    total_documents = 0
    dimension_sum = 0
    dimension_count = 0
    collection_stats = []
    metadata_fields: Dict[str, None] = {}
    embedding_models: Dict[str, None] = {}
    distance_functions: Dict[str, None] = {}
    vector_dimensions: Dict[str, int] = {}

    for entry in collection_docs:
        name = entry["name"]
        if entry.get("error"):
            collection_stats.append({"name": name, "documentCount": 0, "error": True})
            continue

        data = entry.get("data") or {}
        ids = extract_list(data, "ids")
        doc_count = len(ids)
        total_documents += doc_count

        for metadata in extract_list(data, "metadatas"):
            if not isinstance(metadata, dict):
                continue
            for key in metadata:
                metadata_fields[key] = None
            if metadata.get("embedding_model"):
                embedding_models[str(metadata["embedding_model"])] = None

        dimensions = 0
        embeddings = extract_list(data, "embeddings")
        if embeddings and embeddings[0] is not None:
            dimensions = len(embeddings[0])
            dimension_sum += dimensions
            dimension_count += 1
            vector_dimensions[str(dimensions)] = vector_dimensions.get(str(dimensions), 0) + 1

        collection_metadata = entry.get("metadata") or {}
        if collection_metadata.get("hnsw:space"):
            distance_functions[collection_metadata["hnsw:space"]] = None

        collection_stats.append({"name": name, "documentCount": doc_count, "dimensions": dimensions})

    healthy = [c for c in collection_stats if not c.get("error")]
    collection_stats.sort(key=lambda c: c["documentCount"], reverse=True)

    distribution = {label: 0 for label, _, _ in DISTRIBUTION_BUCKETS}
    distribution["10000+"] = 0
    for stat in healthy:
        distribution[_bucket_for(stat["documentCount"])] += 1

    return {
        "totalCollections": total_collections,
        "totalDocuments": total_documents,
        "averageDocumentsPerCollection": round(total_documents / total_collections) if total_collections else 0,
        "medianDocumentsPerCollection": _median([c["documentCount"] for c in healthy]),
        "topCollections": collection_stats[:5],
        "bottomCollections": list(reversed(collection_stats[-5:])),
        "allCollections": collection_stats,
        "emptyCollections": sum(1 for c in healthy if c["documentCount"] == 0),
        "errorCollections": total_collections - len(healthy),
        "averageVectorDimensions": round(dimension_sum / dimension_count) if dimension_count else 0,
        "embeddingModels": list(embedding_models),
        "metadataFields": list(metadata_fields),
        "distanceFunctions": list(distance_functions),
        "vectorDimensionDistribution": vector_dimensions,
        "distributionBuckets": distribution,
    }


def build_collection_analytics(name: str, data: Any) -> Dict[str, Any]:
    """单个集合的元数据分布与文档长度统计"""
    ids = extract_list(data, "ids")
    documents = extract_list(data, "documents")
    metadatas = extract_list(data, "metadatas")
    document_count = len(ids)

    metadata_distribution: Dict[str, Dict[str, int]] = {}
    for metadata in metadatas:
        if not isinstance(metadata, dict):
            continue
        for key, value in metadata.items():
            values = metadata_distribution.setdefault(key, {})
            label = _stringify(value)
            values[label] = values.get(label, 0) + 1

    lengths = [len(doc) for doc in documents if isinstance(doc, str) and doc]
    total_length = sum(lengths)

    return {
        "collection": name,
        "documentCount": document_count,
        "metadataKeys": list(metadata_distribution),
        "metadataDistribution": metadata_distribution,
        "documentLengthStats": {
            "average": round(total_length / document_count) if document_count else 0,
            "min": min(lengths) if lengths else 0,
            "max": max(lengths) if lengths else 0,
            "total": total_length,
        },
    }


def _stringify(value: Any) -> str:
    # 与前端展示保持一致：布尔值小写，None 显示为 null
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class AnalyticsService:
    """统计分析服务，持有总览缓存"""

    def __init__(self, client: ChromaAPIClient, cache: Optional[AnalyticsCache] = None):
        self.client = client
        ttl = float(os.getenv("ANALYTICS_CACHE_TTL_SECONDS", str(DEFAULT_CACHE_TTL_SECONDS)))
        self.cache = cache or AnalyticsCache(ttl_seconds=ttl)

    def invalidate(self) -> None:
        """数据发生变更后清除总览缓存"""
        if self.cache.data is not None:
            logger.info("[Analytics] 数据变更，清除总览缓存")
        self.cache.clear()

    async def overview(self, refresh: bool = False) -> Dict[str, Any]:
        """
        获取系统总览

        Args:
            refresh: 为 True 时忽略缓存强制重新计算

        Returns:
            {data, cached, cacheTimestamp, cacheExpiresAt}

        Raises:
            ChromaAPIError: 集合列表拉取失败
        """
        cached = None if refresh else self.cache.get()
        if cached is not None:
            return {
                "data": cached,
                "cached": True,
                "cacheTimestamp": self.cache.timestamp,
                "cacheExpiresAt": self.cache.expires_at,
            }

        start_time = time.time()
        collections = extract_list(await self.client.list_collections(), "collections")

        collection_docs = []
        for entry in collections:
            name = _collection_name(entry)
            metadata = entry.get("metadata") if isinstance(entry, dict) else None
            try:
                data = await self.client.list_documents(name)
                collection_docs.append({"name": name, "data": data, "metadata": metadata})
            except ChromaAPIError as e:
                logger.warning(f"[Analytics] 集合 {name} 拉取失败: {e}")
                collection_docs.append({"name": name, "error": True})

        data = build_overview(collection_docs)
        self.cache.set(data)
        logger.info(f"[Analytics] 总览重新计算完成，集合数: {len(collections)}，耗时: {time.time() - start_time:.2f}秒")

        return {
            "data": data,
            "cached": False,
            "cacheTimestamp": self.cache.timestamp,
            "cacheExpiresAt": self.cache.expires_at,
        }

    async def collection(self, name: str) -> Dict[str, Any]:
        data = await self.client.list_documents(name)
        return build_collection_analytics(name, data)
