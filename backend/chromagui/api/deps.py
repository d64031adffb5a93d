"""
API 依赖：服务单例
"""
from chromagui.services.analytics import AnalyticsService
from chromagui.services.chroma_client import ChromaAPIClient
from chromagui.services.request_log import RequestLogStore
from chromagui.services.url_fetcher import URLFetcher

# 使用单例
_client = None
_analytics = None
_log_store = None
_url_fetcher = None


def get_client() -> ChromaAPIClient:
    """获取远端 Chroma API 客户端"""
    global _client
    if _client is None:
        _client = ChromaAPIClient()
    return _client


def get_analytics() -> AnalyticsService:
    global _analytics
    if _analytics is None:
        _analytics = AnalyticsService(get_client())
    return _analytics


def get_log_store() -> RequestLogStore:
    global _log_store
    if _log_store is None:
        _log_store = RequestLogStore()
    return _log_store


def get_url_fetcher() -> URLFetcher:
    global _url_fetcher
    if _url_fetcher is None:
        _url_fetcher = URLFetcher()
    return _url_fetcher
