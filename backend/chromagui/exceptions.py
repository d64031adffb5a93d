"""
异常定义
服务层抛出，API 层统一转换为 JSON 响应
"""
from typing import Any, Optional


class ChromaGUIError(Exception):
    """所有业务异常的基类"""


class ChunkingConfigError(ChromaGUIError, ValueError):
    """切分参数非法（例如 overlap >= chunk_size），滑动窗口无法前进"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field  # 出错的配置项：chunk_size / overlap，无法确定时为 None


class ChromaAPIError(ChromaGUIError):
    """远端 Chroma API 调用失败"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class URLFetchError(ChromaGUIError):
    """抓取 URL 内容失败"""
