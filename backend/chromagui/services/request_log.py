"""
请求日志服务
内存中保存最近的请求日志，支持按时间范围、级别、关键字过滤及分页导出，
同时转发到标准 logging
"""
import json
import logging
import math
import os
import threading
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger("chromagui.requests")

LOG_LEVELS = ("info", "warn", "error", "debug")

_PY_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "debug": logging.DEBUG,
}


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RequestLogStore:
    """内存日志存储，新日志在前，超过 max_logs 时淘汰最旧的日志"""

    def __init__(self, max_logs: Optional[int] = None):
        self.max_logs = max_logs or int(os.getenv("REQUEST_LOG_MAX", "10000"))
        self._logs: Deque[Dict[str, Any]] = deque(maxlen=self.max_logs)
        self._lock = threading.Lock()

    def log(self, level: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        记录一条日志

        Args:
            level: info / warn / error / debug
            message: 日志内容
            metadata: 附加信息

        Returns:
            新建的日志条目
        """
        entry = {
            "id": uuid.uuid4().hex,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "metadata": metadata or {},
        }
        with self._lock:
            self._logs.appendleft(entry)

        logger.log(_PY_LEVELS.get(level, logging.INFO), f"{message} {json.dumps(entry['metadata'], ensure_ascii=False, default=str)}")
        return entry

    def info(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.log("info", message, metadata)

    def warn(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.log("warn", message, metadata)

    def error(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.log("error", message, metadata)

    def debug(self, message: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.log("debug", message, metadata)

    def _filter(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        level: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            filtered = list(self._logs)

        # 无法解析的日期不匹配任何日志
        try:
            start = _parse_datetime(start_date) if start_date else None
            end = _parse_datetime(end_date) if end_date else None
        except ValueError:
            logger.debug(f"[RequestLog] 无效的日期过滤条件: startDate={start_date}, endDate={end_date}")
            return []

        if start:
            filtered = [log for log in filtered if _parse_datetime(log["timestamp"]) >= start]

        if end:
            filtered = [log for log in filtered if _parse_datetime(log["timestamp"]) <= end]

        if level and level != "all":
            filtered = [log for log in filtered if log["level"] == level]

        if query and query.strip():
            needle = query.strip().lower()
            filtered = [
                log for log in filtered
                if needle in log["message"].lower()
                or needle in json.dumps(log["metadata"], ensure_ascii=False, default=str).lower()
            ]

        return filtered

    def get_logs(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        level: Optional[str] = None,
        query: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """按条件过滤并分页"""
        page = page if page and page > 0 else 1
        limit = limit if limit and limit > 0 else 50

        filtered = self._filter(start_date, end_date, level, query)
        start = (page - 1) * limit

        return {
            "logs": filtered[start:start + limit],
            "total": len(filtered),
            "page": page,
            "limit": limit,
            "pages": math.ceil(len(filtered) / limit),
            "filters": {
                "startDate": start_date,
                "endDate": end_date,
                "level": level,
                "query": query,
            },
        }

    def export_logs(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        level: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """导出全部匹配的日志（不分页）"""
        return self._filter(start_date, end_date, level, query)

    def clear_logs(self) -> Dict[str, Any]:
        with self._lock:
            count = len(self._logs)
            self._logs.clear()
        self.info("Logs cleared", {"count": count})
        return {"success": True, "message": f"Cleared {count} logs"}

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            logs = list(self._logs)

        by_level = {level: 0 for level in LOG_LEVELS}
        for log in logs:
            if log["level"] in by_level:
                by_level[log["level"]] += 1

        return {
            "total": len(logs),
            "byLevel": by_level,
            "oldest": logs[-1]["timestamp"] if logs else None,
            "newest": logs[0]["timestamp"] if logs else None,
        }

    def __len__(self) -> int:
        return len(self._logs)
