"""
URL 抓取服务
抓取远端内容并按类型解析：HTML、Markdown、纯文本、CSV（每行一个文档）、JSON（格式化输出）
"""
import csv
import html
import io
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field

from chromagui.exceptions import URLFetchError

logger = logging.getLogger(__name__)

USER_AGENT = "ChromaDBUI/1.0"
FETCH_TIMEOUT = 30
MAX_CONTENT_LENGTH = 50 * 1024 * 1024
READ_CHUNK_SIZE = 64 * 1024

TEXT_COLUMN_NAMES = ("text", "content", "description", "body", "message", "document")

_TITLE_TAG = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_WHITESPACE = re.compile(r"\s+")


class FetchResult(BaseModel):
    """抓取结果"""
    type: str  # html / markdown / text / csv / json
    text: str
    documents: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class URLFetcher:
    """URL 抓取与解析"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = FETCH_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch(self, url: str, auth_token: Optional[str] = None, auth_type: Optional[str] = None) -> FetchResult:
        """
        抓取 URL 并解析内容

        Args:
            url: 目标地址
            auth_token: 鉴权令牌（可选）
            auth_type: bearer / api-key / 其它（其它时原样放入 Authorization 头）

        Raises:
            URLFetchError: 网络错误、超时、非 2xx 响应或内容过大
        """
        headers = {"User-Agent": USER_AGENT}
        if auth_token:
            if auth_type == "bearer":
                headers["Authorization"] = f"Bearer {auth_token}"
            elif auth_type == "api-key":
                headers["X-API-Key"] = auth_token
            else:
                headers["Authorization"] = auth_token

        logger.info(f"[URLFetcher] 抓取: {url}")
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout, stream=True)
            try:
                response.raise_for_status()
                body = _read_limited(response)
            finally:
                response.close()
        except requests.exceptions.Timeout as e:
            raise URLFetchError(f"Request timed out ({self.timeout}s limit)") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            reason = e.response.reason if e.response is not None else ""
            raise URLFetchError(f"HTTP {status}: {reason}") from e
        except requests.exceptions.RequestException as e:
            raise URLFetchError(str(e) or "Failed to fetch URL") from e

        content_type = response.headers.get("content-type", "")
        content = body.decode(response.encoding or "utf-8", errors="replace")
        result = self.parse_content(content, content_type, url)
        result.metadata.update({
            "source_url": url,
            "fetched_at": datetime.now(timezone.utc).isoformat(),
            "content_type": content_type,
        })
        logger.info(f"[URLFetcher] 解析完成: type={result.type}, 文本长度={len(result.text)}")
        return result

    def parse_content(self, content: str, content_type: str, url: str) -> FetchResult:
        """根据 Content-Type 或 URL 后缀选择解析方式"""
        lower_type = (content_type or "").lower()
        url_lower = url.lower()

        if "csv" in lower_type or url_lower.endswith(".csv"):
            return self.parse_csv(content)
        if "json" in lower_type or url_lower.endswith(".json"):
            return self.parse_json(content)
        if "markdown" in lower_type or url_lower.endswith(".md"):
            return self.parse_markdown(content)
        if "html" in lower_type or url_lower.endswith((".html", ".htm")):
            return self.parse_html(content)
        return self.parse_plain_text(content)

    def parse_html(self, raw_html: str) -> FetchResult:
        """
        使用 unstructured 提取 HTML 正文

        页眉、页脚元素会被丢弃；每个元素内部空白折叠为单个空格，元素之间以空行分隔，
        便于后续按段落切分。
        """
        from unstructured.partition.html import partition_html

        elements = partition_html(text=raw_html)

        paragraphs = []
        first_title = None
        for element in elements:
            if element.category in ("Header", "Footer"):
                continue
            text = _WHITESPACE.sub(" ", str(element)).strip()
            if not text:
                continue
            if first_title is None and element.category == "Title":
                first_title = text
            paragraphs.append(text)

        text = "\n\n".join(paragraphs)

        title_match = _TITLE_TAG.search(raw_html)
        title = html.unescape(title_match.group(1)).strip() if title_match else ""
        title = title or first_title or "Untitled"

        return FetchResult(
            type="html",
            text=text,
            documents=[{"text": text}],
            metadata={"title": title, "doc_type": "html_page"},
        )

    def parse_markdown(self, markdown: str) -> FetchResult:
        text = markdown.strip()
        return FetchResult(type="markdown", text=text, documents=[{"text": text}], metadata={"doc_type": "markdown"})

    def parse_plain_text(self, content: str) -> FetchResult:
        text = content.strip()
        return FetchResult(type="text", text=text, documents=[{"text": text}], metadata={"doc_type": "text"})

    def parse_json(self, content: str) -> FetchResult:
        """格式化 JSON；解析失败时按纯文本处理"""
        try:
            data = json.loads(content)
        except ValueError:
            logger.warning("[URLFetcher] JSON 解析失败，按纯文本处理")
            return self.parse_plain_text(content)

        pretty = json.dumps(data, indent=2, ensure_ascii=False)
        return FetchResult(type="json", text=pretty, documents=[{"text": pretty}], metadata={"doc_type": "json"})

    def parse_csv(self, content: str) -> FetchResult:
        """
        解析 CSV，首行为列名，每个非空行生成一个文档

        列数与表头不一致时视为格式错误，按纯文本处理。
        """
        try:
            records = _read_csv_records(content)
        except csv.Error as e:
            logger.warning(f"[URLFetcher] CSV 解析失败，按纯文本处理: {e}")
            return self.parse_plain_text(content)

        if not records:
            return FetchResult(type="csv", text="", documents=[], metadata={"doc_type": "csv", "row_count": 0})

        documents = []
        for index, row in enumerate(records, start=1):
            text_column = find_text_column(row)
            text = row[text_column] if text_column else format_row_as_text(row)
            documents.append({
                "text": text,
                "metadata": {**row, "row_index": index, "doc_type": "csv_row"},
            })

        return FetchResult(
            type="csv",
            text=content,
            documents=documents,
            metadata={
                "doc_type": "csv",
                "row_count": len(records),
                "columns": list(records[0].keys()),
            },
        )


def _read_limited(response: requests.Response) -> bytes:
    """
    按块读取响应体，超过 MAX_CONTENT_LENGTH 立即中止

    Content-Length 已超限时不读取任何内容。

    Raises:
        URLFetchError: 内容超过上限
    """
    declared = response.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > MAX_CONTENT_LENGTH:
        raise URLFetchError(f"Content exceeds {MAX_CONTENT_LENGTH} bytes")

    body = bytearray()
    for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
        body.extend(chunk)
        if len(body) > MAX_CONTENT_LENGTH:
            raise URLFetchError(f"Content exceeds {MAX_CONTENT_LENGTH} bytes")
    return bytes(body)


def _read_csv_records(content: str) -> List[Dict[str, str]]:
    reader = csv.reader(io.StringIO(content))
    rows = [[cell.strip() for cell in row] for row in reader]
    rows = [row for row in rows if any(row)]
    if not rows:
        return []

    header, body = rows[0], rows[1:]
    records = []
    for line_no, row in enumerate(body, start=2):
        if len(row) != len(header):
            raise csv.Error(f"第 {line_no} 行列数为 {len(row)}，表头为 {len(header)} 列")
        records.append(dict(zip(header, row)))
    return records


def find_text_column(row: Dict[str, Any]) -> Optional[str]:
    """查找最可能承载正文的列，先精确匹配再忽略大小写匹配"""
    for name in TEXT_COLUMN_NAMES:
        if name in row:
            return name

    for name in TEXT_COLUMN_NAMES:
        for key in row:
            if key.lower() == name:
                return key
    return None


def format_row_as_text(row: Dict[str, Any]) -> str:
    return " | ".join(f"{key}: {value}" for key, value in row.items())
