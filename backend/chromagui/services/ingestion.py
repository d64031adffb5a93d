"""
URL 导入：根据抓取结果生成待写入的文档
"""
from typing import Any, Dict, List, Optional

from chromagui.services.chunking import create_chunked_documents
from chromagui.services.url_fetcher import FetchResult


def build_documents_from_fetch(
    base_id: str,
    fetch_result: FetchResult,
    enable_chunking: bool = False,
    chunking_options: Optional[Any] = None,
    base_metadata: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    生成 {id, text, metadata} 文档列表

    - CSV：每行一个文档，ID 为 {base_id}_row_{行号}
    - 开启切分：按 chunking_options 切分，ID 为 {base_id}_chunk_{序号}
    - 其它：整段文本作为一个文档，ID 为 base_id
    """
    base_metadata = base_metadata or {}

    if fetch_result.type == "csv" and fetch_result.documents:
        return [
            {
                "id": f"{base_id}_row_{index}",
                "text": doc["text"],
                "metadata": {**base_metadata, **doc.get("metadata", {}), **fetch_result.metadata},
            }
            for index, doc in enumerate(fetch_result.documents, start=1)
        ]

    metadata = {**base_metadata, **fetch_result.metadata}
    if enable_chunking and fetch_result.text:
        chunked = create_chunked_documents(base_id, fetch_result.text, chunking_options, metadata)
        return [doc.model_dump() for doc in chunked]

    return [{"id": base_id, "text": fetch_result.text, "metadata": metadata}]
