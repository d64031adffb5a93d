"""
集合导入导出
"""
import csv
import io
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from chromagui.services.chroma_client import extract_list


def _column(values: List[Any], index: int) -> Any:
    return values[index] if index < len(values) else None


def build_json_export(name: str, data: Any, exported_at: Optional[datetime] = None) -> Dict[str, Any]:
    """导出为 JSON：每个文档包含 id / document / metadata / embedding"""
    ids = extract_list(data, "ids")
    documents = extract_list(data, "documents")
    metadatas = extract_list(data, "metadatas")
    embeddings = extract_list(data, "embeddings")

    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "collection": name,
        "exportDate": exported_at.isoformat(),
        "documentCount": len(ids),
        "documents": [
            {
                "id": doc_id,
                "document": _column(documents, i),
                "metadata": _column(metadatas, i),
                "embedding": _column(embeddings, i),
            }
            for i, doc_id in enumerate(ids)
        ],
    }


def build_csv_export(data: Any) -> str:
    """导出为 CSV：id, document, metadata（JSON 字符串），不包含向量"""
    ids = extract_list(data, "ids")
    documents = extract_list(data, "documents")
    metadatas = extract_list(data, "metadatas")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["id", "document", "metadata"])
    for i, doc_id in enumerate(ids):
        metadata = _column(metadatas, i)
        writer.writerow([
            doc_id,
            _column(documents, i) or "",
            json.dumps(metadata, ensure_ascii=False) if metadata else "{}",
        ])
    return buffer.getvalue()


def normalize_import_documents(documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """已包含 document 字段的记录原样保留，否则整条记录作为 document"""
    return [doc if "document" in doc else {"document": doc} for doc in documents]
