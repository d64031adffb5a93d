"""
文档切分服务，提供两种切分模式：
1. semantic：按段落（两个及以上连续换行）切分，保留自然边界
2. configurable：固定窗口大小 + 重叠的滑动窗口切分

切分结果可以进一步包装成带溯源元数据的文档（parent_doc_id / chunk_index /
total_chunks / chunk_mode），便于写入向量库后按顺序还原。
"""
import logging
import math
import re
from typing import Any, Dict, List, Optional

from chromagui.exceptions import ChunkingConfigError
from chromagui.models.chunk import (
    SEMANTIC_MODE,
    Chunk,
    ChunkedDocument,
    ChunkingOptions,
)

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\n+")


def _is_blank(text: Optional[str]) -> bool:
    return not text or not text.strip()


def _split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in PARAGRAPH_BREAK.split(text) if p.strip()]


def _validate_window(options: ChunkingOptions) -> None:
    """校验滑动窗口参数，保证每次迭代窗口起点严格前进"""
    if options.chunk_size < 1:
        raise ChunkingConfigError(f"chunk_size 必须 >= 1，当前为 {options.chunk_size}", field="chunk_size")
    if options.overlap < 0:
        raise ChunkingConfigError(f"overlap 必须 >= 0，当前为 {options.overlap}", field="overlap")
    if options.overlap >= options.chunk_size:
        raise ChunkingConfigError(
            f"overlap ({options.overlap}) 必须小于 chunk_size ({options.chunk_size})",
            field="overlap",
        )


def chunk_text(text: str, options: Optional[Any] = None) -> List[Chunk]:
    """
    根据模式切分文本

    Args:
        text: 待切分文本
        options: ChunkingOptions、dict 或 None（全部使用默认值）

    Returns:
        Chunk 列表，index 从 0 开始连续
    """
    options = ChunkingOptions.coerce(options)

    if options.mode == SEMANTIC_MODE:
        return semantic_chunk(text)
    return configurable_chunk(text, options)


def semantic_chunk(text: str) -> List[Chunk]:
    """按段落切分，每个非空段落为一个 chunk"""
    if _is_blank(text):
        return []

    paragraphs = _split_paragraphs(text)

    # 没有段落分隔时整段文本作为一个 chunk
    if not paragraphs:
        return [Chunk(text=text.strip(), index=0)]

    return [Chunk(text=paragraph, index=index) for index, paragraph in enumerate(paragraphs)]


def configurable_chunk(text: str, options: Optional[Any] = None) -> List[Chunk]:
    """
    固定大小滑动窗口切分

    下一个窗口的起点为上一个窗口终点减去 overlap；窗口到达文本末尾即停止。
    去除首尾空白后为空的窗口直接跳过，不占用 index。
    """
    options = ChunkingOptions.coerce(options)
    _validate_window(options)

    if _is_blank(text):
        return []

    chunks: List[Chunk] = []
    length = len(text)
    start = 0

    while start < length:
        end = min(start + options.chunk_size, length)
        piece = text[start:end].strip()

        if piece:
            chunks.append(Chunk(text=piece, index=len(chunks)))

        if end >= length:
            break
        start = end - options.overlap

    logger.debug(
        f"[Chunking] configurable: length={length}, chunk_size={options.chunk_size}, "
        f"overlap={options.overlap}, chunks={len(chunks)}"
    )
    return chunks


def estimate_chunks(text: str, options: Optional[Any] = None) -> int:
    """
    不实际切分，估算 chunk 数量

    configurable 模式使用闭式公式 ceil((length - chunk_size) / (chunk_size - overlap)) + 1，
    结果是近似值：末尾纯空白窗口会被 chunk_text 跳过，因此可能比实际多一个。
    """
    options = ChunkingOptions.coerce(options)

    if _is_blank(text):
        return 0

    if options.mode == SEMANTIC_MODE:
        return max(1, len(_split_paragraphs(text)))

    _validate_window(options)
    length = len(text)
    if length <= options.chunk_size:
        return 1

    step = options.chunk_size - options.overlap
    return math.ceil((length - options.chunk_size) / step) + 1


def create_chunked_documents(
    base_id: str,
    text: str,
    options: Optional[Any] = None,
    base_metadata: Optional[Dict[str, Any]] = None,
) -> List[ChunkedDocument]:
    """
    切分文本并生成可写入向量库的文档

    Args:
        base_id: 原始文档 ID，chunk ID 格式为 {base_id}_chunk_{序号}
        text: 原始文本
        options: 切分配置
        base_metadata: 附加到每个 chunk 的基础元数据；与溯源字段同名时以溯源字段为准

    Returns:
        ChunkedDocument 列表；输入为空时返回空列表
    """
    options = ChunkingOptions.coerce(options)
    chunks = chunk_text(text, options)
    total_chunks = len(chunks)

    documents = []
    for chunk in chunks:
        ordinal = chunk.index + 1
        metadata = {
            **(base_metadata or {}),
            "parent_doc_id": base_id,
            "chunk_index": ordinal,
            "total_chunks": total_chunks,
            "chunk_mode": options.mode,
        }
        documents.append(
            ChunkedDocument(id=f"{base_id}_chunk_{ordinal}", text=chunk.text, metadata=metadata)
        )

    return documents
