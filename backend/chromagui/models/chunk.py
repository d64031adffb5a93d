"""
Chunk 模型
"""
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chromagui.exceptions import ChunkingConfigError

SEMANTIC_MODE = "semantic"
CONFIGURABLE_MODE = "configurable"
CHUNK_MODES = (SEMANTIC_MODE, CONFIGURABLE_MODE)

DEFAULT_CHUNK_SIZE = 500
DEFAULT_OVERLAP = 50


class ChunkingOptions(BaseModel):
    """切分配置（不可变），缺省字段使用默认值"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    mode: str = CONFIGURABLE_MODE
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, alias="chunkSize")
    overlap: int = DEFAULT_OVERLAP

    @field_validator("mode", mode="before")
    @classmethod
    def _resolve_mode(cls, value: Any) -> str:
        # 未识别的模式一律按 configurable 处理
        if isinstance(value, str) and value in CHUNK_MODES:
            return value
        return CONFIGURABLE_MODE

    @field_validator("chunk_size", mode="before")
    @classmethod
    def _default_chunk_size(cls, value: Any) -> Any:
        return DEFAULT_CHUNK_SIZE if value is None else value

    @field_validator("overlap", mode="before")
    @classmethod
    def _default_overlap(cls, value: Any) -> Any:
        return DEFAULT_OVERLAP if value is None else value

    @classmethod
    def coerce(cls, options: Optional[Any] = None) -> "ChunkingOptions":
        """把 None / dict / ChunkingOptions 统一转换为 ChunkingOptions"""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, Mapping):
            raise ChunkingConfigError(f"切分参数必须是对象，收到 {type(options).__name__}")
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            error = e.errors()[0]
            loc = error.get("loc") or (None,)
            field = "chunk_size" if loc[0] == "chunkSize" else loc[0]
            raise ChunkingConfigError(f"切分参数非法: {error.get('msg')}", field=field) from e


class Chunk(BaseModel):
    """一段切分后的文本"""
    model_config = ConfigDict(frozen=True)

    text: str
    index: int  # 从 0 开始，按生成顺序连续递增


class ChunkedDocument(BaseModel):
    """可直接写入向量库的 chunk 文档，metadata 中携带溯源字段"""
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    metadata: Dict[str, Any]
