import json
import os
from pathlib import Path

import click
from dotenv import load_dotenv

from chromagui.models.chunk import CHUNK_MODES, DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP
from chromagui.exceptions import ChunkingConfigError
from chromagui.services.chunking import create_chunked_documents, estimate_chunks

load_dotenv()

chunking_options = [
    click.option('--mode', type=click.Choice(CHUNK_MODES), default='configurable', help='切分模式'),
    click.option('--chunk-size', type=int, default=DEFAULT_CHUNK_SIZE, help='窗口大小（字符）'),
    click.option('--overlap', type=int, default=DEFAULT_OVERLAP, help='相邻窗口重叠字符数'),
]


def with_chunking_options(func):
    for option in reversed(chunking_options):
        func = option(func)
    return func


def _bad_chunking_option(error):
    """把切分参数错误映射到对应的命令行选项"""
    hint = '--' + error.field.replace('_', '-') if error.field else None
    return click.BadParameter(str(error), param_hint=hint)


@click.group()
def cli():
    """ChromaGUI 管理工具"""
    pass

@cli.command()
@click.option('--host', default=lambda: os.getenv('HOST', '0.0.0.0'), help='监听地址')
@click.option('--port', type=int, default=lambda: int(os.getenv('SERVER_PORT', '3001')), help='监听端口')
@click.option('--reload', is_flag=True, help='代码变更自动重载')
def serve(host, port, reload):
    """启动后端服务"""
    import uvicorn

    click.echo(f"ChromaGUI Backend: http://{host}:{port}")
    click.echo(f"ChromaDB URL: {os.getenv('CHROMA_API_URL', 'http://localhost:5000')}")
    uvicorn.run('chromagui.main:app', host=host, port=port, reload=reload)

@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@with_chunking_options
@click.option('--base-id', default=None, help='文档 ID 前缀（默认使用文件名）')
def chunk(file, mode, chunk_size, overlap, base_id):
    """切分文本文件并以 JSON 输出"""
    path = Path(file)
    text = path.read_text(encoding='utf-8')
    options = {'mode': mode, 'chunk_size': chunk_size, 'overlap': overlap}
    try:
        documents = create_chunked_documents(base_id or path.stem, text, options, {'source': path.name})
    except ChunkingConfigError as e:
        raise _bad_chunking_option(e)
    click.echo(json.dumps([doc.model_dump() for doc in documents], ensure_ascii=False, indent=2))

@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@with_chunking_options
def estimate(file, mode, chunk_size, overlap):
    """估算文本文件的 chunk 数量"""
    text = Path(file).read_text(encoding='utf-8')
    options = {'mode': mode, 'chunk_size': chunk_size, 'overlap': overlap}
    try:
        click.echo(estimate_chunks(text, options))
    except ChunkingConfigError as e:
        raise _bad_chunking_option(e)

if __name__ == '__main__':
    cli()
