"""チャンクのテキスト出力.

concat の出力は再度スキャンすると同じチャンクに戻る形式になっている::

    -----------------------------------------------------------
    -- start: create tables
    -----------------------------------------------------------
    create table t (x int);
    -----------------------------------------------------------
    -- end: create tables
    -----------------------------------------------------------
"""

from __future__ import annotations

from psqlchunks import config
from psqlchunks.chunk import LINE_NUMBER_NOT_AVAILABLE, Chunk, Line

COMMENT_PREFIX = "-- "


def separator() -> str:
    """区切り線を返す."""
    return "-" * config.SEPARATOR_WIDTH


def format_block(kind: str, contents: str) -> str:
    """区切り線で囲んだ ``-- <kind>: ...`` ブロックを返す.

    複数行の contents は2行目以降を ``-- `` で始める。
    """
    lines = [separator()]
    fragments = contents.split("\n")
    lines.append(f"{COMMENT_PREFIX}{kind}: {fragments[0]}")
    lines.extend(f"{COMMENT_PREFIX}{fragment}" for fragment in fragments[1:])
    lines.append(separator())
    return "".join(f"{line}\n" for line in lines)


def format_chunk(chunk: Chunk) -> str:
    """チャンクを開始ブロック、SQL、終了ブロックの順に整形する.

    終了コメントがなければ開始コメントを終了ブロックにも使う。
    """
    end_comment = chunk.end_comment or chunk.start_comment
    return format_block("start", chunk.start_comment) + chunk.sql + format_block("end", end_comment)


def format_file_marker(name: str) -> str:
    """ファイルの見出し行を返す. 再スキャン時には無視される."""
    return f"{'-' * config.FILE_MARKER_DASHES}[ {name} ]"


def format_list_row(chunk: Chunk) -> str:
    """list コマンドの1行を返す."""
    return f"{chunk.start_line:8d}-{chunk.end_line:8d}: {chunk.description}"


def error_excerpt(chunk: Chunk, context_lines: int) -> list[Line]:
    """エラー行の前後 context_lines 行を返す.

    エラー行が不明な場合はチャンク全体を返す。

    Args:
        chunk: 実行に失敗したチャンク
        context_lines: エラー行の前後に含める行数

    Returns:
        抜き出した行のリスト

    """
    if not chunk.has_diagnostics:
        return list(chunk.sql_lines)
    diagnostics = chunk.diagnostics
    if diagnostics.error_line == LINE_NUMBER_NOT_AVAILABLE:
        return list(chunk.sql_lines)
    first = diagnostics.error_line - context_lines
    last = diagnostics.error_line + context_lines
    return [line for line in chunk.sql_lines if first <= line.number <= last]
