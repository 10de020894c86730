"""入力行の分類."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# 行の種類:
#   -----------------          SEPARATOR   (3 個以上のダッシュ)
#   -- start: 説明             COMMENT_START
#   -- end: 説明               COMMENT_END
#   -- コメント                COMMENT
#   --------------------[ f ]  FILE_MARKER (concat 出力のファイル見出し)
#   select 1;                  OTHER
#   (空白のみ)                 EMPTY

_INLINE_WHITESPACE = frozenset(" \t")


class LineClass(Enum):
    """行の種類."""

    SEPARATOR = "separator"
    COMMENT = "comment"
    COMMENT_START = "comment_start"
    COMMENT_END = "comment_end"
    FILE_MARKER = "file_marker"
    EMPTY = "empty"
    OTHER = "other"


@dataclass(frozen=True)
class Classification:
    """分類結果."""

    cls: LineClass
    """行の種類."""

    content_pos: int = 0
    """意味のある内容が始まる位置（COMMENT 系と OTHER のみ有効）."""


_MARKERS = (
    ("start", LineClass.COMMENT_START),
    ("end", LineClass.COMMENT_END),
)


def classify_line(line: str) -> Classification:
    """1行を分類する.

    行頭から連続するダッシュを数えながら1文字ずつ走査する。
    ダッシュ2個の直後に内容があればコメント、3個以上なら区切り線、
    4個以上の直後に ``[`` があればファイルマーカーとなる。

    Args:
        line: 改行を含まない1行

    Returns:
        分類結果

    Examples:
        >>> classify_line("-- start: create tables").cls
        <LineClass.COMMENT_START: 'comment_start'>
        >>> classify_line("---------").cls
        <LineClass.SEPARATOR: 'separator'>

    """
    cls = LineClass.EMPTY
    dashes = 0

    for pos, ch in enumerate(line):
        if ch == "-":
            dashes += 1
        else:
            if dashes == 2:
                cls = LineClass.COMMENT
            elif dashes >= 4 and ch == "[":
                return Classification(LineClass.FILE_MARKER, pos)
            elif ch not in _INLINE_WHITESPACE:
                return Classification(LineClass.OTHER, pos)

            if cls is not LineClass.COMMENT:
                dashes = 0
            elif ch not in _INLINE_WHITESPACE:
                return _classify_comment(line, pos)

        if dashes >= 3:
            cls = LineClass.SEPARATOR

    if cls is LineClass.COMMENT:
        # 空白だけのコメント
        return Classification(cls, len(line))
    return Classification(cls)


def _classify_comment(line: str, pos: int) -> Classification:
    """コメント本文が start:/end: マーカーで始まるか判定する."""
    for marker, marker_cls in _MARKERS:
        end = _match_marker(line, marker, pos)
        if end is not None:
            return Classification(marker_cls, end)
    return Classification(LineClass.COMMENT, pos)


def _match_marker(line: str, marker: str, pos: int) -> int | None:
    """``marker:`` に一致すれば、後続の空白とコロンを読み飛ばした位置を返す.

    大文字小文字は区別しない。marker とコロンの間には空白を置ける。
    """
    end = pos + len(marker)
    if line[pos:end].lower() != marker:
        return None
    while end < len(line) and line[end] in _INLINE_WHITESPACE:
        end += 1
    if end >= len(line) or line[end] != ":":
        return None
    while end < len(line) and (line[end] in _INLINE_WHITESPACE or line[end] == ":"):
        end += 1
    return end
