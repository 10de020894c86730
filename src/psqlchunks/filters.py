"""チャンクの絞り込み."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

from psqlchunks.chunk import Chunk
from psqlchunks.exceptions import FilterError

ChunkFilter = Callable[[Chunk], bool]
"""チャンクを受け取り、対象なら True を返す述語."""


def parse_line_numbers(params: str) -> list[int]:
    """``"1,6,88"`` 形式の行番号リストをパースする.

    Raises:
        FilterError: 空、または正の整数でない要素を含む場合

    """
    numbers: list[int] = []
    for part in params.split(","):
        try:
            number = int(part.strip())
        except ValueError:
            msg = f"illegal line number: {part!r}"
            raise FilterError(msg) from None
        if number < 1:
            msg = f"line numbers must be positive: {number}"
            raise FilterError(msg)
        numbers.append(number)
    return numbers


def line_filter(numbers: Iterable[int]) -> ChunkFilter:
    """指定した行のいずれかを含むチャンクにマッチするフィルタ."""
    wanted = tuple(numbers)
    if not wanted:
        msg = "line filter needs at least one line number"
        raise FilterError(msg)

    def match(chunk: Chunk) -> bool:
        return any(chunk.start_line <= n <= chunk.end_line for n in wanted)

    return match


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        msg = f"invalid regular expression {pattern!r}: {exc}"
        raise FilterError(msg) from exc


def description_filter(pattern: str) -> ChunkFilter:
    """開始コメントまたは終了コメントに正規表現がマッチするチャンクのフィルタ."""
    regex = _compile(pattern)

    def match(chunk: Chunk) -> bool:
        return bool(regex.search(chunk.start_comment) or regex.search(chunk.end_comment))

    return match


def content_filter(pattern: str) -> ChunkFilter:
    """SQL 本文に正規表現がマッチするチャンクのフィルタ."""
    regex = _compile(pattern)

    def match(chunk: Chunk) -> bool:
        return regex.search(chunk.sql) is not None

    return match


class FilterChain:
    """全てのフィルタにマッチするチャンクだけを通すチェーン.

    フィルタが1つもなければ全てのチャンクにマッチする。
    """

    def __init__(self, filters: Iterable[ChunkFilter] = ()) -> None:
        self._filters: list[ChunkFilter] = list(filters)

    def __len__(self) -> int:
        return len(self._filters)

    def add(self, chunk_filter: ChunkFilter) -> None:
        self._filters.append(chunk_filter)

    def matches(self, chunk: Chunk) -> bool:
        return all(f(chunk) for f in self._filters)
