"""行ストリームをチャンクに分割するステートマシン."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from enum import Enum

from psqlchunks.chunk import Chunk
from psqlchunks.parser.classifier import LineClass, classify_line

logger = logging.getLogger(__name__)


class ScanState(Enum):
    """スキャナの状態."""

    CAPTURE_SQL = "capture_sql"
    CAPTURE_START_COMMENT = "capture_start_comment"
    CAPTURE_END_COMMENT = "capture_end_comment"
    NEW_CHUNK = "new_chunk"
    END_CHUNK = "end_chunk"
    IGNORE = "ignore"
    COPY_CACHED = "copy_cached"


# 終了コメントの直後に来るとチャンクを閉じる行
_CLOSING = frozenset(
    {
        LineClass.OTHER,
        LineClass.FILE_MARKER,
        LineClass.EMPTY,
        LineClass.SEPARATOR,
    }
)

# 終了コメント以外の状態から遷移する先
_OUTSIDE_END_COMMENT = {
    LineClass.OTHER: ScanState.CAPTURE_SQL,
    LineClass.FILE_MARKER: ScanState.IGNORE,
    LineClass.EMPTY: ScanState.IGNORE,
    LineClass.SEPARATOR: ScanState.IGNORE,
}

# COMMENT 行で状態を維持する状態
_COMMENT_KEEPS = frozenset({ScanState.CAPTURE_START_COMMENT, ScanState.CAPTURE_END_COMMENT})

# 直前行の種類で決まるマーカー行の遷移先（該当しなければ CAPTURE_SQL）
_MARKER_TRANSITIONS = {
    (LineClass.COMMENT_START, LineClass.SEPARATOR): ScanState.NEW_CHUNK,
    (LineClass.COMMENT_START, LineClass.COMMENT_START): ScanState.CAPTURE_START_COMMENT,
    (LineClass.COMMENT_END, LineClass.SEPARATOR): ScanState.CAPTURE_END_COMMENT,
}


def transition(state: ScanState, cls: LineClass, last_cls: LineClass) -> ScanState:
    """現在の状態と行の種類から次の状態を求める.

    Args:
        state: 直前の状態
        cls: 現在行の種類
        last_cls: 直前行の種類

    Returns:
        次の状態

    """
    if cls in _CLOSING:
        if state is ScanState.CAPTURE_END_COMMENT:
            return ScanState.END_CHUNK
        return _OUTSIDE_END_COMMENT[cls]
    if cls is LineClass.COMMENT:
        if state is ScanState.NEW_CHUNK:
            return ScanState.CAPTURE_START_COMMENT
        if state in _COMMENT_KEEPS:
            return state
        return ScanState.CAPTURE_SQL
    # 区切り線に続かない start:/end: は SQL の一部として扱う
    return _MARKER_TRANSITIONS.get((cls, last_cls), ScanState.CAPTURE_SQL)


class ChunkScanner:
    """行ストリームからチャンクを1つずつ取り出すスキャナ.

    Examples:
        >>> scanner = ChunkScanner(["-----", "-- start: t", "select 1;"])
        >>> chunk = scanner.next_chunk()
        >>> chunk.description, chunk.start_line, chunk.end_line
        ('t', 3, 3)
        >>> scanner.next_chunk() is None
        True

    """

    def __init__(self, lines: Iterable[str]) -> None:
        """初期化.

        Args:
            lines: 入力行. 行末の改行は取り除かれる。

        """
        self._lines = iter(lines)
        self._cache = Chunk()
        self._chunk = Chunk()
        self._state = ScanState.CAPTURE_SQL
        self._last_cls = LineClass.EMPTY
        self._line_number = 1
        self._last_nonempty_line = 1
        self._actions: dict[ScanState, Callable[[str, LineClass, int], bool]] = {
            ScanState.CAPTURE_SQL: self._capture_sql,
            ScanState.CAPTURE_START_COMMENT: self._capture_start_comment,
            ScanState.CAPTURE_END_COMMENT: self._capture_end_comment,
            ScanState.NEW_CHUNK: self._new_chunk,
            ScanState.END_CHUNK: self._end_chunk,
            ScanState.IGNORE: self._ignore,
        }

    def __iter__(self) -> Iterator[Chunk]:
        while (chunk := self.next_chunk()) is not None:
            yield chunk

    @property
    def state(self) -> ScanState:
        """現在の状態."""
        return self._state

    @property
    def line_number(self) -> int:
        """次に読む行の行番号."""
        return self._line_number

    def next_chunk(self) -> Chunk | None:
        """次のチャンクを返す.

        チャンクの完成を検出するか入力が尽きるまで行を読む。
        入力が尽きて SQL が1行も溜まっていなければ途中状態を破棄して None を返す。

        Returns:
            SQL 行を1行以上持つチャンク、または None

        """
        self._chunk = Chunk()
        if self._state is ScanState.COPY_CACHED:
            self._chunk = self._cache
            self._cache = Chunk()
            self._state = ScanState.NEW_CHUNK

        for raw in self._lines:
            line = raw.rstrip("\r\n")
            classification = classify_line(line)
            cls = classification.cls
            self._state = transition(self._state, cls, self._last_cls)
            ready = self._actions[self._state](line, cls, classification.content_pos)

            if self._state is not ScanState.IGNORE:
                self._last_nonempty_line = self._line_number
            self._last_cls = cls
            self._line_number += 1

            if ready:
                self._state = ScanState.COPY_CACHED
                return self._emit()

        if not self._chunk.has_sql:
            # SQL を持たない途中のチャンクは破棄する
            self._chunk.clear()
            return None
        return self._emit()

    def _emit(self) -> Chunk:
        chunk = self._chunk
        self._chunk = Chunk()
        logger.debug("chunk ready: %r", chunk)
        return chunk

    def _capture_sql(self, line: str, cls: LineClass, content_pos: int) -> bool:
        if self._chunk.has_sql:
            # 読み飛ばした空行・区切り線を空行として戻し、行番号の対応を保つ
            for number in range(self._last_nonempty_line + 1, self._line_number):
                self._chunk.append_sql_line("", number)
        self._chunk.append_sql_line(line, self._line_number)
        return False

    def _end_chunk(self, line: str, cls: LineClass, content_pos: int) -> bool:
        if not self._chunk.has_sql:
            return False
        self._cache = Chunk()
        if cls is LineClass.OTHER:
            # 次のチャンクに属する SQL
            self._cache.append_sql_line(line, self._line_number)
        return True

    def _new_chunk(self, line: str, cls: LineClass, content_pos: int) -> bool:
        if self._chunk.has_sql:
            self._cache = Chunk()
            self._cache.append_start_comment(line[content_pos:])
            return True
        self._chunk.clear()
        return self._capture_start_comment(line, cls, content_pos)

    def _capture_start_comment(self, line: str, cls: LineClass, content_pos: int) -> bool:
        self._chunk.append_start_comment(line[content_pos:])
        return False

    def _capture_end_comment(self, line: str, cls: LineClass, content_pos: int) -> bool:
        self._chunk.append_end_comment(line[content_pos:])
        return False

    def _ignore(self, line: str, cls: LineClass, content_pos: int) -> bool:
        return False


def scan(lines: Iterable[str]) -> Iterator[Chunk]:
    """行ストリームを走査してチャンクを順に返す."""
    return iter(ChunkScanner(lines))
