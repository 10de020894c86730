"""チャンクのデータモデル."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

LINE_NUMBER_NOT_AVAILABLE = 0
"""エラー行が特定できないことを表す行番号."""


@dataclass(frozen=True)
class Line:
    """入力中の1行."""

    number: int
    """元の入力内での行番号（1始まり）."""

    text: str
    """改行を含まない行文字列."""


class CommandStatus(Enum):
    """チャンク実行結果."""

    OK = "ok"
    FAIL = "fail"


@dataclass
class Diagnostics:
    """チャンク実行失敗時の診断情報."""

    status: CommandStatus = CommandStatus.OK
    error_line: int = LINE_NUMBER_NOT_AVAILABLE
    """エラー行の入力内行番号. 不明な場合は 0."""

    sqlstate: str = ""
    message_primary: str = ""
    message_detail: str = ""
    message_hint: str = ""
    runtime: float = 0.0
    """失敗した SQL の実行時間（秒）."""


@dataclass
class Chunk:
    """区切りコメントで囲まれた SQL のまとまり."""

    sql_lines: list[Line] = field(default_factory=list)
    start_comment: str = ""
    end_comment: str = ""
    start_line: int = 0
    """SQL 行番号の最小値. 0 は未設定."""

    end_line: int = 0
    """SQL 行番号の最大値. 0 は未設定."""

    diagnostics: Diagnostics | None = None

    def __repr__(self) -> str:
        """デバッグ用の文字列表現."""
        return f"Chunk(lines={self.start_line}-{self.end_line}, description={self.description!r})"

    @property
    def has_sql(self) -> bool:
        """SQL 行を1行以上持つかどうか."""
        return bool(self.sql_lines)

    @property
    def has_diagnostics(self) -> bool:
        """診断情報が付いているかどうか."""
        return self.diagnostics is not None

    @property
    def sql(self) -> str:
        """実行用の SQL 文字列（各行を改行で終端）."""
        return "".join(f"{line.text}\n" for line in self.sql_lines)

    @property
    def description(self) -> str:
        """1行にまとめた開始コメント."""
        return self.start_comment.replace("\n", " ")

    def append_sql_line(self, text: str, number: int) -> None:
        """SQL 行を追加し、行番号の範囲を更新する."""
        self.sql_lines.append(Line(number=number, text=text))
        if self.start_line == 0 or number < self.start_line:
            self.start_line = number
        if self.end_line < number:
            self.end_line = number

    def append_start_comment(self, fragment: str) -> None:
        self.start_comment = _join(self.start_comment, fragment)

    def append_end_comment(self, fragment: str) -> None:
        self.end_comment = _join(self.end_comment, fragment)

    def clear(self) -> None:
        """全ての内容を破棄する."""
        self.sql_lines = []
        self.start_comment = ""
        self.end_comment = ""
        self.start_line = 0
        self.end_line = 0
        self.diagnostics = None


def _join(target: str, fragment: str) -> str:
    if target:
        return f"{target}\n{fragment}"
    return fragment
