"""ChunkScanner と transition() のテスト."""

from __future__ import annotations

import pytest

from psqlchunks.chunk import Chunk
from psqlchunks.parser.classifier import LineClass
from psqlchunks.parser.scanner import ChunkScanner, ScanState, scan, transition
from psqlchunks.render import format_chunk, format_file_marker


def lines_of(text: str) -> list[str]:
    """ファイル読み込みと同じく改行付きの行リストにする."""
    return text.splitlines(keepends=True)


def _chunks(text: str) -> list[Chunk]:
    return list(scan(lines_of(text)))


class TestTransitionClosingLines:
    """OTHER / FILE_MARKER / EMPTY / SEPARATOR の遷移."""

    @pytest.mark.parametrize(
        "cls",
        [LineClass.OTHER, LineClass.FILE_MARKER, LineClass.EMPTY, LineClass.SEPARATOR],
    )
    def test_after_end_comment_closes_chunk(self, cls: LineClass) -> None:
        state = transition(ScanState.CAPTURE_END_COMMENT, cls, LineClass.COMMENT_END)
        assert state is ScanState.END_CHUNK

    def test_other_captures_sql(self) -> None:
        for state in (ScanState.CAPTURE_SQL, ScanState.NEW_CHUNK, ScanState.IGNORE):
            assert transition(state, LineClass.OTHER, LineClass.EMPTY) is ScanState.CAPTURE_SQL

    @pytest.mark.parametrize("cls", [LineClass.FILE_MARKER, LineClass.EMPTY, LineClass.SEPARATOR])
    def test_ignored_outside_end_comment(self, cls: LineClass) -> None:
        assert transition(ScanState.CAPTURE_SQL, cls, LineClass.OTHER) is ScanState.IGNORE
        assert transition(ScanState.CAPTURE_START_COMMENT, cls, LineClass.COMMENT) is ScanState.IGNORE


class TestTransitionComment:
    """COMMENT の遷移."""

    def test_after_new_chunk(self) -> None:
        state = transition(ScanState.NEW_CHUNK, LineClass.COMMENT, LineClass.COMMENT_START)
        assert state is ScanState.CAPTURE_START_COMMENT

    @pytest.mark.parametrize(
        "state",
        [ScanState.CAPTURE_START_COMMENT, ScanState.CAPTURE_END_COMMENT],
    )
    def test_keeps_capturing(self, state: ScanState) -> None:
        assert transition(state, LineClass.COMMENT, LineClass.COMMENT) is state

    @pytest.mark.parametrize(
        "state",
        [ScanState.CAPTURE_SQL, ScanState.IGNORE, ScanState.END_CHUNK],
    )
    def test_comment_inside_sql(self, state: ScanState) -> None:
        assert transition(state, LineClass.COMMENT, LineClass.OTHER) is ScanState.CAPTURE_SQL


class TestTransitionMarkers:
    """COMMENT_START / COMMENT_END の遷移（直前行の種類に依存）."""

    def test_start_after_separator(self) -> None:
        state = transition(ScanState.IGNORE, LineClass.COMMENT_START, LineClass.SEPARATOR)
        assert state is ScanState.NEW_CHUNK

    def test_start_after_start(self) -> None:
        state = transition(ScanState.NEW_CHUNK, LineClass.COMMENT_START, LineClass.COMMENT_START)
        assert state is ScanState.CAPTURE_START_COMMENT

    def test_start_without_separator_is_sql(self) -> None:
        state = transition(ScanState.CAPTURE_SQL, LineClass.COMMENT_START, LineClass.OTHER)
        assert state is ScanState.CAPTURE_SQL

    def test_end_after_separator(self) -> None:
        state = transition(ScanState.IGNORE, LineClass.COMMENT_END, LineClass.SEPARATOR)
        assert state is ScanState.CAPTURE_END_COMMENT

    def test_end_without_separator_is_sql(self) -> None:
        state = transition(ScanState.CAPTURE_SQL, LineClass.COMMENT_END, LineClass.EMPTY)
        assert state is ScanState.CAPTURE_SQL


class TestFullMarkers:
    """開始・終了マーカーを両方持つ入力."""

    def test_single_chunk(self) -> None:
        text = "-----\n-- start: t\n-----\ncreate table t(x int);\n-----\n-- end: t\n-----\n"
        chunks = _chunks(text)
        assert len(chunks) == 1
        chunk = chunks[0]
        assert chunk.start_line == 4
        assert chunk.end_line == 4
        assert chunk.description == "t"
        assert chunk.end_comment == "t"
        assert chunk.sql == "create table t(x int);\n"

    def test_two_chunks(self) -> None:
        text = (
            "-----\n-- start: a\n-----\nselect 1;\n-----\n-- end: a\n-----\n"
            "\n"
            "-----\n-- start: b\n-----\nselect 2;\n-----\n-- end: b\n-----\n"
        )
        chunks = _chunks(text)
        assert [c.description for c in chunks] == ["a", "b"]
        assert [c.sql for c in chunks] == ["select 1;\n", "select 2;\n"]
        assert (chunks[1].start_line, chunks[1].end_line) == (12, 12)

    def test_multiline_comments(self) -> None:
        text = "---\n-- start: first\n-- second\n---\nselect 1;\n---\n-- end: done\n-- really\n---\n"
        chunk = _chunks(text)[0]
        assert chunk.start_comment == "first\nsecond"
        assert chunk.end_comment == "done\nreally"
        assert chunk.description == "first second"

    def test_repeated_start_markers_are_joined(self) -> None:
        text = "---\n-- start: one\n-- start: two\n---\nselect 1;\n"
        chunk = _chunks(text)[0]
        assert chunk.start_comment == "one\ntwo"


class TestMinimalMarkers:
    """終了マーカーを省略した入力."""

    def test_start_only(self) -> None:
        chunks = _chunks("---\n-- start: a\nselect 1;\n---\n-- start: b\nselect 2;\n")
        assert [c.description for c in chunks] == ["a", "b"]
        assert [(c.start_line, c.end_line) for c in chunks] == [(3, 3), (6, 6)]

    def test_sql_without_markers(self) -> None:
        chunks = _chunks("select 1;\nselect 2;\n")
        assert len(chunks) == 1
        assert chunks[0].description == ""
        assert chunks[0].sql == "select 1;\nselect 2;\n"

    def test_start_marker_not_after_separator_is_sql(self) -> None:
        chunks = _chunks("---\n-- start: a\nselect 1;\n-- start: not a marker\nselect 2;\n")
        assert len(chunks) == 1
        assert chunks[0].sql == "select 1;\n-- start: not a marker\nselect 2;\n"

    def test_comment_inside_sql(self) -> None:
        chunk = _chunks("---\n-- start: a\nselect 1;\n-- note\nselect 2;\n")[0]
        assert chunk.sql == "select 1;\n-- note\nselect 2;\n"


class TestLookahead:
    """前のチャンクを閉じた行が次のチャンクに引き継がれること."""

    def test_sql_after_end_comment_starts_next_chunk(self) -> None:
        text = "---\n-- start: a\nselect 1;\n---\n-- end: a\nselect 2;\nselect 3;\n"
        chunks = _chunks(text)
        assert len(chunks) == 2
        assert chunks[0].sql == "select 1;\n"
        assert chunks[1].sql == "select 2;\nselect 3;\n"
        assert [line.number for line in chunks[1].sql_lines] == [6, 7]

    def test_start_marker_seeds_next_chunk(self) -> None:
        text = "---\n-- start: a\nselect 1;\n---\n-- start: b\n-- more b\n---\nselect 2;\n"
        chunks = _chunks(text)
        assert [c.start_comment for c in chunks] == ["a", "b\nmore b"]
        assert (chunks[1].start_line, chunks[1].end_line) == (8, 8)

    def test_scanner_state_after_chunk(self) -> None:
        scanner = ChunkScanner(lines_of("---\n-- start: a\nselect 1;\n---\n-- start: b\nselect 2;\n"))
        scanner.next_chunk()
        assert scanner.state is ScanState.COPY_CACHED
        assert scanner.next_chunk() is not None
        assert scanner.next_chunk() is None


class TestBlankLines:
    """読み飛ばした行を空行として戻すこと."""

    def test_blank_lines_inside_sql(self) -> None:
        chunk = _chunks("select 1;\n\n\nselect 2;\n")[0]
        assert [(line.number, line.text) for line in chunk.sql_lines] == [
            (1, "select 1;"),
            (2, ""),
            (3, ""),
            (4, "select 2;"),
        ]

    def test_separator_inside_sql_becomes_blank(self) -> None:
        chunk = _chunks("select 1;\n-----\nselect 2;\n")[0]
        assert [line.text for line in chunk.sql_lines] == ["select 1;", "", "select 2;"]

    def test_leading_and_trailing_blanks_are_dropped(self) -> None:
        chunk = _chunks("\n\nselect 1;\n\n\n")[0]
        assert chunk.sql == "select 1;\n"
        assert (chunk.start_line, chunk.end_line) == (3, 3)

    def test_line_numbers_are_contiguous(self) -> None:
        text = "---\n-- start: a\n\nselect 1;\n\n---\n\nselect 2;\n"
        chunk = _chunks(text)[0]
        numbers = [line.number for line in chunk.sql_lines]
        assert numbers == list(range(chunk.start_line, chunk.end_line + 1))


class TestIncompleteChunks:
    """SQL を持たないチャンクは返されないこと."""

    def test_empty_input(self) -> None:
        assert _chunks("") == []

    def test_comment_only_chunk_is_discarded(self) -> None:
        assert _chunks("---\n-- start: nothing\n---\n---\n-- end: nothing\n---\n") == []

    def test_comment_only_chunk_folds_into_next(self) -> None:
        text = "---\n-- start: empty\n---\n---\n-- start: real\n---\nselect 1;\n"
        chunks = _chunks(text)
        assert len(chunks) == 1
        assert chunks[0].description == "real"

    def test_separators_and_blanks_only(self) -> None:
        assert _chunks("---\n\n-----\n   \n") == []

    def test_never_returns_chunk_without_sql(self) -> None:
        text = "---\n-- start: a\n---\n-- end: a\n---\n---\n-- start: b\nselect 1;\n---\n-- end: b\n"
        for chunk in _chunks(text):
            assert chunk.has_sql
            assert chunk.start_line <= chunk.end_line


class TestFileMarkers:
    """ファイルマーカー行は無視されること."""

    def test_file_marker_is_ignored(self) -> None:
        text = f"{format_file_marker('a.sql')}\n---\n-- start: a\nselect 1;\n"
        chunks = _chunks(text)
        assert len(chunks) == 1
        assert chunks[0].sql == "select 1;\n"

    def test_file_marker_closes_end_comment(self) -> None:
        text = f"---\n-- start: a\nselect 1;\n---\n-- end: a\n{format_file_marker('b.sql')}\nselect 2;\n"
        chunks = _chunks(text)
        assert [c.sql for c in chunks] == ["select 1;\n", "select 2;\n"]


class TestLineEndings:
    """行末の改行の扱い."""

    def test_crlf(self) -> None:
        chunk = _chunks("---\r\n-- start: a\r\nselect 1;\r\n")[0]
        assert chunk.description == "a"
        assert chunk.sql == "select 1;\n"

    def test_lines_without_newlines(self) -> None:
        chunk = list(scan(["---", "-- start: a", "select 1;"]))[0]
        assert chunk.sql == "select 1;\n"


class TestIteration:
    """イテレータとしての利用."""

    def test_scanner_is_iterable(self) -> None:
        scanner = ChunkScanner(lines_of("select 1;\n"))
        assert [c.sql for c in scanner] == ["select 1;\n"]

    def test_line_number_counts_read_lines(self) -> None:
        scanner = ChunkScanner(lines_of("---\n-- start: a\nselect 1;\n---\n-- start: b\nselect 2;\n"))
        assert scanner.line_number == 1
        scanner.next_chunk()
        assert scanner.line_number == 6
        list(scanner)
        assert scanner.line_number == 7

    def test_line_numbers_point_to_input_lines(self) -> None:
        text = (
            "-- header comment\n"
            "---\n-- start: a\n---\n"
            "select 1\n"
            "\n"
            "  from t;\n"
            "---\n-- end: a\n---\n"
            "---\n-- start: b\n"
            "select 2;\n"
        )
        source_lines = text.splitlines()
        restored = {line.number: line.text for chunk in _chunks(text) for line in chunk.sql_lines}
        for number, line_text in restored.items():
            assert source_lines[number - 1] == line_text
        assert restored[1] == "-- header comment"


class TestRoundTrip:
    """concat 出力を再スキャンすると同じチャンクになること."""

    def test_round_trip(self) -> None:
        text = (
            "---\n-- start: create\n-- two lines\n---\n"
            "create table t (x int);\n"
            "\n"
            "insert into t values (1);\n"
            "---\n-- end: created\n---\n"
            "---\n-- start: select\n"
            "select * from t;\n"
            "---\n-- start: third\n---\n"
            "select 3;\n"
            "-- start: inside sql\n"
        )
        first = _chunks(text)
        rendered = format_file_marker("in.sql") + "\n" + "".join(format_chunk(c) + "\n" for c in first)
        second = _chunks(rendered)

        assert [c.sql for c in second] == [c.sql for c in first]
        assert [c.start_comment for c in second] == [c.start_comment for c in first]
        assert [c.end_comment or c.start_comment for c in second] == [
            c.end_comment or c.start_comment for c in first
        ]
