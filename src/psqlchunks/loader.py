"""入力ファイルの読み込み."""

from __future__ import annotations

import codecs
import io
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

from psqlchunks.exceptions import InputFileError, UsageError

STDIN_NAME = "-"

DEFAULT_ENCODING = "utf-8"

# PostgreSQL の文字コード名（英数字以外を除いた大文字）→ Python のコーデック名
_PG_ENCODINGS = {
    "SQLASCII": "ascii",
    "UTF8": "utf-8",
    "UNICODE": "utf-8",
    "LATIN1": "iso8859-1",
    "LATIN2": "iso8859-2",
    "LATIN3": "iso8859-3",
    "LATIN4": "iso8859-4",
    "LATIN5": "iso8859-9",
    "LATIN6": "iso8859-10",
    "LATIN7": "iso8859-13",
    "LATIN8": "iso8859-14",
    "LATIN9": "iso8859-15",
    "LATIN10": "iso8859-16",
    "ISO88595": "iso8859-5",
    "ISO88596": "iso8859-6",
    "ISO88597": "iso8859-7",
    "ISO88598": "iso8859-8",
    "WIN866": "cp866",
    "WIN874": "cp874",
    "WIN1250": "cp1250",
    "WIN1251": "cp1251",
    "WIN1252": "cp1252",
    "WIN1253": "cp1253",
    "WIN1254": "cp1254",
    "WIN1255": "cp1255",
    "WIN1256": "cp1256",
    "WIN1257": "cp1257",
    "WIN1258": "cp1258",
    "KOI8R": "koi8-r",
    "KOI8U": "koi8-u",
    "EUCJP": "euc_jp",
    "EUCJIS2004": "euc_jis_2004",
    "SJIS": "shift_jis",
    "SHIFTJIS2004": "shift_jis_2004",
    "EUCKR": "euc_kr",
    "UHC": "cp949",
    "EUCCN": "gb2312",
    "GBK": "gbk",
    "GB18030": "gb18030",
    "BIG5": "big5",
    "JOHAB": "johab",
}


def python_encoding(name: str) -> str:
    """PostgreSQL の文字コード名を Python のコーデック名に変換する.

    PostgreSQL と同じく大文字小文字と英数字以外の文字を区別しない。
    対応表にない名前は Python のコーデック名として解釈する。

    Args:
        name: 文字コード名（例: ``LATIN1``, ``win1252``, ``utf-8``）

    Returns:
        Python のコーデック名

    Raises:
        UsageError: 未知の文字コード名の場合

    """
    key = re.sub(r"[^0-9A-Za-z]", "", name).upper()
    if key in _PG_ENCODINGS:
        return _PG_ENCODINGS[key]
    try:
        return codecs.lookup(name).name
    except LookupError:
        msg = f"unknown encoding: {name}"
        raise UsageError(msg) from None


@contextmanager
def open_input(path: str | Path, *, encoding: str | None = None) -> Iterator[TextIO]:
    """入力ファイルを開く.

    ``-`` は標準入力を表す。標準入力は閉じない。
    読み込み中の文字コードエラーは InputFileError に変換する。

    Args:
        path: ファイルパス、または ``-``
        encoding: 入力の文字コード（Python のコーデック名）. None はファイルなら UTF-8、
            標準入力ならそのまま

    Yields:
        行単位で読めるテキストストリーム

    Raises:
        InputFileError: ファイルが開けない、または指定の文字コードで読めない場合

    """
    name = "stdin" if str(path) == STDIN_NAME else str(path)
    with _open(path, encoding) as stream:
        try:
            yield stream
        except UnicodeDecodeError as exc:
            used = encoding or getattr(stream, "encoding", None) or DEFAULT_ENCODING
            msg = f'Could not decode "{name}" as {used}: {exc.reason}.'
            raise InputFileError(msg) from exc


@contextmanager
def _open(path: str | Path, encoding: str | None) -> Iterator[TextIO]:
    if str(path) == STDIN_NAME:
        buffer = getattr(sys.stdin, "buffer", None)
        if encoding is None or buffer is None:
            yield sys.stdin
            return
        stream = io.TextIOWrapper(buffer, encoding=encoding)
        try:
            yield stream
        finally:
            # sys.stdin のバッファを閉じないよう切り離す
            stream.detach()
        return

    file_path = Path(path)
    try:
        stream = file_path.open(encoding=encoding or DEFAULT_ENCODING)
    except OSError as exc:
        msg = f'Could not open file "{file_path}".'
        raise InputFileError(msg) from exc
    try:
        yield stream
    finally:
        stream.close()
