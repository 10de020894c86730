"""
psqlchunks: SQL ファイルをチャンク単位で一覧・連結・実行する CLI.

Usage:
  psqlchunks <command> [options] files...

Commands:
  concat   全ファイルのチャンクを連結して標準出力に書き出す.
  list     チャンクを一覧表示する.
  run      チャンクを DB で実行・検証する.
  help     ヘルプを表示する.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from enum import IntEnum
from getpass import getpass
from typing import Any

from rich.console import Console
from rich.markup import escape

from psqlchunks import config
from psqlchunks.chunk import Chunk
from psqlchunks.db import ChunkDb, ConnectionParams
from psqlchunks.exceptions import DbError, FilterError, InputFileError, UsageError
from psqlchunks.filters import (
    ChunkFilter,
    FilterChain,
    content_filter,
    description_filter,
    line_filter,
    parse_line_numbers,
)
from psqlchunks.loader import STDIN_NAME, open_input, python_encoding
from psqlchunks.parser.scanner import ChunkScanner
from psqlchunks.render import error_excerpt, format_chunk, format_file_marker, format_list_row

logger = logging.getLogger(__name__)

_FAIL_SEPARATOR = "-" * 55


class ExitCode(IntEnum):
    """終了コード."""

    OK = 0
    USAGE = 1
    SQL = 2
    DB = 3


# ---------------------------------------------------------------------------
# 引数パーサ
# ---------------------------------------------------------------------------

class _ArgumentParser(argparse.ArgumentParser):
    """使い方の誤りを終了コード 1 で報告するパーサ."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(ExitCode.USAGE, f'{self.prog}: error: {message}\nCall with "help" for help.\n')


def _context_lines(value: str) -> int:
    try:
        lines = int(value)
    except ValueError:
        msg = "Illegal value for context lines"
        raise argparse.ArgumentTypeError(msg) from None
    if lines < 0:
        msg = "Illegal value for context lines. Context lines must be positive."
        raise argparse.ArgumentTypeError(msg)
    return lines


def _filter_arg(factory: Any) -> Any:
    def convert(value: str) -> ChunkFilter:
        try:
            return factory(value)
        except FilterError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc

    return convert


def _common_options() -> argparse.ArgumentParser:
    p = _ArgumentParser(add_help=False)
    p.add_argument("--help", action="help", help="Show this help message and exit.")
    p.add_argument(
        "-L", "--lines",
        dest="line_filter",
        metavar="N[,N...]",
        type=_filter_arg(lambda value: line_filter(parse_line_numbers(value))),
        help="Only chunks spanning one of the given line numbers.",
    )
    p.add_argument(
        "-D", "--description",
        dest="description_filter",
        metavar="REGEX",
        type=_filter_arg(description_filter),
        help="Only chunks whose start or end comment matches REGEX.",
    )
    p.add_argument(
        "-S", "--content",
        dest="content_filter",
        metavar="REGEX",
        type=_filter_arg(content_filter),
        help="Only chunks whose SQL matches REGEX.",
    )
    p.add_argument(
        "--color",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Force colored output on or off. (default: only on a terminal)",
    )
    p.add_argument(
        "-E", "--encoding",
        metavar="ENC",
        help="Encoding of the input files, also used as the client encoding by run. "
        "PostgreSQL names such as LATIN1 are accepted. (default: UTF8)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr.")
    p.add_argument("files", nargs="+", metavar="FILE", help='SQL files. Use "-" to read from stdin.')
    return p


def _run_options() -> argparse.ArgumentParser:
    p = _ArgumentParser(add_help=False)
    sql = p.add_argument_group("SQL handling")
    sql.add_argument(
        "-c", "--commit",
        action="store_true",
        help="Commit SQL to the database. A commit will only be executed if no errors "
        "occurred. (default: rollback)",
    )
    sql.add_argument(
        "-a", "--abort",
        action="store_true",
        help="Abort execution after the first failed chunk.",
    )
    sql.add_argument(
        "-l", "--context-lines",
        type=_context_lines,
        default=config.DEFAULT_CONTEXT_LINES,
        metavar="N",
        help=f"Lines to output before and after failing lines of SQL. "
        f"(default: {config.DEFAULT_CONTEXT_LINES})",
    )
    conn = p.add_argument_group("connection parameters")
    conn.add_argument("-d", dest="dbname", metavar="DBNAME", help="Database name.")
    conn.add_argument("-U", dest="user", metavar="USER", help="User.")
    conn.add_argument("-h", dest="host", metavar="HOST", help="Host or socket directory.")
    conn.add_argument("-p", dest="port", metavar="PORT", help="Port.")
    conn.add_argument("-W", dest="ask_pass", action="store_true", help="Ask for a password.")
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="psqlchunks",
        description="Split SQL files into chunks and list, concat or run them.",
        epilog=(
            "Return codes:\n"
            f"  {ExitCode.OK:d}  no errors\n"
            f"  {ExitCode.USAGE:d}  invalid usage of this program\n"
            f"  {ExitCode.SQL:d}  the SQL contains errors\n"
            f"  {ExitCode.DB:d}  (internal) database error\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit.")

    subparsers = parser.add_subparsers(title="commands", metavar="<command>", dest="command")
    subparsers.required = True

    common = _common_options()
    p = subparsers.add_parser(
        "concat",
        parents=[common],
        add_help=False,
        help="Concat all SQL files and write the output to stdout.",
    )
    p.set_defaults(func=_cmd_concat)

    p = subparsers.add_parser("list", parents=[common], add_help=False, help="List chunks.")
    p.set_defaults(func=_cmd_list)

    p = subparsers.add_parser(
        "run",
        parents=[common, _run_options()],
        add_help=False,
        help="Run/test chunks in the database.",
    )
    p.set_defaults(func=_cmd_run)

    p = subparsers.add_parser("help", add_help=False, help="Show this help message.")
    p.set_defaults(func=lambda args, console: _cmd_help(parser))

    return parser


# ---------------------------------------------------------------------------
# コマンド
# ---------------------------------------------------------------------------

def _cmd_help(parser: argparse.ArgumentParser) -> ExitCode:
    parser.print_help()
    return ExitCode.OK


def _filter_chain(args: argparse.Namespace) -> FilterChain:
    candidates = (args.line_filter, args.description_filter, args.content_filter)
    return FilterChain(f for f in candidates if f is not None)


def _load_chunks(args: argparse.Namespace) -> list[tuple[str, list[Chunk]]]:
    """全ファイルを読み込み、フィルタを通ったチャンクをファイルごとに返す."""
    if args.files.count(STDIN_NAME) > 1:
        msg = "stdin can only be read once"
        raise UsageError(msg)
    encoding = python_encoding(args.encoding) if args.encoding else None
    chain = _filter_chain(args)
    result: list[tuple[str, list[Chunk]]] = []
    for path in args.files:
        with open_input(path, encoding=encoding) as stream:
            scanner = ChunkScanner(stream)
            chunks = [chunk for chunk in scanner if chain.matches(chunk)]
        logger.debug("%s: %d lines, %d chunks", path, scanner.line_number - 1, len(chunks))
        result.append((path, chunks))
    return result


def _cmd_concat(args: argparse.Namespace, console: Console) -> ExitCode:
    for path, chunks in _load_chunks(args):
        console.out(format_file_marker(path), highlight=False)
        for chunk in chunks:
            console.out(format_chunk(chunk), highlight=False)
    return ExitCode.OK


def _cmd_list(args: argparse.Namespace, console: Console) -> ExitCode:
    files = _load_chunks(args)
    console.print("[bold] start  |  end   | contents[/bold]")
    for path, chunks in files:
        if len(files) > 1:
            console.print(escape(format_file_marker(path)))
        for chunk in chunks:
            console.print(escape(format_list_row(chunk)))
    return ExitCode.OK


def _print_failure(console: Console, chunk: Chunk, context_lines: int) -> None:
    if not chunk.has_diagnostics:
        return
    diagnostics = chunk.diagnostics
    console.print(_FAIL_SEPARATOR)
    console.print(f"[bold]> description : {escape(diagnostics.message_primary)}")
    console.print(f"[bold]> line        : {diagnostics.error_line}")
    console.print(f"[bold]> sql state   : {escape(diagnostics.sqlstate)}")
    if diagnostics.message_detail:
        console.print(f"[bold]> details     : {escape(diagnostics.message_detail)}")
    if diagnostics.message_hint:
        console.print(f"[bold]> hint        : {escape(diagnostics.message_hint)}")
    console.print("[bold]> SQL         :")
    console.print()
    for line in error_excerpt(chunk, context_lines):
        if line.number == diagnostics.error_line:
            console.print(f"[red]{escape(line.text)}[/red]")
        else:
            console.print(escape(line.text))
    console.print()
    console.print(_FAIL_SEPARATOR)


def _run_chunks(
    args: argparse.Namespace,
    db: ChunkDb,
    files: list[tuple[str, list[Chunk]]],
    console: Console,
) -> ExitCode:
    aborted = False
    for _path, chunks in files:
        for chunk in chunks:
            ok = db.run_chunk(chunk)
            status = "[green]OK[/green]  " if ok else "[red]FAIL[/red]"
            console.print(
                f"{status}  {escape(f'[{chunk.start_line}-{chunk.end_line}]')} {escape(chunk.description)}",
                highlight=False,
            )
            if not ok:
                _print_failure(console, chunk, args.context_lines)
                if args.abort:
                    console.print("Chunk failed. Aborting.")
                    aborted = True
                    break
        if aborted:
            break

    failed = db.failed_count
    db.finish()

    if failed == 0:
        console.print("\nAll chunks passed.")
        if args.commit:
            console.print("[yellow]Commit[/yellow]")
        return ExitCode.OK

    console.print(f"\n{failed} chunks failed.")
    if args.commit:
        console.print("[yellow]Rollback[/yellow]")
    return ExitCode.SQL


@contextmanager
def _cancel_on_sigint(db: ChunkDb, err_console: Console) -> Iterator[None]:
    """SIGINT で実行中の SQL をキャンセルする."""

    def handler(signum: int, frame: Any) -> None:
        ok, message = db.cancel()
        if not ok:
            err_console.print(f"Could not cancel the running query: {escape(message)}")

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _cmd_run(args: argparse.Namespace, console: Console) -> ExitCode:
    err_console = Console(stderr=True, highlight=False, emoji=False)
    files = _load_chunks(args)

    password = getpass("Password: ") if args.ask_pass else None
    params = ConnectionParams(
        host=args.host,
        port=args.port,
        dbname=args.dbname,
        user=args.user,
        password=password,
        encoding=args.encoding,
    )

    db = ChunkDb(commit=args.commit)
    if not db.connect(params):
        err_console.print(escape(db.error_message))
        db.disconnect()
        # 接続失敗は使い方の誤り（終了コード 1）として扱う
        return ExitCode.USAGE

    try:
        with db, _cancel_on_sigint(db, err_console):
            return _run_chunks(args, db, files, console)
    except DbError as exc:
        console.print(f"Fatal error: {escape(str(exc))}")
        return ExitCode.DB


# ---------------------------------------------------------------------------
# エントリポイント
# ---------------------------------------------------------------------------

def _log_level(verbose: bool) -> int:
    """ログレベルを決める. 不正な PSQLCHUNKS_LOG_LEVEL は WARNING とする."""
    if verbose:
        return logging.DEBUG
    level = logging.getLevelName(config.LOG_LEVEL.upper())
    if isinstance(level, int):
        return level
    logger.warning("invalid log level %r, using WARNING", config.LOG_LEVEL)
    return logging.WARNING


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=_log_level(getattr(args, "verbose", False)),
        format=config.LOG_FORMAT,
        stream=sys.stderr,
    )

    color = getattr(args, "color", None)
    console = Console(
        highlight=False,
        emoji=False,
        soft_wrap=True,
        force_terminal=color,
        color_system=None if color is False else "auto",
    )
    try:
        return int(args.func(args, console))
    except (InputFileError, UsageError) as exc:
        Console(stderr=True, highlight=False, emoji=False).print(escape(str(exc)))
        return ExitCode.USAGE


if __name__ == "__main__":
    raise SystemExit(main())
