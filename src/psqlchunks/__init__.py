"""psqlchunks: SQL ファイルをチャンクに分割し、チャンク単位で実行・検証する."""

from psqlchunks.chunk import LINE_NUMBER_NOT_AVAILABLE, Chunk, CommandStatus, Diagnostics, Line
from psqlchunks.db import ChunkDb, ConnectionParams, diagnostics_from_error
from psqlchunks.exceptions import DbError, FilterError, InputFileError, PsqlChunksError, UsageError
from psqlchunks.filters import (
    ChunkFilter,
    FilterChain,
    content_filter,
    description_filter,
    line_filter,
    parse_line_numbers,
)
from psqlchunks.parser import ChunkScanner, LineClass, ScanState, classify_line, scan, transition
from psqlchunks.render import error_excerpt, format_chunk, format_file_marker, format_list_row

__all__ = [
    "LINE_NUMBER_NOT_AVAILABLE",
    "Chunk",
    "ChunkDb",
    "ChunkFilter",
    "ChunkScanner",
    "CommandStatus",
    "ConnectionParams",
    "DbError",
    "Diagnostics",
    "FilterChain",
    "FilterError",
    "InputFileError",
    "Line",
    "LineClass",
    "PsqlChunksError",
    "ScanState",
    "UsageError",
    "classify_line",
    "content_filter",
    "description_filter",
    "diagnostics_from_error",
    "error_excerpt",
    "format_chunk",
    "format_file_marker",
    "format_list_row",
    "line_filter",
    "parse_line_numbers",
    "scan",
    "transition",
]
