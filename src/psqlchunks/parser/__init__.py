"""チャンクスキャナパッケージ."""

from psqlchunks.parser.classifier import Classification, LineClass, classify_line
from psqlchunks.parser.scanner import ChunkScanner, ScanState, scan, transition

__all__ = [
    "ChunkScanner",
    "Classification",
    "LineClass",
    "ScanState",
    "classify_line",
    "scan",
    "transition",
]
