"""psqlchunks 例外クラス."""


class PsqlChunksError(Exception):
    """psqlchunks の基底例外."""


class DbError(PsqlChunksError):
    """DB 接続・ドライバレベルの致命的エラー."""


class FilterError(PsqlChunksError):
    """フィルタパラメータが不正."""


class InputFileError(PsqlChunksError):
    """入力ファイルが読み込めない."""


class UsageError(PsqlChunksError):
    """コマンドラインの使い方が不正."""
