"""チャンクをトランザクション内で実行するエンジン."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from types import TracebackType
from typing import Any

import psycopg
from psycopg import sql
from psycopg.conninfo import conninfo_to_dict

from psqlchunks import config
from psqlchunks.chunk import LINE_NUMBER_NOT_AVAILABLE, Chunk, CommandStatus, Diagnostics
from psqlchunks.exceptions import DbError

logger = logging.getLogger(__name__)


@dataclass
class ConnectionParams:
    """接続パラメータ.

    None の項目は libpq の既定値（``PGHOST`` などの環境変数）に任せる。
    """

    host: str | None = None
    port: str | None = None
    dbname: str | None = None
    user: str | None = None
    password: str | None = None
    encoding: str | None = None
    """``SET client_encoding`` で設定する文字コード."""

    @classmethod
    def from_conninfo(cls, conninfo: str) -> ConnectionParams:
        """Libpq 形式の接続文字列（``host=... dbname=...`` または URL）から生成する."""
        params = conninfo_to_dict(conninfo)
        return cls(
            host=params.get("host"),
            port=_str_or_none(params.get("port")),
            dbname=params.get("dbname"),
            user=params.get("user"),
            password=params.get("password"),
            encoding=params.get("client_encoding"),
        )

    def connect_kwargs(self) -> dict[str, Any]:
        """psycopg.connect() に渡すキーワード引数を返す."""
        kwargs = {k: v for k, v in asdict(self).items() if v is not None}
        kwargs.pop("encoding", None)
        return kwargs


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


def error_line_from_position(sql_text: str, position: int | None, start_line: int) -> int:
    """サーバが返したエラー位置（1始まりの文字位置）を入力の行番号に変換する.

    Args:
        sql_text: 実行した SQL
        position: エラー位置. None は不明
        start_line: SQL の先頭行の行番号

    Returns:
        行番号. 変換できない場合は LINE_NUMBER_NOT_AVAILABLE

    """
    if position is None:
        logger.debug("no statement position reported")
        return LINE_NUMBER_NOT_AVAILABLE
    if position < 1 or position > len(sql_text):
        logger.error("statement position %d is beyond the length of the sql", position)
        return LINE_NUMBER_NOT_AVAILABLE
    return start_line + sql_text.count("\n", 0, position - 1)


def diagnostics_from_error(
    exc: psycopg.Error,
    sql_text: str,
    start_line: int,
    runtime: float = 0.0,
) -> Diagnostics:
    """ドライバの例外から診断情報を組み立てる.

    Args:
        exc: psycopg の例外
        sql_text: 実行した SQL
        start_line: SQL の先頭行の行番号
        runtime: 実行時間（秒）

    Returns:
        status が FAIL の診断情報

    """
    diag = exc.diag
    position = diag.statement_position
    return Diagnostics(
        status=CommandStatus.FAIL,
        error_line=error_line_from_position(
            sql_text,
            int(position) if position else None,
            start_line,
        ),
        sqlstate=diag.sqlstate or "",
        message_primary=diag.message_primary or "",
        message_detail=diag.message_detail or "",
        message_hint=diag.message_hint or "",
        runtime=runtime,
    )


class ChunkDb:
    """チャンク実行エンジン.

    1つのトップレベルトランザクションの中で、チャンクごとにセーブポイントを張って実行する。
    失敗したチャンクはセーブポイントまでロールバックするため、
    それ以前のチャンクの結果は後続のチャンクから見えたまま残る。

    Examples:
        >>> with ChunkDb() as db:
        ...     db.connect(ConnectionParams(dbname="test"))
        ...     for chunk in scan(lines):
        ...         db.run_chunk(chunk)
        ...     db.finish()
        # failed_count > 0 → rollback
        # 全て成功 → commit が True なら commit、それ以外は rollback

    """

    def __init__(self, connection: Any | None = None, *, commit: bool = False) -> None:
        """初期化.

        Args:
            connection: 接続済みの psycopg 接続（autocommit モード）. None なら connect() で接続する
            commit: 全チャンク成功時に commit する場合 True

        """
        self._connection = connection
        self.commit = commit
        self._failed_count = 0
        self._in_transaction = False
        self._error_message = ""

    def __enter__(self) -> ChunkDb:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disconnect()

    @property
    def failed_count(self) -> int:
        """現在の実行で失敗したチャンク数."""
        return self._failed_count

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def error_message(self) -> str:
        """最後に発生した接続レベルのエラーメッセージ."""
        return self._error_message

    @property
    def is_connected(self) -> bool:
        """使用可能な接続があるかどうか."""
        conn = self._connection
        return conn is not None and not conn.closed and not conn.broken

    def connect(self, params: ConnectionParams) -> bool:
        """DB に接続する.

        Args:
            params: 接続パラメータ

        Returns:
            接続できた場合 True. 失敗時のメッセージは error_message で取得できる

        """
        try:
            self._connection = psycopg.connect(autocommit=True, **params.connect_kwargs())
        except psycopg.Error as exc:
            logger.warning("could not connect: %s", exc)
            self._error_message = str(exc)
            self._connection = None
            return False
        logger.debug("connected to %s", self._connection.info.dsn)

        if params.encoding and not self.set_encoding(params.encoding):
            self._error_message = f"invalid client encoding: {params.encoding}"
            return False
        return self.is_connected

    def disconnect(self) -> None:
        """実行中のトランザクションを終了し、接続を閉じる."""
        if self._connection is None:
            return
        try:
            if self.is_connected:
                self.finish()
        finally:
            self._connection.close()
            self._connection = None
            self._in_transaction = False

    def set_encoding(self, encoding: str) -> bool:
        """クライアントの文字コードを設定する."""
        query = sql.SQL("SET client_encoding TO {}").format(sql.Literal(encoding))
        try:
            self._execute(query, silent=True)
        except DbError:
            return False
        return True

    def run_chunk(self, chunk: Chunk) -> bool:
        """チャンクをセーブポイント内で実行する.

        失敗した場合は chunk.diagnostics に診断情報を設定し、
        セーブポイントまでロールバックして failed_count を増やす。

        Args:
            chunk: 実行するチャンク

        Returns:
            成功した場合 True

        Raises:
            DbError: 接続がない、または実行中に接続が失われた場合

        """
        if not self.is_connected:
            msg = "lost db connection"
            raise DbError(msg)

        self._begin()
        self._execute(f"SAVEPOINT {config.SAVEPOINT_NAME}")

        sql_text = chunk.sql
        chunk.diagnostics = None
        started = time.monotonic()
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql_text)
        except psycopg.Error as exc:
            if not self.is_connected:
                msg = f"lost db connection: {exc}"
                raise DbError(msg) from exc
            chunk.diagnostics = diagnostics_from_error(
                exc,
                sql_text,
                chunk.start_line,
                runtime=time.monotonic() - started,
            )
        finally:
            cursor.close()

        if chunk.diagnostics is not None:
            logger.debug("chunk %r failed: %s", chunk, chunk.diagnostics.message_primary)
            self._execute(f"ROLLBACK TO SAVEPOINT {config.SAVEPOINT_NAME}")
            self._failed_count += 1
            return False

        self._execute(f"RELEASE SAVEPOINT {config.SAVEPOINT_NAME}")
        return True

    def finish(self) -> None:
        """トップレベルトランザクションを終了する.

        失敗したチャンクがあれば必ず rollback する。
        全て成功した場合は commit が True のときだけ commit し、それ以外は rollback する。
        """
        if self._failed_count > 0 or not self.commit:
            self._rollback()
        else:
            self._commit()
        self._failed_count = 0

    def cancel(self) -> tuple[bool, str]:
        """実行中の SQL のキャンセルを要求する.

        別スレッドやシグナルハンドラから呼び出してよい。

        Returns:
            (キャンセル要求が成功したか, 失敗時のメッセージ) のタプル

        """
        if not self.is_connected:
            logger.debug("not connected - no query to cancel")
            return True, ""
        try:
            self._connection.cancel_safe()
        except psycopg.Error as exc:
            logger.debug("could not cancel running query: %s", exc)
            return False, str(exc)
        logger.debug("cancel request sent")
        return True, ""

    def _begin(self) -> None:
        if not self._in_transaction:
            self._execute("BEGIN")
            self._in_transaction = True

    def _commit(self) -> None:
        if self._in_transaction:
            self._execute("COMMIT")
            self._in_transaction = False

    def _rollback(self) -> None:
        if self._in_transaction:
            self._execute("ROLLBACK")
            self._in_transaction = False

    def _execute(self, query: str | sql.Composable, *, silent: bool = False) -> None:
        """エンジン自身が発行する SQL を実行する.

        Args:
            query: 実行する SQL
            silent: True の場合、失敗をログに出さない

        Raises:
            DbError: 実行に失敗した場合

        """
        if not self.is_connected:
            logger.warning("can not execute sql - no db connection")
            msg = f'could not execute query "{query}": no db connection'
            raise DbError(msg)
        text = query if isinstance(query, str) else query.as_string(self._connection)
        logger.debug("executing sql: %s", text)
        cursor = self._connection.cursor()
        try:
            cursor.execute(query)
        except psycopg.Error as exc:
            msg = f'could not execute query "{text}": {exc.diag.message_primary or exc}'
            if not silent:
                logger.error("%s", msg)
            raise DbError(msg) from exc
        finally:
            cursor.close()
