"""psqlchunks の設定値.

テストからは ``monkeypatch.setattr(config, "...", value)`` で差し替える。
"""

from __future__ import annotations

import os

# エラー発生行の前後に表示する SQL の行数
DEFAULT_CONTEXT_LINES = 2

# チャンク区切り線の幅
SEPARATOR_WIDTH = 59

# ファイルマーカー行の先頭ダッシュ数（4 以上であること）
FILE_MARKER_DASHES = 20

# チャンクごとに張るセーブポイント名
SAVEPOINT_NAME = "chunk"

# ログ出力
LOG_LEVEL = os.environ.get("PSQLCHUNKS_LOG_LEVEL", "WARNING")
LOG_FORMAT = "%(levelname)s [%(asctime)s] [%(name)s] %(message)s"
