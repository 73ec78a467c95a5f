"""ExitCode — 終了コードの定義。"""

from enum import IntEnum


class ExitCode(IntEnum):
    """プロセス終了コード。

    0 は実行完了、1 は引数・入力エラー、2 は実行失敗、3 はファイル I/O エラー。
    推奨アクション（Block 等）は終了コードに影響しない。
    """

    SUCCESS = 0
    INPUT_ERROR = 1
    EXECUTION_FAILED = 2
    IO_ERROR = 3
