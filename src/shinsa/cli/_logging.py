"""CLI のログ設定。

ライブラリモジュールはハンドラを設定しない。CLI 起動時にのみ RichHandler を
stderr に取り付ける。
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False) -> None:
    """stderr に出力する RichHandler でルートロガーを設定する。

    Args:
        verbose: True なら DEBUG、False なら WARNING 以上を出力する。
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        handlers=[handler],
        format="%(message)s",
        force=True,
    )
