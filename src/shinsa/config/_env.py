"""環境変数レイヤー。

SHINSA_* 環境変数を設定辞書に変換する。値は文字列のまま渡し、型変換と検証は
ShinsaConfig が行う。空文字列の変数は未指定として扱う。
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

ENV_PREFIX: Final[str] = "SHINSA_"

_TOP_LEVEL_KEYS: Final[Mapping[str, str]] = MappingProxyType(
    {
        "MODEL": "model",
        "ENDPOINT": "endpoint",
        "PROVIDER": "provider",
        "WORKERS": "workers",
        "JOURNAL_DIR": "journal_dir",
    }
)

RETRY_KEYS: Final[Mapping[str, str]] = MappingProxyType(
    {
        "ATTEMPT_TIMEOUT": "attempt_timeout",
        "INITIAL_BACKOFF": "initial_backoff",
        "BACKOFF_MULTIPLIER": "backoff_multiplier",
        "MAX_ATTEMPTS": "max_attempts",
        "MAX_BACKOFF": "max_backoff",
    }
)
"""retry セクションに入る環境変数名（接頭辞なし）とフィールド名。"""

_UNBOUNDED_VALUES: Final[frozenset[str]] = frozenset({"none", "unbounded"})


def load_env_config(environ: Mapping[str, str]) -> dict[str, object] | None:
    """環境変数から設定レイヤーを構築する。

    SHINSA_MAX_ATTEMPTS と SHINSA_MAX_BACKOFF は "none" / "unbounded" で
    上限なし（None）を指定できる。

    Args:
        environ: 環境変数のマッピング（通常は os.environ）。

    Returns:
        設定辞書。該当する環境変数が1つもなければ None。
    """
    layer: dict[str, object] = {}
    for suffix, key in _TOP_LEVEL_KEYS.items():
        value = environ.get(ENV_PREFIX + suffix)
        if value:
            layer[key] = value

    retry: dict[str, object] = {}
    for suffix, key in RETRY_KEYS.items():
        value = environ.get(ENV_PREFIX + suffix)
        if not value:
            continue
        if key in ("max_attempts", "max_backoff") and value.lower() in _UNBOUNDED_VALUES:
            retry[key] = None
        else:
            retry[key] = value
    if retry:
        layer["retry"] = retry

    return layer or None
