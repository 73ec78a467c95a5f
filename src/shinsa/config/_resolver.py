"""設定リゾルバー。

6層の設定ソースを項目単位でマージして ShinsaConfig を構築する:
    CLI > 環境変数 > .shinsa/config.toml > pyproject.toml [tool.shinsa]
    > ~/.config/shinsa/config.toml > デフォルト値

retry はフィールド単位、step_overrides はステップ名→フィールド単位で
マージする。CLI オプションの None は未指定として除外する。
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Final

from shinsa.config._env import RETRY_KEYS, load_env_config
from shinsa.config._sources import discover_sources
from shinsa.models.config import ShinsaConfig

# テーブルごとのマージ深さ。1 はフィールド単位、2 は名前→フィールド単位
_TABLE_DEPTHS: Final[Mapping[str, int]] = MappingProxyType(
    {"retry": 1, "step_overrides": 2}
)
_RETRY_KEY: Final[str] = "retry"
_RETRY_FIELDS: Final[frozenset[str]] = frozenset(RETRY_KEYS.values())


def _merge_table(
    base: object, override: Mapping[str, object], depth: int, path: str
) -> dict[str, object]:
    merged: dict[str, object] = dict(base) if isinstance(base, dict) else {}
    for key, value in override.items():
        if depth == 1:
            merged[key] = value
        elif isinstance(value, dict):
            merged[key] = _merge_table(merged.get(key), value, depth - 1, f"{path}.{key}")
        else:
            raise TypeError(
                f"'{path}.{key}' must be a dict, got {type(value).__name__}"
            )
    return merged


def merge_config_layers(
    *layers: Mapping[str, object] | None,
) -> dict[str, object]:
    """設定レイヤーを低優先度から順に重ねる。None のレイヤーはスキップする。

    スカラーとリストは後のレイヤーが置き換え、retry と step_overrides は
    _TABLE_DEPTHS の深さまで項目単位でマージする。

    Raises:
        TypeError: retry / step_overrides またはその要素がテーブルでない場合。
    """
    result: dict[str, object] = {}
    for layer in layers:
        if layer is None:
            continue
        for key, value in layer.items():
            depth = _TABLE_DEPTHS.get(key)
            if depth is None:
                result[key] = value
            elif isinstance(value, dict):
                result[key] = _merge_table(result.get(key), value, depth, key)
            else:
                raise TypeError(f"'{key}' must be a dict, got {type(value).__name__}")
    return result


def filter_cli_overrides(cli_options: Mapping[str, object]) -> dict[str, object]:
    """CLI オプション辞書から None 値を除外し、retry のフィールドを入れ子にする。

    Args:
        cli_options: CLI から渡されたフラットな辞書。None は未指定。

    Returns:
        設定レイヤーとしてマージ可能な辞書。
    """
    layer: dict[str, object] = {}
    retry: dict[str, object] = {}
    for key, value in cli_options.items():
        if value is None:
            continue
        if key in _RETRY_FIELDS:
            retry[key] = value
        else:
            layer[key] = value
    if retry:
        layer[_RETRY_KEY] = retry
    return layer


def resolve_config(
    start_dir: Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> ShinsaConfig:
    """設定ソースを解決し ShinsaConfig を構築する。

    存在しない設定ファイルのレイヤーはスキップする。ファイルが1つもなければ
    デフォルト値と環境変数・CLI のみで構築する。

    Args:
        start_dir: 探索開始ディレクトリ。None の場合はカレントディレクトリ。
        cli_overrides: CLI オプションの辞書。None 値は未指定扱い。
        environ: 環境変数。None の場合は os.environ。
        home: ユーザー設定を探すホームディレクトリ。None の場合は Path.home()。

    Raises:
        pydantic.ValidationError: マージ後の設定が不正な場合。
        ConfigFileError: 設定ファイルを読めない、または TOML として不正な場合。
        TypeError: retry / step_overrides がテーブルでない場合。
    """
    effective_start = start_dir if start_dir is not None else Path.cwd()
    file_layers = [source.read() for source in discover_sources(effective_start, home)]
    env_layer = load_env_config(os.environ if environ is None else environ)
    cli_layer = filter_cli_overrides(cli_overrides) if cli_overrides is not None else None

    merged = merge_config_layers(*file_layers, env_layer, cli_layer)
    # 未指定の項目は ShinsaConfig のフィールドデフォルトになる
    return ShinsaConfig.model_validate(merged)
