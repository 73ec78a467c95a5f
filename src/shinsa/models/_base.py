"""全ドメインモデルの基底クラスと共通ユーティリティ。

extra="forbid" と frozen=True で厳格かつ不変なモデルを一元管理する。
ワイヤ形式（JSON 入出力）のモデルは camelCase エイリアスで直列化する。
"""

from __future__ import annotations

from enum import StrEnum
from typing import TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_IGNORED_SEPARATORS: str = "_- "

E = TypeVar("E", bound=StrEnum)


class ShinsaBaseModel(BaseModel):
    """全ドメインモデルの基底クラス。extra="forbid" で厳格モードを一元管理。"""

    model_config = ConfigDict(extra="forbid", frozen=True)


class WireModel(ShinsaBaseModel):
    """外部境界で JSON として入出力されるモデルの基底クラス。

    フィールド名は camelCase エイリアスで直列化する。入力は camelCase と
    snake_case のどちらも受け付ける。
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _canonical(text: str) -> str:
    """区切り文字を除去し小文字化した比較用文字列を返す。"""
    return "".join(ch for ch in text if ch not in _IGNORED_SEPARATORS).lower()


def normalize_enum_value(v: object, enum_cls: type[E]) -> object:
    """StrEnum 入力を正規化する（大文字小文字・区切り文字非依存）。

    str 入力を enum_cls のメンバー値と比較し、大文字小文字と ``_`` ``-`` 空白の
    違いを無視してマッチした場合は正規の値文字列に変換する。
    例: ``"REQUEST_CHANGES"`` → ``"RequestChanges"``。
    マッチしない str や str 以外の入力はそのまま返し、後続の Pydantic
    バリデーションに委ねる。

    Args:
        v: バリデーション対象の入力値。
        enum_cls: マッチ対象の StrEnum クラス。

    Returns:
        正規化された値文字列、またはマッチしない場合は入力値そのまま。
    """
    if isinstance(v, str):
        key = _canonical(v)
        for member in enum_cls:
            if key == _canonical(member.value):
                return member.value
    return v
