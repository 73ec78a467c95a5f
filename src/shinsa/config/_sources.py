"""設定ファイルソースの探索と読み込み。

ファイル由来のレイヤーは優先度の低い順に次の3つ:
    user       ~/.config/shinsa/config.toml（固定パス）
    pyproject  最も近い祖先の pyproject.toml の [tool.shinsa]
    project    最も近い祖先の .shinsa/ 直下の config.toml

祖先ディレクトリは1回だけ走査し、pyproject.toml と .shinsa/ はそれぞれ最初に
見つかった位置で確定する。2つが別のディレクトリにあってもよい。
存在しないファイルのレイヤーは None として扱い、値の検証は ShinsaConfig が行う。
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

PROJECT_DIR_NAME: Final[str] = ".shinsa"
CONFIG_FILE_NAME: Final[str] = "config.toml"
PYPROJECT_FILE_NAME: Final[str] = "pyproject.toml"
PYPROJECT_SECTION: Final[tuple[str, ...]] = ("tool", "shinsa")


class ConfigFileError(Exception):
    """設定ファイルを読み込めない。TOML 構文エラーや読み取り権限の不足など。

    Attributes:
        path: 読み込めなかったファイル。
    """

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        super().__init__(f"Cannot load configuration file {path}: {cause}")


@dataclass(frozen=True)
class ConfigSource:
    """ファイル由来の設定レイヤー1つ。

    Attributes:
        name: レイヤー名（"user" / "pyproject" / "project"）。
        path: 設定ファイルのパス。存在するとは限らない。
        section: 設定が置かれるテーブルのキー列。空ならファイル全体が設定。
    """

    name: str
    path: Path
    section: tuple[str, ...] = ()

    def read(self) -> dict[str, object] | None:
        """設定辞書を返す。ファイルまたはテーブルが存在しなければ None。

        Raises:
            ConfigFileError: ファイルを読めない、または TOML として不正な場合。
        """
        try:
            with self.path.open("rb") as f:
                data: object = tomllib.load(f)
        except FileNotFoundError:
            return None
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigFileError(self.path, exc) from exc

        for key in self.section:
            data = data.get(key) if isinstance(data, dict) else None
        if not isinstance(data, dict):
            return None
        logger.debug("Loaded %s configuration from %s", self.name, self.path)
        return data


def user_config_path(home: Path | None = None) -> Path:
    """ユーザーグローバル設定ファイルのパス。

    Raises:
        RuntimeError: home 未指定でホームディレクトリを特定できない場合。
    """
    base = home if home is not None else Path.home()
    return base / ".config" / "shinsa" / CONFIG_FILE_NAME


def discover_sources(start: Path, home: Path | None = None) -> list[ConfigSource]:
    """start から祖先方向に走査し、優先度の低い順に ConfigSource を返す。

    user は常に含む。pyproject と project は見つかった場合のみ含む。
    名前が一致してもファイル・ディレクトリの種別が違う候補は無視する。

    Raises:
        OSError: 走査中のディレクトリにアクセスできない場合。
    """
    sources = [ConfigSource("user", user_config_path(home))]
    pyproject: Path | None = None
    project_dir: Path | None = None

    origin = start.resolve()
    for directory in (origin, *origin.parents):
        if pyproject is None and (directory / PYPROJECT_FILE_NAME).is_file():
            pyproject = directory / PYPROJECT_FILE_NAME
        if project_dir is None and (directory / PROJECT_DIR_NAME).is_dir():
            project_dir = directory / PROJECT_DIR_NAME
        if pyproject is not None and project_dir is not None:
            break

    if pyproject is not None:
        sources.append(ConfigSource("pyproject", pyproject, PYPROJECT_SECTION))
    if project_dir is not None:
        sources.append(ConfigSource("project", project_dir / CONFIG_FILE_NAME))
    return sources
