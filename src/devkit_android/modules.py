"""モジュール設定の読み込み

各モジュールの android/config.json（モジュール記述子）を読み込み、
モジュール名からModuleConfigへのマッピングを構築する。
記述子を持たないモジュールも有効で、何も寄与しない。
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devkit_android.config import AppModule, ConfigError

DESCRIPTOR_PATH = Path("android") / "config.json"


class ModuleConfigError(ConfigError):
    """モジュール記述子の読み込みに失敗した場合の例外"""

    pass


@dataclass(frozen=True)
class CustomFile:
    """copyCustomFilesの1エントリ（file を <project>/<path>/<file> にコピー）"""

    file: str
    path: str


@dataclass(frozen=True)
class SourceReplacement:
    """injectionSourceの1エントリ

    Attributes:
        regex: ソース中の置換対象パターン
        key_for_replace: manifest.androidから置換値を引くキー
    """

    regex: str
    key_for_replace: str


@dataclass(frozen=True)
class ModuleDescriptor:
    """モジュール記述子（android/config.json）

    パスはすべてモジュールの android ディレクトリからの相対パス。
    """

    injection_xml: str | None = None
    injection_tealeaf_module_gradle_xml: str | None = None
    injection_app_gradle_xml: str | None = None
    injection_gradle_classpath_xml: str | None = None
    proguard_xml: str | None = None
    injection_styles: str | None = None
    injection_xsl: str | None = None
    transform_gradle_app: str | None = None
    transform_gradle_tealeaf: str | None = None
    build_extension: str | None = None
    copy_files: list[str] = field(default_factory=list)
    copy_files_to_app: list[str] = field(default_factory=list)
    copy_custom_files: list[CustomFile] = field(default_factory=list)
    copy_game_files: list[str] = field(default_factory=list)
    jars: list[str] = field(default_factory=list)
    injection_source: list[SourceReplacement] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModuleDescriptor:
        """JSONオブジェクトから記述子を構築する"""
        return cls(
            injection_xml=data.get("injectionXML"),
            injection_tealeaf_module_gradle_xml=data.get("injectionTealeafModuleGradleXML"),
            injection_app_gradle_xml=data.get("injectionAppGradleXML"),
            injection_gradle_classpath_xml=data.get("injectionGradleClasspathXML"),
            proguard_xml=data.get("proguardXML"),
            injection_styles=data.get("injectionStyles"),
            injection_xsl=data.get("injectionXSL"),
            transform_gradle_app=data.get("transformGradleApp"),
            transform_gradle_tealeaf=data.get("transformGradleTealeaf"),
            build_extension=data.get("buildExtension"),
            copy_files=_str_list(data.get("copyFiles")),
            copy_files_to_app=_str_list(data.get("copyFilesToApp")),
            copy_custom_files=[
                CustomFile(file=item["file"], path=item.get("path", ""))
                for item in data.get("copyCustomFiles") or []
                if isinstance(item, dict) and "file" in item
            ],
            copy_game_files=_str_list(data.get("copyGameFiles")),
            jars=_str_list(data.get("jars")),
            injection_source=[
                SourceReplacement(regex=item["regex"], key_for_replace=item["keyForReplace"])
                for item in data.get("injectionSource") or []
                if isinstance(item, dict) and "regex" in item and "keyForReplace" in item
            ],
            raw=data,
        )


def _str_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


@dataclass(frozen=True)
class ModuleConfig:
    """1モジュール分の設定

    Attributes:
        name: モジュール名
        path: モジュールのルートディレクトリ
        config: 記述子。記述子ファイルがない場合はNone。
    """

    name: str
    path: Path
    config: ModuleDescriptor | None = None

    @property
    def android_dir(self) -> Path:
        return self.path / "android"

    def resolve(self, relative: str) -> Path:
        """androidディレクトリからの相対パスを解決する"""
        return self.android_dir / relative


def read_descriptor(module_path: Path) -> ModuleDescriptor | None:
    """モジュール記述子を読み込む

    Returns:
        記述子。ファイルが存在しない場合はNone。

    Raises:
        ModuleConfigError: 読み込みやJSON解析に失敗した場合
    """
    descriptor_file = module_path / DESCRIPTOR_PATH
    try:
        text = descriptor_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        # config.jsonは必須ではない
        return None
    except OSError as e:
        raise ModuleConfigError(f"モジュール記述子を読み込めません: {descriptor_file}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModuleConfigError(f"JSON解析エラー: {descriptor_file}: {e}") from e

    if not isinstance(data, dict):
        raise ModuleConfigError(
            f"モジュール記述子はJSONオブジェクトである必要があります: {descriptor_file}"
        )
    return ModuleDescriptor.from_dict(data)


def load_module_configs(modules: dict[str, AppModule]) -> dict[str, ModuleConfig]:
    """宣言されたモジュールの設定を読み込む

    Args:
        modules: モジュール名からAppModuleへのマッピング

    Returns:
        モジュール名からModuleConfigへのマッピング（宣言順）

    Raises:
        ModuleConfigError: 記述子が存在するが読み込めない場合
    """
    return {
        name: ModuleConfig(name=name, path=module.path, config=read_descriptor(module.path))
        for name, module in modules.items()
    }
