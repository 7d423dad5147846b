"""テスト共通のフィクスチャ"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from devkit_android.config import (
    App,
    BuildContext,
    BuildOptions,
    BuildSettings,
    discover_modules,
    load_manifest,
)
from devkit_android.logger import BuildLogger, LogConfig, VerboseLevel


@dataclass
class RecordedCall:
    """FakeRunnerが受け取った呼び出し"""

    command: list[str]
    cwd: Path | None
    timeout: float | None
    env: Mapping[str, str] | None


@dataclass
class FakeRunner:
    """外部ツールを起動せずにコマンドを記録するToolRunner

    handlerが設定されている場合は呼び出しごとに実行し、その戻り値を出力とする。
    handlerが例外を送出すればコマンドの失敗として扱われる。
    """

    handler: Callable[[list[str]], str] | None = None
    calls: list[RecordedCall] = field(default_factory=list)

    def __call__(
        self,
        command: list[str],
        cwd: Path | None = None,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        self.calls.append(RecordedCall(list(command), cwd, timeout, env))
        if self.handler is not None:
            return self.handler(list(command))
        return ""

    @property
    def commands(self) -> list[list[str]]:
        return [call.command for call in self.calls]


DEFAULT_MANIFEST: dict[str, Any] = {
    "shortName": "demo",
    "title": "Demo Game",
    "appID": "a1b2-c3d4",
    "version": "1.2.3",
    "supportedOrientations": ["portrait"],
    "android": {"versionCode": 7, "buildToolsVersion": "27.0.3"},
}


def write_manifest(root: Path, data: Mapping[str, Any] | None = None) -> Path:
    """アプリのルートにmanifest.jsonを書き出す"""
    root.mkdir(parents=True, exist_ok=True)
    path = root / "manifest.json"
    path.write_text(json.dumps(dict(data or DEFAULT_MANIFEST)), encoding="utf-8")
    return path


def write_module(root: Path, name: str, descriptor: Mapping[str, Any] | None = None) -> Path:
    """<root>/modules/<name> にモジュールを作成する"""
    module_dir = root / "modules" / name
    (module_dir / "android").mkdir(parents=True, exist_ok=True)
    if descriptor is not None:
        (module_dir / "android" / "config.json").write_text(
            json.dumps(dict(descriptor)), encoding="utf-8"
        )
    return module_dir


@pytest.fixture
def quiet_logger() -> BuildLogger:
    """出力を抑えたロガー"""
    return BuildLogger(LogConfig(verbose_level=VerboseLevel.QUIET, use_color=False))


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_context(
    tmp_path: Path, app_root: Path, quiet_logger: BuildLogger
) -> Callable[..., BuildContext]:
    """アプリとビルドコンテキストを作成するファクトリ"""

    def factory(
        manifest: Mapping[str, Any] | None = None,
        settings: BuildSettings | None = None,
        **option_overrides: Any,
    ) -> BuildContext:
        manifest_path = write_manifest(app_root, manifest)
        app = App(
            root=app_root,
            manifest=load_manifest(manifest_path),
            modules=discover_modules(app_root),
        )
        options = BuildOptions(output_path=tmp_path / "build", **option_overrides)
        return BuildContext.create(app, options, quiet_logger, settings)

    return factory


@pytest.fixture
def app_root(tmp_path: Path) -> Path:
    """make_contextが使うアプリのルートディレクトリ"""
    root = tmp_path / "app"
    root.mkdir(parents=True, exist_ok=True)
    return root


@pytest.fixture
def add_module(app_root: Path) -> Callable[..., Path]:
    """アプリにモジュールを追加するファクトリ

    記述子のほか、androidディレクトリ以下に置くファイルを {相対パス: 内容} で渡せる。
    """

    def factory(
        name: str,
        descriptor: Mapping[str, Any] | None = None,
        files: Mapping[str, str | bytes] | None = None,
    ) -> Path:
        module_dir = write_module(app_root, name, descriptor)
        for relative, content in (files or {}).items():
            path = module_dir / "android" / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return module_dir

    return factory
