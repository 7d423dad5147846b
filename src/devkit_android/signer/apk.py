"""APK署名関連の機能

このモジュールはGradleが出力したAPKの署名を行います。
zipalignによるアラインメント最適化とapksignerによる署名を、
環境変数のキーストア設定またはAndroidのデバッグキーストアで実行します。
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from devkit_android.types import BuildError

if TYPE_CHECKING:
    from devkit_android.config import BuildContext
    from devkit_android.process import ToolRunner

KEYSTORE_ENV = "DEVKIT_ANDROID_KEYSTORE"
STOREPASS_ENV = "DEVKIT_ANDROID_STOREPASS"
KEYPASS_ENV = "DEVKIT_ANDROID_KEYPASS"
KEY_ENV = "DEVKIT_ANDROID_KEY"

SIGNING_ENV_VARS = (KEYSTORE_ENV, STOREPASS_ENV, KEYPASS_ENV, KEY_ENV)

DEBUG_KEY_ALIAS = "androiddebugkey"
DEBUG_PASSWORD = "android"


class SigningError(BuildError):
    """署名設定が不足している、または署名ツールが見つからない場合の例外"""

    pass


@dataclass(frozen=True)
class SigningConfig:
    """キーストア設定を表す不変データクラス

    Attributes:
        keystore_path: キーストアファイルのパス
        key_alias: キーのエイリアス名
        keystore_password: キーストアのパスワード
        key_password: キーのパスワード
    """

    keystore_path: Path
    key_alias: str
    keystore_password: str
    key_password: str

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SigningConfig:
        """環境変数からキーストア設定を読み込む

        Args:
            env: 参照する環境変数（Noneの場合はos.environ）

        Raises:
            SigningError: 4つの環境変数のいずれかが未設定の場合（最初に見つかった変数名を含む）
        """
        env = os.environ if env is None else env
        for name in SIGNING_ENV_VARS:
            if not env.get(name):
                raise SigningError(f"missing environment variable {name}")
        return cls(
            keystore_path=Path(env[KEYSTORE_ENV]).expanduser(),
            key_alias=env[KEY_ENV],
            keystore_password=env[STOREPASS_ENV],
            key_password=env[KEYPASS_ENV],
        )

    @classmethod
    def debug(cls, home: Path | None = None) -> SigningConfig:
        """Androidのデバッグキーストア（~/.android/debug.keystore）の設定"""
        home = home or Path.home()
        return cls(
            keystore_path=home / ".android" / "debug.keystore",
            key_alias=DEBUG_KEY_ALIAS,
            keystore_password=DEBUG_PASSWORD,
            key_password=DEBUG_PASSWORD,
        )


def has_signing_env(env: Mapping[str, str] | None = None) -> bool:
    """署名用の環境変数が1つでも設定されているか"""
    env = os.environ if env is None else env
    return any(env.get(name) for name in SIGNING_ENV_VARS)


def find_build_tool(
    name: str,
    build_tools_version: str | None = None,
    env: Mapping[str, str] | None = None,
) -> Path | None:
    """Android SDKのbuild-toolsからツールを検索する

    ANDROID_HOME/build-tools/<build_tools_version> を優先し、
    見つからない場合は最新バージョンのディレクトリ、最後にシステムPATHから検索します。

    Returns:
        ツールのパス。見つからない場合はNone。
    """
    env = os.environ if env is None else env
    android_home = env.get("ANDROID_HOME")

    if android_home:
        build_tools_dir = Path(android_home) / "build-tools"

        if build_tools_version:
            candidate = build_tools_dir / build_tools_version / name
            if candidate.exists():
                return candidate

        if build_tools_dir.exists():
            versions = sorted(
                [d for d in build_tools_dir.iterdir() if d.is_dir()],
                key=lambda x: x.name,
                reverse=True,
            )
            for version_dir in versions:
                candidate = version_dir / name
                if candidate.exists():
                    return candidate

    which_result = shutil.which(name)
    if which_result:
        return Path(which_result)

    return None


class ApkSigner:
    """Gradleが出力したAPKにzipalignと署名を適用するクラス

    リリースビルドでは4つの環境変数がすべて必要で、外部コマンドを実行する前に検証する。
    デバッグビルドでは環境変数が設定されていればそのキーで、
    なければデバッグキーストアで署名する。
    """

    def __init__(
        self,
        context: BuildContext,
        runner: ToolRunner,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._context = context
        self._runner = runner
        self._env = os.environ if env is None else env
        self._logger = context.logger

    def sign(self) -> Path:
        """APKに署名する

        Returns:
            署名済みAPKのパス

        Raises:
            SigningError: 環境変数が不足している、または署名ツールが見つからない場合
            ToolchainError: zipalignまたはapksignerが失敗した場合
        """
        apk_dir = self._context.apk_dir
        self._logger.info(f"Signing APK at {apk_dir}")

        if not self._context.options.debug:
            config = SigningConfig.from_env(self._env)
            self._align("app-release-unsigned.apk", "app-release-aligned.apk")
            self._apksigner(config, "app-release-aligned.apk")
            return apk_dir / "app-release-aligned.apk"

        if has_signing_env(self._env):
            # デバッグビルドでもリリースキーで署名できる
            config = SigningConfig.from_env(self._env)
            self._apksigner(config, "app-debug.apk")
        else:
            self._align("app-debug.apk", "app-debug-aligned.apk")
            self._apksigner(
                SigningConfig.debug(),
                "app-debug-aligned.apk",
                output="app-debug.apk",
            )
        return apk_dir / "app-debug.apk"

    def _tool(self, name: str) -> str:
        version = self._context.app.manifest.android.get("buildToolsVersion")
        path = find_build_tool(name, str(version) if version else None, self._env)
        if path is None:
            raise SigningError(f"{name} command not found")
        return str(path)

    def _align(self, input_name: str, output_name: str) -> None:
        self._runner(
            [self._tool("zipalign"), "-f", "-v", "4", input_name, output_name],
            cwd=self._context.apk_dir,
        )

    def _apksigner(self, config: SigningConfig, apk: str, output: str | None = None) -> None:
        command = [
            self._tool("apksigner"),
            "sign",
            "--ks",
            str(config.keystore_path),
            "--ks-pass",
            f"pass:{config.keystore_password}",
            "--key-pass",
            f"pass:{config.key_password}",
            "--ks-key-alias",
            config.key_alias,
            "--v1-signing-enabled",
            "true",
            "--v2-signing-enabled",
            "false",
            "--verbose",
        ]
        if output is not None:
            command += ["--out", output]
        command.append(apk)
        self._runner(command, cwd=self._context.apk_dir)
