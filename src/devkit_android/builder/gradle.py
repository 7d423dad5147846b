"""NDK・Gradleビルド機能

このモジュールはndk-buildによるネイティブライブラリのビルドと、
Gradle wrapperによるclean・assembleの実行を提供します。
"""

from __future__ import annotations

import platform
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from devkit_android.types import BuildError

if TYPE_CHECKING:
    from devkit_android.process import ToolRunner

# ロケール関連の問題を回避するため、C.utf8 を設定
GRADLE_ENV = {"LC_ALL": "C.utf8", "LANG": "C.utf8"}


class GradleNotFoundError(BuildError):
    """Gradle wrapperが見つからない場合の例外"""

    pass


class NdkBuilder:
    """ndk-buildでtealeafのネイティブライブラリをビルドするクラス"""

    NDK_PROJECT_PATH = "tealeaf/src/main"

    def __init__(self, project_path: Path, runner: ToolRunner, timeout: int = 1800) -> None:
        """NdkBuilderを初期化する

        Args:
            project_path: Androidプロジェクトのルートパス
            runner: 外部コマンドの実行に使うToolRunner
            timeout: ビルドのタイムアウト時間（秒）
        """
        self._project_path = project_path
        self._runner = runner
        self._timeout = timeout

    def build(self) -> str:
        """ndk-buildを実行する

        Returns:
            ndk-buildの出力

        Raises:
            ToolchainError: ndk-buildが失敗した場合
        """
        return self._runner(
            ["ndk-build", f"NDK_PROJECT_PATH={self.NDK_PROJECT_PATH}"],
            cwd=self._project_path,
            timeout=self._timeout,
        )


class GradleBuilder:
    """Gradle wrapperを実行するクラス

    このクラスは生成したAndroidプロジェクトに同梱されたgradlewで
    clean・assembleDebug・assembleReleaseを実行します。
    """

    def __init__(self, project_path: Path, runner: ToolRunner, timeout: int = 1800) -> None:
        """GradleBuilderを初期化する

        Args:
            project_path: Androidプロジェクトのルートパス
            runner: 外部コマンドの実行に使うToolRunner
            timeout: ビルドのタイムアウト時間（秒）。デフォルトは1800秒（30分）。
        """
        self._project_path = project_path
        self._runner = runner
        self._timeout = timeout

    def _get_gradle_command(self) -> str:
        """プラットフォームに応じたGradle Wrapperコマンドを取得する

        Returns:
            プロジェクトルートからのGradle Wrapperの相対コマンド

        Raises:
            GradleNotFoundError: Gradle wrapperが見つからない場合
        """
        if platform.system() == "Windows":
            gradlew = self._project_path / "gradlew.bat"
        else:
            gradlew = self._project_path / "gradlew"

        if not gradlew.exists():
            raise GradleNotFoundError(f"Gradle wrapper not found at {gradlew}")

        # テンプレートのコピーで実行権限が落ちることがあるため付与
        if platform.system() != "Windows":
            current_mode = gradlew.stat().st_mode
            if not (current_mode & stat.S_IXUSR):
                gradlew.chmod(current_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
            return f"./{gradlew.name}"

        return str(gradlew)

    def _run_gradle(self, *args: str) -> str:
        return self._runner(
            [self._get_gradle_command(), *args],
            cwd=self._project_path,
            timeout=self._timeout,
            env=GRADLE_ENV,
        )

    def clean(self) -> str:
        """ビルドキャッシュをクリアする

        Raises:
            ToolchainError: clean処理が失敗した場合
            GradleNotFoundError: Gradle wrapperが見つからない場合
        """
        return self._run_gradle("clean")

    def assemble(self, debug: bool = True) -> str:
        """APKをビルドする

        Args:
            debug: Trueの場合はassembleDebug、Falseの場合はassembleRelease

        Returns:
            Gradleの出力

        Raises:
            ToolchainError: ビルドが失敗した場合
            GradleNotFoundError: Gradle wrapperが見つからない場合
        """
        return self._run_gradle("assembleDebug" if debug else "assembleRelease")

    def check_gradle_wrapper(self) -> bool:
        """Gradle wrapperの存在を確認する"""
        name = "gradlew.bat" if platform.system() == "Windows" else "gradlew"
        return (self._project_path / name).exists()


def apk_name(debug: bool, signed: bool) -> str:
    """Gradleが出力する（署名後の）APKファイル名を返す

    >>> apk_name(debug=True, signed=False)
    'app-debug.apk'
    >>> apk_name(debug=False, signed=True)
    'app-release-aligned.apk'
    """
    if debug:
        return "app-debug.apk"
    return "app-release-aligned.apk" if signed else "app-release-unsigned.apk"
