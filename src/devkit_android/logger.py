"""進捗表示およびログ出力のインターフェース定義

このモジュールは、devkit-androidのビルド進捗表示とログ出力のためのインターフェースを定義する。
VerboseLevel (詳細ログレベル)に応じた出力制御を行い、
CLIでのビルド進捗をユーザーにわかりやすく表示するために使用される。
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Any, Protocol, TextIO

if TYPE_CHECKING:
    from devkit_android.pipeline import BuildStage


class VerboseLevel(IntEnum):
    """詳細ログレベル

    ログ出力の詳細度を制御するための列挙型。
    QUIET: エラーのみ出力
    NORMAL: ステージ進捗とサマリ出力
    VERBOSE: コピー・注入したファイル一覧も出力（-vオプション）
    DEBUG: 外部コマンド実行ログも出力（-vvオプション）
    """

    QUIET = -1
    NORMAL = 0
    VERBOSE = 1
    DEBUG = 2


class ProgressDisplay(Protocol):
    """進捗表示のプロトコル

    ビルドパイプラインの各ステージの進捗を表示するためのインターフェース。
    """

    def start(self, stage: BuildStage) -> None:
        """ステージ開始を表示する

        Args:
            stage: 開始するビルドステージ
        """
        ...

    def skip(self, stage: BuildStage, reason: str = "") -> None:
        """ステージのスキップを表示する

        Args:
            stage: スキップしたビルドステージ
            reason: スキップ理由（オプション）
        """
        ...

    def finish(self, success: bool, message: str = "") -> None:
        """ステージ終了を表示する

        Args:
            success: ステージが成功したか
            message: 終了メッセージ（オプション）
        """
        ...


@dataclass
class LogConfig:
    """ログ設定

    Attributes:
        verbose_level: ログの詳細度レベル
        log_file: ログ出力先ファイルパス（Noneの場合はファイル出力なし）
        use_color: カラー出力を使用するか
        use_emoji: emoji表示を使用するか
    """

    verbose_level: VerboseLevel = VerboseLevel.NORMAL
    log_file: Path | None = None
    use_color: bool = True
    use_emoji: bool = True


class BuildLogger:
    """ビルドログ出力クラス

    ビルドパイプラインのログ出力を管理するクラス。
    VerboseLevelに応じてメッセージのフィルタリングを行い、
    進捗表示インスタンスの作成も担当する。
    モジュールのインストール処理はスレッドプールから呼ばれるため、
    出力はロックで直列化する。

    使用例:
        >>> config = LogConfig(verbose_level=VerboseLevel.VERBOSE)
        >>> logger = BuildLogger(config)
        >>> logger.info("ビルドを開始します")
        >>> logger.verbose("AndroidManifest.xml にプラグインを注入中")
    """

    _ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

    _YELLOW = "\x1b[33m"
    _RED = "\x1b[31m"
    _RESET = "\x1b[0m"

    def __init__(self, config: LogConfig | None = None) -> None:
        """ロガーを初期化する

        Args:
            config: ログ設定（Noneの場合はデフォルト設定）
        """
        self._config = config or LogConfig()
        self._lock = Lock()
        self._log_file: TextIO | None = None
        if self._config.log_file:
            # クラス自体がコンテキストマネージャとして動作し、__exit__でファイルを閉じる
            self._log_file = open(self._config.log_file, "w", encoding="utf-8")  # noqa: SIM115

    def __enter__(self) -> BuildLogger:
        """コンテキストマネージャのエントリポイント"""
        return self

    def __exit__(self, *args: object) -> None:
        """コンテキストマネージャの終了処理"""
        if self._log_file:
            self._log_file.close()
            self._log_file = None

    @property
    def config(self) -> LogConfig:
        """ログ設定を取得する"""
        return self._config

    def _print(self, message: str, file: TextIO | None = None) -> None:
        if file is None:
            file = sys.stdout
        with self._lock:
            print(message, file=file)

    def _colorize(self, message: str, color: str) -> str:
        if not self._config.use_color:
            return message
        return f"{color}{message}{self._RESET}"

    def _log_to_file(self, level: str, message: str) -> None:
        """ファイルにログ出力する

        Args:
            level: ログレベル文字列
            message: 出力するメッセージ
        """
        if self._log_file:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            clean_message = self._strip_ansi(message)
            with self._lock:
                self._log_file.write(f"[{timestamp}] {level}: {clean_message}\n")
                self._log_file.flush()

    def _strip_ansi(self, text: str) -> str:
        """ANSIエスケープシーケンスを除去する"""
        return self._ANSI_ESCAPE_PATTERN.sub("", text)

    def info(self, message: str) -> None:
        """情報メッセージを出力する（NORMAL以上）"""
        if self._config.verbose_level >= VerboseLevel.NORMAL:
            self._print(message)
        self._log_to_file("INFO", message)

    def verbose(self, message: str) -> None:
        """詳細メッセージを出力する（VERBOSE以上）"""
        if self._config.verbose_level >= VerboseLevel.VERBOSE:
            self._print(message)
        self._log_to_file("VERBOSE", message)

    def debug(self, message: str) -> None:
        """デバッグメッセージを出力する（DEBUG以上）"""
        if self._config.verbose_level >= VerboseLevel.DEBUG:
            self._print(message)
        self._log_to_file("DEBUG", message)

    def error(self, message: str) -> None:
        """エラーメッセージを出力する（常に出力）"""
        self._print(self._colorize(f"エラー: {message}", self._RED), file=sys.stderr)
        self._log_to_file("ERROR", message)

    def warning(self, message: str) -> None:
        """警告メッセージを出力する（QUIET以上）"""
        if self._config.verbose_level > VerboseLevel.QUIET:
            self._print(self._colorize(f"警告: {message}", self._YELLOW))
        self._log_to_file("WARNING", message)

    def hint(self, message: str) -> None:
        """ツールチェーン設定に関する案内を出力する（QUIET以上）

        Args:
            message: 複数行になりうる案内メッセージ
        """
        if self._config.verbose_level > VerboseLevel.QUIET:
            self._print(self._colorize(message, self._YELLOW))
        self._log_to_file("HINT", message)

    def create_progress(self) -> ProgressDisplay:
        """進捗表示インスタンスを作成する"""
        return ConsoleProgressDisplay(
            use_color=self._config.use_color,
            use_emoji=self._config.use_emoji,
            quiet=self._config.verbose_level <= VerboseLevel.QUIET,
        )

    def log_command(self, command: list[str], output: str) -> None:
        """外部コマンド実行をログする（DEBUG以上）

        Args:
            command: 実行したコマンドとその引数
            output: コマンドの出力
        """
        cmd_str = " ".join(command)
        self.debug(f"実行: {cmd_str}")
        if output:
            for line in output.splitlines():
                self.debug(f"  > {line}")

    def log_copy(self, source: Path, dest: Path, status: str = "copied") -> None:
        """ファイルのコピーをログする（VERBOSE以上）"""
        self.verbose(f"コピー: {source} -> {dest} [{status}]")

    def log_summary(self, statistics: dict[str, Any]) -> None:
        """ビルドサマリを出力する（NORMAL以上）

        Args:
            statistics: ビルド統計情報
        """
        emoji = "✅" if self._config.use_emoji else "[OK]"
        self.info(f"{emoji} Build complete!")
        if "package_name" in statistics:
            self.info(f"   Package: {statistics['package_name']}")
        if "apk_path" in statistics:
            self.info(f"   Saved to: {statistics['apk_path']}")
        if "devices" in statistics:
            self.info(f"   Devices: {', '.join(statistics['devices']) or '-'}")


class ConsoleProgressDisplay:
    """コンソール進捗表示

    ビルドパイプラインの各ステージの開始・スキップ・終了をコンソールに表示するクラス。
    """

    STAGE_EMOJI: dict[str, str] = {
        "create_project": "\U0001f4c1",
        "copy_resources": "\U0001f4e6",
        "build_native": "\U0001f528",
        "sign": "\U0001f50f",
        "install": "\U0001f4f1",
    }

    STAGE_NAME: dict[str, str] = {
        "create_project": "Creating Android project",
        "copy_resources": "Copying resources",
        "build_native": "Building native code and APK",
        "sign": "Signing APK",
        "install": "Installing APK",
    }

    def __init__(self, use_color: bool = True, use_emoji: bool = True, quiet: bool = False) -> None:
        self._use_color = use_color
        self._use_emoji = use_emoji
        self._quiet = quiet
        self._stage: BuildStage | None = None

    def _label(self, stage: BuildStage) -> str:
        emoji = self.STAGE_EMOJI.get(stage.value, "") if self._use_emoji else ""
        name = self.STAGE_NAME.get(stage.value, str(stage))
        prefix = f"{emoji} " if emoji else ""
        return f"{prefix}{name}"

    def start(self, stage: BuildStage) -> None:
        """ステージ開始を表示する"""
        self._stage = stage
        if not self._quiet:
            print(f"{self._label(stage)}...")

    def skip(self, stage: BuildStage, reason: str = "") -> None:
        """ステージのスキップを表示する"""
        if not self._quiet:
            reason_part = f" ({reason})" if reason else ""
            print(f"{self._label(stage)}... skipped{reason_part}")

    def finish(self, success: bool, message: str = "") -> None:
        """ステージ終了を表示する"""
        if self._quiet:
            return
        if success:
            mark = "✓" if self._use_emoji else "done"
            print(f"   {mark}")
        else:
            mark = "✗" if self._use_emoji else "failed"
            msg_part = f": {message}" if message else ""
            print(f"   {mark}{msg_part}")
