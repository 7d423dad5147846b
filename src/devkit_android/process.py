"""外部プロセスの実行

NDK、Gradle、adb、apksignerなどの外部ツールを起動し、
標準出力と標準エラー出力をまとめてキャプチャしてログに記録する。
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from devkit_android.types import ToolchainError

if TYPE_CHECKING:
    from devkit_android.logger import BuildLogger


class ToolRunner(Protocol):
    """外部ツール実行のインターフェース"""

    def __call__(
        self,
        command: list[str],
        cwd: Path | None = None,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """コマンドを実行してキャプチャした出力を返す

        Raises:
            ToolchainError: コマンドが非ゼロで終了した、起動できなかった、
                            またはタイムアウトした場合
        """
        ...


def run_tool(
    command: list[str],
    logger: BuildLogger,
    cwd: Path | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """外部ツールを実行する

    Args:
        command: 実行するコマンドと引数
        logger: コマンドと出力を記録するロガー
        cwd: 作業ディレクトリ
        timeout: タイムアウト秒数（Noneの場合は無制限）
        env: 追加の環境変数

    Returns:
        キャプチャした標準出力と標準エラー出力

    Raises:
        ToolchainError: コマンドが非ゼロで終了した、起動できなかった、
                        またはタイムアウトした場合
    """
    name = command[0]
    logger.info(f"{name} {' '.join(command[1:])}")

    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            env=full_env,
        )
    except FileNotFoundError as e:
        raise ToolchainError(
            f"{name} could not be started: {e}",
            command=command,
            output=str(e),
        ) from e
    except subprocess.TimeoutExpired as e:
        raise ToolchainError(
            f"{name} timed out after {timeout} seconds",
            command=command,
            output=_decode(e.output),
        ) from e

    output = result.stdout or ""
    logger.log_command(command, output)

    if result.returncode != 0:
        raise ToolchainError(
            f"{name} exited with non-zero exit code ({result.returncode})",
            command=command,
            output=output,
            exit_code=result.returncode,
        )
    return output


def _decode(output: str | bytes | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


class LoggedToolRunner:
    """BuildLoggerに紐づいたToolRunner実装"""

    def __init__(self, logger: BuildLogger) -> None:
        self._logger = logger

    def __call__(
        self,
        command: list[str],
        cwd: Path | None = None,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        return run_tool(command, self._logger, cwd=cwd, timeout=timeout, env=env)
