"""依存ツールチェッカー

ビルドで起動する外部ツールがPATH上にあるかを確認する。
"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass


@dataclass(frozen=True)
class CheckResult:
    """チェック結果"""

    name: str
    required: bool
    found: bool
    version: str | None
    message: str | None


@dataclass(frozen=True)
class DependencyInfo:
    """依存ツール情報"""

    name: str
    command: str
    version_flag: str
    required: bool


DEPENDENCIES: list[DependencyInfo] = [
    DependencyInfo(name="Java JDK", command="java", version_flag="-version", required=True),
    DependencyInfo(name="Bash", command="bash", version_flag="--version", required=True),
    DependencyInfo(
        name="Android NDK",
        command="ndk-build",
        version_flag="--version",
        required=True,
    ),
    DependencyInfo(name="xsltproc", command="xsltproc", version_flag="--version", required=True),
    DependencyInfo(name="zipalign", command="zipalign", version_flag="--version", required=False),
    DependencyInfo(
        name="apksigner",
        command="apksigner",
        version_flag="--version",
        required=False,
    ),
    DependencyInfo(name="adb", command="adb", version_flag="version", required=False),
]


def _extract_version(output: str) -> str | None:
    """コマンド出力からバージョン番号を抽出する"""
    patterns = [
        r"(\d+\.\d+\.\d+)",
        r"(\d+\.\d+)",
        r"version\s+(\d+)",
    ]
    for pattern in patterns:
        match = re.search(pattern, output, re.IGNORECASE)
        if match:
            return match.group(1)
    return None


def check_dependency(info: DependencyInfo) -> CheckResult:
    """単一の依存ツールをチェックする"""
    try:
        result = subprocess.run(
            [info.command, info.version_flag],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except FileNotFoundError:
        message = f"コマンド '{info.command}' が見つかりません"
        if info.command in ("zipalign", "apksigner"):
            message += "（署名時はANDROID_HOME/build-toolsからも検索します）"
        return CheckResult(info.name, info.required, found=False, version=None, message=message)
    except subprocess.TimeoutExpired:
        return CheckResult(
            info.name,
            info.required,
            found=False,
            version=None,
            message=f"コマンド '{info.command}' がタイムアウトしました",
        )
    except OSError as e:
        return CheckResult(
            info.name,
            info.required,
            found=False,
            version=None,
            message=f"コマンド実行エラー: {e}",
        )

    output = result.stdout + result.stderr
    return CheckResult(
        info.name,
        info.required,
        found=True,
        version=_extract_version(output),
        message=None,
    )


def check_all_dependencies() -> list[CheckResult]:
    """全ての依存ツールをチェックする"""
    return [check_dependency(info) for info in DEPENDENCIES]
