"""ツールチェーンのエラー診断

NDKやGradleの出力から既知の設定ミスを検出し、
ユーザー向けの具体的な対処方法に置き換える。
"""

from __future__ import annotations

import re
from dataclasses import dataclass

ANDROID_TARGET = "android-27"


@dataclass(frozen=True)
class ToolchainDiagnostic:
    """既知のエラーパターンと案内メッセージ

    Attributes:
        name: 診断名
        pattern: 出力に対する正規表現（Noneの場合は終了コードのみで判定）
        exit_code: 一致とみなす終了コード（Noneの場合は判定に使わない）
        message: ユーザー向けの案内
    """

    name: str
    pattern: re.Pattern[str] | None
    exit_code: int | None
    message: str

    def matches(self, output: str, exit_code: int | None) -> bool:
        if self.pattern is not None and self.pattern.search(output or ""):
            return True
        return self.exit_code is not None and exit_code == self.exit_code


DIAGNOSTICS: tuple[ToolchainDiagnostic, ...] = (
    ToolchainDiagnostic(
        name="target_not_valid",
        pattern=re.compile(r"not valid", re.IGNORECASE),
        exit_code=None,
        message="\n".join(
            [
                "",
                f"Android target {ANDROID_TARGET} was not available. Please ensure",
                "you have installed the Android SDK properly, and use the",
                f'"android" tool to install API Level {ANDROID_TARGET.split("-")[1]}.',
                "",
            ]
        ),
    ),
    ToolchainDiagnostic(
        name="sdk_not_on_path",
        pattern=re.compile(r"no such file", re.IGNORECASE),
        exit_code=126,
        message="\n".join(
            [
                "",
                "You must install the Android SDK first. Please ensure the",
                '"android" tool is available from the command line by adding',
                "the sdk's \"tools/\" directory to your system path.",
                "",
            ]
        ),
    ),
)


def classify(output: str, exit_code: int | None) -> list[ToolchainDiagnostic]:
    """出力と終了コードに一致する診断を返す

    Args:
        output: キャプチャしたツールの出力
        exit_code: ツールの終了コード

    Returns:
        一致した診断のリスト（テーブルの順序を保持）
    """
    return [d for d in DIAGNOSTICS if d.matches(output, exit_code)]
