"""共通型定義"""

from enum import IntEnum


class ExitCode(IntEnum):
    """CLIの終了コード"""

    SUCCESS = 0
    ERROR = 1
    INVALID_INPUT = 2
    INTERNAL_ERROR = 3


class BuildError(Exception):
    """ユーザー向けのビルドエラー

    想定内の失敗（環境変数の不足、マニフェスト項目の欠落、
    ツールチェーンの設定ミス、成果物が生成されない等）を表す。
    CLIではメッセージのみを表示し、スタックトレースは表示しない。
    """

    pass


class ToolchainError(BuildError):
    """外部プロセスが非ゼロで終了した場合の例外

    Attributes:
        command: 実行したコマンド
        output: キャプチャした標準出力と標準エラー出力
        exit_code: プロセスの終了コード
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        output: str = "",
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.output = output
        self.exit_code = exit_code
