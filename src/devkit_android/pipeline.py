"""ビルドパイプラインの統合

このモジュールは、devkit-androidのビルドをオーケストレーションする。
プロジェクト生成 -> リソースコピー -> ネイティブビルド・APK生成 -> 署名 -> 配置・インストール
の各ステージを直列に実行し、ビルドオプションに応じてステージを省略する。
"""

from __future__ import annotations

import platform
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from devkit_android.builder.diagnostics import classify
from devkit_android.builder.gradle import GradleBuilder, NdkBuilder, apk_name
from devkit_android.builder.injector import PluginInjector
from devkit_android.builder.installer import ModuleInstaller
from devkit_android.builder.project import ProjectMaterializer
from devkit_android.builder.resources import ResourceCopier
from devkit_android.config import ConfigError
from devkit_android.device import DeviceInstaller
from devkit_android.modules import load_module_configs
from devkit_android.process import LoggedToolRunner
from devkit_android.signer.apk import ApkSigner
from devkit_android.types import BuildError, ExitCode, ToolchainError

if TYPE_CHECKING:
    from devkit_android.config import BuildContext
    from devkit_android.process import ToolRunner


class BuildStage(Enum):
    """ビルドステージ

    パイプラインは以下の順序で実行される:
    1. CREATE_PROJECT: プロジェクト生成とモジュールコードのインストール（--repackで省略）
    2. COPY_RESOURCES: アイコン・スプラッシュ・アセットのコピー
    3. BUILD_NATIVE: ndk-buildとGradle assemble（--no-apkで省略）
    4. SIGN: APK署名（--no-apk、または--signingなしのデバッグビルドで省略）
    5. INSTALL: APKのbin/への配置とデバイスへのインストール（--no-apkで省略）
    """

    CREATE_PROJECT = "create_project"
    COPY_RESOURCES = "copy_resources"
    BUILD_NATIVE = "build_native"
    SIGN = "sign"
    INSTALL = "install"


class StageStatus(Enum):
    """ステージの実行結果"""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildStageResult:
    """1ステージ分の実行結果

    Attributes:
        stage: ステージ
        status: 実行結果
        message: 失敗理由またはスキップ理由
        output: 失敗した外部コマンドの出力
        exit_code: 失敗した外部コマンドの終了コード
    """

    stage: BuildStage
    status: StageStatus
    message: str = ""
    output: str = ""
    exit_code: int | None = None


@dataclass
class PipelineResult:
    """パイプライン実行結果

    Attributes:
        success: パイプライン実行が成功したか
        apk_path: bin/に配置したAPKのパス（APKを生成しない場合や失敗時はNone）
        error_message: エラーメッセージ（成功時は空文字列）
        exit_code: CLIの終了コード
        stages: ステージごとの実行結果
        statistics: 実行統計情報
        error: 失敗の原因となった例外
    """

    success: bool
    apk_path: Path | None
    error_message: str = ""
    exit_code: ExitCode = ExitCode.SUCCESS
    stages: list[BuildStageResult] = field(default_factory=list)
    statistics: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None

    @property
    def internal_error(self) -> bool:
        """想定外の例外で失敗したか"""
        return self.exit_code == ExitCode.INTERNAL_ERROR


class BuildPipeline:
    """ビルドパイプラインオーケストレーター

    使用例:
        >>> context = BuildContext.create(app, BuildOptions(output_path=Path("build")), logger)
        >>> result = BuildPipeline(context).run()
        >>> if result.success:
        ...     print(result.apk_path)
    """

    def __init__(
        self,
        context: BuildContext,
        runner: ToolRunner | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """パイプラインを初期化する

        Args:
            context: ビルドコンテキスト
            runner: 外部コマンドの実行に使うToolRunner（Noneの場合はログ付きの実行）
            sleep: 待機関数
        """
        self._context = context
        self._runner = runner or LoggedToolRunner(context.logger)
        self._sleep = sleep
        self._logger = context.logger
        self._apk_path: Path | None = None
        self._devices: list[str] = []

        options = context.options
        self.skip_apk = not options.apk
        self.skip_signing = self.skip_apk or (not options.signing and options.debug)
        self.apk_name = apk_name(options.debug, signed=not self.skip_signing)

    @property
    def context(self) -> BuildContext:
        return self._context

    def skip_reason(self, stage: BuildStage) -> str | None:
        """ステージを省略する理由を返す（実行する場合はNone）"""
        options = self._context.options
        match stage:
            case BuildStage.CREATE_PROJECT if options.repack:
                return "--repack"
            case BuildStage.BUILD_NATIVE | BuildStage.INSTALL if self.skip_apk:
                return "--no-apk"
            case BuildStage.SIGN if self.skip_apk:
                return "--no-apk"
            case BuildStage.SIGN if self.skip_signing:
                return "debug build without --signing"
        return None

    def run(self) -> PipelineResult:
        """パイプラインを実行する

        BuildErrorはユーザー向けのエラー、ConfigErrorは入力エラー、
        それ以外の例外は内部エラーとして結果に格納する。

        Returns:
            パイプライン実行結果
        """
        start_time = time.time()
        progress = self._logger.create_progress()
        stages: list[BuildStageResult] = []
        statistics: dict[str, Any] = {"package_name": self._context.package_name}

        try:
            for stage in BuildStage:
                reason = self.skip_reason(stage)
                if reason is not None:
                    progress.skip(stage, reason)
                    stages.append(BuildStageResult(stage, StageStatus.SKIPPED, reason))
                    continue

                progress.start(stage)
                stage_start = time.time()
                try:
                    self._execute_stage(stage)
                except Exception as e:
                    progress.finish(False, str(e))
                    stages.append(_failed(stage, e))
                    raise
                progress.finish(True)
                stages.append(BuildStageResult(stage, StageStatus.SUCCESS))
                statistics[f"{stage.value}_time_seconds"] = round(time.time() - stage_start, 2)
        except BuildError as e:
            self._logger.error(str(e))
            return PipelineResult(
                success=False,
                apk_path=None,
                error_message=str(e),
                exit_code=ExitCode.ERROR,
                stages=stages,
                error=e,
            )
        except ConfigError as e:
            self._logger.error(str(e))
            return PipelineResult(
                success=False,
                apk_path=None,
                error_message=str(e),
                exit_code=ExitCode.INVALID_INPUT,
                stages=stages,
                error=e,
            )
        except Exception as e:
            error_message = f"{type(e).__name__}: {e}"
            self._logger.error(f"internal error: {error_message}")
            return PipelineResult(
                success=False,
                apk_path=None,
                error_message=error_message,
                exit_code=ExitCode.INTERNAL_ERROR,
                stages=stages,
                error=e,
            )

        statistics["total_time_seconds"] = round(time.time() - start_time, 2)
        if self._apk_path is not None:
            statistics["apk_path"] = self._apk_path
        if self._context.options.install or self._context.options.open:
            statistics["devices"] = self._devices
        self._logger.log_summary(statistics)

        return PipelineResult(
            success=True,
            apk_path=self._apk_path,
            stages=stages,
            statistics=statistics,
        )

    def _execute_stage(self, stage: BuildStage) -> None:
        match stage:
            case BuildStage.CREATE_PROJECT:
                self._create_project()
            case BuildStage.COPY_RESOURCES:
                ResourceCopier(self._context).copy_all()
            case BuildStage.BUILD_NATIVE:
                self._build_native()
            case BuildStage.SIGN:
                ApkSigner(self._context, self._runner).sign()
            case BuildStage.INSTALL:
                self._install()

    def _create_project(self) -> None:
        """CREATE_PROJECTステージ: プロジェクト生成とモジュールコードのインストール"""
        module_configs = load_module_configs(self._context.app.modules)
        ProjectMaterializer(self._context, module_configs, self._runner).materialize()
        ModuleInstaller(self._context, module_configs).install()
        # モジュールのjarはインストール後に tealeaf/libs に揃う
        PluginInjector(self._context, module_configs).install_jar_dependencies()

    def _build_native(self) -> None:
        """BUILD_NATIVEステージ: ndk-buildとGradle assemble

        既知のツールチェーンのエラーは案内を表示してから再送出する。
        """
        context = self._context
        timeouts = context.settings.timeouts
        ndk = NdkBuilder(context.project_path, self._runner, timeouts.ndk)
        gradle = GradleBuilder(context.project_path, self._runner, timeouts.gradle)

        self._with_diagnostics(ndk.build)
        self._with_diagnostics(lambda: gradle.assemble(debug=context.options.debug))

    def _with_diagnostics(self, action: Callable[[], object]) -> None:
        try:
            action()
        except ToolchainError as e:
            for diagnostic in classify(e.output, e.exit_code):
                self._logger.hint(diagnostic.message)
            raise

    def _install(self) -> None:
        """INSTALLステージ: APKをbin/に配置し、要求があればデバイスにインストールする"""
        options = self._context.options

        # コピー直後のAPKがファイルシステム上で確定するまで待つ
        self._sleep(self._context.settings.settle_delay)

        apk_path = self.move_apk()
        self._apk_path = apk_path
        self._logger.info(f"built {self._context.package_name}")
        self._logger.info(f"saved to {apk_path}")

        if options.reveal:
            self.reveal(apk_path)

        if options.install or options.open:
            results = DeviceInstaller(self._context, self._runner).install(
                apk_path,
                open_app=options.open,
                clear_storage=options.clear_storage,
            )
            self._devices = [r.device for r in results if r.installed]

    def move_apk(self) -> Path:
        """Gradleの出力ディレクトリから <output>/bin/ にAPKをコピーする

        Raises:
            BuildError: APKが生成されていない場合
        """
        source = self._context.apk_dir / self.apk_name
        dest = self._context.bin_dir / self.apk_name
        dest.unlink(missing_ok=True)

        if not source.exists():
            raise BuildError(f"apk failed to build (missing {source})")

        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        return dest

    def reveal(self, apk_path: Path) -> None:
        """APKをファイルマネージャで表示する（失敗しても続行する）"""
        if platform.system() == "Darwin":
            command = ["open", "--reveal", str(apk_path)]
        else:
            command = ["xdg-open", str(apk_path.parent)]
        try:
            self._runner(command)
        except BuildError as e:
            self._logger.warning(f"could not reveal {apk_path}: {e}")


def _failed(stage: BuildStage, error: Exception) -> BuildStageResult:
    if isinstance(error, ToolchainError):
        return BuildStageResult(
            stage,
            StageStatus.FAILED,
            str(error),
            output=error.output,
            exit_code=error.exit_code,
        )
    return BuildStageResult(stage, StageStatus.FAILED, str(error))
