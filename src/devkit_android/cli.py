"""CLI entry point for devkit-android."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table
from rich.traceback import Traceback

from devkit_android import __version__
from devkit_android.config import (
    SETTINGS_FILENAME,
    BuildContext,
    BuildOptions,
    ConfigError,
    load_app,
    load_settings,
)
from devkit_android.doctor import check_all_dependencies
from devkit_android.logger import BuildLogger, LogConfig, VerboseLevel
from devkit_android.pipeline import BuildPipeline
from devkit_android.types import BuildError, ExitCode

app = typer.Typer(help="ゲームアプリとプラグインモジュールからAndroid APKをビルドするCLIツール")
console = Console()


@app.command()
def build(
    app_root: Annotated[Path, typer.Argument(help="manifest.jsonを含むアプリのディレクトリ")],
    debug: Annotated[
        bool, typer.Option("--debug/--release", help="デバッグビルド / リリースビルド")
    ] = True,
    signing: Annotated[bool, typer.Option(help="デバッグビルドでもAPKに署名する")] = False,
    apk: Annotated[bool, typer.Option("--apk/--no-apk", help="APKをビルドする")] = True,
    min_sdk_version: Annotated[int | None, typer.Option(help="minSdkVersion")] = None,
    target_sdk_version: Annotated[int | None, typer.Option(help="targetSdkVersion")] = None,
    reveal: Annotated[bool, typer.Option(help="ビルド後にAPKをファイルマネージャで表示")] = False,
    install: Annotated[bool, typer.Option(help="接続中のデバイスにインストール")] = False,
    open_app: Annotated[
        bool, typer.Option("--open", help="インストール後にアプリを起動")
    ] = False,
    clear_storage: Annotated[
        bool, typer.Option(help="再インストール時にアプリデータを削除")
    ] = False,
    repack: Annotated[bool, typer.Option(help="プロジェクト生成を省略して再パッケージ")] = False,
    output: Annotated[
        Path | None, typer.Option("-o", "--output", help="出力ディレクトリ")
    ] = None,
    package_name: Annotated[str, typer.Option(help="Androidパッケージ名")] = "",
    studio_name: Annotated[str, typer.Option(help="スタジオ名")] = "",
    sdk_version: Annotated[str, typer.Option(help="devkit SDKのバージョン")] = "",
    verbose: Annotated[int, typer.Option("-v", "--verbose", count=True, help="詳細ログ出力")] = 0,
    log_file: Annotated[Path | None, typer.Option(help="ログファイル出力先")] = None,
) -> None:
    """アプリをAndroid APKにビルドする"""
    try:
        settings = load_settings(app_root / SETTINGS_FILENAME)
        application = load_app(app_root, settings)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT) from e

    options = BuildOptions(
        output_path=output or app_root / "build",
        debug=debug,
        signing=signing,
        apk=apk,
        min_sdk_version=min_sdk_version,
        target_sdk_version=target_sdk_version,
        reveal=reveal,
        install=install,
        open=open_app,
        clear_storage=clear_storage,
        repack=repack,
        package_name=package_name,
        studio_name=studio_name,
        sdk_version=sdk_version,
    )
    log_config = LogConfig(
        verbose_level=VerboseLevel(min(verbose, VerboseLevel.DEBUG)),
        log_file=log_file,
    )

    with BuildLogger(log_config) as logger:
        try:
            context = BuildContext.create(application, options, logger, settings)
        except BuildError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(ExitCode.ERROR) from e

        result = BuildPipeline(context).run()

    if result.success:
        if result.apk_path is not None:
            console.print(f"[green]ビルド完了: {result.apk_path}[/green]")
        else:
            console.print(f"[green]ビルド完了: {context.project_path}[/green]")
        raise typer.Exit(ExitCode.SUCCESS)

    if result.internal_error and result.error is not None:
        error = result.error
        console.print(Traceback.from_exception(type(error), error, error.__traceback__))
    console.print(f"[red]ビルド失敗: {result.error_message}[/red]")
    raise typer.Exit(result.exit_code)


@app.command()
def doctor() -> None:
    """依存ツールをチェックする"""
    results = check_all_dependencies()

    table = Table(title="依存ツールチェック結果")
    table.add_column("ステータス", justify="center")
    table.add_column("ツール名", justify="left")
    table.add_column("バージョン", justify="left")
    table.add_column("必須", justify="center")
    table.add_column("メッセージ", justify="left")

    has_missing_required = False

    for result in results:
        if result.found:
            status = "[green]✓[/green]"
        else:
            status = "[red]✗[/red]"
            if result.required:
                has_missing_required = True

        required_str = "[yellow]必須[/yellow]" if result.required else "オプション"
        table.add_row(status, result.name, result.version or "-", required_str, result.message or "")

    console.print(table)

    if has_missing_required:
        console.print("\n[red]エラー: 必須ツールが不足しています[/red]")
        raise typer.Exit(ExitCode.ERROR)
    console.print("\n[green]すべての必須ツールが利用可能です[/green]")
    raise typer.Exit(ExitCode.SUCCESS)


def version_callback(value: bool) -> None:
    """バージョン表示コールバック"""
    if value:
        typer.echo(f"devkit-android {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="バージョンを表示する",
        ),
    ] = False,
) -> None:
    """devkit-android CLI - ゲームアプリをAndroid APKにビルド"""
    pass
