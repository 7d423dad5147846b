"""モジュールコードのインストール

各モジュールが宣言したソース・ネイティブライブラリ・jarなどを
生成したAndroidプロジェクトにコピーする。
ソースファイルはパッケージ宣言からコピー先を決め、
injectionSourceの置換規則を適用してから書き込む。
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from devkit_android.config import BuildContext
    from devkit_android.modules import ModuleConfig, SourceReplacement

# ネイティブライブラリは旧ABI名と現行ABI名の両方に複製する
NATIVE_ABIS = ("armeabi", "armeabi-v7a")

_PACKAGE_PATTERN = re.compile(r"^\s*package\s+([A-Za-z0-9_.]+)", re.MULTILINE)


class InstallError(Exception):
    """モジュールファイルのインストールに失敗した場合の例外"""

    pass


class FileKind(Enum):
    """インストール時の変換方法による分類"""

    SOURCE = "source"
    NATIVE_LIBRARY = "native_library"
    VERBATIM = "verbatim"


SOURCE_EXTENSIONS = frozenset({".java", ".aidl"})
NATIVE_LIBRARY_EXTENSIONS = frozenset({".so"})


def classify(path: Path | str) -> FileKind:
    """拡張子からファイルの種類を判定する"""
    suffix = Path(path).suffix
    if suffix in SOURCE_EXTENSIONS:
        return FileKind.SOURCE
    if suffix in NATIVE_LIBRARY_EXTENSIONS:
        return FileKind.NATIVE_LIBRARY
    return FileKind.VERBATIM


def parse_package(source: str) -> str | None:
    """ソースコードのパッケージ宣言を取り出す"""
    match = _PACKAGE_PATTERN.search(source)
    return match.group(1) if match else None


@dataclass(frozen=True)
class InstallTask:
    """1ファイル分のインストール処理

    Attributes:
        module: タスクを宣言したモジュール名
        description: ログ・エラー表示用の説明
        action: 実行する処理
    """

    module: str
    description: str
    action: Callable[[], object]


class ModuleInstaller:
    """モジュールが宣言したファイルをプロジェクトにインストールするクラス

    タスク間に順序依存はないため、全モジュールのタスクをまとめて
    スレッドプールで実行する。全タスクの完了を待ってから、
    最初に失敗したタスクの例外を送出する。
    """

    def __init__(
        self,
        context: BuildContext,
        module_configs: dict[str, ModuleConfig],
        max_workers: int | None = None,
    ) -> None:
        self._context = context
        self._modules = module_configs
        self._logger = context.logger
        self._max_workers = max_workers

    def install(self) -> int:
        """全モジュールのファイルをインストールする

        Returns:
            実行したタスク数

        Raises:
            InstallError: ソースファイルにパッケージ宣言がない場合など
            OSError: ファイルのコピーに失敗した場合
        """
        tasks = self.collect_tasks()
        if not tasks:
            return 0

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures: list[Future[object]] = [executor.submit(task.action) for task in tasks]
            wait(futures)

        for task, future in zip(tasks, futures, strict=True):
            error = future.exception()
            if error is not None:
                self._logger.error(f"[{task.module}] {task.description} failed: {error}")
                raise error

        return len(tasks)

    def collect_tasks(self) -> list[InstallTask]:
        """全モジュールのインストールタスクをモジュール順に列挙する"""
        tasks: list[InstallTask] = []
        for name, module in self._modules.items():
            descriptor = module.config
            if descriptor is None:
                continue

            rules = descriptor.injection_source
            tealeaf_main = self._context.tealeaf_main_dir
            app_main = self._context.app_main_dir

            for filename in descriptor.copy_files:
                tasks.append(self._file_task(name, module.android_dir, filename, rules, tealeaf_main))
            for filename in descriptor.copy_files_to_app:
                tasks.append(self._file_task(name, module.android_dir, filename, rules, app_main))
            for custom in descriptor.copy_custom_files:
                source = module.resolve(custom.file)
                dest = self._context.project_path / custom.path / custom.file
                tasks.append(
                    InstallTask(name, f"copy {custom.file}", partial(self._copy, source, dest))
                )
            for filename in descriptor.copy_game_files:
                tasks.append(
                    self._file_task(name, self._context.app.root, filename, rules, tealeaf_main)
                )
            for jar in descriptor.jars:
                tasks.append(
                    InstallTask(name, f"install {jar}", partial(self.install_jar, module.resolve(jar)))
                )
        return tasks

    def _file_task(
        self,
        module: str,
        base_dir: Path,
        filename: str,
        rules: list[SourceReplacement],
        main_dir: Path,
    ) -> InstallTask:
        return InstallTask(
            module,
            f"install {filename}",
            partial(self.install_file, base_dir, filename, rules, main_dir),
        )

    def install_file(
        self,
        base_dir: Path,
        filename: str,
        rules: list[SourceReplacement],
        main_dir: Path,
    ) -> list[Path]:
        """ファイルを種類に応じてインストールする

        Args:
            base_dir: filenameの基準ディレクトリ
            filename: base_dirからの相対パス
            rules: ソースファイルに適用する置換規則
            main_dir: コピー先のsrc/mainディレクトリ

        Returns:
            書き込んだファイルのパス

        Raises:
            InstallError: ソースファイルにパッケージ宣言がない場合
        """
        source = base_dir / filename
        match classify(filename):
            case FileKind.SOURCE:
                return [self._install_source(source, rules, main_dir)]
            case FileKind.NATIVE_LIBRARY:
                dests = [main_dir / "libs" / abi / source.name for abi in NATIVE_ABIS]
                for dest in dests:
                    self._copy(source, dest)
                return dests
            case FileKind.VERBATIM:
                dest = main_dir / filename
                self._copy(source, dest)
                return [dest]

    def _install_source(self, source: Path, rules: list[SourceReplacement], main_dir: Path) -> Path:
        contents = source.read_text(encoding="utf-8")
        package = parse_package(contents)
        if package is None:
            raise InstallError(f"No package declaration found in {source}")

        dest = main_dir / source.suffix[1:] / Path(*package.split(".")) / source.name
        self._logger.verbose(f"Installing Java package {package} to {dest}")

        contents = self.apply_replacements(contents, rules)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(contents, encoding="utf-8")
        return dest

    def apply_replacements(self, contents: str, rules: list[SourceReplacement]) -> str:
        """injectionSourceの置換規則を適用する

        置換値は manifest.android[keyForReplace]。キーがない場合は警告して規則を飛ばす。
        """
        android = self._context.app.manifest.android
        for rule in rules:
            value = android.get(rule.key_for_replace)
            if not value:
                self._logger.warning(f"Unable to find android key for {rule.key_for_replace}")
                continue
            replacement = str(value)
            self._logger.verbose(
                f" - Running find-replace for {rule.regex} -> {replacement} "
                f"(android: {rule.key_for_replace})"
            )
            contents = re.sub(rule.regex, lambda _m, r=replacement: r, contents)
        return contents

    def install_jar(self, jar: Path) -> Path:
        """jarを tealeaf/libs にコピーする（同名ファイルは置き換える）"""
        dest = self._context.libs_dir / jar.name
        self._logger.verbose(f"Installing JAR file: {dest}")
        dest.unlink(missing_ok=True)
        self._copy(jar, dest)
        return dest

    def _copy(self, source: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        self._logger.log_copy(source, dest)

