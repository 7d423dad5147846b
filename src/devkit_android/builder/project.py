"""Androidプロジェクトの生成

シードテンプレートからAndroidプロジェクトを生成し、パッケージ名・Activity名の変更、
マニフェストやGradleファイルへのパラメータ適用を行う。
パッケージディレクトリが既に存在する場合はテンプレートの展開を省略する。
"""

from __future__ import annotations

import html
import importlib.util
import re
import shutil
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import TYPE_CHECKING

from devkit_android.builder.gradle import GradleBuilder
from devkit_android.builder.manifest import ManifestUpdater
from devkit_android.types import BuildError

if TYPE_CHECKING:
    from devkit_android.config import BuildContext
    from devkit_android.modules import ModuleConfig
    from devkit_android.process import ToolRunner

ON_CREATE_HOOK = "on_create_project"


class ProjectCreationError(BuildError):
    """シードテンプレートから期待するファイルが生成されなかった場合の例外"""

    pass


class ProjectMaterializer:
    """Androidプロジェクトの骨格を冪等に生成するクラス

    使用例:
        >>> materializer = ProjectMaterializer(context, module_configs, runner)
        >>> created = materializer.materialize()
    """

    def __init__(
        self,
        context: BuildContext,
        module_configs: dict[str, ModuleConfig],
        runner: ToolRunner,
    ) -> None:
        self._context = context
        self._modules = module_configs
        self._runner = runner
        self._logger = context.logger

    def materialize(self) -> bool:
        """プロジェクトを生成する

        Returns:
            テンプレートから新規に生成した場合はTrue、既存のプロジェクトを再利用した場合はFalse

        Raises:
            ToolchainError: テンプレートスクリプトやGradleが失敗した場合
            ProjectCreationError: シードのActivityが見つからない場合
        """
        context = self._context
        (context.project_path / "project.properties").unlink(missing_ok=True)

        if context.settings.accept_licenses:
            self._run_script("./sdkmanager-accept-licenses")

        created = False
        if context.package_dir.exists():
            self._logger.info(f"Android project already exists: {context.project_path}")
        else:
            self._create_from_template()
            self._run_post_create_tasks()
            set_gradle_parameters(context)
            created = True

        timeout = context.settings.timeouts.gradle
        GradleBuilder(context.project_path, self._runner, timeout).clean()
        return created

    def _run_script(self, script: str, *args: str) -> str:
        return self._runner(
            ["bash", script, *args],
            cwd=self._context.gradleops_dir,
            timeout=self._context.settings.timeouts.template,
        )

    def _create_from_template(self) -> None:
        context = self._context
        seed = context.settings.seed_template
        self._logger.info(f"Creating Android project from {seed}: {context.project_path}")
        self._run_script(
            "./template",
            context.short_name,
            seed,
            context.options.scheme,
            context.package_name,
        )

        context.package_dir.mkdir(parents=True, exist_ok=True)
        seed_activity = (
            context.app_main_dir / "java" / "com" / context.short_name / f"{seed}Activity.java"
        )
        if not seed_activity.exists():
            raise ProjectCreationError(f"Seed activity not found: {seed_activity}")
        shutil.move(seed_activity, context.activity_file)

    def _run_post_create_tasks(self) -> None:
        tasks: list[Callable[[], object]] = [
            lambda: save_localized_strings(self._context),
            ManifestUpdater(self._context, self._modules, self._runner).update,
            lambda: update_activity(self._context),
        ]
        with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = [executor.submit(task) for task in tasks]
            wait(futures)

        for future in futures:
            error = future.exception()
            if error is not None:
                raise error

        # フックは生成済みのマニフェストとbuild.gradleを編集できる
        self.execute_on_create()

    def execute_on_create(self) -> list[str]:
        """モジュールのbuildExtensionが公開するon_create_projectフックを呼び出す

        Returns:
            フックを実行したモジュール名
        """
        executed: list[str] = []
        for name, module in self._modules.items():
            descriptor = module.config
            if descriptor is None or not descriptor.build_extension:
                continue
            hook = load_hook(module.resolve(descriptor.build_extension), name)
            if hook is None:
                continue
            self._logger.verbose(f"Running {ON_CREATE_HOOK} for module {name}")
            hook(self._context, module)
            executed.append(name)
        return executed


def load_hook(path: Path, module_name: str) -> Callable[..., object] | None:
    """ビルド拡張ファイルを読み込み、on_create_projectを返す"""
    spec = importlib.util.spec_from_file_location(f"devkit_android_extension_{module_name}", path)
    if spec is None or spec.loader is None:
        raise ProjectCreationError(f"Cannot load build extension: {path}")
    extension = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(extension)
    hook = getattr(extension, ON_CREATE_HOOK, None)
    return hook if callable(hook) else None


def save_localized_strings(context: BuildContext) -> list[Path]:
    """言語ごとのstrings.xmlにtitle文字列を書き込む

    英語はres/values、それ以外はres/values-<lang>に出力する。
    """
    base = context.strings_xml.read_text(encoding="utf-8")
    index = base.find("</resources>")
    if index == -1:
        index = len(base)

    written: list[Path] = []
    for lang, title in context.app.manifest.titles.items():
        values = "values" if lang == "en" else f"values-{lang}"
        strings_file = context.app_main_dir / "res" / values / "strings.xml"
        element = f'<string name="title">{html.escape(title)}</string>'
        strings_file.parent.mkdir(parents=True, exist_ok=True)
        strings_file.write_text(base[:index] + element + base[index:], encoding="utf-8")
        written.append(strings_file)
    return written


def update_activity(context: BuildContext) -> None:
    """メインActivityをTeaLeafのActivityを継承するように書き換える"""
    activity_file = context.activity_file
    contents = activity_file.read_text(encoding="utf-8")
    contents = contents.replace("extends Activity", "extends com.tealeaf.TeaLeaf")
    contents = contents.replace("setContentView(R.layout.main);", "startGame();")
    activity_file.write_text(contents, encoding="utf-8")


def set_gradle_parameters(context: BuildContext) -> None:
    """appとtealeafのbuild.gradleのプレースホルダを置換する"""
    manifest = context.app.manifest
    android = manifest.android
    build_tools = android.get("buildToolsVersion")
    if not build_tools:
        context.logger.warning("android.buildToolsVersion is not set in the manifest")

    def replace_build_tools(contents: str) -> str:
        if not build_tools:
            return contents
        return contents.replace("BuildToolVersionlaceholder", str(build_tools))

    version_code = str(android.get("versionCode") or "1")
    version_name = manifest.version or "1.0"

    app_gradle = context.app_gradle
    contents = app_gradle.read_text(encoding="utf-8")
    contents = re.sub(r"\bversionCode 1\b", lambda _m: f"versionCode {version_code}", contents)
    contents = contents.replace('versionName "1.0"', f'versionName "{version_name}"')
    contents = contents.replace("GameNamePlaceholderRelease", manifest.title)
    contents = contents.replace("GameNamePlaceholderDebug", f"{manifest.title} debug")
    app_gradle.write_text(replace_build_tools(contents), encoding="utf-8")

    tealeaf_gradle = context.tealeaf_gradle
    contents = tealeaf_gradle.read_text(encoding="utf-8")
    tealeaf_gradle.write_text(replace_build_tools(contents), encoding="utf-8")
