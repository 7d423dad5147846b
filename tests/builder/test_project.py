"""Androidプロジェクト生成のテスト"""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import FakeRunner
from devkit_android.builder.project import (
    ProjectCreationError,
    ProjectMaterializer,
    load_hook,
    save_localized_strings,
    set_gradle_parameters,
    update_activity,
)
from devkit_android.config import BuildContext, BuildSettings
from devkit_android.modules import load_module_configs
from devkit_android.types import BuildError

SEED_ACTIVITY = """package com.demo;

import android.app.Activity;

public class AndroidSeedActivity extends Activity {
    public void onCreate() {
        setContentView(R.layout.main);
    }
}
"""

APP_GRADLE = """android {
    buildToolsVersion "BuildToolVersionlaceholder"
    defaultConfig {
        versionCode 1
        versionName "1.0"
    }
    buildTypes {
        release { resValue "string", "app_name", "GameNamePlaceholderRelease" }
        debug { resValue "string", "app_name", "GameNamePlaceholderDebug" }
    }
}
"""


def seed_project(context: BuildContext) -> None:
    """テンプレートスクリプトが生成するシードプロジェクトを配置する"""
    main = context.app_main_dir
    activity = main / "java" / "com" / context.short_name / "AndroidSeedActivity.java"
    activity.parent.mkdir(parents=True, exist_ok=True)
    activity.write_text(SEED_ACTIVITY, encoding="utf-8")
    context.strings_xml.parent.mkdir(parents=True, exist_ok=True)
    context.strings_xml.write_text("<resources>\n</resources>\n", encoding="utf-8")
    context.manifest_xml.write_text("<manifest/>\n", encoding="utf-8")
    context.app_gradle.write_text(APP_GRADLE, encoding="utf-8")
    context.tealeaf_gradle.parent.mkdir(parents=True, exist_ok=True)
    context.tealeaf_gradle.write_text(
        'buildToolsVersion "BuildToolVersionlaceholder"\n', encoding="utf-8"
    )
    (context.project_path / "gradlew").write_text("#!/bin/sh\n", encoding="utf-8")


def template_handler(context: BuildContext) -> Callable[[list[str]], str]:
    def handler(command: list[str]) -> str:
        if command[:2] == ["bash", "./template"]:
            seed_project(context)
        return ""

    return handler


@pytest.fixture
def context(tmp_path: Path, make_context: Callable[..., BuildContext]) -> BuildContext:
    return make_context(
        {
            "shortName": "demo",
            "title": "Demo & Friends",
            "version": "1.2.3",
            "titles": {"en": "Demo & Friends", "ja": "デモ"},
            "android": {"versionCode": 7, "buildToolsVersion": "27.0.3"},
        },
        settings=BuildSettings(gradleops_dir=tmp_path / "gradleops"),
    )


def materializer(context: BuildContext, runner: FakeRunner) -> ProjectMaterializer:
    return ProjectMaterializer(context, load_module_configs(context.app.modules), runner)


@patch("devkit_android.builder.gradle.platform.system", return_value="Linux")
class TestProjectMaterializer:
    """ProjectMaterializerのテスト"""

    def test_materialize_creates_project(
        self, _system: object, context: BuildContext, fake_runner: FakeRunner
    ) -> None:
        fake_runner.handler = template_handler(context)

        with patch("devkit_android.builder.project.ManifestUpdater") as mock_updater:
            assert materializer(context, fake_runner).materialize() is True

        mock_updater.return_value.update.assert_called_once()
        assert fake_runner.commands[0] == ["bash", "./sdkmanager-accept-licenses"]
        assert fake_runner.commands[1] == [
            "bash",
            "./template",
            "demo",
            "AndroidSeed",
            "tealeaf",
            "com.tealeaf.demo",
        ]
        assert fake_runner.calls[1].cwd == context.gradleops_dir
        assert fake_runner.commands[-1] == ["./gradlew", "clean"]

        activity = context.activity_file.read_text(encoding="utf-8")
        assert "extends com.tealeaf.TeaLeaf" in activity
        assert "startGame();" in activity
        assert not (context.app_main_dir / "java/com/demo/AndroidSeedActivity.java").exists()

    def test_materialize_twice_runs_template_once(
        self, _system: object, context: BuildContext, fake_runner: FakeRunner
    ) -> None:
        fake_runner.handler = template_handler(context)

        with patch("devkit_android.builder.project.ManifestUpdater"):
            first = materializer(context, fake_runner).materialize()
            second = materializer(context, fake_runner).materialize()

        assert (first, second) == (True, False)
        templates = [c for c in fake_runner.commands if c[:2] == ["bash", "./template"]]
        assert len(templates) == 1
        assert fake_runner.commands.count(["./gradlew", "clean"]) == 2

    def test_project_properties_is_removed(
        self, _system: object, context: BuildContext, fake_runner: FakeRunner
    ) -> None:
        seed_project(context)
        context.package_dir.mkdir(parents=True)
        properties = context.project_path / "project.properties"
        properties.write_text("target=android-19\n", encoding="utf-8")

        materializer(context, fake_runner).materialize()

        assert not properties.exists()

    def test_missing_seed_activity(
        self, _system: object, context: BuildContext, fake_runner: FakeRunner
    ) -> None:
        with pytest.raises(ProjectCreationError, match="Seed activity not found") as exc_info:
            materializer(context, fake_runner).materialize()
        assert isinstance(exc_info.value, BuildError)

    def test_on_create_hook(
        self,
        _system: object,
        add_module: Callable[..., Path],
        make_context: Callable[..., BuildContext],
        fake_runner: FakeRunner,
        tmp_path: Path,
    ) -> None:
        add_module(
            "hooked",
            {"buildExtension": "extension.py"},
            {
                "extension.py": (
                    "from pathlib import Path\n\n\n"
                    "def on_create_project(context, module):\n"
                    "    marker = context.project_path / f'{module.name}.created'\n"
                    "    marker.write_text(context.package_name, encoding='utf-8')\n"
                )
            },
        )
        add_module("plain", {"buildExtension": "no_hook.py"}, {"no_hook.py": "VALUE = 1\n"})
        context = make_context(settings=BuildSettings(gradleops_dir=tmp_path / "ops"))
        seed_project(context)

        executed = materializer(context, fake_runner).execute_on_create()

        assert executed == ["hooked"]
        marker = context.project_path / "hooked.created"
        assert marker.read_text(encoding="utf-8") == "com.tealeaf.demo"

    def test_on_create_hook_sees_updated_manifest(
        self,
        _system: object,
        add_module: Callable[..., Path],
        make_context: Callable[..., BuildContext],
        fake_runner: FakeRunner,
        tmp_path: Path,
    ) -> None:
        add_module(
            "hooked",
            {"buildExtension": "extension.py"},
            {
                "extension.py": (
                    "def on_create_project(context, module):\n"
                    "    manifest = context.manifest_xml.read_text(encoding='utf-8')\n"
                    "    marker = context.project_path / 'manifest.seen'\n"
                    "    marker.write_text(manifest, encoding='utf-8')\n"
                )
            },
        )
        context = make_context(settings=BuildSettings(gradleops_dir=tmp_path / "ops"))
        fake_runner.handler = template_handler(context)

        def update() -> None:
            context.manifest_xml.write_text("<manifest updated=\"true\"/>\n", encoding="utf-8")

        with patch("devkit_android.builder.project.ManifestUpdater") as mock_updater:
            mock_updater.return_value.update.side_effect = update
            materializer(context, fake_runner).materialize()

        seen = (context.project_path / "manifest.seen").read_text(encoding="utf-8")
        assert seen == "<manifest updated=\"true\"/>\n"


class TestLoadHook:
    """load_hookのテスト"""

    def test_missing_hook_returns_none(self, tmp_path: Path) -> None:
        extension = tmp_path / "extension.py"
        extension.write_text("on_create_project = 'not callable'\n", encoding="utf-8")
        assert load_hook(extension, "x") is None


class TestProjectFiles:
    """プロジェクトファイル書き換えのテスト"""

    def test_save_localized_strings(self, context: BuildContext) -> None:
        seed_project(context)

        written = save_localized_strings(context)

        values = context.app_main_dir / "res"
        assert written == [values / "values/strings.xml", values / "values-ja/strings.xml"]
        assert (values / "values/strings.xml").read_text(encoding="utf-8") == (
            '<resources>\n<string name="title">Demo &amp; Friends</string></resources>\n'
        )
        assert '<string name="title">デモ</string>' in (values / "values-ja/strings.xml").read_text(
            encoding="utf-8"
        )

    def test_update_activity(self, context: BuildContext) -> None:
        context.activity_file.parent.mkdir(parents=True)
        context.activity_file.write_text(SEED_ACTIVITY, encoding="utf-8")

        update_activity(context)

        contents = context.activity_file.read_text(encoding="utf-8")
        assert "extends com.tealeaf.TeaLeaf" in contents
        assert "setContentView" not in contents

    def test_set_gradle_parameters(self, context: BuildContext) -> None:
        seed_project(context)

        set_gradle_parameters(context)

        app_gradle = context.app_gradle.read_text(encoding="utf-8")
        assert "versionCode 7" in app_gradle
        assert 'versionName "1.2.3"' in app_gradle
        assert '"Demo & Friends"' in app_gradle
        assert '"Demo & Friends debug"' in app_gradle
        assert 'buildToolsVersion "27.0.3"' in app_gradle
        assert context.tealeaf_gradle.read_text(encoding="utf-8") == 'buildToolsVersion "27.0.3"\n'

    def test_missing_build_tools_version_keeps_placeholder(
        self, make_context: Callable[..., BuildContext]
    ) -> None:
        context = make_context({"shortName": "demo", "title": "Demo", "android": {}})
        seed_project(context)

        set_gradle_parameters(context)

        assert "BuildToolVersionlaceholder" in context.app_gradle.read_text(encoding="utf-8")
