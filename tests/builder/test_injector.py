"""プラグイン断片の注入のテスト"""

from collections.abc import Callable
from pathlib import Path

import pytest

from devkit_android.builder.injector import (
    PLUGINS_DEPENDENCIES,
    PluginInjector,
    ProjectArtifact,
    render_app_link,
)
from devkit_android.config import BuildContext
from devkit_android.modules import load_module_configs

BASE_MANIFEST = """<manifest package="com.tealeaf.demo">
    <!--START_PLUGINS_MANIFEST-->
    <!--END_PLUGINS_MANIFEST-->
    <application>
        <activity android:name=".demoActivity">
            <intent-filter>
                <!--START_PLUGINS_LINKS-->
                <!--END_PLUGINS_LINKS-->
            </intent-filter>
            <!--START_PLUGINS_ACTIVITY-->
            <!--END_PLUGINS_ACTIVITY-->
        </activity>
        <!--START_PLUGINS_APPLICATION-->
        <!--END_PLUGINS_APPLICATION-->
    </application>
</manifest>
"""

BASE_TEALEAF_GRADLE = """android {
    defaultConfig {
        manifestPlaceholders = [
            //<!--START_MANIFEST_PLACEHOLDERS-->
            //<!--END_MANIFEST_PLACEHOLDERS-->
        ]
    }
}
dependencies {
    implementation 'com.android.support:support-v4:27.1.1'
    //<!--START_PLUGINS_DEPENDENCIES-->
    //<!--END_PLUGINS_DEPENDENCIES-->
}
"""


def module_manifest(name: str) -> str:
    return f"""<manifest>
    <!--START_PLUGINS_MANIFEST-->
    <uses-permission android:name="{name}.PERMISSION"/>
    <!--END_PLUGINS_MANIFEST-->
    <!--START_PLUGINS_APPLICATION-->
    <service android:name="{name}.Service"/>
    <!--END_PLUGINS_APPLICATION-->
</manifest>
"""


@pytest.fixture
def project(make_context: Callable[..., BuildContext]) -> Callable[..., BuildContext]:
    """シードプロジェクトの共有ファイルを配置したコンテキストを作成する"""

    def factory(**overrides: object) -> BuildContext:
        context = make_context(**overrides)
        context.manifest_xml.parent.mkdir(parents=True, exist_ok=True)
        context.manifest_xml.write_text(BASE_MANIFEST, encoding="utf-8")
        context.tealeaf_gradle.parent.mkdir(parents=True, exist_ok=True)
        context.tealeaf_gradle.write_text(BASE_TEALEAF_GRADLE, encoding="utf-8")
        return context

    return factory


def injector_for(context: BuildContext) -> PluginInjector:
    return PluginInjector(context, load_module_configs(context.app.modules))


class TestProjectArtifact:
    """ProjectArtifactのテスト"""

    def test_region_table(self) -> None:
        names = {artifact: [r.name for r in artifact.regions] for artifact in ProjectArtifact}
        assert names[ProjectArtifact.MANIFEST] == [
            "PLUGINS_MANIFEST",
            "PLUGINS_ACTIVITY",
            "PLUGINS_APPLICATION",
        ]
        assert names[ProjectArtifact.TEALEAF_GRADLE] == [
            "PLUGINS_DEPENDENCIES",
            "MANIFEST_PLACEHOLDERS",
            "ANDROID_PLUGINS",
            "PLUGINS_PATCH",
            "ANDROID_PLUGINS_CUSTOM_SETTINGS",
        ]
        assert names[ProjectArtifact.APP_GRADLE] == [
            "MANIFEST_PLACEHOLDERS",
            "PLUGINS_DEPENDENCIES",
            "ANDROID_PLUGINS",
        ]
        assert names[ProjectArtifact.ROOT_GRADLE] == [
            "GOOGLE_PLAY_PLUGINS_CLASSPATH",
            "PLUGINS_REPOSITORIES",
            "BUILDSCRIPT_REPOS",
        ]
        assert names[ProjectArtifact.STYLES] == ["STYLES"]
        assert names[ProjectArtifact.PROGUARD] == ["PLUGINS_PROGUARD"]

    def test_proguard_uses_hash_tokens(self) -> None:
        (region,) = ProjectArtifact.PROGUARD.regions
        assert region.start == "#<!--START_PLUGINS_PROGUARD-->"

    def test_path(self, make_context: Callable[..., BuildContext]) -> None:
        context = make_context()
        assert ProjectArtifact.ROOT_GRADLE.path(context) == context.root_gradle
        assert ProjectArtifact.STYLES.path(context) == context.styles_xml


class TestPluginInjector:
    """PluginInjectorのテスト"""

    def test_fragments_are_concatenated_in_module_order(
        self, add_module: Callable[..., Path], project: Callable[..., BuildContext]
    ) -> None:
        add_module("alpha", {"injectionXML": "manifest.xml"}, {"manifest.xml": module_manifest("a")})
        add_module("beta", {"injectionXML": "manifest.xml"}, {"manifest.xml": module_manifest("b")})
        context = project()

        assert injector_for(context).inject_artifact(ProjectArtifact.MANIFEST) is True

        text = context.manifest_xml.read_text(encoding="utf-8")
        assert text.index("a.PERMISSION") < text.index("b.PERMISSION")
        assert text.index("a.Service") < text.index("b.Service")
        assert text.index("<!--START_PLUGINS_MANIFEST-->") < text.index("a.PERMISSION")
        assert text.index("b.PERMISSION") < text.index("<!--END_PLUGINS_MANIFEST-->")

    def test_region_absent_from_fragment_clears_region(
        self, add_module: Callable[..., Path], project: Callable[..., BuildContext]
    ) -> None:
        """正常系: 断片にない区間は空になり、トークン行は残る"""
        add_module("alpha", {"injectionXML": "manifest.xml"}, {"manifest.xml": module_manifest("a")})
        context = project()

        injector_for(context).inject()

        text = context.manifest_xml.read_text(encoding="utf-8")
        assert "<!--START_PLUGINS_ACTIVITY-->\n            <!--END_PLUGINS_ACTIVITY-->" in text

    def test_reinjection_is_idempotent(
        self, add_module: Callable[..., Path], project: Callable[..., BuildContext]
    ) -> None:
        add_module("alpha", {"injectionXML": "manifest.xml"}, {"manifest.xml": module_manifest("a")})
        add_module(
            "beta",
            {"injectionTealeafModuleGradleXML": "tealeaf.gradle", "jars": ["beta.jar"]},
            {
                "tealeaf.gradle": (
                    "//<!--START_PLUGINS_DEPENDENCIES-->\n"
                    "    implementation 'com.beta:sdk:1.0'\n"
                    "//<!--END_PLUGINS_DEPENDENCIES-->\n"
                )
            },
        )
        context = project()
        context.libs_dir.mkdir(parents=True)
        (context.libs_dir / "beta.jar").write_bytes(b"PK")
        injector = injector_for(context)

        injector.inject()
        manifest_once = context.manifest_xml.read_text(encoding="utf-8")
        gradle_once = context.tealeaf_gradle.read_text(encoding="utf-8")
        injector.inject()

        assert context.manifest_xml.read_text(encoding="utf-8") == manifest_once
        assert context.tealeaf_gradle.read_text(encoding="utf-8") == gradle_once
        assert gradle_once.count("com.beta:sdk:1.0") == 1
        assert gradle_once.count("implementation files('libs/beta.jar')") == 1

    def test_missing_fragment_file_is_skipped(
        self, add_module: Callable[..., Path], project: Callable[..., BuildContext]
    ) -> None:
        add_module("ghost", {"injectionXML": "missing.xml"})
        context = project()

        assert injector_for(context).inject_artifact(ProjectArtifact.MANIFEST) is False
        assert context.manifest_xml.read_text(encoding="utf-8") == BASE_MANIFEST

    def test_modules_without_descriptor_contribute_nothing(
        self, add_module: Callable[..., Path], project: Callable[..., BuildContext]
    ) -> None:
        add_module("plain")
        context = project()

        injector_for(context).inject()

        assert context.manifest_xml.read_text(encoding="utf-8") == BASE_MANIFEST
        assert context.tealeaf_gradle.read_text(encoding="utf-8") == BASE_TEALEAF_GRADLE


class TestJarDependencies:
    """install_jar_dependenciesのテスト"""

    def test_one_declaration_per_archive(self, project: Callable[..., BuildContext]) -> None:
        context = project()
        context.libs_dir.mkdir(parents=True)
        (context.libs_dir / "b.jar").write_bytes(b"PK")
        (context.libs_dir / "a.jar").write_bytes(b"PK")

        added = injector_for(context).install_jar_dependencies()

        assert added == [
            "implementation files('libs/a.jar')",
            "implementation files('libs/b.jar')",
        ]
        region = PLUGINS_DEPENDENCIES.extract(context.tealeaf_gradle.read_text(encoding="utf-8"))
        assert region.count("implementation files(") == 2
        assert region.index("a.jar") < region.index("b.jar")

    def test_no_libs_dir(self, project: Callable[..., BuildContext]) -> None:
        context = project()
        assert injector_for(context).install_jar_dependencies() == []
        assert context.tealeaf_gradle.read_text(encoding="utf-8") == BASE_TEALEAF_GRADLE

    def test_region_missing(self, project: Callable[..., BuildContext]) -> None:
        context = project()
        context.tealeaf_gradle.write_text("dependencies {\n}\n", encoding="utf-8")
        context.libs_dir.mkdir(parents=True)
        (context.libs_dir / "a.jar").write_bytes(b"PK")

        assert injector_for(context).install_jar_dependencies() == []
        assert context.tealeaf_gradle.read_text(encoding="utf-8") == "dependencies {\n}\n"


class TestAppLinks:
    """app_linksのテスト"""

    @pytest.mark.parametrize(
        "link,expected",
        [
            pytest.param(
                {"host": "example.com"},
                '<data android:host="example.com" android:scheme="http"/>',
                id="正常系: スキーム省略",
            ),
            pytest.param(
                {"host": "example.com", "scheme": "https", "pathPrefix": "/game", "port": "8443"},
                '<data android:host="example.com" android:scheme="https"'
                ' android:pathPrefix="/game" android:port="8443"/>',
                id="正常系: 追加属性",
            ),
        ],
    )
    def test_render_app_link(self, link: dict[str, str], expected: str) -> None:
        assert render_app_link(link) == expected

    def test_inject_app_links(self, project: Callable[..., BuildContext]) -> None:
        context = project(
            manifest={
                "shortName": "demo",
                "title": "Demo",
                "android": {"app_links": [{"host": "a.example"}, {"host": "b.example"}]},
            }
        )

        assert injector_for(context).inject_app_links() is True

        links = context.manifest_xml.read_text(encoding="utf-8")
        assert '<data android:host="a.example" android:scheme="http"/>' in links
        assert links.index("a.example") < links.index("b.example")

    def test_no_app_links(self, project: Callable[..., BuildContext]) -> None:
        context = project()
        assert injector_for(context).inject_app_links() is False
