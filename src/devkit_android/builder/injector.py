"""プラグイン断片の注入

各モジュールが宣言するXML/Gradle断片を、生成したAndroidプロジェクトの
共有ファイル（AndroidManifest.xml、3つのbuild.gradle、styles.xml、
proguard-rules.pro）のマーカー区間に結合して書き込む。
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from devkit_android.markers import MarkerRegion

if TYPE_CHECKING:
    from devkit_android.config import BuildContext
    from devkit_android.modules import ModuleConfig


class InjectionError(Exception):
    """プロジェクトファイルの読み書きに失敗した場合の例外"""

    pass


PLUGINS_DEPENDENCIES = MarkerRegion.gradle("PLUGINS_DEPENDENCIES")
PLUGINS_LINKS = MarkerRegion.xml("PLUGINS_LINKS")


class ProjectArtifact(Enum):
    """プラグイン断片を受け取る共有ファイル

    各メンバーは (キー, 記述子のフィールド名, BuildContextのパス属性, 所有するマーカー区間) を持つ。
    定義順が注入の実行順になる。
    """

    MANIFEST = (
        "manifest",
        "injection_xml",
        "manifest_xml",
        (
            MarkerRegion.xml("PLUGINS_MANIFEST"),
            MarkerRegion.xml("PLUGINS_ACTIVITY"),
            MarkerRegion.xml("PLUGINS_APPLICATION"),
        ),
    )
    TEALEAF_GRADLE = (
        "tealeaf_gradle",
        "injection_tealeaf_module_gradle_xml",
        "tealeaf_gradle",
        (
            PLUGINS_DEPENDENCIES,
            MarkerRegion.gradle("MANIFEST_PLACEHOLDERS"),
            MarkerRegion.gradle("ANDROID_PLUGINS"),
            MarkerRegion.gradle("PLUGINS_PATCH"),
            MarkerRegion.gradle("ANDROID_PLUGINS_CUSTOM_SETTINGS"),
        ),
    )
    APP_GRADLE = (
        "app_gradle",
        "injection_app_gradle_xml",
        "app_gradle",
        (
            MarkerRegion.gradle("MANIFEST_PLACEHOLDERS"),
            PLUGINS_DEPENDENCIES,
            MarkerRegion.gradle("ANDROID_PLUGINS"),
        ),
    )
    ROOT_GRADLE = (
        "root_gradle",
        "injection_gradle_classpath_xml",
        "root_gradle",
        (
            MarkerRegion.gradle("GOOGLE_PLAY_PLUGINS_CLASSPATH"),
            MarkerRegion.gradle("PLUGINS_REPOSITORIES"),
            MarkerRegion.gradle("BUILDSCRIPT_REPOS"),
        ),
    )
    STYLES = (
        "styles",
        "injection_styles",
        "styles_xml",
        (MarkerRegion.gradle("STYLES"),),
    )
    PROGUARD = (
        "proguard",
        "proguard_xml",
        "proguard_rules",
        (MarkerRegion.proguard("PLUGINS_PROGUARD"),),
    )

    def __init__(
        self,
        key: str,
        descriptor_field: str,
        context_attr: str,
        regions: tuple[MarkerRegion, ...],
    ) -> None:
        self.key = key
        self.descriptor_field = descriptor_field
        self.context_attr = context_attr
        self.regions = regions

    def path(self, context: BuildContext) -> Path:
        """プロジェクト内のファイルパスを返す"""
        return getattr(context, self.context_attr)

    def fragment_path(self, module: ModuleConfig) -> Path | None:
        """モジュールが宣言する断片ファイルのパスを返す（未宣言の場合はNone）"""
        if module.config is None:
            return None
        relative = getattr(module.config, self.descriptor_field)
        if not relative:
            return None
        return module.resolve(relative)


class PluginInjector:
    """モジュールの断片を共有プロジェクトファイルに注入するクラス

    各ファイルは「全断片の読み込み → 区間ごとに結合 → 置換 → 書き戻し」を
    1つの手順として、ProjectArtifactの定義順に直列で処理する。
    断片の結合順はモジュールの探索順。
    """

    def __init__(self, context: BuildContext, module_configs: dict[str, ModuleConfig]) -> None:
        self._context = context
        self._modules = module_configs
        self._logger = context.logger

    def inject(self) -> None:
        """全ファイルに断片を注入し、続けてjar依存を追加する

        Raises:
            InjectionError: プロジェクトファイルの読み書きに失敗した場合
        """
        for artifact in ProjectArtifact:
            self.inject_artifact(artifact)
        self.install_jar_dependencies()

    def inject_artifact(self, artifact: ProjectArtifact) -> bool:
        """1つのファイルに断片を注入する

        Returns:
            ファイルを書き換えた場合はTrue
        """
        path = artifact.path(self._context)
        fragments = self._read_fragments(artifact)
        if not fragments:
            self._logger.verbose(f"No plugin fragments to inject into {path.name}")
            return False

        text = self._read_project_file(path)
        if not text:
            return False

        for region in artifact.regions:
            payload = "".join(region.extract(fragment) for fragment in fragments)
            text = region.replace(text, payload)

        self._write_project_file(path, text)
        self._logger.verbose(f"Injected {len(fragments)} plugin fragment(s) into {path}")
        return True

    def install_jar_dependencies(self) -> list[str]:
        """tealeaf/libs のアーカイブごとに依存宣言を追加する

        PLUGINS_DEPENDENCIES区間の末尾に `implementation files('libs/<name>')` を
        ファイル名順に追加する。区間に既に存在する宣言は追加しない。

        Returns:
            追加した宣言のリスト
        """
        libs_dir = self._context.libs_dir
        if not libs_dir.is_dir():
            return []

        gradle_file = self._context.tealeaf_gradle
        text = self._read_project_file(gradle_file)
        current = PLUGINS_DEPENDENCIES.extract(text)
        existing = {line.strip() for line in current.splitlines()}

        added: list[str] = []
        for archive in sorted(p.name for p in libs_dir.iterdir() if p.is_file()):
            declaration = f"implementation files('libs/{archive}')"
            self._logger.verbose(f"Installing JARs in gradle: {archive}")
            if declaration not in existing:
                added.append(declaration)

        if not added:
            return []

        if PLUGINS_DEPENDENCIES.start not in text or PLUGINS_DEPENDENCIES.end not in text:
            self._logger.warning(f"{gradle_file} has no PLUGINS_DEPENDENCIES region")
            return []

        if current and not current.endswith("\n"):
            current += "\n"
        text = PLUGINS_DEPENDENCIES.replace(text, current + "\n".join(added) + "\n")
        self._write_project_file(gradle_file, text)
        return added

    def inject_app_links(self) -> bool:
        """android.app_links をマニフェストのPLUGINS_LINKS区間に書き込む

        Returns:
            マニフェストを書き換えた場合はTrue
        """
        links = self._context.app.manifest.android.get("app_links") or []
        if not links:
            return False

        elements = "".join(render_app_link(link) for link in links) + "\n"
        path = self._context.manifest_xml
        text = self._read_project_file(path)
        self._write_project_file(path, PLUGINS_LINKS.replace(text, elements))
        return True

    def _read_fragments(self, artifact: ProjectArtifact) -> list[str]:
        paths = [
            path
            for module in self._modules.values()
            if (path := artifact.fragment_path(module)) is not None
        ]
        if not paths:
            return []

        # 読み込み順に依存はないが、結合順はモジュール順を保つ
        with ThreadPoolExecutor(max_workers=min(8, len(paths))) as executor:
            results = list(executor.map(self._read_fragment, paths))
        return [fragment for fragment in results if fragment is not None]

    def _read_fragment(self, path: Path) -> str | None:
        self._logger.verbose(f"Reading plugin fragment: {path}")
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._logger.verbose(f"Plugin fragment not found, skipping: {path}")
            return None
        except OSError as e:
            raise InjectionError(f"Failed to read plugin fragment {path}: {e}") from e

    def _read_project_file(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise InjectionError(f"Failed to read project file {path}: {e}") from e

    def _write_project_file(self, path: Path, text: str) -> None:
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise InjectionError(f"Failed to write project file {path}: {e}") from e


def render_app_link(link: dict[str, str]) -> str:
    """app_linksの1エントリを<data>要素に変換する"""
    scheme = link.get("scheme") or "http"
    element = f'<data android:host="{link.get("host", "")}" android:scheme="{scheme}"'
    for prop in ("path", "pathPrefix", "pathPattern", "port"):
        if link.get(prop):
            element += f' android:{prop}="{link[prop]}"'
    return element + "/>"
