"""Configuration module for devkit-android.

アプリのmanifest.json、ビルド設定ファイル（YAML）、CLIオプションを読み込み、
ビルド全体で共有する不変のBuildContextを構築する。
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from devkit_android.types import BuildError

if TYPE_CHECKING:
    from devkit_android.logger import BuildLogger

MANIFEST_FILENAME = "manifest.json"
SETTINGS_FILENAME = "devkit-android.yaml"

# gradleopsディレクトリのアプリルートからの既定位置
DEFAULT_GRADLEOPS_DIR = Path("modules/devkit-core/modules/native-android/gradleops")

DEFAULT_MIN_SDK_VERSION = 19
DEFAULT_TARGET_SDK_VERSION = 27


class ConfigError(Exception):
    """設定ファイル読み込みエラー"""

    pass


@dataclass(frozen=True)
class TimeoutSettings:
    """外部ツールのタイムアウト設定（秒）"""

    template: int = 600
    ndk: int = 1800
    gradle: int = 1800
    adb: int = 120


@dataclass(frozen=True)
class BuildSettings:
    """ビルド設定ファイル（devkit-android.yaml）の内容"""

    gradleops_dir: Path | None = None
    seed_template: str = "AndroidSeed"
    accept_licenses: bool = True
    settle_delay: float = 3.0
    timeouts: TimeoutSettings = field(default_factory=TimeoutSettings)
    modules: list[Path] = field(default_factory=list)


@dataclass(frozen=True)
class AppModule:
    """アプリが宣言するモジュール（プラグイン）

    Attributes:
        name: モジュール名
        path: モジュールのルートディレクトリ
    """

    name: str
    path: Path


@dataclass(frozen=True)
class AppManifest:
    """manifest.jsonの内容

    Attributes:
        short_name: プロジェクトディレクトリ名にも使われる短縮名
        title: アプリ表示名
        app_id: アプリID
        version: ゲームのバージョン文字列
        supported_orientations: 対応する画面向きのリスト
        android: Android固有の設定
        module_settings: modules（またはaddons）キーの設定
        raw: manifest.json全体
    """

    short_name: str | None
    title: str
    app_id: str
    version: str
    supported_orientations: list[str] = field(default_factory=list)
    android: dict[str, Any] = field(default_factory=dict)
    module_settings: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def has_android_section(self) -> bool:
        return isinstance(self.raw.get("android"), dict)

    @property
    def assets(self) -> list[str]:
        return list(self.raw.get("assets") or [])

    @property
    def splash(self) -> dict[str, Any]:
        splash = self.raw.get("splash")
        return splash if isinstance(splash, dict) else {}

    @property
    def titles(self) -> dict[str, str]:
        titles = self.raw.get("titles")
        if isinstance(titles, dict) and titles:
            return {str(lang): str(title) for lang, title in titles.items()}
        return {"en": self.title}


@dataclass(frozen=True)
class App:
    """ビルド対象のアプリ

    Attributes:
        root: アプリのルートディレクトリ
        manifest: manifest.jsonの内容
        modules: モジュール名からAppModuleへのマッピング（宣言順）
    """

    root: Path
    manifest: AppManifest
    modules: dict[str, AppModule] = field(default_factory=dict)


@dataclass(frozen=True)
class BuildOptions:
    """CLIから渡されるビルドオプション

    Attributes:
        output_path: 出力ディレクトリ（<output>/<shortName>にプロジェクトを生成）
        debug: デバッグビルドか（Falseの場合はリリースビルド）
        signing: デバッグビルドでも署名を行うか
        apk: APKをビルドするか（Falseでネイティブビルドとパッケージングを省略）
        min_sdk_version: minSdkVersion（Noneの場合は19）
        target_sdk_version: targetSdkVersion（Noneの場合は27）
        reveal: 生成したAPKをファイルマネージャで表示するか
        install: 接続中のデバイスにインストールするか
        open: インストール後にアプリを起動するか
        clear_storage: アンインストール時にアプリデータも削除するか
        repack: プロジェクト生成を省略するか
        package_name: Androidパッケージ名（空の場合はmanifestから決定）
        activity_name: メインActivity名（空の場合は<shortName>Activity）
        scheme: テンプレートに渡すURLスキーム
        studio_name: スタジオ名
        sdk_version: devkit SDKのバージョン
    """

    output_path: Path
    debug: bool = True
    signing: bool = False
    apk: bool = True
    min_sdk_version: int | None = None
    target_sdk_version: int | None = None
    reveal: bool = False
    install: bool = False
    open: bool = False
    clear_storage: bool = False
    repack: bool = False
    package_name: str = ""
    activity_name: str = ""
    scheme: str = "tealeaf"
    studio_name: str = ""
    sdk_version: str = ""


@dataclass(frozen=True)
class BuildContext:
    """1回のビルドで共有される不変のコンテキスト

    プロジェクトのパスや解決済みのパッケージ名を保持し、
    ビルドの各コンポーネントに引数として渡される。
    """

    app: App
    options: BuildOptions
    settings: BuildSettings
    logger: BuildLogger
    package_name: str
    activity_name: str
    project_path: Path

    @classmethod
    def create(
        cls,
        app: App,
        options: BuildOptions,
        logger: BuildLogger,
        settings: BuildSettings | None = None,
    ) -> BuildContext:
        """アプリとオプションからコンテキストを構築する

        Raises:
            BuildError: manifestにshortNameがない場合
        """
        short_name = app.manifest.short_name
        if not short_name:
            raise BuildError("Build aborted: No shortName in the manifest")

        if not app.manifest.has_android_section:
            logger.warning(
                "you should add an \"android\" key to your app's manifest.json "
                "for android-specific settings"
            )

        package_name = (
            options.package_name
            or str(app.manifest.android.get("packageName") or "")
            or f"com.tealeaf.{short_name.lower()}"
        )
        activity_name = options.activity_name or f"{short_name}Activity"

        return cls(
            app=app,
            options=options,
            settings=settings or BuildSettings(),
            logger=logger,
            package_name=package_name,
            activity_name=activity_name,
            project_path=options.output_path / short_name,
        )

    @property
    def short_name(self) -> str:
        return self.app.manifest.short_name or ""

    @property
    def build_type(self) -> str:
        """ビルドタイプ（debug / release）"""
        return "debug" if self.options.debug else "release"

    @property
    def gradleops_dir(self) -> Path:
        if self.settings.gradleops_dir is not None:
            return self.settings.gradleops_dir
        return self.app.root / DEFAULT_GRADLEOPS_DIR

    @property
    def app_main_dir(self) -> Path:
        return self.project_path / "app" / "src" / "main"

    @property
    def tealeaf_main_dir(self) -> Path:
        return self.project_path / "tealeaf" / "src" / "main"

    @property
    def manifest_xml(self) -> Path:
        return self.app_main_dir / "AndroidManifest.xml"

    @property
    def app_gradle(self) -> Path:
        return self.project_path / "app" / "build.gradle"

    @property
    def tealeaf_gradle(self) -> Path:
        return self.project_path / "tealeaf" / "build.gradle"

    @property
    def root_gradle(self) -> Path:
        return self.project_path / "build.gradle"

    @property
    def proguard_rules(self) -> Path:
        return self.project_path / "tealeaf" / "proguard-rules.pro"

    @property
    def styles_xml(self) -> Path:
        return self.tealeaf_main_dir / "res" / "values" / "styles.xml"

    @property
    def strings_xml(self) -> Path:
        return self.app_main_dir / "res" / "values" / "strings.xml"

    @property
    def libs_dir(self) -> Path:
        return self.project_path / "tealeaf" / "libs"

    @property
    def package_dir(self) -> Path:
        return self.app_main_dir / "java" / Path(*self.package_name.split("."))

    @property
    def activity_file(self) -> Path:
        return self.package_dir / f"{self.activity_name}.java"

    @property
    def apk_dir(self) -> Path:
        return self.project_path / "app" / "build" / "outputs" / "apk" / self.build_type

    @property
    def bin_dir(self) -> Path:
        return self.options.output_path / "bin"

    @property
    def min_sdk_version(self) -> int:
        return self.options.min_sdk_version or DEFAULT_MIN_SDK_VERSION

    @property
    def target_sdk_version(self) -> int:
        return self.options.target_sdk_version or DEFAULT_TARGET_SDK_VERSION


def load_settings(path: Path) -> BuildSettings:
    """ビルド設定ファイルを読み込む

    ファイルが存在しない場合はデフォルト設定を返す。

    Args:
        path: 設定ファイルパス

    Returns:
        BuildSettings: 読み込んだ設定（デフォルトとマージ済み）

    Raises:
        ConfigError: ファイル読み込みまたはパースエラー
    """
    if not path.exists():
        return get_default_settings()

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML解析エラー: {e}") from e
    except OSError as e:
        raise ConfigError(f"設定ファイルを読み込めません: {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("設定ファイルはYAMLのマッピング形式である必要があります")

    default = get_default_settings()
    base_dir = path.parent

    gradleops_dir = data.get("gradleops_dir")
    return BuildSettings(
        gradleops_dir=_resolve(base_dir, gradleops_dir) if gradleops_dir else None,
        seed_template=data.get("seed_template", default.seed_template),
        accept_licenses=data.get("accept_licenses", default.accept_licenses),
        settle_delay=float(data.get("settle_delay", default.settle_delay)),
        timeouts=_merge_timeout_settings(data.get("timeouts", {}), default.timeouts),
        modules=[_resolve(base_dir, p) for p in data.get("modules", []) or []],
    )


def get_default_settings() -> BuildSettings:
    """デフォルト設定を取得する"""
    return BuildSettings()


def _resolve(base_dir: Path, value: str | Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path


def _merge_timeout_settings(data: dict[str, Any], default: TimeoutSettings) -> TimeoutSettings:
    """タイムアウト設定をマージする"""
    if not isinstance(data, dict):
        return default
    return TimeoutSettings(
        template=data.get("template", default.template),
        ndk=data.get("ndk", default.ndk),
        gradle=data.get("gradle", default.gradle),
        adb=data.get("adb", default.adb),
    )


def load_manifest(path: Path) -> AppManifest:
    """manifest.jsonを読み込む

    Raises:
        ConfigError: ファイルが存在しない、またはJSONとして不正な場合
    """
    if not path.exists():
        raise ConfigError(f"manifest.jsonが見つかりません: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"JSON解析エラー: {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"manifest.jsonを読み込めません: {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("manifest.jsonはJSONオブジェクトである必要があります")

    android = data.get("android")
    module_settings = data.get("modules") or data.get("addons") or {}
    orientations = data.get("supportedOrientations") or []

    return AppManifest(
        short_name=data.get("shortName"),
        title=str(data.get("title", "")),
        app_id=str(data.get("appID", "")),
        version=str(data.get("version", "")),
        supported_orientations=[str(o) for o in orientations],
        android=android if isinstance(android, dict) else {},
        module_settings=module_settings if isinstance(module_settings, dict) else {},
        raw=data,
    )


def discover_modules(root: Path, extra: list[Path] | None = None) -> dict[str, AppModule]:
    """アプリのモジュールを探索する

    <root>/modules 以下のディレクトリを名前順に列挙し、
    続けて設定ファイルで指定された追加モジュールを加える。
    """
    modules: dict[str, AppModule] = {}
    modules_dir = root / "modules"
    if modules_dir.is_dir():
        for entry in sorted(modules_dir.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                modules[entry.name] = AppModule(name=entry.name, path=entry)

    for path in extra or []:
        modules[path.name] = AppModule(name=path.name, path=path)

    return modules


def load_app(root: Path, settings: BuildSettings | None = None) -> App:
    """アプリのルートディレクトリからAppを構築する

    Raises:
        ConfigError: manifest.jsonの読み込みに失敗した場合
    """
    settings = settings or get_default_settings()
    manifest = load_manifest(root / MANIFEST_FILENAME)
    return App(
        root=root,
        manifest=manifest,
        modules=discover_modules(root, settings.modules),
    )
