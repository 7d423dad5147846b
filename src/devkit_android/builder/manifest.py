"""AndroidManifest.xml とGradleファイルのパラメータ適用

manifest.jsonとモジュール設定からマニフェスト用のパラメータを組み立て、
プラグイン断片の注入、モジュールのGradle変換・XSL変換、
最後に同梱のAndroidManifest.xslによる変換を順に適用する。
"""

from __future__ import annotations

import importlib.resources
import json
import string
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from devkit_android.builder.injector import PluginInjector

if TYPE_CHECKING:
    from devkit_android.config import BuildContext
    from devkit_android.logger import BuildLogger
    from devkit_android.modules import ModuleConfig
    from devkit_android.process import ToolRunner

ENTRY_POINT = "devkit.native.launchClient"

_STRIP_PUNCTUATION = str.maketrans("", "", string.punctuation)


def derive_orientation(orientations: list[str]) -> str:
    """supportedOrientationsから画面向きを決定する

    >>> derive_orientation(["portrait", "landscape"])
    'unspecified'
    >>> derive_orientation(["landscape"])
    'landscape'
    >>> derive_orientation([])
    'portrait'
    """
    if "portrait" in orientations and "landscape" in orientations:
        return "unspecified"
    if "landscape" in orientations:
        return "landscape"
    return "portrait"


def flatten_config(source: Mapping[str, Any] | list[Any], prefix: str = "") -> dict[str, Any]:
    """ネストした設定をドット区切りのキーに平坦化する

    >>> flatten_config({"ads": {"id": "x", "test": True}})
    {'ads.id': 'x', 'ads.test': True}
    """
    items = source.items() if isinstance(source, Mapping) else enumerate(source)
    flat: dict[str, Any] = {}
    for key, value in items:
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping | list):
            flat.update(flatten_config(value, name))
        else:
            flat[name] = value
    return flat


def build_manifest_params(context: BuildContext) -> dict[str, Any]:
    """マニフェスト変換に渡すパラメータを組み立てる

    既定値、manifest.android、平坦化したモジュール設定、固定の上書き値の順に重ねる。
    """
    from devkit_android import __version__

    manifest = context.app.manifest
    android = manifest.android
    options = context.options
    debug = options.debug

    params: dict[str, Any] = {
        "installShortcut": "false",
        "entryPoint": ENTRY_POINT,
        "studioName": options.studio_name,
        "disableLogs": "false" if debug else "true",
        "develop": "true" if debug else "false",
    }
    params.update(android)
    params.update(flatten_config(manifest.module_settings))
    params.update(
        {
            "package": context.package_name,
            "title": "@string/title",
            "activity": f"{context.package_name}.{context.activity_name}",
            "version": manifest.version,
            "appid": manifest.app_id.translate(_STRIP_PUNCTUATION),
            "shortname": context.short_name,
            "fullscreen": android.get("fullscreen"),
            "orientation": derive_orientation(manifest.supported_orientations),
            "studioName": options.studio_name,
            "gameHash": manifest.version,
            "sdkHash": options.sdk_version,
            "androidHash": __version__,
            "minSdkVersion": context.min_sdk_version,
            "targetSdkVersion": context.target_sdk_version,
            "debuggable": "true" if debug else "false",
            "otherApps": "|".join(str(app) for app in android.get("otherApps") or []),
        }
    )
    # 未設定の任意項目はスタイルシートに渡さない
    return {key: value for key, value in params.items() if value is not None}


def stringify_params(params: Mapping[str, Any], logger: BuildLogger) -> dict[str, str]:
    """パラメータの値をすべて文字列にする

    文字列以外の値はJSON表現に変換する。値が空またはオブジェクトの場合はエラーを記録する。
    """
    result: dict[str, str] = {}
    for key, value in params.items():
        if isinstance(value, str):
            result[key] = value
            continue
        if not value or isinstance(value, Mapping | list):
            logger.error(f"settings for AndroidManifest: value for {key} is not a string")
        result[key] = json.dumps(value)
    return result


def _lookup(source: Mapping[str, Any], dotted_key: str) -> Any:
    value: Any = source
    for part in dotted_key.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def transform_gradle(
    gradle_file: Path,
    transform_file: Path,
    android: Mapping[str, Any],
    module_config: Mapping[str, Any],
    logger: BuildLogger,
) -> int:
    """Gradle変換記述に従ってプレースホルダを置換する

    変換記述は「プレースホルダ → 参照キー」のJSONオブジェクト。
    参照キーはmanifest.android、次にモジュール設定から引き、
    見つかった値のJSON表現でプレースホルダを置き換える。

    Returns:
        置換したプレースホルダの数
    """
    transform = json.loads(transform_file.read_text(encoding="utf-8"))
    contents = gradle_file.read_text(encoding="utf-8")

    replaced = 0
    for source in (android, module_config):
        for placeholder, key in transform.items():
            value = _lookup(source, str(key))
            if not value or placeholder not in contents:
                continue
            logger.verbose(f"Gradle transform: {placeholder} -> {key}")
            contents = contents.replace(placeholder, json.dumps(value))
            replaced += 1

    gradle_file.write_text(contents, encoding="utf-8")
    return replaced


class XsltRunner:
    """xsltprocでXMLファイルを変換するクラス"""

    def __init__(self, runner: ToolRunner, logger: BuildLogger) -> None:
        self._runner = runner
        self._logger = logger

    def transform(
        self,
        in_file: Path,
        out_file: Path,
        stylesheet: Path,
        params: Mapping[str, Any],
    ) -> None:
        """スタイルシートを適用する（in_fileとout_fileは同じでもよい）

        Raises:
            ToolchainError: xsltprocが失敗した場合
        """
        temp_file = out_file.with_name(out_file.name + ".temp")
        command = ["xsltproc"]
        for key, value in stringify_params(params, self._logger).items():
            command += ["--stringparam", key, value]
        command += ["-o", str(temp_file), str(stylesheet), str(in_file)]

        self._runner(command)
        try:
            out_file.write_text(temp_file.read_text(encoding="utf-8"), encoding="utf-8")
        finally:
            temp_file.unlink(missing_ok=True)


class ManifestUpdater:
    """マニフェストとGradleファイルにアプリのパラメータを適用するクラス

    モジュールの変換は共有ファイルを書き換えるため、モジュール順に直列で実行する。
    """

    STYLESHEET = "AndroidManifest.xsl"

    def __init__(
        self,
        context: BuildContext,
        module_configs: dict[str, ModuleConfig],
        runner: ToolRunner,
    ) -> None:
        self._context = context
        self._modules = module_configs
        self._logger = context.logger
        self._xslt = XsltRunner(runner, context.logger)

    def update(self) -> dict[str, Any]:
        """マニフェストを更新する

        Returns:
            適用したパラメータ
        """
        context = self._context
        params = build_manifest_params(context)

        injector = PluginInjector(context, self._modules)
        injector.inject_app_links()
        injector.inject()

        android = context.app.manifest.android
        for module in self._modules.values():
            descriptor = module.config
            if descriptor is None:
                continue
            if descriptor.transform_gradle_app:
                transform_gradle(
                    context.app_gradle,
                    module.resolve(descriptor.transform_gradle_app),
                    android,
                    descriptor.raw,
                    self._logger,
                )
            if descriptor.transform_gradle_tealeaf:
                transform_gradle(
                    context.tealeaf_gradle,
                    module.resolve(descriptor.transform_gradle_tealeaf),
                    android,
                    descriptor.raw,
                    self._logger,
                )
            if descriptor.injection_xsl:
                self._xslt.transform(
                    context.manifest_xml,
                    context.manifest_xml,
                    module.resolve(descriptor.injection_xsl),
                    params,
                )

        self._logger.info("Applying final XSL transformation")
        resource = importlib.resources.files("devkit_android.resources").joinpath(self.STYLESHEET)
        with importlib.resources.as_file(resource) as stylesheet:
            self._xslt.transform(context.manifest_xml, context.manifest_xml, stylesheet, params)
        return params
