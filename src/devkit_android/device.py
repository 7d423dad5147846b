"""接続中のAndroidデバイスへのインストール

`adb devices` の出力からデバイスを列挙し、デバイスごとに
アンインストール → インストール → （オプションで）起動 を行う。
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from devkit_android.types import BuildError

if TYPE_CHECKING:
    from devkit_android.config import BuildContext
    from devkit_android.process import ToolRunner

_DEVICE_LINE = re.compile(r"^([0-9A-Za-z.:_-]+)\s+(device|emulator)$")


def parse_devices(output: str) -> list[str]:
    """`adb devices` の出力からデバイスIDを取り出す

    >>> parse_devices("List of devices attached\\nxyz123\\tdevice\\nemulator-5554\\temulator\\n")
    ['xyz123', 'emulator-5554']
    """
    devices: list[str] = []
    for line in output.splitlines():
        match = _DEVICE_LINE.match(line.strip())
        if match:
            devices.append(match.group(1))
    return devices


@dataclass(frozen=True)
class DeviceResult:
    """1デバイス分のインストール結果"""

    device: str
    installed: bool
    message: str = ""


class DeviceInstaller:
    """APKを接続中の全デバイスにインストールするクラス

    デバイス間で共有する状態はないため、デバイスごとに並列で処理する。
    1台の失敗は他のデバイスの処理を妨げない。
    """

    def __init__(self, context: BuildContext, runner: ToolRunner) -> None:
        self._context = context
        self._runner = runner
        self._logger = context.logger
        self._timeout = context.settings.timeouts.adb

    def _adb(self, *args: str) -> str:
        return self._runner(["adb", *args], timeout=self._timeout)

    def list_devices(self) -> list[str]:
        """接続中のデバイスIDを列挙する

        Raises:
            ToolchainError: adbの実行に失敗した場合
        """
        return parse_devices(self._adb("devices"))

    def install(
        self,
        apk_path: Path,
        open_app: bool = False,
        clear_storage: bool = False,
    ) -> list[DeviceResult]:
        """全デバイスにAPKをインストールする

        Args:
            apk_path: インストールするAPK
            open_app: インストール後にアプリを起動するか
            clear_storage: アンインストール時にアプリデータも削除するか

        Returns:
            デバイスごとの結果
        """
        devices = self.list_devices()
        if not devices:
            self._logger.error("tried to install to device, but no devices found")
            return []

        with ThreadPoolExecutor(max_workers=len(devices)) as executor:
            results = list(
                executor.map(
                    lambda device: self.install_to_device(device, apk_path, open_app, clear_storage),
                    devices,
                )
            )

        for result in results:
            if not result.installed:
                self._logger.error(f"failed to install on {result.device}: {result.message}")
        return results

    def install_to_device(
        self,
        device: str,
        apk_path: Path,
        open_app: bool = False,
        clear_storage: bool = False,
    ) -> DeviceResult:
        """1台のデバイスにインストールする"""
        package_name = self._context.package_name

        uninstall = ["-s", device, "shell", "pm", "uninstall"]
        if not clear_storage:
            uninstall.append("-k")
        uninstall.append(package_name)
        try:
            self._adb(*uninstall)
        except BuildError as e:
            # 未インストールの場合も失敗するため無視する
            self._logger.debug(f"uninstall on {device} ignored: {e}")

        try:
            self._adb("-s", device, "install", "-r", str(apk_path))
        except BuildError as e:
            return DeviceResult(device=device, installed=False, message=str(e))

        if open_app:
            component = f"{package_name}/{package_name}.{self._context.activity_name}"
            try:
                self._adb("-s", device, "shell", "am", "start", "-n", component)
            except BuildError as e:
                self._logger.debug(f"open on {device} ignored: {e}")

        return DeviceResult(device=device, installed=True)
