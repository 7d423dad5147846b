"""アプリリソースのコピー

manifest.jsonで指定されたアイコン、スプラッシュ画像、起動時の音楽、
Androidリソースディレクトリ、アセットを生成したプロジェクトに配置する。
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import TYPE_CHECKING, Any

from PIL import Image

if TYPE_CHECKING:
    from devkit_android.config import BuildContext

# (密度タグ, ランチャーアイコンのサイズ, 通知アイコンのキー)
DENSITIES: tuple[tuple[str, int, str], ...] = (
    ("l", 36, "low"),
    ("m", 48, "med"),
    ("h", 72, "high"),
    ("xh", 96, "xhigh"),
    ("xxh", 144, "xxhigh"),
    ("xxxh", 192, "xxxhigh"),
)

SPLASH_FILES = (
    "portrait480",
    "portrait960",
    "portrait1024",
    "portrait1136",
    "portrait2048",
    "portrait2960",
    "landscape768",
    "landscape1536",
    "universal",
)

DEFAULT_SPLASH = {key: f"resources/splash/{key}.png" for key in SPLASH_FILES}


def place_icon(source: Path, dest: Path, size: int) -> None:
    """アイコンを配置する（サイズが異なる場合は縮小・拡大する）"""
    dest.parent.mkdir(parents=True, exist_ok=True)
    with Image.open(source) as img:
        if img.size == (size, size):
            shutil.copy2(source, dest)
            return
        resized = img.convert("RGBA").resize((size, size), Image.Resampling.LANCZOS)
        resized.save(dest, "PNG")


class ResourceCopier:
    """アプリのリソースをプロジェクトのapp/src/mainに配置するクラス"""

    def __init__(self, context: BuildContext) -> None:
        self._context = context
        self._logger = context.logger
        self._root = context.app.root
        self._main_dir = context.app_main_dir
        self._android = context.app.manifest.android

    def copy_all(self) -> None:
        """すべてのリソースを配置する

        Raises:
            OSError: resDirやアセットのコピーに失敗した場合
        """
        tasks: list[Callable[[], object]] = [
            self.copy_icons,
            self.copy_music,
            self.copy_res_dir,
            self.copy_splash,
            self.copy_assets,
        ]
        with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
            futures = [executor.submit(task) for task in tasks]
            wait(futures)

        for future in futures:
            error = future.exception()
            if error is not None:
                raise error

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        return path if path.is_absolute() else self._root / path

    @property
    def _icons(self) -> dict[str, Any]:
        icons = self._android.get("icons")
        return icons if isinstance(icons, dict) else {}

    def copy_icons(self) -> list[Path]:
        """ランチャー・丸型・通知・ショートカットアイコンを密度ごとに配置する"""
        icons = self._icons
        res_dir = self._main_dir / "res"
        placed: list[Path] = []

        for tag, size, alert_key in DENSITIES:
            mipmap = res_dir / f"mipmap-{tag}dpi"
            drawable = res_dir / f"drawable-{tag}dpi"

            for name, table in (("icon.png", icons), ("round_icon.png", icons.get("round") or {})):
                source = table.get(str(size))
                if source:
                    dest = mipmap / name
                    place_icon(self._resolve(source), dest, size)
                    placed.append(dest)
                else:
                    self._logger.warning(
                        f"No icon specified in the manifest for size '{size}'. "
                        "Using the default icon for this size. This is probably not what you want."
                    )

            alert = (icons.get("alerts") or {}).get(alert_key)
            if alert:
                dest = drawable / "notifyicon.png"
                self._copy(self._resolve(alert), dest)
                placed.append(dest)
            else:
                # 通知アイコンがなくてもAndroid側で補完される
                self._logger.warning(
                    f"No alert icon specified in the manifest for density '{alert_key}'"
                )

            pattern = re.compile(rf"^(?:.*[\\/])?(.*){size}(\.png)$")
            for shortcut in (icons.get("shortcuts") or {}).get(str(size)) or []:
                match = pattern.match(shortcut)
                if match is None:
                    continue
                dest = drawable / f"shortcut_{match.group(1)}{match.group(2)}"
                self._copy(self._resolve(shortcut), dest)
                placed.append(dest)

        return placed

    def copy_splash(self) -> list[Path]:
        """スプラッシュ画像を assets/resources/splash-<key>.png に配置する"""
        manifest = self._context.app.manifest
        splash = self._android.get("splash") or manifest.splash or DEFAULT_SPLASH
        dest_dir = self._main_dir / "assets" / "resources"
        dest_dir.mkdir(parents=True, exist_ok=True)

        placed: list[Path] = []
        for key in SPLASH_FILES:
            filename = splash.get(key)
            if not filename:
                continue
            source = self._resolve(filename)
            if not source.exists():
                self._logger.error(
                    f"Splash file (manifest.splash.{key}) does not exist ({filename})"
                )
                continue
            dest = dest_dir / f"splash-{key}.png"
            self._copy(source, dest)
            placed.append(dest)
        return placed

    def copy_music(self) -> Path | None:
        """splash.songを res/raw/loadingsound.mp3 に配置する"""
        splash = self._context.app.manifest.splash
        if not splash:
            return None
        song = splash.get("song")
        if not song or not self._resolve(song).exists():
            self._logger.warning('No valid splash music specified in the manifest (at "splash.song")')
            return None
        dest = self._main_dir / "res" / "raw" / "loadingsound.mp3"
        self._copy(self._resolve(song), dest)
        return dest

    def copy_res_dir(self) -> Path | None:
        """android.resDirの内容をresディレクトリにマージする"""
        res_dir = self._android.get("resDir")
        if not res_dir:
            return None
        dest = self._main_dir / "res"
        try:
            shutil.copytree(self._resolve(res_dir), dest, dirs_exist_ok=True)
        except OSError as e:
            self._logger.warning(f"Could not copy your android resource dir [{e}]")
            raise
        return dest

    def copy_assets(self) -> list[Path]:
        """manifest.assetsのファイル・ディレクトリを相対パスのまま配置する"""
        placed: list[Path] = []
        for asset in self._context.app.manifest.assets:
            source = self._resolve(asset)
            dest = self._main_dir / asset
            self._logger.verbose(f"Copying {asset} to {dest}")
            if source.is_dir():
                shutil.copytree(source, dest, dirs_exist_ok=True)
            else:
                self._copy(source, dest)
            placed.append(dest)
        return placed

    def _copy(self, source: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        self._logger.log_copy(source, dest)
