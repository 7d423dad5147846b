"""Signer module for devkit-android.

APK署名に関連する機能を提供します。
"""

from devkit_android.signer.apk import (
    ApkSigner,
    SigningConfig,
    SigningError,
    find_build_tool,
)

__all__ = [
    "ApkSigner",
    "SigningConfig",
    "SigningError",
    "find_build_tool",
]
