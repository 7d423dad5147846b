"""マーカー区間のテキスト操作

開始トークン行と終了トークン行で囲まれた区間（マーカー区間）を
抽出・置換する。トークンの検索はリテラルな部分文字列検索で、
最初の出現のみを対象とする。

区間の中身は開始トークン行の次の行頭から、終了トークン行の行頭までで、
トークン行自体は含まない。どちらかのトークンが見つからない場合、
抽出は空文字列を返し、置換は入力をそのまま返す。
"""

from __future__ import annotations

from dataclasses import dataclass


def _locate(text: str, start_token: str, end_token: str) -> tuple[int, int] | None:
    """区間の中身の開始・終了位置を返す

    Returns:
        (中身の開始位置, 終了トークン行の行頭位置)。区間が成立しない場合はNone。
    """
    start = text.find(start_token)
    end = text.find(end_token)
    if start == -1 or end == -1:
        return None

    newline = text.find("\n", start + len(start_token))
    if newline == -1:
        return None
    payload_start = newline + 1

    # 終了トークンが開始トークン行より前にある
    if end < payload_start:
        return None

    payload_end = text.rfind("\n", payload_start, end) + 1
    return payload_start, max(payload_start, payload_end)


def extract_between(text: str, start_token: str, end_token: str) -> str:
    """マーカー区間の中身を抽出する

    Args:
        text: 対象テキスト
        start_token: 開始トークン
        end_token: 終了トークン

    Returns:
        区間の中身。トークンが見つからない場合は空文字列。
    """
    span = _locate(text, start_token, end_token)
    if span is None:
        return ""
    return text[span[0] : span[1]]


def replace_between(text: str, start_token: str, end_token: str, replacement: str) -> str:
    """マーカー区間の中身を置換する

    トークン行は保持される。空でない置換文字列が改行で終わらない場合は
    終了トークン行が独立した行として残るよう改行を補う。

    Args:
        text: 対象テキスト
        start_token: 開始トークン
        end_token: 終了トークン
        replacement: 新しい区間の中身

    Returns:
        置換後のテキスト。トークンが見つからない場合は入力そのもの。
    """
    span = _locate(text, start_token, end_token)
    if span is None:
        return text
    if replacement and not replacement.endswith("\n"):
        replacement += "\n"
    return text[: span[0]] + replacement + text[span[1] :]


@dataclass(frozen=True)
class MarkerRegion:
    """名前付きのマーカー区間

    Attributes:
        name: 区間名（例: PLUGINS_MANIFEST）
        start: 開始トークン
        end: 終了トークン
    """

    name: str
    start: str
    end: str

    @classmethod
    def xml(cls, name: str) -> MarkerRegion:
        """XMLコメント形式のトークン（<!--START_X--> / <!--END_X-->）"""
        return cls(name, f"<!--START_{name}-->", f"<!--END_{name}-->")

    @classmethod
    def gradle(cls, name: str) -> MarkerRegion:
        """Gradleファイル用の // で始まるトークン"""
        return cls(name, f"//<!--START_{name}-->", f"//<!--END_{name}-->")

    @classmethod
    def proguard(cls, name: str) -> MarkerRegion:
        """proguardルールファイル用の # で始まるトークン"""
        return cls(name, f"#<!--START_{name}-->", f"#<!--END_{name}-->")

    def extract(self, text: str) -> str:
        return extract_between(text, self.start, self.end)

    def replace(self, text: str, replacement: str) -> str:
        return replace_between(text, self.start, self.end, replacement)
