#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
フィールド宣言文字列（タグ）のパーサー

書式: "start,end[,alignment[,padChar]]"
  - start, end : 1 始まり・両端を含む位置（10進）
  - alignment  : default | left | right | none（未知の語は default のまま）
  - padChar    : 1 バイト文字。"_" は空白、"__" は "_" を表す
  - "1,5," のように alignment が空で padChar も無いタグは書式指定なし（数値の0埋めの対象）
"""

import dataclasses
import enum
import re
from dataclasses import dataclass
from typing import Any, Optional

from .errors import InvalidTagError

# dataclass フィールドの metadata でタグを保持するキー
TAG_KEY = "fixed"

_POS_RE = re.compile(r"[0-9]+", re.ASCII)


class Alignment(str, enum.Enum):
    DEFAULT = "default"
    LEFT = "left"
    RIGHT = "right"
    NONE = "none"


@dataclass(frozen=True)
class Format:
    """フィールドの寄せと埋め文字"""
    alignment: Alignment = Alignment.DEFAULT
    pad_char: bytes = b" "


DEFAULT_FORMAT = Format()


@dataclass(frozen=True)
class ParsedTag:
    start_pos: int
    end_pos: int
    format: Format = DEFAULT_FORMAT
    # alignment が明示されていたか（数値の書式上書きを受けるかどうかの判定に使う）
    explicit_format: bool = False


def _parse_pad_char(tag: str, token: str) -> bytes:
    if token == "_":
        return b" "
    if token == "__":
        return b"_"
    bs = token.encode("utf-8")
    if len(bs) != 1:
        raise InvalidTagError(tag, f"埋め文字は 1 バイトである必要があります: {token!r}")
    return bs


def parse_tag(tag: Optional[str]) -> ParsedTag:
    """
    タグを解析して ParsedTag を返す。
    不正なタグは InvalidTagError（レイアウト構築側ではフィールドを無視するだけ）。
    """
    if not tag:
        raise InvalidTagError(tag, "タグが空です")
    if " " in tag:
        raise InvalidTagError(tag, "空白を含めることはできません")

    parts = tag.split(",")
    if len(parts) < 2 or len(parts) > 4:
        raise InvalidTagError(tag, f"要素数が不正です（{len(parts)}）")

    if not _POS_RE.fullmatch(parts[0]) or not _POS_RE.fullmatch(parts[1]):
        raise InvalidTagError(tag, "位置は10進の整数で指定してください")
    start_pos, end_pos = int(parts[0]), int(parts[1])
    if start_pos == 0 and end_pos == 0:
        raise InvalidTagError(tag, "位置が指定されていません")
    if start_pos < 1 or start_pos > end_pos:
        raise InvalidTagError(tag, f"区間が不正です（{start_pos} > {end_pos}）")

    if len(parts) == 2:
        return ParsedTag(start_pos, end_pos)

    alignment = Alignment.DEFAULT
    try:
        alignment = Alignment(parts[2])
    except ValueError:
        # 未知の寄せ指定はタグ全体を無効にしない
        pass

    pad_char = DEFAULT_FORMAT.pad_char
    if len(parts) == 4:
        pad_char = _parse_pad_char(tag, parts[3])

    # "1,5," のように寄せも埋め文字も空なら書式の指定なしとして扱う
    explicit = bool(parts[2]) or len(parts) == 4
    return ParsedTag(start_pos, end_pos, Format(alignment, pad_char), explicit_format=explicit)


def column(tag: str, **kwargs: Any) -> Any:
    """
    タグ付きの dataclass フィールドを作る。

        @dataclass
        class Person:
            id: int = column("1,5,right,0")
            name: str = column("6,15")
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[TAG_KEY] = tag
    return dataclasses.field(metadata=metadata, **kwargs)
