#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
レコード型ごとのレイアウト（フィールド仕様の並び）の構築とキャッシュ
"""

import dataclasses
import logging
import typing
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .converters import Converter, is_numeric_type, new_converter
from .errors import InvalidTagError, InvalidTargetError
from .tags import DEFAULT_FORMAT, TAG_KEY, Format, parse_tag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    """1フィールド分の位置・書式・変換器"""
    name: str
    start_pos: int = 0
    end_pos: int = 0
    format: Format = DEFAULT_FORMAT
    explicit_format: bool = False
    converter: Optional[Converter] = None
    is_numeric: bool = False
    ok: bool = False

    @property
    def width(self) -> int:
        return self.end_pos - self.start_pos + 1

    def resolve_format(self, numeric_format: Optional[Format] = None) -> Format:
        """タグの書式 → （数値なら）エンコーダの数値書式 → 既定書式 の順に選ぶ"""
        if self.explicit_format:
            return self.format
        if self.is_numeric and numeric_format is not None:
            return numeric_format
        return self.format


@dataclass(frozen=True)
class RecordLayout:
    record_type: type
    line_length: int
    field_specs: Tuple[FieldSpec, ...]


def is_record_type(t: Any) -> bool:
    return isinstance(t, type) and dataclasses.is_dataclass(t)


def build_layout(record_type: type) -> RecordLayout:
    """
    dataclass の宣言順にタグを解析してレイアウトを作る。
    タグが無い・不正なフィールドは ok=False として残し、エンコード/デコードでは無視する。
    """
    if not is_record_type(record_type):
        raise InvalidTargetError(record_type)

    hints = typing.get_type_hints(record_type)
    specs = []
    line_length = 0
    for f in dataclasses.fields(record_type):
        tag = f.metadata.get(TAG_KEY)
        if tag is None:
            specs.append(FieldSpec(name=f.name))
            continue
        try:
            parsed = parse_tag(tag)
        except InvalidTagError as e:
            logger.debug("%s.%s を無視します: %s", record_type.__name__, f.name, e)
            specs.append(FieldSpec(name=f.name))
            continue

        t = hints.get(f.name, Any)
        specs.append(FieldSpec(
            name=f.name,
            start_pos=parsed.start_pos,
            end_pos=parsed.end_pos,
            format=parsed.format,
            explicit_format=parsed.explicit_format,
            converter=new_converter(t),
            is_numeric=is_numeric_type(t),
            ok=True,
        ))
        line_length = max(line_length, parsed.end_pos)

    layout = RecordLayout(record_type, line_length, tuple(specs))
    logger.debug("レイアウトを構築しました: %s (line_length=%d, fields=%d)",
                 record_type.__name__, line_length, len(specs))
    return layout


# record type -> RecordLayout
_layout_cache: Dict[type, RecordLayout] = {}


def cached_layout(record_type: type) -> RecordLayout:
    """
    build_layout のキャッシュ付き版。
    初回の競合で重複して構築されることはあるが、保存されるのは最初の1つだけ。
    """
    layout = _layout_cache.get(record_type)
    if layout is not None:
        return layout
    return _layout_cache.setdefault(record_type, build_layout(record_type))


def clear_layout_cache() -> None:
    _layout_cache.clear()
