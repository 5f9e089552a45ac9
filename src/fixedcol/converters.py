#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
区間テキスト <-> 型付きの値 の変換器

変換器はレイアウト構築時にフィールドの型注釈から1回だけ選ぶ（new_converter）。
  1. Any / object          : 実行時の型で選ぶ
  2. Optional[X]           : 空の区間を None として扱い、X の変換器に委譲
  3. from_fixed_width / to_fixed_width を持つ型 : 利用者定義の変換（向きごとに優先）
  4. 登録済みの型（MRO順） : str / int / Unsigned / float / bool、dataclass はレコード
  5. それ以外              : エンコードは InvalidTypeError、デコードは ConversionError
"""

import dataclasses
import enum
import re
import types
import typing
from typing import Any, Dict, List, Optional, Type

from .errors import (ConversionError, FieldOverflowError, FixedWidthError,
                     InvalidTypeError)
from .line import LineBuilder, RawValue
from .tags import Alignment, Format
from .types import Unsigned

_INT_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)
_UINT_RE = re.compile(r"[0-9]+", re.ASCII)
_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.ASCII | re.IGNORECASE)

_TRUE = {"true", "t", "1"}
_FALSE = {"false", "f", "0"}

_EMPTY = RawValue(b"")


class Converter:
    """変換器の基底。既定では区間をテキストとして from_text / to_text に渡す。"""

    # False の変換器（入れ子レコード）には埋め文字を落とさない区間を渡す
    trims = True

    def __init__(self, target_type: Any):
        self.target_type = target_type

    def __repr__(self) -> str:
        return f"{type(self).__name__}({getattr(self.target_type, '__name__', self.target_type)})"

    def decode(self, raw: RawValue) -> Any:
        return self.from_text(raw.text)

    def encode(self, value: Any, encoder: Any, width: int) -> RawValue:
        if value is None:
            return _EMPTY
        return RawValue.from_text(self.to_text(value, encoder, width), encoder.use_codepoint_indices)

    def from_text(self, text: str) -> Any:
        raise NotImplementedError

    def to_text(self, value: Any, encoder: Any, width: int) -> str:
        raise NotImplementedError

    def zero(self) -> Any:
        try:
            return self.target_type()
        except (TypeError, ValueError):
            return None

    def _build(self, value: Any, text: str) -> Any:
        try:
            return self.target_type(value)
        except (TypeError, ValueError) as e:
            raise ConversionError(text, self.target_type, cause=e) from e


def _plain(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    return value


class StringConverter(Converter):

    def from_text(self, text: str) -> Any:
        if self.target_type is str:
            return text
        return self._build(text, text)

    def to_text(self, value: Any, encoder: Any, width: int) -> str:
        value = _plain(value)
        if not isinstance(value, str):
            raise ConversionError(value, self.target_type)
        return value

    def zero(self) -> Any:
        return ""


class IntConverter(Converter):
    pattern = _INT_RE

    def from_text(self, text: str) -> Any:
        if not text:
            return self.zero()
        if not self.pattern.fullmatch(text):
            raise ConversionError(text, self.target_type)
        return self._build(int(text), text)

    def to_text(self, value: Any, encoder: Any, width: int) -> str:
        value = _plain(value)
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConversionError(value, self.target_type)
        return str(int(value))


class UnsignedConverter(IntConverter):
    pattern = _UINT_RE

    def to_text(self, value: Any, encoder: Any, width: int) -> str:
        text = super().to_text(value, encoder, width)
        if text.startswith("-"):
            raise ConversionError(value, self.target_type)
        return text


class FloatConverter(Converter):

    def from_text(self, text: str) -> Any:
        if not text:
            return self.zero()
        if not _FLOAT_RE.fullmatch(text):
            raise ConversionError(text, self.target_type)
        return self._build(float(text), text)

    def to_text(self, value: Any, encoder: Any, width: int) -> str:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ConversionError(value, self.target_type)
        return f"{float(value):.{encoder.float_precision}f}"


class BoolConverter(Converter):

    def from_text(self, text: str) -> Any:
        if not text:
            return False
        s = text.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
        raise ConversionError(text, self.target_type)

    def to_text(self, value: Any, encoder: Any, width: int) -> str:
        if not isinstance(value, bool):
            raise ConversionError(value, self.target_type)
        return "true" if value else "false"


class OptionalConverter(Converter):
    """空の区間 <-> None。値がある場合は内側の変換器に任せる。"""

    def __init__(self, target_type: Any, inner: Converter):
        super().__init__(target_type)
        self.inner = inner
        self.trims = inner.trims

    def __repr__(self) -> str:
        return f"OptionalConverter({self.inner!r})"

    def decode(self, raw: RawValue) -> Any:
        data = raw.data if self.trims else raw.data.strip()
        if not data:
            return None
        return self.inner.decode(raw)

    def encode(self, value: Any, encoder: Any, width: int) -> RawValue:
        if value is None:
            return _EMPTY
        return self.inner.encode(value, encoder, width)

    def zero(self) -> Any:
        return None


class CustomConverter(Converter):
    """
    型自身が持つ変換を使う。
      - デコード: classmethod from_fixed_width(text) -> 値
      - エンコード: to_fixed_width(width) -> str
    片方しか無い向きは fallback（通常の変換器）に任せる。
    """

    def __init__(self, target_type: Any, fallback: Converter):
        super().__init__(target_type)
        self.fallback = fallback
        self.trims = fallback.trims
        self.can_decode = callable(getattr(target_type, "from_fixed_width", None))
        self.can_encode = callable(getattr(target_type, "to_fixed_width", None))

    def decode(self, raw: RawValue) -> Any:
        if self.can_decode:
            return self.target_type.from_fixed_width(raw.text)
        return self.fallback.decode(raw)

    def encode(self, value: Any, encoder: Any, width: int) -> RawValue:
        if value is None:
            return _EMPTY
        if self.can_encode and hasattr(value, "to_fixed_width"):
            # 利用者定義の変換で起きた例外はそのまま伝える
            text = value.to_fixed_width(width)
            if isinstance(text, bytes):
                return RawValue.new(text, encoder.use_codepoint_indices)
            return RawValue.from_text(text, encoder.use_codepoint_indices)
        return self.fallback.encode(value, encoder, width)

    def zero(self) -> Any:
        return self.fallback.zero()


class AnyConverter(Converter):
    """型注釈が Any / object のフィールド。エンコードは実行時の型、デコードはテキストのまま。"""

    def from_text(self, text: str) -> Any:
        return text

    def encode(self, value: Any, encoder: Any, width: int) -> RawValue:
        if value is None:
            return _EMPTY
        return new_converter(type(value)).encode(value, encoder, width)

    def zero(self) -> Any:
        return None


class UnsupportedConverter(Converter):

    def decode(self, raw: RawValue) -> Any:
        raise ConversionError(raw.text, self.target_type, cause=InvalidTypeError(self.target_type))

    def encode(self, value: Any, encoder: Any, width: int) -> RawValue:
        raise InvalidTypeError(self.target_type)

    def zero(self) -> Any:
        return None


def extract_interval(line: RawValue, start_pos: int, end_pos: int) -> RawValue:
    """1 始まり・両端を含む区間を切り出す。行が短ければ切り詰め、区間が行外なら空。"""
    n = len(line)
    if n == 0 or start_pos > n:
        return _EMPTY
    return line.slice(start_pos - 1, min(end_pos, n) - 1)


def trim_value(raw: RawValue, fmt: Format) -> RawValue:
    """寄せに応じて埋め文字を落とす（default / none は両側）"""
    if fmt.alignment is Alignment.LEFT:
        data = raw.data.rstrip(fmt.pad_char)
    elif fmt.alignment is Alignment.RIGHT:
        data = raw.data.lstrip(fmt.pad_char)
    else:
        data = raw.data.strip(fmt.pad_char)
    if len(data) == len(raw.data):
        return raw
    return RawValue.new(data, raw.has_multibyte_char())


def fit_value(raw: RawValue, width: int, fmt: Format) -> RawValue:
    """
    値をフィールド幅に合わせる。長ければ右側を切り捨て、短ければ埋め文字で埋める。
    right は左を埋め、left / default は右を埋める（default は埋め文字が空白でも
    left と同じ扱い。旧来の挙動のまま）。none は埋めない。
    """
    n = len(raw)
    if n > width:
        return raw.slice(0, width - 1)
    if n == width or fmt.alignment is Alignment.NONE:
        return raw

    count = width - n
    fill = fmt.pad_char * count
    indices: Optional[List[int]] = None
    if fmt.alignment is Alignment.RIGHT:
        data = fill + raw.data
        if raw.codepoint_indices is not None:
            indices = list(range(count)) + [count + i for i in raw.codepoint_indices]
    else:
        data = raw.data + fill
        if raw.codepoint_indices is not None:
            indices = raw.codepoint_indices + list(range(len(raw.data), len(raw.data) + count))
    return RawValue(data, indices)


class RecordConverter(Converter):
    """入れ子を含むレコード（dataclass）の変換。レイアウトは初回利用時にキャッシュから引く。"""

    trims = False

    def __init__(self, target_type: Any):
        super().__init__(target_type)
        self._layout = None
        self._zeros: Optional[Dict[str, Any]] = None

    @property
    def layout(self):
        if self._layout is None:
            from .layout import cached_layout
            self._layout = cached_layout(self.target_type)
        return self._layout

    def decode(self, raw: RawValue) -> Any:
        rec_name = self.target_type.__name__
        values: Dict[str, Any] = {}
        for spec in self.layout.field_specs:
            if not spec.ok:
                continue
            value = extract_interval(raw, spec.start_pos, spec.end_pos)
            if spec.converter.trims:
                value = trim_value(value, spec.format)
            try:
                values[spec.name] = spec.converter.decode(value)
            except ConversionError as e:
                if e.record or e.field:
                    raise
                raise e.located(rec_name, spec.name) from e
            except FixedWidthError:
                raise
            except Exception as e:
                raise ConversionError(value.text, spec.converter.target_type, rec_name, spec.name, e) from e
        return self._build_record(values)

    def encode(self, value: Any, encoder: Any, width: int = 0) -> RawValue:
        if value is None:
            return _EMPTY
        if not isinstance(value, self.target_type):
            raise ConversionError(value, self.target_type)

        rec_name = self.target_type.__name__
        layout = self.layout
        buff = LineBuilder(layout.line_length)
        for spec in layout.field_specs:
            if not spec.ok:
                continue
            try:
                val = spec.converter.encode(getattr(value, spec.name), encoder, spec.width)
            except ConversionError as e:
                if e.record or e.field:
                    raise
                raise e.located(rec_name, spec.name) from e

            if encoder.error_on_overflow and len(val) > spec.width:
                raise FieldOverflowError(spec.name, val.text, len(val), spec.width)

            fmt = spec.resolve_format(encoder.numeric_format)
            buff.write_value(spec.start_pos - 1, fit_value(val, spec.width, fmt))
        return buff.as_raw_value()

    def zero(self) -> Any:
        return self._build_record({})

    def _build_record(self, values: Dict[str, Any]) -> Any:
        """デコード値から新しいインスタンスを作る。値の無い必須フィールドは型のゼロ値で埋める。"""
        if self._zeros is None:
            hints = typing.get_type_hints(self.target_type)
            self._zeros = {
                f.name: new_converter(hints.get(f.name, Any)).zero()
                for f in dataclasses.fields(self.target_type)
                if f.init and f.default is dataclasses.MISSING
                and f.default_factory is dataclasses.MISSING
            }

        kwargs: Dict[str, Any] = {}
        late: Dict[str, Any] = {}
        for f in dataclasses.fields(self.target_type):
            if f.name in values:
                if f.init:
                    kwargs[f.name] = values[f.name]
                else:
                    late[f.name] = values[f.name]
            elif f.name in self._zeros:
                kwargs[f.name] = self._zeros[f.name]

        rec = self.target_type(**kwargs)
        for name, v in late.items():
            object.__setattr__(rec, name, v)
        return rec


# type -> Converter クラス（MRO の順に最初に見つかったものを使う）
_registry: Dict[type, Type[Converter]] = {
    bool: BoolConverter,
    Unsigned: UnsignedConverter,
    int: IntConverter,
    float: FloatConverter,
    str: StringConverter,
}


def register_converter(target_type: type, converter_cls: Type[Converter]) -> None:
    """
    型に変換器を登録する。登録はその型を含むレイアウトの初回構築より前に行うこと
    （構築済みなら layout.clear_layout_cache() を呼ぶ）。
    """
    _registry[target_type] = converter_cls


_UNION_TYPES = tuple(t for t in (typing.Union, getattr(types, "UnionType", None)) if t is not None)


def _optional_inner(t: Any) -> Any:
    """Optional[X] / X | None なら X、それ以外は None"""
    if typing.get_origin(t) not in _UNION_TYPES:
        return None
    args = [a for a in typing.get_args(t) if a is not type(None)]
    if len(args) != 1 or len(args) == len(typing.get_args(t)):
        return None
    return args[0]


def _lookup(t: type) -> Converter:
    for base in t.__mro__:
        converter_cls = _registry.get(base)
        if converter_cls is not None:
            return converter_cls(t)
    if dataclasses.is_dataclass(t):
        return RecordConverter(t)
    return UnsupportedConverter(t)


def new_converter(t: Any) -> Converter:
    """型注釈から変換器を選ぶ"""
    if t is Any or t is object:
        return AnyConverter(t)

    inner = _optional_inner(t)
    if inner is not None:
        return OptionalConverter(t, new_converter(inner))

    if not isinstance(t, type):
        return UnsupportedConverter(t)

    converter = _lookup(t)
    if hasattr(t, "from_fixed_width") or hasattr(t, "to_fixed_width"):
        return CustomConverter(t, converter)
    return converter


def is_numeric_type(t: Any) -> bool:
    return isinstance(t, type) and issubclass(t, (int, float)) and not issubclass(t, bool)
