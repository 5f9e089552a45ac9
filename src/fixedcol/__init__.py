"""
fixedcol - 固定長テキスト ⇔ レコード 変換ライブラリ
"""

from .converters import Converter, new_converter, register_converter
from .decode import Decoder, LineScanner, unmarshal
from .encode import Encoder, marshal
from .errors import (ConversionError, EndOfData, FieldOverflowError, FixedWidthError,
                     InvalidCodepointError, InvalidTagError, InvalidTargetError,
                     InvalidTypeError, LineTooLongError)
from .layout import FieldSpec, RecordLayout, build_layout, cached_layout, clear_layout_cache
from .line import LineBuilder, RawValue, codepoint_index
from .tags import Alignment, Format, column, parse_tag
from .types import Float, Unsigned

__version__ = "1.0.0"
__all__ = [
    "Alignment",
    "ConversionError",
    "Converter",
    "Decoder",
    "Encoder",
    "EndOfData",
    "FieldOverflowError",
    "FieldSpec",
    "FixedWidthError",
    "Float",
    "Format",
    "InvalidCodepointError",
    "InvalidTagError",
    "InvalidTargetError",
    "InvalidTypeError",
    "LineBuilder",
    "LineScanner",
    "LineTooLongError",
    "RawValue",
    "RecordLayout",
    "Unsigned",
    "build_layout",
    "cached_layout",
    "clear_layout_cache",
    "codepoint_index",
    "column",
    "marshal",
    "new_converter",
    "parse_tag",
    "register_converter",
    "unmarshal",
]
