#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
レコード（dataclass） → 固定長テキストのエンコード
"""

import io
from typing import Any, BinaryIO, Optional, Union

from .converters import RecordConverter
from .errors import InvalidTargetError
from .layout import is_record_type
from .tags import Alignment, Format

LF = b"\n"

# zero_pad_numbers=True のときに数値フィールドへ使う書式
ZERO_PADDED_NUMBERS = Format(Alignment.RIGHT, b"0")


class Encoder:
    """
    レコードを1行ずつ固定長テキストにしてストリームへ書く。

    行と行の間には line_terminator を書き、最後の行の後ろには書かない
    （encode を複数回呼んだ場合も同じ）。

    オプション:
      - use_codepoint_indices : タグの位置を UTF-8 のコードポイント単位で扱う
      - error_on_overflow     : フィールド幅を超える値を切り捨てずに FieldOverflowError にする
      - zero_pad_numbers      : 書式指定の無い数値フィールドを右寄せ・0埋めにする
      - float_precision       : float の小数部の桁数
    """

    def __init__(self, writer: BinaryIO, *, line_terminator: Union[bytes, str] = LF,
                 use_codepoint_indices: bool = False, error_on_overflow: bool = False,
                 zero_pad_numbers: bool = False, float_precision: int = 2):
        self._writer = writer
        self.line_terminator = line_terminator.encode("utf-8") if isinstance(line_terminator, str) else line_terminator
        self.use_codepoint_indices = use_codepoint_indices
        self.error_on_overflow = error_on_overflow
        self.numeric_format: Optional[Format] = ZERO_PADDED_NUMBERS if zero_pad_numbers else None
        self.float_precision = float_precision
        self.lines_written = 0

        self._last_type: Optional[type] = None
        self._last_converter: Optional[RecordConverter] = None

    def encode(self, v: Any) -> None:
        """レコード1件、またはレコードの list / tuple をエンコードして書き込む。"""
        if v is None:
            return
        if isinstance(v, (list, tuple)):
            for item in v:
                self._write_line(self.encode_line(item))
            return
        self._write_line(self.encode_line(v))

    def encode_line(self, record: Any) -> bytes:
        """レコード1件を1行分のバイト列にする（書き込みはしない）。"""
        t = type(record)
        if t is not self._last_type:
            if not is_record_type(t):
                raise InvalidTargetError(t)
            self._last_converter = RecordConverter(t)
            self._last_type = t
        return self._last_converter.encode(record, self).data

    def _write_line(self, line: bytes) -> None:
        if self.lines_written > 0:
            self._writer.write(self.line_terminator)
        self._writer.write(line)
        self.lines_written += 1


def marshal(v: Any, **options: Any) -> bytes:
    """
    レコード（またはそのリスト）を固定長テキストにする。
    options は Encoder のキーワード引数。
    """
    buff = io.BytesIO()
    Encoder(buff, **options).encode(v)
    return buff.getvalue()
