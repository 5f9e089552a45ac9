#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
固定長テキスト → レコード（dataclass）のデコード
"""

import io
import typing
from typing import Any, BinaryIO, Iterator, List, Optional, Union

from .converters import RecordConverter
from .errors import EndOfData, InvalidTargetError, LineTooLongError
from .layout import is_record_type
from .line import RawValue

LF = b"\n"

# 行区切り走査のバッファ上限
MAX_LINE_LENGTH = 64 * 1024


def _as_bytes(term: Union[bytes, str]) -> bytes:
    if isinstance(term, str):
        return term.encode("utf-8")
    return bytes(term)


class LineScanner:
    """
    バイナリストリームを行終端で区切る。
      - 終端の無い最後の行もそのまま返す
      - 最後が終端で終わっていても空行は追加しない
      - 行（終端を除く）が max_line_length を超えたら LineTooLongError
        一度超えたら以後の呼び出しもすべて LineTooLongError
    """

    def __init__(self, reader: BinaryIO, terminator: bytes = LF,
                 max_line_length: int = MAX_LINE_LENGTH, chunk_size: int = 4096):
        self._reader = reader
        self.terminator = terminator or LF
        self.max_line_length = max_line_length
        self._chunk_size = chunk_size
        self._buf = bytearray()
        self._scanned = 0
        self._eof = False
        self._broken = False
        self.done = False

    def next_line(self) -> Optional[bytes]:
        """次の行（終端を除く）。入力が尽きたら None。"""
        if self._broken:
            raise LineTooLongError(self.max_line_length)
        term = self.terminator
        while True:
            i = self._buf.find(term, self._scanned)
            if i >= 0:
                self._check_length(i)
                line = bytes(self._buf[:i])
                del self._buf[:i + len(term)]
                self._scanned = 0
                return line
            # 終端が読込の境目で割れている場合に備え、末尾 len(term)-1 バイトは再走査する
            self._scanned = max(0, len(self._buf) - len(term) + 1)

            if self._eof:
                if not self._buf:
                    self.done = True
                    return None
                self._check_length(len(self._buf))
                line = bytes(self._buf)
                self._buf.clear()
                self._scanned = 0
                return line

            # 終端の途中までは行の長さに数えない
            self._check_length(self._scanned)

            chunk = self._reader.read(self._chunk_size)
            if not chunk:
                self._eof = True
            else:
                self._buf += chunk

    def _check_length(self, length: int) -> None:
        if length > self.max_line_length:
            self._broken = True
            self._buf.clear()
            raise LineTooLongError(self.max_line_length)


class Decoder:
    """
    ストリームから1行ずつ読み、レコードにデコードする。

        dec = Decoder(f, use_codepoint_indices=True)
        people = dec.decode_all(Person)

    use_codepoint_indices=True ならタグの位置はバイトではなく UTF-8 のコードポイント単位。
    """

    def __init__(self, reader: BinaryIO, *, line_terminator: Union[bytes, str] = LF,
                 use_codepoint_indices: bool = False, max_line_length: int = MAX_LINE_LENGTH):
        self._scanner = LineScanner(reader, _as_bytes(line_terminator), max_line_length)
        self.use_codepoint_indices = use_codepoint_indices

        # 直前に使ったレコード型の変換器（高速化のためだけのもの）
        self._last_type: Optional[type] = None
        self._last_converter: Optional[RecordConverter] = None

    @property
    def line_terminator(self) -> bytes:
        return self._scanner.terminator

    @line_terminator.setter
    def line_terminator(self, value: Union[bytes, str]) -> None:
        # 空の指定は無視（既定のまま）
        value = _as_bytes(value)
        if value:
            self._scanner.terminator = value

    @property
    def done(self) -> bool:
        return self._scanner.done

    def decode(self, record_type: type) -> Any:
        """1行を1レコードにデコードする。入力が尽きていれば EndOfData。"""
        _check_target(record_type)
        line = self._scanner.next_line()
        if line is None:
            raise EndOfData()
        return self._decode_line(record_type, line)

    def decode_all(self, record_type: type) -> List[Any]:
        """入力の終わりまで読んでレコードのリストを返す。"""
        return list(self.iter_decode(record_type))

    def iter_decode(self, record_type: type) -> Iterator[Any]:
        """1行ずつデコードするイテレータ。対象の型はここで検査する。"""
        _check_target(record_type)
        return self._iter_lines(record_type)

    def _iter_lines(self, record_type: type) -> Iterator[Any]:
        while True:
            line = self._scanner.next_line()
            if line is None:
                return
            yield self._decode_line(record_type, line)

    def _decode_line(self, record_type: type, line: bytes) -> Any:
        raw = RawValue.new(line, self.use_codepoint_indices)
        if record_type is not self._last_type:
            self._last_converter = RecordConverter(record_type)
            self._last_type = record_type
        return self._last_converter.decode(raw)


def _check_target(record_type: Any) -> None:
    if not is_record_type(record_type):
        raise InvalidTargetError(record_type)


def unmarshal(data: Union[bytes, str], target: Any, **options: Any) -> Any:
    """
    固定長データをデコードする。
      - target がレコード型なら先頭1行を1レコードとして返す（データが空なら EndOfData）
      - target が list[レコード型] なら全行をリストで返す
    options は Decoder のキーワード引数。
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    dec = Decoder(io.BytesIO(data), **options)

    if typing.get_origin(target) is list:
        args = typing.get_args(target)
        if len(args) != 1:
            raise InvalidTargetError(target)
        return dec.decode_all(args[0])
    return dec.decode(target)
