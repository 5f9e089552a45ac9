#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
マルチバイト対応の行バッファ

位置をコードポイント単位で扱う場合、UTF-8 の行ではコードポイント位置と
バイト位置がずれる。ここではその対応表（コードポイント索引）を
  - 読込時: 行ごとに1回だけ作る（純ASCIIなら作らない）
  - 書込時: 書き込んだ範囲とその後ろだけを補正する
ことで、ASCII の場合はただのバイトコピーのまま多バイト文字にも対応する。
"""

from dataclasses import dataclass
from typing import List, Optional

from .errors import InvalidCodepointError

# 文字列との相互変換。バイト単位で途中切断された値もそのまま往復させる
ENCODING = "utf-8"
ERRORS = "surrogateescape"


def find_first_multibyte_char(data: bytes) -> int:
    """最上位ビットが立った最初のバイト位置。無ければ len(data)。"""
    if data.isascii():
        return len(data)
    return next(i for i, b in enumerate(data) if b & 0x80)


def _utf8_width(cp: int) -> int:
    if cp < 0x80:
        return 1
    if cp < 0x800:
        return 2
    if cp < 0x10000:
        return 3
    return 4


def codepoint_index(data: bytes) -> Optional[List[int]]:
    """
    コードポイント索引を作る。indices[n] は n 番目のコードポイントの開始バイト位置。
    純ASCIIなら None（コードポイント位置 == バイト位置）。
    """
    first = find_first_multibyte_char(data)
    if first == len(data):
        return None
    try:
        tail = data[first:].decode(ENCODING)
    except UnicodeDecodeError as e:
        raise InvalidCodepointError(data, first + e.start) from e

    indices = list(range(first))
    pos = first
    for ch in tail:
        indices.append(pos)
        pos += _utf8_width(ord(ch))
    return indices


@dataclass(frozen=True)
class RawValue:
    """行の一部（区間）。codepoint_indices が無ければバイト位置で扱う。"""
    data: bytes
    codepoint_indices: Optional[List[int]] = None

    @classmethod
    def new(cls, data: bytes, use_codepoint_indices: bool = False) -> "RawValue":
        if use_codepoint_indices:
            return cls(data, codepoint_index(data))
        return cls(data)

    @classmethod
    def from_text(cls, text: str, use_codepoint_indices: bool = False) -> "RawValue":
        return cls.new(text.encode(ENCODING, ERRORS), use_codepoint_indices)

    @property
    def text(self) -> str:
        return self.data.decode(ENCODING, ERRORS)

    def __len__(self) -> int:
        if self.codepoint_indices is None:
            return len(self.data)
        return len(self.codepoint_indices)

    def byte_len(self) -> int:
        return len(self.data)

    def has_multibyte_char(self) -> bool:
        return self.codepoint_indices is not None

    def byte_start_index(self, start: int) -> int:
        if self.codepoint_indices is None:
            return start
        return self.codepoint_indices[start]

    def byte_end_index(self, end: int) -> int:
        if self.codepoint_indices is None:
            return end
        if end == len(self.codepoint_indices) - 1:
            return len(self.data) - 1
        return self.codepoint_indices[end + 1] - 1

    def slice(self, start: int, end: int) -> "RawValue":
        """0 始まり・両端を含む位置 [start, end] を切り出す。"""
        d = self.data[self.byte_start_index(start):self.byte_end_index(end) + 1]
        return RawValue.new(d, self.has_multibyte_char())


class LineBuilder:
    """
    固定長の1行を組み立てるバッファ。

    data は行のバイト列。codepoint_indices はマルチバイト文字を一度でも扱った時点で
    作られ、以後は長さ（＝行のコードポイント数）を保ったまま更新される。
    """

    def __init__(self, length: int, fill: bytes = b" "):
        if len(fill) != 1:
            raise ValueError(f"埋め文字は 1 バイトである必要があります: {fill!r}")
        self.fill = fill
        self.data = bytearray(length)
        self.codepoint_indices: Optional[List[int]] = None

        # 1バイト書いた後は埋まった先頭部分を倍々に複製する
        if length > 0:
            self.data[0] = fill[0]
            filled = 1
            while filled < length:
                n = min(filled, length - filled)
                self.data[filled:filled + n] = self.data[:n]
                filled += n

    @classmethod
    def from_value(cls, value: RawValue) -> "LineBuilder":
        buff = cls(len(value))
        buff.write_value(0, value)
        return buff

    def __len__(self) -> int:
        if self.codepoint_indices is None:
            return len(self.data)
        return len(self.codepoint_indices)

    def has_multibyte_char(self) -> bool:
        return self.codepoint_indices is not None

    def write_value(self, start: int, value: RawValue) -> None:
        """コードポイント位置 start（0 始まり）から value を書き込む。"""
        if not value.data:
            return

        # ASCII のみの高速経路
        if not self.has_multibyte_char() and not value.has_multibyte_char():
            n = min(len(value.data), len(self.data) - start)
            self.data[start:start + n] = value.data[:n]
            return

        if not self.has_multibyte_char():
            self._initialize_indices()

        end = start + len(value) - 1
        byte_start = self.codepoint_indices[start]
        byte_end = self.byte_end_index(end)

        diff = value.byte_len() - (byte_end - byte_start + 1)
        if diff != 0:
            self.adjust_byte_span(end, diff)
            byte_end = self.byte_end_index(end)

        self.data[byte_start:byte_end + 1] = value.data

        # 書いた範囲の索引は、幅が変わったか値にマルチバイト文字がある場合だけ直す
        if diff != 0 or value.has_multibyte_char():
            self._correct_indices(start, value)

    def write_ascii(self, start: int, text: str) -> None:
        self.write_value(start, RawValue.from_text(text))

    def adjust_byte_span(self, end: int, diff: int) -> None:
        """
        コードポイント end で終わる区間のバイト幅を diff だけ伸縮し、
        end より後ろの索引を diff ずらす。
        """
        byte_end = self.byte_end_index(end)
        if diff < 0:
            del self.data[byte_end + diff:byte_end]
        elif diff > 0:
            self.data[byte_end:byte_end] = self.fill * diff

        indices = self.codepoint_indices
        for i in range(end + 1, len(indices)):
            indices[i] += diff

    def byte_start_index(self, start: int) -> int:
        if self.codepoint_indices is None:
            return start
        return self.codepoint_indices[start]

    def byte_end_index(self, end: int) -> int:
        if self.codepoint_indices is None:
            return end
        if end == len(self.codepoint_indices) - 1:
            return len(self.data) - 1
        return self.codepoint_indices[end + 1] - 1

    def as_raw_value(self) -> RawValue:
        indices = None if self.codepoint_indices is None else list(self.codepoint_indices)
        return RawValue(bytes(self.data), indices)

    def __bytes__(self) -> bytes:
        return bytes(self.data)

    def _initialize_indices(self) -> None:
        self.codepoint_indices = list(range(len(self.data)))

    def _correct_indices(self, start: int, value: RawValue) -> None:
        first = self.byte_end_index(start - 1) + 1
        indices = self.codepoint_indices
        if not value.has_multibyte_char():
            for i in range(len(value)):
                indices[start + i] = first + i
            return
        for i, offset in enumerate(value.codepoint_indices):
            indices[start + i] = first + offset
