#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
固定長コーデックで使う例外の定義

すべて FixedWidthError を基底とし、対応する組込み例外も継承する。
（TypeError / ValueError で捕まえている呼び出し側もそのまま動く）
EndOfData だけは失敗ではないので基底に含めない。
"""

from typing import Any, Optional


def _type_name(t: Any) -> str:
    if t is None:
        return "None"
    return getattr(t, "__qualname__", None) or getattr(t, "__name__", None) or repr(t)


class FixedWidthError(Exception):
    """fixedcol の例外の基底"""


class InvalidTargetError(FixedWidthError, TypeError):
    """デコード先 / エンコード対象がレコード（dataclass）でもそのリストでもない"""

    def __init__(self, target_type: Any):
        self.target_type = target_type
        super().__init__(f"fixedcol: 対象はレコード型（dataclass）またはそのリストである必要があります: {_type_name(target_type)}")


class InvalidTypeError(FixedWidthError, TypeError):
    """エンコードできない型のフィールド"""

    def __init__(self, target_type: Any):
        self.target_type = target_type
        super().__init__(f"fixedcol: 未対応の型はエンコードできません: {_type_name(target_type)}")


class InvalidTagError(FixedWidthError, ValueError):
    """フィールド宣言文字列を解釈できない（レイアウト構築時は握りつぶしてフィールドを無視する）"""

    def __init__(self, tag: Optional[str], reason: str):
        self.tag = tag
        self.reason = reason
        super().__init__(f"fixedcol: 不正なタグ {tag!r}: {reason}")


class ConversionError(FixedWidthError, ValueError):
    """区間テキストと型付きの値の相互変換に失敗した"""

    def __init__(self, value: Any, target_type: Any, record: str = "", field: str = "",
                 cause: Optional[BaseException] = None):
        self.value = value
        self.target_type = target_type
        self.record = record
        self.field = field
        self.cause = cause
        super().__init__(self._message())

    def _message(self) -> str:
        tname = _type_name(self.target_type)
        if self.record or self.field:
            s = f"fixedcol: {self.value!r} をレコード {self.record}.{self.field}（型 {tname}）に変換できません"
        else:
            s = f"fixedcol: {self.value!r} を型 {tname} に変換できません"
        if self.cause is not None:
            return f"{s}: {self.cause}"
        return s

    def located(self, record: str, field: str) -> "ConversionError":
        """レコード名・フィールド名を付けた同じ内容の例外を返す"""
        return ConversionError(self.value, self.target_type, record, field, self.cause)


class InvalidCodepointError(FixedWidthError, ValueError):
    """コードポイント索引の構築中に不正な UTF-8 を検出した"""

    def __init__(self, data: bytes, offset: int):
        self.data = data
        self.offset = offset
        super().__init__(f"fixedcol: 不正なコードポイントです（バイト位置 {offset}）")


class FieldOverflowError(FixedWidthError, ValueError):
    """厳密モードで値がフィールド幅を超えた"""

    def __init__(self, field: str, value: str, length: int, width: int):
        self.field = field
        self.value = value
        self.length = length
        self.width = width
        super().__init__(
            f"fixedcol: フィールド {field} の値 {value!r} が長すぎます（長さ {length}、フィールド幅 {width}）")


class LineTooLongError(FixedWidthError):
    """行区切りの走査がバッファ上限を超えた（ストリームは以降使えない）"""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"fixedcol: 行が長すぎます（上限 {limit} バイト）")


class EndOfData(EOFError):
    """入力にこれ以上レコードが無いことを示す（失敗ではない）"""

    def __init__(self, message: str = "fixedcol: 入力の終端です"):
        super().__init__(message)
