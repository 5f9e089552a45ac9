#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
固定長レコード構造体定義のパーサー

    struct Person {
        INT   Id    "1,5,right,0";
        STR   Name  "6,15";
        BYTE  Note[10];          // 直前までの最終位置の次から 10 桁
    } txt, dat;

定義から fixedcol のタグ付き dataclass を作る（make_record_type）。
"""

import dataclasses
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import InvalidTagError
from .tags import column, parse_tag
from .types import Unsigned

# フィールド宣言:  KIND Name "tag";  または  BYTE Name[len];
FIELD_DECL_RE = re.compile(
    r"""
    \b(?:
        BYTE\s+(?P<bname>[A-Za-z_]\w*)\s*\[\s*(?P<blen>\d+)\s*\]
      | (?P<kind>STR|INT|UINT|FLOAT|BOOL)\s+(?P<name>[A-Za-z_]\w*)\s*"(?P<tag>[^"]*)"
    )\s*;
    """,
    re.ASCII | re.VERBOSE
)

# 複数struct抽出: struct <Name?> { ... } <ext list>?;
STRUCT_BLOCK_RE = re.compile(
    r"""
    struct
    \s+([A-Za-z_]\w*)                      # 1: name
    \s*\{(.*?)\}                           # 2: body (non-greedy)
    \s*([^;{}]*)?;?                        # 3: trailing ext list (optional, up to ';')
    """,
    re.IGNORECASE | re.DOTALL | re.VERBOSE
)

ANON_STRUCT_RE = re.compile(r"struct\s*\{(.*?)\}\s*([^;{}]*)?;?", re.IGNORECASE | re.DOTALL)

KIND_TYPES: Dict[str, type] = {
    "STR": str,
    "BYTE": str,
    "INT": int,
    "UINT": Unsigned,
    "FLOAT": float,
    "BOOL": bool,
}


@dataclass
class FieldDef:
    """フィールド定義（tag は fixedcol のタグ書式）"""
    name: str
    kind: str
    tag: str


@dataclass
class StructDef:
    """構造体定義"""
    name: str
    fields: List[FieldDef]
    exts: List[str]  # lowercased, without leading dot


def strip_block_and_line_comments(text: str) -> str:
    """/* ... */ を先に除去し、その後で // 行末コメントを除去。"""
    text = re.sub(r"/\*.*?\*/", "", text, flags=re.DOTALL)
    return "\n".join(raw.split("//", 1)[0] for raw in text.splitlines())


def parse_ext_list(exts_raw: Optional[str]) -> List[str]:
    """カンマ区切りの拡張子列を正規化して返す（小文字、先頭ドットは除去）。"""
    if not exts_raw:
        return []
    norm = []
    for tok in exts_raw.split(","):
        t = tok.strip().lstrip(".").lower()
        # スペース混入や末尾セミコロンを取り除く
        t = t.strip(" ;\t\r\n")
        if t:
            norm.append(t)
    return norm


def parse_fields(struct_name: str, body: str) -> List[FieldDef]:
    """struct 本体からフィールド定義を宣言順に取り出す。タグの誤りは設定エラーにする。"""
    fields: List[FieldDef] = []
    cursor = 1
    for m in FIELD_DECL_RE.finditer(body):
        if m.group("bname"):
            fname = m.group("bname")
            flen = int(m.group("blen"))
            if flen <= 0:
                raise ValueError(f"フィールド長が不正です: {struct_name}.{fname} = {flen}")
            fdef = FieldDef(fname, "BYTE", f"{cursor},{cursor + flen - 1}")
        else:
            fdef = FieldDef(m.group("name"), m.group("kind"), m.group("tag"))

        try:
            parsed = parse_tag(fdef.tag)
        except InvalidTagError as e:
            raise ValueError(f"タグが不正です: {struct_name}.{fdef.name} = {fdef.tag!r} ({e.reason})")
        if any(f.name == fdef.name for f in fields):
            raise ValueError(f"フィールド名が重複しています: {struct_name}.{fdef.name}")
        cursor = max(cursor, parsed.end_pos + 1)
        fields.append(fdef)

    if not fields:
        raise ValueError(f"struct '{struct_name}' にフィールドが見つかりません。")
    return fields


def parse_structs_config(text: str) -> List[StructDef]:
    """
    設定ファイル文字列から複数structを抽出し、StructDefの配列として返す。
    - /* ... */ と // コメントに対応
    - struct Name { ... } ext1, ext2; という拡張子マッピングを取り込む
    """
    cleaned = strip_block_and_line_comments(text)
    structs: List[StructDef] = []

    for m in STRUCT_BLOCK_RE.finditer(cleaned):
        name = m.group(1)
        fields = parse_fields(name, m.group(2) or "")
        structs.append(StructDef(name=name, fields=fields, exts=parse_ext_list(m.group(3))))

    if not structs:
        # 無名structの簡易対応（後方互換：単一定義のみ許可）
        anon = ANON_STRUCT_RE.search(cleaned)
        if not anon:
            raise ValueError("struct 定義が見つかりません。")
        fields = parse_fields("<anonymous>", anon.group(1) or "")
        structs.append(StructDef(name="_anonymous_", fields=fields, exts=parse_ext_list(anon.group(2))))

    return structs


def make_record_type(sd: StructDef) -> type:
    """StructDef からタグ付きの dataclass を作る"""
    return dataclasses.make_dataclass(
        sd.name,
        [(f.name, KIND_TYPES[f.kind], column(f.tag)) for f in sd.fields],
    )
