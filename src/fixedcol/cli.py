#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
固定長テキスト ⇔ 区切りテキスト 変換ツール
（struct設定ファイル駆動・ブロックコメント対応・複数struct/拡張子マッピング対応）

◆ 設定ファイル
    struct Name {
      INT   Id    "1,5,right,0";     // 種別 名前 "開始,終了[,寄せ[,埋め文字]]";
      STR   Name  "6,15";
      BYTE  Note[10];                // 直前の最終位置の次から 10 桁（文字列）
    } ext1, ext2, ...;
  * 種別: STR / INT / UINT / FLOAT / BOOL / BYTE
  * // と /* ... */ コメント可。拡張子は .txt / txt いずれでも可。空白可。

◆ 変換
  - 既定: 固定長 → 区切りテキスト（各フィールドをデコードした値を --sep で連結）
  - --encode: 区切りテキスト → 固定長（行と行の間、および最終行の後ろに --out-term）
  - --codepoints: タグの位置をバイトではなく UTF-8 の文字単位で扱う

◆ 例
  python -m fixedcol -i input.txt -o out.tsv -c layout.struct
  python -m fixedcol -i input.txt -o out.tsv -c layout.struct --in-term lf --codepoints
  python -m fixedcol -i input.tsv -o out.txt -c layout.struct --struct Person --encode
  python -m fixedcol -i input.txt -o out.csv -c layout.struct --sep "," --escape hex --prefix %
"""

import argparse
import codecs
import os
import sys
from typing import Any, List, Optional, Sequence

from .decode import Decoder, LineScanner
from .encode import Encoder
from .errors import EndOfData, FixedWidthError, LineTooLongError
from .layout import cached_layout
from .line import ENCODING, ERRORS, RawValue
from .parser import StructDef, make_record_type, parse_structs_config

# 便利な定数
CRLF = b"\r\n"
LF = b"\n"
CR = b"\r"


def parse_bytes_from_arg(arg: str) -> bytes:
    """
    任意の文字列をバイト列へ。
      - "hex:1f" のような16進列（偶数桁）→ bytes
      - バックスラッシュエスケープ "\\t", "\\x1f", "\\n" 等（Python互換）→ UTF-8 エンコード
      - 上記以外 → 与えられた文字列を UTF-8 エンコード
    """
    if arg.startswith("hex:"):
        hexpart = arg[4:].strip()
        if len(hexpart) == 0 or (len(hexpart) % 2) != 0:
            raise ValueError(f"hex 指定は偶数桁の16進で与えてください: {arg!r}")
        try:
            return bytes.fromhex(hexpart)
        except ValueError:
            raise ValueError(f"hex 指定を変換できません: {arg!r}")

    # バックスラッシュエスケープが含まれる場合のみ unicode_escape で処理
    if '\\' in arg:
        try:
            return codecs.decode(arg, "unicode_escape").encode("utf-8")
        except (UnicodeDecodeError, ValueError):
            pass

    return arg.encode("utf-8")


def parse_term(term: str) -> bytes:
    """区切り種別をプリセット or 任意バイト列へ。"""
    presets = {"crlf": CRLF, "lf": LF, "cr": CR, "none": b""}
    t = term.lower()
    if t in presets:
        return presets[t]
    return parse_bytes_from_arg(term)


def escape_bytes(bs: bytes, mode: str, prefix: str = "") -> bytes:
    """
    可視化用エスケープ。
      - mode="none": 元のバイト列をそのまま返す
      - mode="hex" : すべてのバイトを prefix+2桁HEX で表記（prefix 無しならスペース区切り）
    """
    if mode == "none":
        return bs
    if mode != "hex":
        raise ValueError(f"未知の --escape モード: {mode!r}")
    if prefix == "":
        return " ".join(f"{b:02x}" for b in bs).encode("ascii")
    return "".join(f"{prefix}{b:02x}" for b in bs).encode("ascii")


def format_value(value: Any) -> str:
    """デコードした値を区切りテキストの1セルにする"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def read_config_file(path: str) -> str:
    """設定ファイルを文字列として読む（utf-8-sig → utf-8 → cp932 の順にフォールバック）。"""
    last_error: Optional[UnicodeDecodeError] = None
    for encoding in ["utf-8-sig", "utf-8", "cp932"]:
        try:
            with open(path, "r", encoding=encoding) as f:
                return f.read()
        except UnicodeDecodeError as e:
            last_error = e
    raise last_error


def resolve_external_path(path: str) -> str:
    """外部ファイルの参照を解決するヘルパー。

    - 絶対パスならそのまま返す。
    - 相対パスの場合、PyInstaller でバンドルされた exe 実行時は exe の配置ディレクトリを優先して探索する。
    - 見つからなければ元のパスを返す（呼び出し元でエラーを扱う）。
    """
    if os.path.isabs(path):
        return path

    if getattr(sys, "frozen", False):
        candidate = os.path.join(os.path.dirname(sys.executable), path)
        if os.path.exists(candidate):
            return candidate

    cwd_candidate = os.path.join(os.getcwd(), path)
    if os.path.exists(cwd_candidate):
        return cwd_candidate
    return path


def choose_struct(structs: Sequence[StructDef], want_name: Optional[str], input_path: str) -> StructDef:
    """--struct 明示 or 入力拡張子で構造体を選択。一意に決まらなければエラー。"""
    if want_name:
        for s in structs:
            if s.name == want_name:
                return s
        names = ", ".join(sd.name for sd in structs)
        raise ValueError(f"--struct '{want_name}' が見つかりません。候補: {names}")

    ext = os.path.splitext(os.path.basename(input_path))[1].lower().lstrip(".")
    if not ext:
        if len(structs) == 1:
            return structs[0]
        raise ValueError("入力ファイルに拡張子がありません。--struct で明示指定してください。")

    cand = [sd for sd in structs if ext in sd.exts]
    if len(cand) == 1:
        return cand[0]
    if len(cand) == 0:
        # 拡張子マッピングが無いstructが1つだけならそれを許容
        no_map = [sd for sd in structs if not sd.exts]
        if len(no_map) == 1:
            return no_map[0]
        names = ", ".join(sd.name for sd in structs)
        raise ValueError(f"拡張子 '.{ext}' に対応する struct が見つかりません。--struct で明示指定するか、"
                         f"定義に拡張子マッピングを追加してください。候補: {names}")
    names = ", ".join(sd.name for sd in cand)
    raise ValueError(
        f"拡張子 '.{ext}' に複数の struct がマッチしました: {names}。--struct で明示指定してください。")


def record_from_cells(record_type: type, cells: List[str]) -> Any:
    """区切りテキストの1行（セルの並び）をレコードにする"""
    specs = [s for s in cached_layout(record_type).field_specs if s.ok]
    if len(cells) != len(specs):
        raise ValueError(f"列数が一致しません（{len(cells)} 列、期待 {len(specs)} 列）")
    values = {}
    for spec, cell in zip(specs, cells):
        values[spec.name] = spec.converter.decode(RawValue.from_text(cell))
    return record_type(**values)


def dump_layout(sd: StructDef, record_type: type, args: argparse.Namespace,
                in_term: bytes, out_term: bytes, sep: bytes) -> None:
    layout = cached_layout(record_type)
    unit = "chars" if args.codepoints else "bytes"
    print("# Layout")
    print(f"- Using struct             : {sd.name}")
    for fdef, spec in zip(sd.fields, layout.field_specs):
        fmt = spec.format
        print(f"  * {spec.name}: {fdef.kind} {spec.start_pos}-{spec.end_pos} ({spec.width} {unit}, "
              f"{fmt.alignment.value}, pad={fmt.pad_char!r})")
    print(f"- Input line terminator    : {in_term!r} (len={len(in_term)})")
    print(f"- Output line terminator   : {out_term!r} (len={len(out_term)})")
    print(f"- Field separator          : {sep!r}")
    print(f"=> 1 line                  : {layout.line_length} {unit}")


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="固定長⇔区切りテキスト変換（struct複数/拡張子対応・ブロックコメント対応）")
    ap.add_argument("-i", "--input", required=True, help="入力ファイル")
    ap.add_argument("-o", "--output", required=True, help="出力ファイル（バイナリ書込）")
    ap.add_argument("-c", "--config", required=True,
                    help="struct定義ファイル（UTF-8/UTF-8(BOM)/CP932 対応）")
    ap.add_argument("--struct", dest="struct_name",
                    default=None, help="使用する struct 名（省略時は拡張子で自動選択）")

    ap.add_argument("--in-term", default="crlf",
                    help="入力行終端（crlf|lf|cr|hex:..|'\\n' 等, 既定=crlf）")
    ap.add_argument("--out-term", default="crlf",
                    help="出力行末（crlf|lf|cr|none|hex:..|'\\n' 等, 既定=crlf）")
    ap.add_argument("--sep", default="\\t",
                    help="フィールド区切り。例: ',' / 'hex:1f' / '\\t' / ' | ' 等（既定=\\t）")

    ap.add_argument("--encode", action="store_true", help="区切りテキスト → 固定長 に変換する")
    ap.add_argument("--codepoints", action="store_true",
                    help="タグの位置を UTF-8 の文字単位で扱う（既定はバイト単位）")
    ap.add_argument("--overflow-error", action="store_true",
                    help="（--encode）フィールド幅を超える値を切り捨てずにエラーにする")
    ap.add_argument("--zero-pad-numbers", action="store_true",
                    help="（--encode）寄せ指定の無い数値フィールドを右寄せ・0埋めにする")

    ap.add_argument("--escape", choices=["none", "hex"], default="none",
                    help="フィールド可視化エスケープ（none=そのまま, hex=16進）")
    ap.add_argument("--prefix", default="",
                    help="--escape hex の接頭辞（例: %%, \\u, $ など。既定=無し → スペース区切りの2桁HEX出力）")

    ap.add_argument("--max-rows", type=int, default=0,
                    help="先頭Nレコードのみ処理（0=全件）")
    ap.add_argument("--lenient", action="store_true",
                    help="変換できないレコードを警告して読み飛ばす（既定は即エラー）")
    ap.add_argument("--dump-layout", action="store_true", help="レイアウトを表示して終了")
    ap.add_argument("--summary", action="store_true", help="処理サマリのみ簡潔に表示")
    ap.add_argument("--header", action="store_true",
                    help="出力ファイル先頭にフィールド名をヘッダ行として出力します（--sep で結合）")
    return ap


def main(argv: Optional[Sequence[str]] = None):
    args = build_arg_parser().parse_args(argv)

    # 設定ファイル / 入出力パスを解決（exe 配布時は exe の配置先を優先）
    args.config = resolve_external_path(args.config)
    args.input = resolve_external_path(args.input)
    args.output = resolve_external_path(args.output)

    try:
        structs = parse_structs_config(read_config_file(args.config))
    except Exception as e:
        print(f"[ERR] 設定ファイルエラー: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        sd = choose_struct(structs, args.struct_name, args.input)
    except ValueError as e:
        print(f"[ERR] 構造体選択エラー: {e}", file=sys.stderr)
        print("# 定義一覧:", file=sys.stderr)
        for x in structs:
            ex = (", ".join("." + e for e in x.exts)) if x.exts else "(拡張子マッピングなし)"
            print(f"  - {x.name}: fields={len(x.fields)}, exts={ex}", file=sys.stderr)
        sys.exit(2)

    record_type = make_record_type(sd)

    try:
        in_term = parse_term(args.in_term)
        out_term = parse_term(args.out_term)
        sep = parse_bytes_from_arg(args.sep)
    except ValueError as e:
        print(f"[ERR] 引数の解釈に失敗: {e}", file=sys.stderr)
        sys.exit(2)

    if len(sep) == 0:
        print("[ERR] --sep が空です。1バイト以上にしてください。", file=sys.stderr)
        sys.exit(2)
    if len(in_term) == 0:
        print("[ERR] --in-term に none は指定できません。", file=sys.stderr)
        sys.exit(2)

    if args.dump_layout:
        dump_layout(sd, record_type, args, in_term, out_term, sep)
        return

    try:
        if os.path.getsize(args.input) == 0:
            print("[ERR] 入力ファイルが空です。", file=sys.stderr)
            sys.exit(1)
    except OSError as e:
        print(f"[ERR] 入力ファイルにアクセスできません: {args.input} ({e})", file=sys.stderr)
        sys.exit(2)

    rows_limit = args.max_rows if args.max_rows > 0 else None
    field_names = [s.name for s in cached_layout(record_type).field_specs if s.ok]

    try:
        with open(args.input, "rb") as rf, open(args.output, "wb") as wf:
            if args.encode:
                processed, warnings = _encode_file(rf, wf, record_type, args, in_term, out_term, sep, rows_limit)
            else:
                if args.header:
                    wf.write(sep.join(n.encode("utf-8") for n in field_names) + out_term)
                processed, warnings = _decode_file(rf, wf, record_type, field_names, args,
                                                   in_term, out_term, sep, rows_limit)
    except _Abort:
        sys.exit(2)
    except Exception as e:
        print(f"[ERROR] 変換中に例外が発生しました: {e}", file=sys.stderr)
        sys.exit(2)

    if args.summary:
        mode = "encode" if args.encode else "decode"
        print(f"records_out={processed}, warnings={warnings}, mode={mode}, "
              f"in-term={in_term!r}, out-term={out_term!r}, sep={sep!r}, struct={sd.name}")
    else:
        print(f"完了: {processed} 行 → {args.output} (struct={sd.name})")


class _Abort(Exception):
    """エラーを表示済みで終了する"""


def _record_failed(msg: str, lenient: bool) -> None:
    if lenient:
        print(f"[WARN] {msg}（読み飛ばします）", file=sys.stderr)
        return
    print(f"[ERR] {msg}", file=sys.stderr)
    raise _Abort()


def _decode_file(rf, wf, record_type, field_names, args, in_term, out_term, sep, rows_limit):
    dec = Decoder(rf, line_terminator=in_term, use_codepoint_indices=args.codepoints)
    processed = 0
    warnings = 0
    row_no = 0
    while rows_limit is None or processed < rows_limit:
        row_no += 1
        try:
            rec = dec.decode(record_type)
        except EndOfData:
            break
        except LineTooLongError:
            # 行区切りが壊れたストリームは続行できない
            raise
        except FixedWidthError as e:
            _record_failed(f"行 {row_no}: {e}", args.lenient)
            warnings += 1
            continue

        cells = [format_value(getattr(rec, name)).encode(ENCODING, ERRORS) for name in field_names]
        wf.write(sep.join(escape_bytes(c, args.escape, args.prefix) for c in cells) + out_term)
        processed += 1
    return processed, warnings


def _encode_file(rf, wf, record_type, args, in_term, out_term, sep, rows_limit):
    scanner = LineScanner(rf, in_term)
    enc = Encoder(wf, line_terminator=out_term, use_codepoint_indices=args.codepoints,
                  error_on_overflow=args.overflow_error, zero_pad_numbers=args.zero_pad_numbers)
    warnings = 0
    row_no = 0
    while rows_limit is None or enc.lines_written < rows_limit:
        line = scanner.next_line()
        if line is None:
            break
        row_no += 1
        cells = line.decode(ENCODING, ERRORS).split(sep.decode(ENCODING, ERRORS))
        try:
            enc.encode(record_from_cells(record_type, cells))
        except ValueError as e:
            _record_failed(f"行 {row_no}: {e}", args.lenient)
            warnings += 1

    if enc.lines_written > 0:
        wf.write(out_term)
    return enc.lines_written, warnings


if __name__ == "__main__":
    try:
        main()
    except Exception as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
