#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
デコード（Decoder / unmarshal / LineScanner）のテスト
"""

import io
import sys
import unittest
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

# プロジェクトルートの src を追加（ローカルの src を優先して import する）
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fixedcol.decode import Decoder, LineScanner, unmarshal  # noqa: E402
from fixedcol.errors import (ConversionError, EndOfData, InvalidCodepointError,  # noqa: E402
                             InvalidTargetError, LineTooLongError)
from fixedcol.tags import column  # noqa: E402
from fixedcol.types import Unsigned  # noqa: E402


class EncodableString:
    """from_fixed_width / to_fixed_width を持つ文字列"""

    def __init__(self, s: str = "", err: Optional[Exception] = None):
        self.s = s
        self.err = err

    def __eq__(self, other):
        return isinstance(other, EncodableString) and (self.s, self.err) == (other.s, other.err)

    def __repr__(self):
        return f"EncodableString({self.s!r})"

    @classmethod
    def from_fixed_width(cls, text: str) -> "EncodableString":
        if text == "boom":
            raise ValueError("boom")
        return cls(text)

    def to_fixed_width(self, width: int) -> str:
        if self.err is not None:
            raise self.err
        return self.s


@dataclass
class AllTypes:
    s: str = column("1,5", default="")
    i: int = column("6,10", default=0)
    f: float = column("11,15", default=0.0)
    text: EncodableString = column("16,20", default_factory=EncodableString)
    u: Unsigned = column("21,25", default=Unsigned(0))
    long_bool: bool = column("26,31", default=False)
    short_bool: bool = column("32,33", default=False)


def all_types(s, i, f, text, u, long_bool, short_bool):
    return AllTypes(s, i, f, EncodableString(text), Unsigned(u), long_bool, short_bool)


@dataclass
class Person:
    id: int = column("1,5", default=0)
    first_name: str = column("6,15", default="")
    last_name: str = column("16,25", default="")
    grade: float = column("26,30", default=0.0)
    age: Unsigned = column("31,33", default=Unsigned(0))
    alive: bool = column("34,39", default=False)
    github: bool = column("40,41", default=False)


@dataclass
class Abc:
    a: str = column("1,5", default="")
    b: str = column("6,10", default="")
    c: str = column("11,15", default="")


@dataclass
class Formats:
    f1: str = column("1,5,left", default="")
    f2: str = column("6,10,left,#", default="")
    f3: str = column("11,15,right", default="")
    f4: str = column("16,20,right,#", default="")
    f5: str = column("21,25,default", default="")
    f6: str = column("26,30,default,#", default="")


@dataclass
class Name:
    first: str = column("1,5", default="")
    last: str = column("6,10", default="")


@dataclass
class Member:
    id: int = column("1,3", default=0)
    name: Name = column("4,13", default_factory=Name)
    alias: Optional[Name] = column("14,23", default=None)


@dataclass
class Empty:
    pass


class TestUnmarshal(unittest.TestCase):
    """unmarshal のテスト"""

    def test_example(self):
        data = (
            "1    Ian       Lopshire  99.50 20 false f\n"
            "2    John      Doe       89.50 21 true t\n"
            "3    Jane      Doe       79.50 22 false F\n"
            "4    Ann       Carraway  79.59 23 false T\n"
        )
        people = unmarshal(data, list[Person])
        self.assertEqual(people, [
            Person(1, "Ian", "Lopshire", 99.5, Unsigned(20), False, False),
            Person(2, "John", "Doe", 89.5, Unsigned(21), True, True),
            Person(3, "Jane", "Doe", 79.5, Unsigned(22), False, False),
            Person(4, "Ann", "Carraway", 79.59, Unsigned(23), False, True),
        ])

    def test_all_types(self):
        first = all_types("foo", 123, 1.2, "bar", 12345, False, False)
        second = all_types("bar", 321, 2.1, "foo", 54321, True, True)
        blank = all_types("", 0, 0.0, "", 0, False, False)
        cases = [
            ("slice (no trailing new line)",
             b"foo  123  1.2  bar  12345 false f\nbar  321  2.1  foo  54321 true t some_other_log_here",
             List[AllTypes], [first, second]),
            ("slice (trailing new line)",
             b"foo  123  1.2  bar  12345 false f\nbar  321  2.1  foo  54321 true t\n",
             list[AllTypes], [first, second]),
            ("slice (blank line mid file)",
             b"foo  123  1.2  bar  12345 false F\n\nbar  321  2.1  foo  54321 true T\n",
             list[AllTypes], [first, blank, second]),
            ("slice with empty content",
             b"foo  123  1.2  bar  12345 false  \nbar  321  2.1  foo  54321 true t some_other_log_here",
             list[AllTypes], [first, second]),
            ("basic record",
             b"foo  123  1.2  bar  12345 false f",
             AllTypes, first),
            ("only first line for a record",
             b"foo  123  1.2  bar  12345 false f\nbar  321  2.1  foo  54321 true t",
             AllTypes, first),
            ("empty input to slice", b"", list[AllTypes], []),
            ("field length 1", b"v", Abc, Abc("v", "", "")),
        ]
        for name, data, target, want in cases:
            with self.subTest(name=name):
                self.assertEqual(unmarshal(data, target), want)

    def test_str_input(self):
        self.assertEqual(unmarshal("ABCD EFGH IJKL", Abc), Abc("ABCD", "EFGH", "IJKL"))

    def test_conversion_error(self):
        """変換失敗はレコード名・フィールド名付き"""
        with self.assertRaises(ConversionError) as cm:
            unmarshal(b"foo  nan  ddd  bar  baz", AllTypes)
        e = cm.exception
        self.assertEqual(e.record, "AllTypes")
        self.assertEqual(e.field, "i")
        self.assertEqual(e.value, "nan")
        self.assertIs(e.target_type, int)
        self.assertIn("AllTypes.i", str(e))

    def test_custom_error_wrapped(self):
        with self.assertRaises(ConversionError) as cm:
            unmarshal(b"foo  1    1.0  boom ", AllTypes)
        self.assertEqual(cm.exception.field, "text")
        self.assertIsInstance(cm.exception.cause, ValueError)

    def test_empty_input(self):
        """単一レコードに空の入力は EndOfData"""
        with self.assertRaises(EndOfData):
            unmarshal(b"", AllTypes)
        with self.assertRaises(EndOfData):
            unmarshal(b"", Empty)
        self.assertEqual(unmarshal(b"", list[Empty]), [])

    def test_invalid_target(self):
        for target in (None, AllTypes(), list, int, [AllTypes], dict[str, AllTypes]):
            with self.subTest(target=target):
                with self.assertRaises(InvalidTargetError):
                    unmarshal(b"foo  123  1.2  bar  baz false", target)

    def test_format(self):
        cases = [
            ("base case", "foo  " "bar##" "  baz" "##biz" " bor " "#box#",
             Formats("foo", "bar", "baz", "biz", "bor", "box")),
            ("keep spaces", "  foo" "   ##" "baz  " "##   " " bor " "#####",
             Formats("  foo", "   ", "baz  ", "   ", "bor", "")),
            ("empty", "     " "#####" "     " "#####" "     " "#####",
             Formats("", "", "", "", "", "")),
        ]
        for name, data, want in cases:
            with self.subTest(name=name):
                self.assertEqual(unmarshal(data, list[Formats]), [want])


class TestRecordShapes(unittest.TestCase):
    """入れ子・必須フィールド・無視されるフィールド"""

    def test_nested_record_keeps_padding(self):
        """入れ子レコードには埋め文字を落とさない区間が渡る"""
        m = unmarshal(b"  1  Ann Lee           ", Member)
        self.assertEqual(m, Member(1, Name("Ann", "Lee"), None))

        m = unmarshal(b"  2Bob  Ray  Al   Ng   ", Member)
        self.assertEqual(m, Member(2, Name("Bob", "Ray"), Name("Al", "Ng")))

    def test_nested_error_location(self):
        @dataclass
        class Score:
            value: int = column("1,3", default=0)

        @dataclass
        class Entry:
            name: str = column("1,3", default="")
            score: Score = column("4,6", default_factory=Score)

        with self.assertRaises(ConversionError) as cm:
            unmarshal(b"abcxyz", Entry)
        self.assertEqual(cm.exception.record, "Score")
        self.assertEqual(cm.exception.field, "value")

    def test_required_fields(self):
        """デコード値の無い必須フィールドは型のゼロ値"""
        @dataclass
        class Required:
            a: str = column("1,3")
            b: int = column("4,6")
            note: str
            ratio: Optional[float]

        self.assertEqual(unmarshal(b"ab", Required), Required("ab", 0, "", None))

    def test_ignored_fields_keep_defaults(self):
        @dataclass
        class Partial:
            a: str = column("1,3", default="")
            broken: str = column("4", default="keep")
            untagged: int = 7
            tail: Any = column("4,6", default=None)

        self.assertEqual(unmarshal(b"abc123", Partial), Partial("abc", "keep", 7, "123"))

    def test_init_false_and_frozen(self):
        @dataclass(frozen=True)
        class Frozen:
            a: str = column("1,2", default="")
            b: int = column("3,4", default=0, init=False)

        rec = unmarshal(b"xy42", Frozen)
        self.assertEqual(rec.a, "xy")
        self.assertEqual(rec.b, 42)

    def test_no_fields(self):
        self.assertEqual(unmarshal(b"anything", Empty), Empty())


class TestDecoder(unittest.TestCase):
    """Decoder のテスト"""

    def test_eof(self):
        dec = Decoder(io.BytesIO(b""))
        with self.assertRaises(EndOfData):
            dec.decode(Abc)
        self.assertTrue(dec.done)

        dec = Decoder(io.BytesIO(b"ABC\n"))

        @dataclass
        class S:
            field1: str = column("1,1", default="")
            field2: str = column("2,2", default="")
            field3: str = column("3,3", default="")

        self.assertEqual(dec.decode(S), S("A", "B", "C"))
        with self.assertRaises(EndOfData):
            dec.decode(S)

    def test_end_of_data_is_eof(self):
        self.assertTrue(issubclass(EndOfData, EOFError))

    def test_invalid_target_before_read(self):
        """対象が不正なら行を消費しない"""
        dec = Decoder(io.BytesIO(b"ABCD EFGH IJKL"))
        with self.assertRaises(InvalidTargetError):
            dec.decode(str)
        self.assertEqual(dec.decode(Abc), Abc("ABCD", "EFGH", "IJKL"))

    def test_iter_decode_invalid_target(self):
        """iter_decode も呼んだ時点で対象を検査する（反復前）"""
        dec = Decoder(io.BytesIO(b"ABCD EFGH IJKL"))
        for target in (int, str, Optional[Abc]):
            with self.subTest(target=target):
                with self.assertRaises(InvalidTargetError):
                    dec.iter_decode(target)
        self.assertEqual(list(dec.iter_decode(Abc)), [Abc("ABCD", "EFGH", "IJKL")])

    def test_iter_decode_and_types(self):
        """1つの Decoder で行ごとに型を変えられる"""
        dec = Decoder(io.BytesIO(b"ABCD EFGH IJKL\nv\nfoo  1    1.0  bar  2     true t"))
        self.assertEqual(dec.decode(Abc), Abc("ABCD", "EFGH", "IJKL"))
        self.assertEqual(dec.decode(Abc), Abc("v", "", ""))
        rest = list(dec.iter_decode(AllTypes))
        self.assertEqual(rest, [all_types("foo", 1, 1.0, "bar", 2, True, True)])
        self.assertEqual(dec.decode_all(AllTypes), [])

    def test_codepoint_indices(self):
        cases = [
            ("all ASCII characters", "ABCD EFGH IJKL \n", Abc("ABCD", "EFGH", "IJKL")),
            ("multi-byte characters", "ABCD ☃☃   EFG  \n", Abc("ABCD", "☃☃", "EFG")),
            ("truncated with multi-byte characters", "☃☃\n", Abc("☃☃", "", "")),
            ("multi-byte characters 2", "PIÑA DEFGHIJKLM", Abc("PIÑA", "DEFGH", "IJKLM")),
        ]
        for name, data, want in cases:
            with self.subTest(name=name):
                dec = Decoder(io.BytesIO(data.encode("utf-8")), use_codepoint_indices=True)
                self.assertEqual(dec.decode(Abc), want)

    def test_byte_positions(self):
        """既定ではタグの位置はバイト単位"""
        self.assertEqual(unmarshal("PIÑA DEFGHIJKLM", Abc), Abc("PIÑA", "DEFG", "HIJKL"))

    def test_invalid_codepoint(self):
        dec = Decoder(io.BytesIO(b"ab\xffcd"), use_codepoint_indices=True)
        with self.assertRaises(InvalidCodepointError):
            dec.decode(Abc)

    def test_line_terminator(self):
        @dataclass
        class Line:
            s: str = column("1,5", default="")
            i: int = column("6,10", default=0)
            f: float = column("11,15", default=0.0)
            text: EncodableString = column("16,20", default_factory=EncodableString)

        def line(s, i, f, text):
            return Line(s, i, f, EncodableString(text))

        cases = [
            ("empty terminator keeps LF", b"foo  123  1.2  bar\nbar  321  2.1  foo", b"",
             [line("foo", 123, 1.2, "bar"), line("bar", 321, 2.1, "foo")]),
            ("LF line endings", b"f\ro  123  1.2  bar\nbar  321  2.1  foo", b"\n",
             [line("f\ro", 123, 1.2, "bar"), line("bar", 321, 2.1, "foo")]),
            ("CRLF line endings", b"f\no  123  1.2  bar\r\nbar  321  2.1  foo", b"\r\n",
             [line("f\no", 123, 1.2, "bar"), line("bar", 321, 2.1, "foo")]),
            ("CR line endings", b"f\no  123  1.2  bar\rbar  321  2.1  foo", "\r",
             [line("f\no", 123, 1.2, "bar"), line("bar", 321, 2.1, "foo")]),
        ]
        for name, data, term, want in cases:
            with self.subTest(name=name):
                dec = Decoder(io.BytesIO(data))
                dec.line_terminator = term
                self.assertEqual(dec.decode_all(Line), want)

    def test_line_terminator_option(self):
        dec = Decoder(io.BytesIO(b"a\r\nb"), line_terminator="\r\n")
        self.assertEqual(dec.line_terminator, b"\r\n")
        dec.line_terminator = b""
        self.assertEqual(dec.line_terminator, b"\r\n")
        self.assertEqual(Decoder(io.BytesIO(b""), line_terminator=b"").line_terminator, b"\n")

    def test_line_too_long(self):
        dec = Decoder(io.BytesIO(b"a" * 100), max_line_length=10)
        with self.assertRaises(LineTooLongError) as cm:
            dec.decode(Abc)
        self.assertEqual(cm.exception.limit, 10)

        # 終端のある長すぎる行も同じく拒否する
        cases = [
            ("terminated", b"a" * 100 + b"\n"),
            ("terminated then more", b"a" * 11 + b"\nabc\n"),
            ("short then long last line", b"abc\n" + b"a" * 11),
        ]
        for name, data in cases:
            with self.subTest(name=name):
                dec = Decoder(io.BytesIO(data), max_line_length=10)
                with self.assertRaises(LineTooLongError):
                    dec.decode_all(Abc)

        # 一度超えたら以後の行も読まない
        dec = Decoder(io.BytesIO(b"a" * 11 + b"\nabc\n"), max_line_length=10)
        with self.assertRaises(LineTooLongError):
            dec.decode(Abc)
        with self.assertRaises(LineTooLongError):
            dec.decode(Abc)

        # ちょうど上限の長さは通す
        dec = Decoder(io.BytesIO(b"a" * 10 + b"\r\n"), line_terminator=b"\r\n", max_line_length=10)
        self.assertEqual(dec.decode_all(Abc), [Abc("aaaaa", "aaaaa")])

        dec = Decoder(io.BytesIO(b"abc\nd"), max_line_length=10)
        self.assertEqual(dec.decode_all(Abc), [Abc("abc"), Abc("d")])


class TestLineScanner(unittest.TestCase):
    """行区切りの走査"""

    def lines(self, data: bytes, term: bytes = b"\n", chunk_size: int = 4096) -> List[bytes]:
        sc = LineScanner(io.BytesIO(data), term, chunk_size=chunk_size)
        out = []
        while True:
            line = sc.next_line()
            if line is None:
                self.assertTrue(sc.done)
                return out
            out.append(line)

    def test_split(self):
        cases = [
            ("empty", b"", b"\n", []),
            ("single", b"abc", b"\n", [b"abc"]),
            ("trailing terminator", b"abc\n", b"\n", [b"abc"]),
            ("blank lines", b"a\n\nb\n\n", b"\n", [b"a", b"", b"b", b""]),
            ("only terminator", b"\n", b"\n", [b""]),
            ("crlf", b"a\r\nb\r\n", b"\r\n", [b"a", b"b"]),
            ("crlf keeps lone cr", b"a\rb\r\nc", b"\r\n", [b"a\rb", b"c"]),
        ]
        for name, data, term, want in cases:
            with self.subTest(name=name):
                self.assertEqual(self.lines(data, term), want)

    def test_terminator_across_chunks(self):
        """読込の境目で割れた終端も見つける"""
        for chunk_size in (1, 2, 3, 4, 5):
            with self.subTest(chunk_size=chunk_size):
                self.assertEqual(self.lines(b"ab\r\ncd\r\nef", b"\r\n", chunk_size),
                                 [b"ab", b"cd", b"ef"])

    def test_default_terminator(self):
        sc = LineScanner(io.BytesIO(b"a\nb"), b"")
        self.assertEqual(sc.terminator, b"\n")
        self.assertEqual(sc.next_line(), b"a")


if __name__ == "__main__":
    unittest.main(verbosity=2)
