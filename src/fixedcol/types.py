#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
固定長向けの補助型
"""

import math


class Unsigned(int):
    """符号なし整数。デコード時は符号付きの表記を、エンコード時は負数を拒否する。"""

    def __new__(cls, value=0):
        v = super().__new__(cls, value)
        if v < 0:
            raise ValueError(f"符号なし整数に負数は指定できません: {value!r}")
        return v


class Float(float):
    """フィールド幅いっぱいまで小数部の桁数を使ってエンコードする浮動小数点数"""

    def to_fixed_width(self, width: int) -> str:
        # 小数点を含めた整数部の長さ（負数は符号の分 +1）
        if self > 0:
            length = int(math.log10(self)) + 2
        elif self < 0:
            length = int(math.log10(abs(self))) + 3
        else:
            length = 2

        if length - 1 > width:
            raise ValueError("小数部0桁でもフィールド幅に収まりません")

        precision = max(width - length, 0)
        return f"{float(self):.{precision}f}"
