# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Reference character set and per-character score modifiers."""
from __future__ import annotations

from typing import Dict, Iterable


def _char_range(first: int, last: int, skip: Iterable[int] = ()) -> str:
    skipped = set(skip)
    return "".join(chr(c) for c in range(first, last + 1) if c not in skipped)


HIRAGANA = _char_range(0x3041, 0x3096)
KATAKANA = _char_range(0x30A1, 0x30FA)
PUNCTUATION = "ー｜、。「」『』（）［］【】〈〉《》｛｝〔〕・…‥〜！？々〇〃＝＋－×÷％＆＊＃＠：；"
DIGITS = "0123456789０１２３４５６７８９"
LATIN = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
    "ＡＢＣＤＥＦＧＨＩＪＫＬＭＮＯＰＱＲＳＴＵＶＷＸＹＺ"
)
COMMON_KANJI = (
    "一右雨円王音下火花貝学気九休玉金空月犬見五口校左三山子四糸字耳七車手十出女小上森人水正生青夕石赤千川先"
    "早草足村大男竹中虫町天田土二日入年白八百文木本名目立力林六引羽雲園遠何科夏家歌画回会海絵外角楽活間丸岩"
    "顔汽記帰弓牛魚京強教近兄形計元言原戸古午後語工公広交光考行高黄合谷国黒今才細作算止市矢姉思紙寺自時室社"
    "弱首秋週春書少場色食心新親図数西声星晴切雪船線前組走多太体台地池知茶昼長鳥朝直通弟店点電刀冬当東答頭同"
    "道読内南肉馬売買麦半番父風分聞米歩母方北毎妹万明鳴毛門夜野友用曜来里理話悪安暗医委意育員院飲運泳駅央横"
    "屋温化荷界開階寒感漢館岸起期客究急級宮球去橋業曲局銀区苦具君係軽血決研県庫湖向幸港号根祭皿仕死使始指歯"
    "詩次事持式実写者主守取酒受州拾終習集住重宿所暑助昭消商章勝乗植申身神真深進世整昔全相送想息速族他打対待"
    "代第題炭短談着注柱丁帳調追定庭笛鉄転都度投豆島湯登等動童農波配倍箱畑発反坂板皮悲美鼻筆氷表秒病品負部服"
    "福物平返勉放味命面問役薬由油有遊予羊洋葉陽様落流旅両緑礼列練路和私僕俺彼彼女君様達誰何事物者時間今日本"
    "気持思言見行来出入上下中前後手目口顔声心愛恋夢話笑泣怒死殺生命戦闘力魔法剣王国城街村家部屋学校先生"
)

DEFAULT_CHARACTERS = "".join(dict.fromkeys(HIRAGANA + KATAKANA + PUNCTUATION + DIGITS + LATIN + COMMON_KANJI))

# obsolete or rarely printed kana lose ties against their common look-alikes
RARE_CHARACTERS = "ゎゐゑゔゕゖヮヰヱヴヵヶヷヸヹヺ〃"
RARE_MODIFIER = 0.95

SCORE_MODIFIERS: Dict[str, float] = {c: RARE_MODIFIER for c in RARE_CHARACTERS}


def score_modifier(character: str) -> float:
    return SCORE_MODIFIERS.get(character, 1.0)


def is_hiragana(c: str) -> bool:
    return c == "｜" or 0x3040 <= ord(c) <= 0x309F


def is_katakana(c: str) -> bool:
    return c == "｜" or 0x30A0 <= ord(c) <= 0x30FF


def is_kana(c: str) -> bool:
    return is_hiragana(c) or is_katakana(c)


def is_kanji(c: str) -> bool:
    return c == "々" or 0x4E00 <= ord(c) <= 0x9FAF


__all__ = [
    "DEFAULT_CHARACTERS",
    "SCORE_MODIFIERS",
    "is_hiragana",
    "is_kana",
    "is_kanji",
    "is_katakana",
    "score_modifier",
]
