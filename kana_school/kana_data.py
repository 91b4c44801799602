"""Seed catalog of kana.

Each row is ``(consonant_line, vowel_column, reading, hiragana, katakana, mod)``.
``mod`` is 0 for base forms, 1 for dakuten and 2 for handakuten. Voiced forms
keep the consonant line of the kana they are derived from, so ぢ is ``ji`` on
line ``t`` while じ is ``ji`` on line ``s``.
"""

from typing import Dict, List, Tuple

KanaRow = Tuple[str, str, str, str, str, int]

BASE_KANA: List[KanaRow] = [
    ("", "a", "a", "あ", "ア", 0),
    ("", "i", "i", "い", "イ", 0),
    ("", "u", "u", "う", "ウ", 0),
    ("", "e", "e", "え", "エ", 0),
    ("", "o", "o", "お", "オ", 0),
    ("k", "a", "ka", "か", "カ", 0),
    ("k", "i", "ki", "き", "キ", 0),
    ("k", "u", "ku", "く", "ク", 0),
    ("k", "e", "ke", "け", "ケ", 0),
    ("k", "o", "ko", "こ", "コ", 0),
    ("s", "a", "sa", "さ", "サ", 0),
    ("s", "i", "shi", "し", "シ", 0),
    ("s", "u", "su", "す", "ス", 0),
    ("s", "e", "se", "せ", "セ", 0),
    ("s", "o", "so", "そ", "ソ", 0),
    ("t", "a", "ta", "た", "タ", 0),
    ("t", "i", "chi", "ち", "チ", 0),
    ("t", "u", "tsu", "つ", "ツ", 0),
    ("t", "e", "te", "て", "テ", 0),
    ("t", "o", "to", "と", "ト", 0),
    ("n", "a", "na", "な", "ナ", 0),
    ("n", "i", "ni", "に", "ニ", 0),
    ("n", "u", "nu", "ぬ", "ヌ", 0),
    ("n", "e", "ne", "ね", "ネ", 0),
    ("n", "o", "no", "の", "ノ", 0),
    ("h", "a", "ha", "は", "ハ", 0),
    ("h", "i", "hi", "ひ", "ヒ", 0),
    ("h", "u", "fu", "ふ", "フ", 0),
    ("h", "e", "he", "へ", "ヘ", 0),
    ("h", "o", "ho", "ほ", "ホ", 0),
    ("m", "a", "ma", "ま", "マ", 0),
    ("m", "i", "mi", "み", "ミ", 0),
    ("m", "u", "mu", "む", "ム", 0),
    ("m", "e", "me", "め", "メ", 0),
    ("m", "o", "mo", "も", "モ", 0),
    ("y", "a", "ya", "や", "ヤ", 0),
    ("y", "u", "yu", "ゆ", "ユ", 0),
    ("y", "o", "yo", "よ", "ヨ", 0),
    ("r", "a", "ra", "ら", "ラ", 0),
    ("r", "i", "ri", "り", "リ", 0),
    ("r", "u", "ru", "る", "ル", 0),
    ("r", "e", "re", "れ", "レ", 0),
    ("r", "o", "ro", "ろ", "ロ", 0),
    ("w", "a", "wa", "わ", "ワ", 0),
    ("w", "o", "wo", "を", "ヲ", 0),
    ("nn", "", "n", "ん", "ン", 0),
]

DAKUTEN_KANA: List[KanaRow] = [
    ("k", "a", "ga", "が", "ガ", 1),
    ("k", "i", "gi", "ぎ", "ギ", 1),
    ("k", "u", "gu", "ぐ", "グ", 1),
    ("k", "e", "ge", "げ", "ゲ", 1),
    ("k", "o", "go", "ご", "ゴ", 1),
    ("s", "a", "za", "ざ", "ザ", 1),
    ("s", "i", "ji", "じ", "ジ", 1),
    ("s", "u", "zu", "ず", "ズ", 1),
    ("s", "e", "ze", "ぜ", "ゼ", 1),
    ("s", "o", "zo", "ぞ", "ゾ", 1),
    ("t", "a", "da", "だ", "ダ", 1),
    ("t", "i", "ji", "ぢ", "ヂ", 1),
    ("t", "u", "zu", "づ", "ヅ", 1),
    ("t", "e", "de", "で", "デ", 1),
    ("t", "o", "do", "ど", "ド", 1),
    ("h", "a", "ba", "ば", "バ", 1),
    ("h", "i", "bi", "び", "ビ", 1),
    ("h", "u", "bu", "ぶ", "ブ", 1),
    ("h", "e", "be", "べ", "ベ", 1),
    ("h", "o", "bo", "ぼ", "ボ", 1),
]

HANDAKUTEN_KANA: List[KanaRow] = [
    ("h", "a", "pa", "ぱ", "パ", 2),
    ("h", "i", "pi", "ぴ", "ピ", 2),
    ("h", "u", "pu", "ぷ", "プ", 2),
    ("h", "e", "pe", "ぺ", "ペ", 2),
    ("h", "o", "po", "ぽ", "ポ", 2),
]

ALL_KANA_ROWS: List[KanaRow] = BASE_KANA + DAKUTEN_KANA + HANDAKUTEN_KANA


def catalog_records() -> List[Dict[str, object]]:
    """Flatten the table into one record per glyph, all hiragana first."""
    records: List[Dict[str, object]] = []
    for is_katakana in (False, True):
        for consonant_line, vowel_column, reading, hiragana, katakana, mod in ALL_KANA_ROWS:
            records.append({
                "reading": reading,
                "is_katakana": is_katakana,
                "mod": mod,
                "consonant_line": consonant_line,
                "vowel_column": vowel_column,
                "unicode": katakana if is_katakana else hiragana,
            })
    return records
