"""
Marginalia - Canon

The closed enumeration of books and the default alias table.

Book codes follow the three-character convention (GEN, EXO, ... JHN, ... REV);
member order is canon order and defines the ordering of every address.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Dict, FrozenSet, Tuple


class Testament(str, Enum):
    """Testament designation."""
    OLD_TESTAMENT = "OT"
    NEW_TESTAMENT = "NT"


class BookId(str, Enum):
    """Books of the Protestant canon, in canon order."""

    # Old Testament
    GEN = "GEN"
    EXO = "EXO"
    LEV = "LEV"
    NUM = "NUM"
    DEU = "DEU"
    JOS = "JOS"
    JDG = "JDG"
    RUT = "RUT"
    SA1 = "1SA"
    SA2 = "2SA"
    KI1 = "1KI"
    KI2 = "2KI"
    CH1 = "1CH"
    CH2 = "2CH"
    EZR = "EZR"
    NEH = "NEH"
    EST = "EST"
    JOB = "JOB"
    PSA = "PSA"
    PRO = "PRO"
    ECC = "ECC"
    SNG = "SNG"
    ISA = "ISA"
    JER = "JER"
    LAM = "LAM"
    EZK = "EZK"
    DAN = "DAN"
    HOS = "HOS"
    JOL = "JOL"
    AMO = "AMO"
    OBA = "OBA"
    JON = "JON"
    MIC = "MIC"
    NAH = "NAH"
    HAB = "HAB"
    ZEP = "ZEP"
    HAG = "HAG"
    ZEC = "ZEC"
    MAL = "MAL"
    # New Testament
    MAT = "MAT"
    MRK = "MRK"
    LUK = "LUK"
    JHN = "JHN"
    ACT = "ACT"
    ROM = "ROM"
    CO1 = "1CO"
    CO2 = "2CO"
    GAL = "GAL"
    EPH = "EPH"
    PHP = "PHP"
    COL = "COL"
    TH1 = "1TH"
    TH2 = "2TH"
    TI1 = "1TI"
    TI2 = "2TI"
    TIT = "TIT"
    PHM = "PHM"
    HEB = "HEB"
    JAS = "JAS"
    PE1 = "1PE"
    PE2 = "2PE"
    JN1 = "1JN"
    JN2 = "2JN"
    JN3 = "3JN"
    JUD = "JUD"
    REV = "REV"

    @property
    def order(self) -> int:
        """Zero-based position in canon order."""
        return _BOOK_ORDER[self]

    @property
    def display_name(self) -> str:
        """Canonical display form (e.g. 'John', '1 John', 'Song of Solomon')."""
        return DISPLAY_NAMES[self]

    @property
    def testament(self) -> Testament:
        return Testament.OLD_TESTAMENT if self.order < 39 else Testament.NEW_TESTAMENT

    @classmethod
    def from_code(cls, code: str) -> "BookId":
        """Look a book up by its three-character code, case-insensitively."""
        return cls(code.strip().upper())


_BOOK_ORDER: Dict[BookId, int] = {book: index for index, book in enumerate(BookId)}

DISPLAY_NAMES: Dict[BookId, str] = {
    BookId.GEN: "Genesis",
    BookId.EXO: "Exodus",
    BookId.LEV: "Leviticus",
    BookId.NUM: "Numbers",
    BookId.DEU: "Deuteronomy",
    BookId.JOS: "Joshua",
    BookId.JDG: "Judges",
    BookId.RUT: "Ruth",
    BookId.SA1: "1 Samuel",
    BookId.SA2: "2 Samuel",
    BookId.KI1: "1 Kings",
    BookId.KI2: "2 Kings",
    BookId.CH1: "1 Chronicles",
    BookId.CH2: "2 Chronicles",
    BookId.EZR: "Ezra",
    BookId.NEH: "Nehemiah",
    BookId.EST: "Esther",
    BookId.JOB: "Job",
    BookId.PSA: "Psalms",
    BookId.PRO: "Proverbs",
    BookId.ECC: "Ecclesiastes",
    BookId.SNG: "Song of Solomon",
    BookId.ISA: "Isaiah",
    BookId.JER: "Jeremiah",
    BookId.LAM: "Lamentations",
    BookId.EZK: "Ezekiel",
    BookId.DAN: "Daniel",
    BookId.HOS: "Hosea",
    BookId.JOL: "Joel",
    BookId.AMO: "Amos",
    BookId.OBA: "Obadiah",
    BookId.JON: "Jonah",
    BookId.MIC: "Micah",
    BookId.NAH: "Nahum",
    BookId.HAB: "Habakkuk",
    BookId.ZEP: "Zephaniah",
    BookId.HAG: "Haggai",
    BookId.ZEC: "Zechariah",
    BookId.MAL: "Malachi",
    BookId.MAT: "Matthew",
    BookId.MRK: "Mark",
    BookId.LUK: "Luke",
    BookId.JHN: "John",
    BookId.ACT: "Acts",
    BookId.ROM: "Romans",
    BookId.CO1: "1 Corinthians",
    BookId.CO2: "2 Corinthians",
    BookId.GAL: "Galatians",
    BookId.EPH: "Ephesians",
    BookId.PHP: "Philippians",
    BookId.COL: "Colossians",
    BookId.TH1: "1 Thessalonians",
    BookId.TH2: "2 Thessalonians",
    BookId.TI1: "1 Timothy",
    BookId.TI2: "2 Timothy",
    BookId.TIT: "Titus",
    BookId.PHM: "Philemon",
    BookId.HEB: "Hebrews",
    BookId.JAS: "James",
    BookId.PE1: "1 Peter",
    BookId.PE2: "2 Peter",
    BookId.JN1: "1 John",
    BookId.JN2: "2 John",
    BookId.JN3: "3 John",
    BookId.JUD: "Jude",
    BookId.REV: "Revelation",
}

# Abbreviations beyond the code and display name. Numbered books list the
# name without its ordinal; the ordinal variants are generated.
ABBREVIATIONS: Dict[BookId, Tuple[str, ...]] = {
    BookId.GEN: ("Gen", "Gn", "Ge"),
    BookId.EXO: ("Exod", "Ex"),
    BookId.LEV: ("Lev", "Lv"),
    BookId.NUM: ("Num", "Nm", "Nu"),
    BookId.DEU: ("Deut", "Dt"),
    BookId.JOS: ("Josh", "Jsh"),
    BookId.JDG: ("Judg", "Jg", "Jdgs"),
    BookId.RUT: ("Rth", "Ru"),
    BookId.SA1: ("Sam", "Sa", "Sm", "Samuel"),
    BookId.SA2: ("Sam", "Sa", "Sm", "Samuel"),
    BookId.KI1: ("Kgs", "Ki", "Kings"),
    BookId.KI2: ("Kgs", "Ki", "Kings"),
    BookId.CH1: ("Chr", "Chron", "Ch", "Chronicles"),
    BookId.CH2: ("Chr", "Chron", "Ch", "Chronicles"),
    BookId.EZR: ("Ezr",),
    BookId.NEH: ("Neh", "Ne"),
    BookId.EST: ("Esth", "Es"),
    BookId.JOB: ("Jb",),
    BookId.PSA: ("Ps", "Psalm", "Pslm", "Psa", "Pss"),
    BookId.PRO: ("Prov", "Pr", "Prv"),
    BookId.ECC: ("Eccl", "Eccles", "Ec", "Qoh"),
    BookId.SNG: ("Song", "Song of Songs", "SoS", "Canticles", "Cant"),
    BookId.ISA: ("Isa", "Is"),
    BookId.JER: ("Jer", "Je", "Jr"),
    BookId.LAM: ("Lam", "La"),
    BookId.EZK: ("Ezek", "Eze", "Ezk"),
    BookId.DAN: ("Dan", "Da", "Dn"),
    BookId.HOS: ("Hos", "Ho"),
    BookId.JOL: ("Joe", "Jl"),
    BookId.AMO: ("Am",),
    BookId.OBA: ("Obad", "Ob"),
    BookId.JON: ("Jnh",),
    BookId.MIC: ("Mic", "Mc"),
    BookId.NAH: ("Nah", "Na"),
    BookId.HAB: ("Hab", "Hb"),
    BookId.ZEP: ("Zeph", "Zep", "Zp"),
    BookId.HAG: ("Hag", "Hg"),
    BookId.ZEC: ("Zech", "Zec", "Zc"),
    BookId.MAL: ("Mal", "Ml"),
    BookId.MAT: ("Matt", "Mt"),
    BookId.MRK: ("Mk", "Mr"),
    BookId.LUK: ("Lk", "Luk"),
    BookId.JHN: ("Jn", "Joh"),
    BookId.ACT: ("Ac",),
    BookId.ROM: ("Rom", "Ro", "Rm"),
    BookId.CO1: ("Cor", "Co", "Corinthians"),
    BookId.CO2: ("Cor", "Co", "Corinthians"),
    BookId.GAL: ("Gal", "Ga"),
    BookId.EPH: ("Eph", "Ephes"),
    BookId.PHP: ("Phil", "Php", "Pp"),
    BookId.COL: ("Col",),
    BookId.TH1: ("Thess", "Thes", "Th", "Thessalonians"),
    BookId.TH2: ("Thess", "Thes", "Th", "Thessalonians"),
    BookId.TI1: ("Tim", "Ti", "Timothy"),
    BookId.TI2: ("Tim", "Ti", "Timothy"),
    BookId.TIT: ("Tit",),
    BookId.PHM: ("Philem", "Phm", "Pm"),
    BookId.HEB: ("Heb",),
    BookId.JAS: ("Jas", "Jm"),
    BookId.PE1: ("Pet", "Pe", "Pt", "Peter"),
    BookId.PE2: ("Pet", "Pe", "Pt", "Peter"),
    BookId.JN1: ("Jn", "Jhn", "Jo", "John"),
    BookId.JN2: ("Jn", "Jhn", "Jo", "John"),
    BookId.JN3: ("Jn", "Jhn", "Jo", "John"),
    BookId.JUD: ("Jud", "Jd"),
    BookId.REV: ("Rev", "Re", "Rv", "Apocalypse"),
}

_ORDINAL_PREFIX = re.compile(r"^([1-3])\s*(?=[^\W\d_])")
_ROMAN_PREFIX = re.compile(r"^(iii|ii|i)\s+(?=[^\W\d_])")
_ROMAN_TO_DIGIT = {"i": "1", "ii": "2", "iii": "3"}


def fold_alias(text: str) -> str:
    """
    Fold a book name or abbreviation to its alias-index key.

    Case-folded, periods removed, whitespace collapsed, and a leading ordinal
    (digit or roman numeral) glued to the name: 'I  John.' -> '1john'.
    """
    folded = " ".join(text.casefold().replace(".", " ").split())
    roman = _ROMAN_PREFIX.match(folded)
    if roman:
        folded = _ROMAN_TO_DIGIT[roman.group(1)] + folded[roman.end():]
    return _ORDINAL_PREFIX.sub(r"\1", folded)


def _ordinal(book: BookId) -> str:
    code = book.value
    return code[0] if code[0].isdigit() else ""


def default_aliases(book: BookId) -> FrozenSet[str]:
    """All display-form aliases the canon itself knows for a book."""
    aliases = {book.value, book.display_name}
    ordinal = _ordinal(book)
    for abbreviation in ABBREVIATIONS.get(book, ()):
        if ordinal:
            aliases.add(f"{ordinal} {abbreviation}")
        else:
            aliases.add(abbreviation)
    return frozenset(aliases)
