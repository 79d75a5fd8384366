"""
Tests for reference parsing, formatting and normalization.
"""
import pytest

from core.errors import (
    EmptyInputError,
    MalformedRangeError,
    OutOfRangeError,
    ReferenceParseError,
    UnknownBookError,
)
from domain.canon import BookId
from domain.entities import AddressRange, CanonicalAddress
from references.formatting import display, format_range, format_ranges


def rng(book, c1, v1, c2=None, v2=None) -> AddressRange:
    start = CanonicalAddress(book, c1, v1)
    end = CanonicalAddress(book, c2 if c2 is not None else c1, v2 if v2 is not None else v1)
    return AddressRange(start, end)


class TestParse:
    """Tests for the accepted reference forms."""

    def test_verse_range_scenario(self, parser):
        assert parser.parse("john 3:16-18") == [rng(BookId.JHN, 3, 16, 3, 18)]

    def test_single_verse(self, parser):
        assert parser.parse("John 3:16") == [rng(BookId.JHN, 3, 16)]

    def test_verse_list(self, parser):
        assert parser.parse("John 3:16,18,20") == [
            rng(BookId.JHN, 3, 16),
            rng(BookId.JHN, 3, 18),
            rng(BookId.JHN, 3, 20),
        ]

    def test_mixed_list_switches_chapter(self, parser):
        assert parser.parse("John 3:16-17, 4:2, 5") == [
            rng(BookId.JHN, 3, 16, 3, 17),
            rng(BookId.JHN, 4, 2),
            rng(BookId.JHN, 4, 5),
        ]

    def test_whole_chapter(self, parser):
        assert parser.parse("Psalm 23") == [rng(BookId.PSA, 23, 1, 23, 6)]

    def test_chapter_span(self, parser):
        assert parser.parse("Psalm 23-24") == [rng(BookId.PSA, 23, 1, 24, 2)]

    def test_chapter_list(self, parser):
        assert parser.parse("Ps 23, 24") == [rng(BookId.PSA, 23, 1, 23, 6), rng(BookId.PSA, 24, 1, 24, 2)]

    def test_cross_chapter_range(self, parser):
        assert parser.parse("John 3:20-4:2") == [rng(BookId.JHN, 3, 20, 4, 2)]

    def test_chapter_to_verse(self, parser):
        assert parser.parse("Psalm 23-24:1") == [rng(BookId.PSA, 23, 1, 24, 1)]

    def test_semicolon_list_inherits_book(self, parser):
        assert parser.parse("John 3:16; 4:1; Heb 11:1") == [
            rng(BookId.JHN, 3, 16),
            rng(BookId.JHN, 4, 1),
            rng(BookId.HEB, 11, 1),
        ]

    @pytest.mark.parametrize("dash", ["-", "–", "—"])
    def test_dash_variants(self, parser, dash):
        assert parser.parse(f"John 3:16{dash}18") == [rng(BookId.JHN, 3, 16, 3, 18)]

    def test_whitespace_is_insignificant(self, parser):
        assert parser.parse("  John   3 : 16 - 18 ") == [rng(BookId.JHN, 3, 16, 3, 18)]

    def test_numbered_books(self, parser):
        assert parser.parse("1 John 4:8") == [rng(BookId.JN1, 4, 8)]
        assert parser.parse("I John 4:7-8") == [rng(BookId.JN1, 4, 7, 4, 8)]
        assert parser.parse("1jn 4:8") == [rng(BookId.JN1, 4, 8)]

    def test_case_variants_are_identical(self, parser):
        expected = parser.parse("John 3:16")
        for text in ("john 3:16", "JOHN 3:16", "jOhN 3:16"):
            assert parser.parse(text) == expected

    def test_partial_book_name(self, parser):
        assert parser.parse("Hebr 11:1") == [rng(BookId.HEB, 11, 1)]

    def test_duplicates_are_kept(self, parser):
        assert parser.parse("John 3:16; John 3:16") == [rng(BookId.JHN, 3, 16)] * 2

    def test_parse_one_and_address(self, parser):
        assert parser.parse_one("Rom 8:28") == rng(BookId.ROM, 8, 28)
        assert parser.parse_address("Rom 8:28") == CanonicalAddress(BookId.ROM, 8, 28)
        with pytest.raises(MalformedRangeError):
            parser.parse_one("John 3:16,17")
        with pytest.raises(MalformedRangeError):
            parser.parse_address("John 3:16-17")


class TestParseErrors:
    """Tests for the parse error taxonomy."""

    @pytest.mark.parametrize("text", ["", "   ", ";", " ; ; "])
    def test_empty_input(self, parser, text):
        with pytest.raises(EmptyInputError):
            parser.parse(text)

    def test_unknown_book(self, parser):
        with pytest.raises(UnknownBookError):
            parser.parse("Hezekiah 3:16")

    def test_ambiguous_book(self, parser):
        with pytest.raises(UnknownBookError) as exc_info:
            parser.parse("Phi 1:1")
        assert "Philippians" in exc_info.value.user_message()

    @pytest.mark.parametrize("text", [
        "John 3:99",
        "John 9:1",
        "John 0:1",
        "John 3:0",
        "Revelation 1:1",
        "John 3:16-99",
    ])
    def test_out_of_range(self, parser, text):
        with pytest.raises(OutOfRangeError):
            parser.parse(text)

    @pytest.mark.parametrize("text", [
        "John",
        "John 3:",
        "John 3:16-",
        "John 3:16a",
        "John 3:18-16",
        "Psalm 24-23",
        "John 3:16,,17",
        "John 3:16;;4:1",
        "3:16",
        "Psalm 1 19",
        "Ps 2 3",
        "John 3:1 6",
        "John 3:16-1 8",
    ])
    def test_malformed(self, parser, text):
        with pytest.raises(MalformedRangeError):
            parser.parse(text)

    def test_parse_is_atomic(self, parser):
        with pytest.raises(ReferenceParseError):
            parser.parse("John 3:16; John 3:99")

    def test_errors_carry_reference(self, parser):
        with pytest.raises(OutOfRangeError) as exc_info:
            parser.parse("John 3:99")
        assert exc_info.value.reference == "John 3:99"


class TestFormatting:
    """Tests for display forms."""

    def test_display(self):
        assert display(CanonicalAddress(BookId.JHN, 3, 16)) == "John 3:16"
        assert display(CanonicalAddress(BookId.JN1, 4, 8)) == "1 John 4:8"

    def test_format_range(self, corpus):
        assert format_range(rng(BookId.JHN, 3, 16)) == "John 3:16"
        assert format_range(rng(BookId.JHN, 3, 16, 3, 18)) == "John 3:16-18"
        assert format_range(rng(BookId.JHN, 3, 20, 4, 2)) == "John 3:20-4:2"
        assert format_range(rng(BookId.PSA, 23, 1, 23, 6), corpus) == "Psalms 23"
        assert format_range(rng(BookId.PSA, 23, 1, 24, 2), corpus) == "Psalms 23-24"
        assert format_range(rng(BookId.PSA, 23, 1, 23, 6)) == "Psalms 23:1-6"

    def test_format_ranges(self, corpus):
        ranges = [rng(BookId.JHN, 3, 16), rng(BookId.HEB, 11, 1, 11, 3)]
        assert format_ranges(ranges, corpus) == "John 3:16; Hebrews 11"

    def test_normalize(self, parser):
        assert parser.normalize("jn 3:16") == "John 3:16"
        assert parser.normalize("ps 23") == "Psalms 23"
        assert parser.normalize("1jn 4:7-8") == "1 John 4"

    def test_display_round_trip(self, parser, corpus):
        for address, _ in corpus.iter_verses():
            assert parser.parse(display(address)) == [AddressRange.single(address)]
