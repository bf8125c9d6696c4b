"""Разбор TSV вывода Tesseract."""

from conftest import SAMPLE_TEXT, TSV_ROWS, make_tsv

from ocr_jobs.exceptions import ParseDefect
from ocr_jobs.services.annotation_parser import (
    WORD_LEVEL,
    assemble_text,
    filter_word_rows,
    parse_annotations,
    split_rows,
)


class TestParseAnnotations:
    def test_keeps_only_word_rows_in_order(self, sample_tsv: str) -> None:
        result = parse_annotations(sample_tsv)

        assert [w.text for w in result.words] == ["Hello", "world", "Second", "Block"]
        assert all(w.level == WORD_LEVEL for w in result.words)
        assert result.defects == []

    def test_values_stay_raw_strings(self, sample_tsv: str) -> None:
        word = parse_annotations(sample_tsv).words[0]

        assert word.model_dump() == {
            "level": "5",
            "page_num": "1",
            "block_num": "1",
            "par_num": "1",
            "line_num": "1",
            "word_num": "1",
            "left": "36",
            "top": "92",
            "width": "96",
            "height": "36",
            "conf": "95.5",
            "text": "Hello",
        }

    def test_empty_input(self) -> None:
        result = parse_annotations("")
        assert result.words == []
        assert result.defects == []

    def test_header_only(self) -> None:
        assert parse_annotations(make_tsv([])).words == []

    def test_crlf_line_endings(self, sample_tsv: str) -> None:
        result = parse_annotations(sample_tsv.replace("\n", "\r\n"))
        assert [w.text for w in result.words] == ["Hello", "world", "Second", "Block"]
        assert result.words[-1].text == "Block"

    def test_malformed_word_row_becomes_defect(self) -> None:
        rows = TSV_ROWS[:5] + [["5", "1", "1", "1", "1", "2", "140", "92", "120", "36", "93.1"]]
        result = parse_annotations(make_tsv(rows))

        assert [w.text for w in result.words] == ["Hello"]
        assert len(result.defects) == 1
        defect = result.defects[0]
        assert isinstance(defect, ParseDefect)
        # Строка 1: заголовок, затем 5 строк TSV_ROWS
        assert defect.row_number == 7
        assert defect.field_count == 11
        assert defect.raw.startswith("5\t1\t1")

    def test_extra_fields_are_a_defect_too(self) -> None:
        rows = [["5", "1", "1", "1", "1", "1", "0", "0", "1", "1", "90", "a", "extra"]]
        result = parse_annotations(make_tsv(rows))

        assert result.words == []
        assert result.defects[0].field_count == 13

    def test_malformed_non_word_rows_are_ignored(self) -> None:
        rows = [["4", "1", "1"]] + TSV_ROWS[4:6]
        result = parse_annotations(make_tsv(rows))

        assert [w.text for w in result.words] == ["Hello", "world"]
        assert result.defects == []


class TestFilterWordRows:
    def test_filter_is_idempotent(self, sample_tsv: str) -> None:
        once = filter_word_rows(split_rows(sample_tsv))
        twice = filter_word_rows(once)

        assert once == twice
        assert [fields[-1] for _, fields in once] == ["Hello", "world", "Second", "Block"]

    def test_row_numbers_follow_source(self, sample_tsv: str) -> None:
        numbers = [number for number, _ in filter_word_rows(split_rows(sample_tsv))]
        assert numbers == [6, 7, 9, 13]


class TestAssembleText:
    def test_lines_and_blocks(self, sample_tsv: str) -> None:
        assert assemble_text(parse_annotations(sample_tsv).words) == SAMPLE_TEXT

    def test_blank_words_skipped(self) -> None:
        rows = TSV_ROWS[4:6] + [["5", "1", "1", "1", "1", "3", "0", "0", "1", "1", "95", "  "]]
        assert assemble_text(parse_annotations(make_tsv(rows)).words) == "Hello world"

    def test_no_words(self) -> None:
        assert assemble_text([]) == ""
