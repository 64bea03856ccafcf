"""Tests for CSV header detection."""

import io
import unittest

from icaowx.csv_header import CsvHeaderError, CsvRecordReader, CsvRowWidthError, parse_csv_header


def reader_for(text: str) -> CsvRecordReader:
    return CsvRecordReader(io.StringIO(text))


class TestParseCsvHeader(unittest.TestCase):
    """Test locating named columns in a CSV header row."""

    def test_skips_leading_lines(self):
        """Test that single-field lines before the header are skipped."""
        reader = reader_for("No errors\nNo warnings\n3 ms\nb,a,c\n1,2,3\n")
        self.assertEqual(parse_csv_header(reader, ["a", "b"]), [1, 0])
        self.assertEqual(next(reader), ["1", "2", "3"])

    def test_header_on_first_line(self):
        reader = reader_for("x,y\n1,2\n")
        self.assertEqual(parse_csv_header(reader, ["y"]), [1])

    def test_missing_field(self):
        """Test that a missing name raises with -1 at its position."""
        reader = reader_for("b,a,c\n")
        with self.assertRaises(CsvHeaderError) as ctx:
            parse_csv_header(reader, ["a", "d", "c"])
        self.assertEqual(ctx.exception.indices, [1, -1, 2])
        self.assertIn("d", str(ctx.exception))

    def test_empty_field_list(self):
        with self.assertRaises(CsvHeaderError):
            parse_csv_header(reader_for("a,b\n"), [])

    def test_stream_without_header(self):
        """Test that a stream with no multi-field row raises."""
        for text in ["", "one\ntwo\n"]:
            with self.subTest(text=text):
                with self.assertRaises(CsvHeaderError):
                    parse_csv_header(reader_for(text), ["a"])

    def test_duplicate_column_first_wins(self):
        reader = reader_for("a,b,a\n")
        self.assertEqual(parse_csv_header(reader, ["a", "b"]), [0, 1])

    def test_same_name_requested_twice(self):
        reader = reader_for("a,b\n")
        self.assertEqual(parse_csv_header(reader, ["b", "b"]), [1, 1])

    def test_quoted_header(self):
        reader = reader_for('"id","name"\n')
        self.assertEqual(parse_csv_header(reader, ["name", "id"]), [1, 0])


class TestCsvRecordReader(unittest.TestCase):
    """Test row width enforcement after the header."""

    def test_row_width_set_from_header(self):
        """Test that rows of a different width raise CsvRowWidthError."""
        reader = reader_for("info\na,b,c\n1,2,3\n1,2\n4,5,6\n")
        parse_csv_header(reader, ["a"])
        self.assertEqual(reader.fields_per_record, 3)
        self.assertEqual(next(reader), ["1", "2", "3"])
        with self.assertRaises(CsvRowWidthError) as ctx:
            next(reader)
        self.assertEqual(ctx.exception.row, ["1", "2"])
        self.assertEqual(ctx.exception.expected, 3)
        # Reading continues after a bad row.
        self.assertEqual(next(reader), ["4", "5", "6"])

    def test_no_enforcement_by_default(self):
        reader = reader_for("a\nb,c\nd,e,f\n")
        self.assertEqual([len(row) for row in reader], [1, 2, 3])

    def test_rows_read(self):
        reader = reader_for("x\na,b\n1,2\n")
        parse_csv_header(reader, ["a"])
        self.assertEqual(reader.rows_read, 2)
        list(reader)
        self.assertEqual(reader.rows_read, 3)
