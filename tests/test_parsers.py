"""
Test per CSV Table Parser ed Excel parser.
"""
import io

import pandas as pd
import pytest

from ingest.csv_parser import (
    detect_delimiter,
    find_data_start,
    pad_grid,
    parse_csv,
    parse_csv_text,
    parse_table,
    read_rows,
)
from ingest.excel_parser import parse_excel


class TestDelimiterDetection:

    def test_comma(self):
        assert detect_delimiter("a,b,c\nd,e,f") == ","

    def test_semicolon(self):
        assert detect_delimiter("Barolo;2017;Vietti\nSoave;2022;Pieropan") == ";"

    def test_tab(self):
        assert detect_delimiter("Barolo\t2017\tVietti\nSoave\t2022\tPieropan") == "\t"

    def test_empty_defaults_to_comma(self):
        assert detect_delimiter("") == ","


class TestHeaderDetection:
    """Banner di categoria e intestazioni non sono mai dati."""

    def test_banner_and_header_skipped(self, knowledge):
        rows = [
            ["BOLLICINE ITALIANE"],
            ["NOME VINO", "ANNO", "PRODUTTORE", "PROVENIENZA", "FORNITORE"],
            ["Prosecco", "2021", "Villa X", "Veneto", "Forn Y"],
        ]

        records, info = parse_table(rows, "BOLLICINE ITALIANE", knowledge)

        assert len(records) == 1
        first = records[0]
        assert first.name == "PROSECCO"
        assert first.vintage == "2021"
        assert first.producer == "VILLA X"
        assert first.provenance == "VENETO"
        assert first.supplier == "Forn Y"
        assert first.category == "BOLLICINE ITALIANE"
        assert info["data_start"] == 2

    def test_no_header_uses_first_data_row(self, knowledge):
        rows = [["ROSSI"], ["Barolo Brunate", "2017", "Vietti", "Piemonte", ""]]
        assert find_data_start(rows, knowledge) == 1

    def test_category_keyword_row_is_not_data(self, knowledge):
        rows = [["VINI ROSSI DEL PIEMONTE"], ["Barolo Brunate", "2017"]]
        assert find_data_start(rows, knowledge) == 1

    def test_banner_between_sections_skipped(self, knowledge):
        rows = [
            ["NOME VINO", "ANNO", "PRODUTTORE", "PROVENIENZA", "FORNITORE"],
            ["Barolo Brunate", "2017", "Vietti", "Piemonte", "Enoteca"],
            ["BIANCHI", "", "", "", ""],
            ["Soave Classico", "2022", "Pieropan", "Veneto", "Enoteca"],
        ]

        records, info = parse_table(rows, None, knowledge)

        assert [r.name for r in records] == ["BAROLO BRUNATE", "SOAVE CLASSICO"]
        assert info["rows_skipped"] == 1

    def test_rows_with_empty_name_skipped(self, knowledge):
        rows = [["Barolo Brunate", "2017"], ["", "2018", "Vietti"], ["Soave Classico", "2022"]]
        records, _ = parse_table(rows, None, knowledge)
        assert len(records) == 2


class TestParseCsv:
    """Test parse testo/bytes CSV."""

    def test_parse_csv_text(self, sample_csv_text, knowledge):
        records, info = parse_csv_text(sample_csv_text, "ROSSI", knowledge=knowledge)

        assert [r.name for r in records] == ["BAROLO BRUNATE", "CHIANTI CLASSICO"]
        assert records[1].producer == "CASTELLO DI AMA"
        assert records[1].provenance == "TOSCANA"
        assert all(r.category == "ROSSI" for r in records)
        assert info["separator"] == ","

    def test_stock_column(self, knowledge):
        text = "Barolo Brunate,2017,Vietti,Piemonte,Enoteca,12\n"
        records, _ = parse_csv_text(text, delimiter=",", knowledge=knowledge)
        assert records[0].stock_quantity == 12

    def test_missing_stock_column_is_none(self, knowledge):
        records, _ = parse_csv_text("Barolo Brunate,2017,Vietti\n", delimiter=",", knowledge=knowledge)
        assert records[0].stock_quantity is None
        assert records[0].supplier is None

    def test_empty_csv_yields_no_records(self, knowledge):
        records, info = parse_csv_text("", knowledge=knowledge)
        assert records == []
        assert info["rows_total"] == 0

    def test_parse_csv_bytes_semicolon_cp1252(self, knowledge):
        content = (
            "NOME VINO;ANNO;PRODUTTORE;PROVENIENZA;FORNITORE\n"
            "Rosé di Toscana;2022;Fattoria Le Pupille;Toscana;Enoteca\n"
        ).encode("cp1252")

        records, info = parse_csv(content, "ROSATI", knowledge)

        assert len(records) == 1
        assert records[0].name.startswith("ROS")
        assert records[0].producer == "FATTORIA LE PUPILLE"
        assert info["separator"] == ";"
        assert "encoding" in info

    def test_read_rows_keeps_ragged_rows(self):
        rows = read_rows("ROSSI\nBarolo,2017,Vietti\n", delimiter=",")
        assert rows == [["ROSSI"], ["Barolo", "2017", "Vietti"]]

    def test_read_rows_quoted_cells_and_na(self):
        """Separatore dentro virgolette e 'NA' restano testo della cella"""
        rows = read_rows('"Barolo, Riserva",2017,Vietti\nDolcetto,NA,,Piemonte\n', delimiter=",")
        assert rows == [["Barolo, Riserva", "2017", "Vietti"], ["Dolcetto", "NA", "", "Piemonte"]]


class TestPadGrid:

    def test_pad_to_grid_size(self, sample_csv_text, knowledge):
        records, _ = parse_csv_text(sample_csv_text, "ROSSI", knowledge=knowledge)

        grid = pad_grid(records, size=5)

        assert len(grid) == 5
        assert grid[0]["name"] == "BAROLO BRUNATE"
        assert grid[0]["supplier"] == "Enoteca Rossi"
        assert grid[4] == {"name": "", "vintage": "", "producer": "", "provenance": "", "supplier": ""}

    def test_default_grid_size(self):
        assert len(pad_grid([])) == 100


class TestExcelParser:

    @pytest.fixture
    def excel_content(self):
        rows = [
            ["ROSSI", None, None, None, None],
            ["NOME VINO", "ANNO", "PRODUTTORE", "PROVENIENZA", "FORNITORE"],
            ["Barolo Brunate", "2017", "Vietti", "Piemonte", "Enoteca"],
        ]
        buffer = io.BytesIO()
        pd.DataFrame(rows).to_excel(buffer, index=False, header=False)
        return buffer.getvalue()

    def test_parse_excel(self, excel_content, knowledge):
        records, info = parse_excel(excel_content, "ROSSI", knowledge)

        assert len(records) == 1
        assert records[0].name == "BAROLO BRUNATE"
        assert records[0].vintage == "2017"
        assert records[0].producer == "VIETTI"
        assert info["data_start"] == 2

    def test_invalid_excel(self, knowledge):
        with pytest.raises(ValueError):
            parse_excel(b"not an excel file", "ROSSI", knowledge)
