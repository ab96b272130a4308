"""
Test unitari per gate (routing).
"""
import pytest

from ingest.gate import route_file


class TestGateRouting:
    """Test per routing file."""

    def test_route_csv(self):
        """Test routing CSV → parser tabellare."""
        route, ext = route_file("lista.csv")

        assert route == "csv"
        assert ext == "csv"

    def test_route_tsv_and_txt(self):
        assert route_file("lista.tsv") == ("csv", "tsv")
        assert route_file("lista.TXT") == ("csv", "txt")

    def test_route_excel(self):
        """Test routing Excel."""
        assert route_file("lista.xlsx") == ("excel", "xlsx")
        assert route_file("lista.xls") == ("excel", "xls")

    def test_explicit_extension(self):
        assert route_file("export", ext=".CSV") == ("csv", "csv")

    def test_route_unsupported(self):
        """PDF e immagini non sono supportati."""
        with pytest.raises(ValueError, match="Formato file non supportato"):
            route_file("lista.pdf")

    def test_route_without_extension(self):
        with pytest.raises(ValueError):
            route_file("lista")
