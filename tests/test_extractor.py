"""
Test per il Field Extractor (regole ordinate + knowledge base).
"""
from ingest.extractor import (
    DEFAULT_RULES,
    ExtractionRule,
    FieldExtractor,
    extract_candidates,
    extract_vintage,
    split_producer_region,
)
from ingest.normalization import normalize_text
from ingest.types import NAME_PLACEHOLDER, NormalizedLine, PRODUCER_PLACEHOLDER
from ingest.wine_terms_dict import WineKnowledge


def _line(text, price=None, index=0):
    return NormalizedLine(index=index, text=text, raw=text, price=price)


class TestExtractVintage:

    def test_vintage_removed_from_text(self):
        vintage, residual = extract_vintage("Barolo Brunate 2017 Vietti")
        assert vintage == "2017"
        assert residual == "Barolo Brunate Vietti"

    def test_gap_kept_when_removing_vintage(self):
        vintage, residual = extract_vintage("Barolo Brunate 2017\tVietti, Piemonte")
        assert vintage == "2017"
        assert residual == "Barolo Brunate\tVietti, Piemonte"

    def test_no_vintage(self):
        assert extract_vintage("Langhe Nebbiolo") == (None, "Langhe Nebbiolo")


class TestRules:
    """Test regola per regola."""

    def test_rule_order(self):
        assert [rule.name for rule in DEFAULT_RULES] == ["wide_gap", "comma", "whole_line"]

    def test_select_rule(self, knowledge):
        extractor = FieldExtractor(knowledge)
        assert extractor.select_rule("NOME\tPRODUTTORE").name == "wide_gap"
        assert extractor.select_rule("NOME, PRODUTTORE").name == "comma"
        assert extractor.select_rule("NOME VINO").name == "whole_line"

    def test_custom_rules_injected(self, knowledge):
        """Una regola custom in testa ha la precedenza."""
        slash_rule = ExtractionRule(
            "slash",
            lambda text: "/" in text,
            lambda text, kb: tuple(part.strip() for part in text.split("/", 2)),
        )
        extractor = FieldExtractor(knowledge, rules=(slash_rule,) + DEFAULT_RULES)

        record = extractor.extract(_line("Barbera d'Asti / Braida / Piemonte"))

        assert record.name == "BARBERA D'ASTI"
        assert record.producer == "BRAIDA"
        assert record.provenance == "PIEMONTE"


class TestSplitProducerRegion:

    def test_region_segment_becomes_provenance(self, knowledge):
        assert split_producer_region(["Castello di Ama", " Toscana"], knowledge) == ("CASTELLO DI AMA", "TOSCANA")

    def test_segments_without_region(self, knowledge):
        assert split_producer_region(["Vietti", "Castiglione Falletto"], knowledge) == ("VIETTI", "CASTIGLIONE FALLETTO")

    def test_region_keyword_excised_from_single_segment(self, knowledge):
        assert split_producer_region(["Vietti Piemonte"], knowledge) == ("VIETTI", "PIEMONTE")

    def test_longest_region_wins(self, knowledge):
        assert split_producer_region(["Cleto Chiarli Emilia Romagna"], knowledge) == ("CLETO CHIARLI", "EMILIA ROMAGNA")

    def test_region_matches_whole_words_only(self, knowledge):
        """PIEMONTESI non contiene la regione PIEMONTE come parola intera."""
        assert split_producer_region(["Piemontesi Srl"], knowledge) == ("PIEMONTESI SRL", None)

    def test_empty_segments(self, knowledge):
        assert split_producer_region(["", " , "], knowledge) == (None, None)

    def test_positional_split_keeps_sub_region_in_provenance(self, knowledge):
        """A destra di un gap: primo segmento produttore, tutto il resto provenienza"""
        segments = ["Produttore X", " Langhe", " Piemonte"]
        assert split_producer_region(segments, knowledge, positional=True) == ("PRODUTTORE X", "LANGHE, PIEMONTE")


class TestFieldExtractor:
    """Test estrazione campi da righe normalizzate."""

    def test_wide_gap_round_trip(self, knowledge):
        """NOME<tab>PRODUTTORE, REGIONE -> tre campi esatti."""
        lines = normalize_text("NOME VINO\tPRODUTTORE, REGIONE")
        record = FieldExtractor(knowledge).extract(lines[0])

        assert record.name == "NOME VINO"
        assert record.producer == "PRODUTTORE"
        assert record.provenance == "REGIONE"

    def test_wide_gap_with_known_region(self, knowledge):
        lines = normalize_text("Barolo Brunate 2017    Vietti Piemonte – 85€")
        record = FieldExtractor(knowledge).extract(lines[0])

        assert record.name == "BAROLO BRUNATE"
        assert record.vintage == "2017"
        assert record.producer == "VIETTI"
        assert record.provenance == "PIEMONTE"
        assert record.sell_price == 85.0
        assert record.producer_suggested is False

    def test_wide_gap_three_comma_segments(self, knowledge):
        record = FieldExtractor(knowledge).extract(_line("NEBBIOLO D'ALBA\tPRODUTTORE X, LANGHE, PIEMONTE"))

        assert record.name == "NEBBIOLO D'ALBA"
        assert record.producer == "PRODUTTORE X"
        assert record.provenance == "LANGHE, PIEMONTE"

    def test_comma_split(self, knowledge):
        record = FieldExtractor(knowledge).extract(_line("Chianti Classico, Castello di Ama, Toscana"))

        assert record.name == "CHIANTI CLASSICO"
        assert record.producer == "CASTELLO DI AMA"
        assert record.provenance == "TOSCANA"

    def test_excluded_producer_discarded(self, knowledge):
        """Termini di stile (ROSSO, DOCG, ...) non sono mai produttori."""
        record = FieldExtractor(knowledge).extract(_line("Langhe Nebbiolo, Rosso"))

        assert record.name == "LANGHE NEBBIOLO"
        assert record.producer == PRODUCER_PLACEHOLDER
        assert record.needs_producer

    def test_known_producer_suggested(self, knowledge):
        record = FieldExtractor(knowledge).extract(_line("Barolo DOCG Brunate 2017", price=85.0))

        assert record.name == "BAROLO DOCG BRUNATE"
        assert record.producer == "MARCHESI DI BAROLO"
        assert record.producer_suggested is True
        assert record.provenance is None

    def test_noise_only_falls_back_to_name_placeholder(self, knowledge):
        record = FieldExtractor(knowledge).extract(_line("2019 - , ;"))

        assert record.vintage == "2019"
        assert record.name == NAME_PLACEHOLDER
        assert record.needs_name

    def test_injected_knowledge(self):
        """La knowledge base è configurazione: sostituibile nei test."""
        custom = WineKnowledge.from_dict({
            "regions": ["Mosella"],
            "known_producers": {"riesling": "Dr. Loosen"},
        })
        extractor = FieldExtractor(custom)

        record = extractor.extract(_line("Riesling Kabinett, Mosella"))
        assert record.provenance == "MOSELLA"
        assert record.producer == "DR. LOOSEN"
        assert record.producer_suggested is True

    def test_end_to_end_candidates(self, knowledge, sample_paste):
        candidates = extract_candidates(normalize_text(sample_paste), knowledge)

        assert len(candidates) == 2
        assert [c.vintage for c in candidates] == ["2017", "2022"]
        assert [c.sell_price for c in candidates] == [85.0, 18.0]
        assert candidates[1].name == "SOAVE CLASSICO DOC"
        assert candidates[1].producer == PRODUCER_PLACEHOLDER
        # Provenienza da completare in conferma per entrambi
        assert all(c.provenance is None for c in candidates)
