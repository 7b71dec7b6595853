"""
Unit tests for record normalization
"""

import pytest
from ingestion.transformers.normalizer import (
    ExpenseNormalizer,
    SpeechNormalizer,
    expense_statistics,
    speech_statistics,
    parse_float,
    parse_int,
)
from core.exceptions import NormalizationError


class TestExpenseNormalizer:
    """Test expense normalization"""

    def test_normalize_expense(self, expense_factory):
        record = ExpenseNormalizer("204554").normalize(
            expense_factory(7001, 2024, 4, 150.25),
            extracted_at="2024-05-22T12:00:00+00:00"
        )

        assert record.document_id == "7001:0"
        assert record.deputy_id == "204554"
        assert record.year == 2024
        assert record.month == 4
        assert record.net_value == 150.25
        assert record.document_value == 150.25
        assert record.supplier_name == "Posto Central"
        assert record.document_date == "2024-04-10"
        assert record.extracted_at == "2024-05-22T12:00:00+00:00"

    def test_tolerates_bad_numbers(self, expense_factory):
        raw = expense_factory(7002, 2024, 5)
        raw["valorLiquido"] = "n/a"
        raw["valorGlosa"] = None
        raw["parcela"] = "2.0"

        record = ExpenseNormalizer(204554).normalize(raw)

        assert record.net_value == 0.0
        assert record.disallowed_value == 0.0
        assert record.installment == 2

    def test_period_falls_back_to_document_date(self, expense_factory):
        raw = expense_factory(7003, 2024, 3)
        raw["ano"] = None
        raw["mes"] = ""

        record = ExpenseNormalizer("1").normalize(raw)

        assert (record.year, record.month) == (2024, 3)

    def test_missing_document_id(self, expense_factory):
        raw = expense_factory(7004, 2024, 3)
        raw["idDocumento"] = None
        raw["codDocumento"] = None

        assert ExpenseNormalizer("1").normalize(raw).document_id == ""

    def test_zero_document_code_is_not_an_id(self, expense_factory):
        """Upstream sends codDocumento 0 for expenses without a fiscal document"""
        for code in (0, "0"):
            raw = expense_factory(code, 2024, 3)
            assert "idDocumento" not in raw
            assert ExpenseNormalizer("1").normalize(raw).document_id == ""

    def test_installments_of_one_document_get_distinct_ids(self, expense_factory):
        first = expense_factory(7005, 2024, 3, installment=1)
        second = expense_factory(7005, 2024, 3, installment=2)
        second["numRessarcimento"] = "4821"

        normalizer = ExpenseNormalizer("1")

        assert normalizer.normalize(first).document_id == "7005:1"
        assert normalizer.normalize(second).document_id == "7005:2:4821"

    def test_id_documento_is_preferred(self, expense_factory):
        raw = expense_factory(7006, 2024, 3, id_documento=987654)
        assert ExpenseNormalizer("1").normalize(raw).document_id == "987654"

        raw["idDocumento"] = 0
        assert ExpenseNormalizer("1").normalize(raw).document_id == "7006:0"

    def test_non_mapping_payload(self):
        with pytest.raises(NormalizationError):
            ExpenseNormalizer("1").normalize(["not", "a", "dict"])

    def test_statistics(self, expense_factory):
        normalizer = ExpenseNormalizer("1")
        records = [
            normalizer.normalize(expense_factory(1, 2024, 4, 10.0, expense_type="TELEFONIA")),
            normalizer.normalize(expense_factory(2, 2024, 5, 20.5, expense_type="TELEFONIA")),
            normalizer.normalize(expense_factory(3, 2023, 12, 100.0, expense_type="PASSAGEM AÉREA")),
        ]

        stats = expense_statistics(records)

        assert stats["total_expenses"] == 3
        assert stats["total_value"] == 130.5
        assert stats["by_year"] == {"2023": 1, "2024": 2}
        assert list(stats["by_type"]) == ["TELEFONIA", "PASSAGEM AÉREA"]


class TestSpeechNormalizer:
    """Test speech normalization"""

    def test_normalize_speech(self, speech_factory):
        record = SpeechNormalizer("204554").normalize(speech_factory("2024-05-08T10:30", summary="Reforma tributária."))

        assert record.id == ""
        assert record.deputy_id == "204554"
        assert (record.year, record.month) == (2024, 5)
        assert record.summary == "Reforma tributária."
        assert record.keywords == ["ORÇAMENTO", "SAÚDE"]
        assert record.event_phase == "Pequeno Expediente"
        assert record.ended_at == ""

    def test_unparseable_start(self, speech_factory):
        record = SpeechNormalizer("1").normalize(speech_factory("ontem"))
        assert (record.year, record.month) == (0, 0)

    def test_statistics(self, speech_factory):
        normalizer = SpeechNormalizer("1")
        records = [
            normalizer.normalize(speech_factory("2024-05-08T10:30")),
            normalizer.normalize(speech_factory("2023-11-08T10:30", speech_type="COMISSÃO")),
        ]

        stats = speech_statistics(records)

        assert stats["total_speeches"] == 2
        assert stats["by_year"] == {"2023": 1, "2024": 1}


class TestParsers:
    """Test tolerant parsing helpers"""

    @pytest.mark.parametrize("value,expected", [("12.5", 12.5), ("12,5", 12.5), (3, 3.0), ("", 0.0), (None, 0.0), ("x", 0.0)])
    def test_parse_float(self, value, expected):
        assert parse_float(value) == expected

    @pytest.mark.parametrize("value,expected", [("10.0", 10), (7, 7), ("", 0), ("abc", 0)])
    def test_parse_int(self, value, expected):
        assert parse_int(value) == expected
