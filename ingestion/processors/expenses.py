"""
Deputy expenses processor (parliamentary quota spending)
"""

from typing import Any, Dict, List
from ingestion.processors.base import DeputyRecordProcessor
from ingestion.reconciliation import parse_window
from ingestion.transformers.normalizer import ExpenseNormalizer, expense_statistics
from schemas.pipeline import RunOptions
from schemas.records import ExpenseRecord


class DeputyExpensesProcessor(DeputyRecordProcessor):
    """
    Expenses of each deputy, stored one document per year.

    Expenses carry an upstream document id, so incremental merges replace
    re-fetched expenses in place.
    """

    name = "deputy-expenses"
    record_type = "expense"
    root_collection = "chamber/deputies/expenses"
    endpoint = "/deputados/{codigo}/despesas"
    key_field = "document_id"
    volatile_fields = ("extracted_at",)
    value_field = "net_value"
    group_by = ("year", "expense_type")

    def normalize(self, deputy_id: str, raw: Dict[str, Any]) -> ExpenseRecord:
        return ExpenseNormalizer(deputy_id).normalize(raw)

    def window_params(self, window: str) -> Dict[str, Any]:
        year, month = parse_window(window)
        return {"ano": year, "mes": month, "ordem": "ASC", "ordenarPor": "ano"}

    def full_params(self, options: RunOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "idLegislatura": options.legislature,
            "ordem": "ASC",
            "ordenarPor": "ano",
        }
        if options.year:
            params["ano"] = options.year
        if options.month:
            params["mes"] = options.month
        return params

    def run_statistics(self, records: List[ExpenseRecord]) -> Dict[str, Any]:
        return expense_statistics(records)
