"""
Deputy speeches processor
"""

from typing import Any, Dict, List
from ingestion.processors.base import DeputyRecordProcessor
from ingestion.reconciliation import month_bounds
from ingestion.transformers.normalizer import SpeechNormalizer, speech_statistics
from schemas.pipeline import RunOptions
from schemas.records import SpeechRecord


class DeputySpeechesProcessor(DeputyRecordProcessor):
    """
    Speeches of each deputy, stored one document per year.

    The upstream API assigns no speech id, so merges key speeches by
    content hash.
    """

    name = "deputy-speeches"
    record_type = "speech"
    root_collection = "chamber/deputies/speeches"
    endpoint = "/deputados/{codigo}/discursos"
    key_field = "id"
    value_field = None
    group_by = ("year", "speech_type")

    def normalize(self, deputy_id: str, raw: Dict[str, Any]) -> SpeechRecord:
        return SpeechNormalizer(deputy_id).normalize(raw)

    def window_params(self, window: str) -> Dict[str, Any]:
        start, end = month_bounds(window)
        return {
            "dataInicio": start,
            "dataFim": end,
            "ordenarPor": "dataHoraInicio",
            "ordem": "ASC",
        }

    def full_params(self, options: RunOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "idLegislatura": options.legislature,
            "ordenarPor": "dataHoraInicio",
            "ordem": "ASC",
        }
        if options.start_date or options.end_date:
            if options.start_date:
                params["dataInicio"] = options.start_date
            if options.end_date:
                params["dataFim"] = options.end_date
        elif options.year and options.month:
            params["dataInicio"], params["dataFim"] = month_bounds(f"{options.year:04d}-{options.month:02d}")
        elif options.year:
            params["dataInicio"] = f"{options.year:04d}-01-01"
            params["dataFim"] = f"{options.year:04d}-12-31"
        return params

    def run_statistics(self, records: List[SpeechRecord]) -> Dict[str, Any]:
        return speech_statistics(records)
