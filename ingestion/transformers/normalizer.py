"""
Transform upstream expense and speech payloads into normalized records
"""

from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from pydantic import ValidationError as PydanticValidationError
from schemas.records import ExpenseRecord, SpeechRecord
from core.exceptions import NormalizationError
import logging

logger = logging.getLogger(__name__)


def parse_float(value: Any) -> float:
    """Safely parse a float; bad input becomes 0.0"""
    if value is None or value == "":
        return 0.0
    try:
        return float(str(value).replace(",", ".")) if isinstance(value, str) else float(value)
    except (ValueError, TypeError):
        return 0.0


def parse_int(value: Any) -> int:
    """Safely parse an int; bad input becomes 0"""
    if value is None or value == "":
        return 0
    try:
        return int(float(value))  # Handle "10.0" strings
    except (ValueError, TypeError):
        return 0


def as_str(value: Any) -> str:
    """Identifiers arrive as numbers or strings; normalize to string"""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def natural_id(value: Any) -> str:
    """Upstream identifier as a string; missing and zero ids become ''"""
    text = as_str(value)
    return "" if text in ("", "0") else text


def parse_year_month(value: Any) -> tuple:
    """(year, month) of an ISO date/datetime string, (0, 0) when unreadable"""
    if not value:
        return 0, 0
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        return parsed.year, parsed.month
    except ValueError:
        return 0, 0


def expense_id(raw: Dict[str, Any]) -> str:
    """
    Natural id of an expense.

    One fiscal document can be reimbursed in several installments, so
    codDocumento alone is not unique. Returns '' when neither id is usable.
    """
    document_id = natural_id(raw.get("idDocumento"))
    if document_id:
        return document_id

    document_code = natural_id(raw.get("codDocumento"))
    if not document_code:
        return ""

    parts = [document_code, str(parse_int(raw.get("parcela")))]
    reimbursement = natural_id(raw.get("numRessarcimento"))
    if reimbursement:
        parts.append(reimbursement)
    return ":".join(parts)


class ExpenseNormalizer:
    """
    Normalize parliamentary quota expenses.

    Handles:
    - Field mapping from the upstream camelCase payload
    - Tolerant numeric parsing
    - Year/month fallback from the document date
    - Natural id from idDocumento, or codDocumento plus installment
    """

    def __init__(self, deputy_id: str):
        self.deputy_id = str(deputy_id)

    def normalize(self, raw: Dict[str, Any], extracted_at: Optional[str] = None) -> ExpenseRecord:
        """
        Normalize one upstream expense.

        Raises:
            NormalizationError: Payload is not a mapping or fails validation
        """
        if not isinstance(raw, dict):
            raise NormalizationError(
                "Expense payload is not an object",
                context={"deputy_id": self.deputy_id, "record_type": "expense"}
            )

        year = parse_int(raw.get("ano"))
        month = parse_int(raw.get("mes"))
        if not year or not month:
            doc_year, doc_month = parse_year_month(raw.get("dataDocumento"))
            year = year or doc_year
            month = month or doc_month

        try:
            return ExpenseRecord(
                document_id=expense_id(raw),
                deputy_id=self.deputy_id,
                year=year,
                month=month,
                expense_type=raw.get("tipoDespesa"),
                document_code=as_str(raw.get("codDocumento")),
                document_type=as_str(raw.get("tipoDocumento")),
                document_type_code=as_str(raw.get("codTipoDocumento")),
                document_date=as_str(raw.get("dataDocumento")),
                document_number=as_str(raw.get("numDocumento")),
                document_url=as_str(raw.get("urlDocumento")),
                document_value=parse_float(raw.get("valorDocumento")),
                net_value=parse_float(raw.get("valorLiquido")),
                disallowed_value=parse_float(raw.get("valorGlosa")),
                supplier_name=raw.get("nomeFornecedor"),
                supplier_document=as_str(raw.get("cnpjCpfFornecedor")),
                reimbursement_number=as_str(raw.get("numRessarcimento")),
                batch_code=as_str(raw.get("codLote")),
                installment=parse_int(raw.get("parcela")),
                extracted_at=extracted_at or datetime.now(timezone.utc).isoformat()
            )
        except PydanticValidationError as e:
            raise NormalizationError(
                "Expense failed validation",
                context={"deputy_id": self.deputy_id, "record_type": "expense"},
                original_exception=e
            )


class SpeechNormalizer:
    """Normalize plenary and committee speeches"""

    def __init__(self, deputy_id: str):
        self.deputy_id = str(deputy_id)

    def normalize(self, raw: Dict[str, Any]) -> SpeechRecord:
        if not isinstance(raw, dict):
            raise NormalizationError(
                "Speech payload is not an object",
                context={"deputy_id": self.deputy_id, "record_type": "speech"}
            )

        started_at = as_str(raw.get("dataHoraInicio"))
        year, month = parse_year_month(started_at)
        event = raw.get("evento") or {}
        phase = raw.get("faseEvento")
        if isinstance(phase, dict):
            phase = phase.get("titulo")

        try:
            return SpeechRecord(
                id=as_str(raw.get("id")),
                deputy_id=self.deputy_id,
                started_at=started_at,
                ended_at=as_str(raw.get("dataHoraFim")),
                speech_type=as_str(raw.get("tipoDiscurso")),
                year=year,
                month=month,
                summary=as_str(raw.get("sumario")),
                transcription=as_str(raw.get("transcricao")),
                keywords=raw.get("palavrasChave"),
                event_phase=as_str(phase),
                event_type=as_str(event.get("descricaoTipo") if isinstance(event, dict) else ""),
                event_code=as_str(event.get("id") if isinstance(event, dict) else ""),
                audio_url=as_str(raw.get("urlAudio")),
                text_url=as_str(raw.get("urlTexto"))
            )
        except PydanticValidationError as e:
            raise NormalizationError(
                "Speech failed validation",
                context={"deputy_id": self.deputy_id, "record_type": "speech"},
                original_exception=e
            )


def expense_statistics(records: List[ExpenseRecord]) -> Dict[str, Any]:
    """Run-level expense statistics: total value, counts by year and type"""
    by_year: Dict[str, int] = {}
    by_type: Dict[str, int] = {}
    total_value = 0.0

    for record in records:
        total_value += record.net_value
        year_key = str(record.year or "unknown")
        by_year[year_key] = by_year.get(year_key, 0) + 1
        type_key = record.expense_type or "unknown"
        by_type[type_key] = by_type.get(type_key, 0) + 1

    return {
        "total_expenses": len(records),
        "total_value": round(total_value, 2),
        "by_year": dict(sorted(by_year.items())),
        "by_type": dict(sorted(by_type.items(), key=lambda kv: -kv[1])),
    }


def speech_statistics(records: List[SpeechRecord]) -> Dict[str, Any]:
    """Run-level speech statistics: counts by year and speech type"""
    by_year: Dict[str, int] = {}
    by_type: Dict[str, int] = {}

    for record in records:
        year_key = str(record.year or "unknown")
        by_year[year_key] = by_year.get(year_key, 0) + 1
        type_key = record.speech_type or "unknown"
        by_type[type_key] = by_type.get(type_key, 0) + 1

    return {
        "total_speeches": len(records),
        "by_year": dict(sorted(by_year.items())),
        "by_type": dict(sorted(by_type.items(), key=lambda kv: -kv[1])),
    }
