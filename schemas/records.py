"""
Pydantic schemas for normalized legislative records with validation
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List


class Deputy(BaseModel):
    """Minimal deputy identity used to drive per-deputy extraction"""
    id: str = Field(..., min_length=1)
    name: str = ""
    civil_name: Optional[str] = None
    party: str = ""
    state: str = ""
    legislature: Optional[int] = None
    photo_url: Optional[str] = None


class ExpenseRecord(BaseModel):
    """
    One parliamentary quota expense.

    document_id is idDocumento when upstream sends one, else
    "codDocumento:parcela[:numRessarcimento]" when codDocumento is set. It is
    empty otherwise, and merges fall back to a content-derived key.
    """

    document_id: str = ""
    deputy_id: str = Field(..., min_length=1)

    # Period
    year: int = Field(0, ge=0)
    month: int = Field(0, ge=0, le=12)
    expense_type: str = ""

    # Document
    document_code: str = ""
    document_type: str = ""
    document_type_code: str = ""
    document_date: str = ""
    document_number: str = ""
    document_url: str = ""

    # Amounts
    document_value: float = 0.0
    net_value: float = 0.0
    disallowed_value: float = 0.0

    # Supplier
    supplier_name: str = ""
    supplier_document: str = ""

    # Reimbursement control
    reimbursement_number: str = ""
    batch_code: str = ""
    installment: int = 0

    extracted_at: str = ""

    @field_validator("expense_type", "supplier_name", mode="before")
    @classmethod
    def clean_text(cls, v):
        """Strip surrounding whitespace"""
        if v is None:
            return ""
        return str(v).strip()


class SpeechRecord(BaseModel):
    """
    One plenary or committee speech.

    The upstream API does not assign speech identifiers, so id is usually
    empty and merges rely on the content-derived fallback key.
    """

    id: str = ""
    deputy_id: str = Field(..., min_length=1)

    started_at: str = ""
    ended_at: str = ""
    speech_type: str = ""
    year: int = Field(0, ge=0)
    month: int = Field(0, ge=0, le=12)

    summary: str = ""
    transcription: str = ""
    keywords: List[str] = Field(default_factory=list)

    event_phase: str = ""
    event_type: str = ""
    event_code: str = ""

    audio_url: str = ""
    text_url: str = ""

    @field_validator("keywords", mode="before")
    @classmethod
    def clean_keywords(cls, v):
        """Accept a comma-separated string or a list"""
        if v is None:
            return []
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        if isinstance(v, list):
            return [str(k).strip() for k in v if k and str(k).strip()]
        return []
