"""
Pydantic schemas for data validation and serialization.

Schemas:
    pipeline: Pipeline values (FreshnessPolicy, WriteOperation, BatchResult,
              ValidationResult, ProgressEvent, RunOptions, LoadResult, RunResult)
    records: Normalized legislative records (Deputy, ExpenseRecord, SpeechRecord)
    api: API endpoint response models

Usage:
    from schemas.pipeline import RunOptions, RunResult
    from schemas.records import ExpenseRecord
"""
