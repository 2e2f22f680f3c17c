"""Pydantic response models for the case endpoints."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class CaseCreated(BaseModel):
    """Response returned once a case document has been stored."""

    success: bool = True
    case_number: str = Field(..., alias="caseNumber")
    document_id: str = Field(..., alias="documentId")
    url: str
    total_pages: int = Field(..., alias="totalPages")
    document_count: int = Field(..., alias="documentCount")
    recovery_methods: List[str] = Field(default_factory=list, alias="recoveryMethods")

    model_config = ConfigDict(populate_by_name=True)


class CaseFailure(BaseModel):
    """Structured failure payload; never carries a traceback."""

    success: bool = False
    error_kind: str = Field(..., alias="errorKind")
    message: str
    document: str | None = None

    model_config = ConfigDict(populate_by_name=True)


__all__ = ["CaseCreated", "CaseFailure"]
