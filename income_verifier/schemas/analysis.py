"""
Income Verifier - Analysis Endpoint Pydantic Schemas
Validation for POST /api/analyze and the shape of its result.
"""
import base64
import binascii
from typing import Optional

from pydantic import Field, StrictInt, field_validator, model_validator

from income_verifier.schemas.base import CamelModel

MAX_FILES = 10
MAX_HOUSEHOLD_SIZE = 20
# Gemini's inline-data request limit.
MAX_TOTAL_UPLOAD_BYTES = 20 * 1024 * 1024

PDF_MIME_TYPE = "application/pdf"


# ═══════════════════════════════════════════════════════
#  Request
# ═══════════════════════════════════════════════════════


class UploadedFile(CamelModel):
    """One document, base64 encoded by the browser."""

    mime_type: str = Field(..., max_length=100, examples=["application/pdf", "image/jpeg"])
    data: str = Field(..., min_length=1, description="Base64 file content, no data: prefix")
    name: Optional[str] = Field(None, max_length=255)

    @field_validator("mime_type")
    @classmethod
    def supported_mime_type(cls, v: str) -> str:
        v = v.strip().lower()
        if v != PDF_MIME_TYPE and not v.startswith("image/"):
            raise ValueError(f"Unsupported file type: {v}. Upload images or PDF documents.")
        return v

    @field_validator("data")
    @classmethod
    def valid_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("File data must be base64 encoded.")
        return v

    @property
    def decoded_size(self) -> int:
        return len(self.data) * 3 // 4 - self.data[-2:].count("=")

    def content(self) -> bytes:
        return base64.b64decode(self.data)


class AnalyzeRequest(CamelModel):
    """Input payload for income document analysis."""

    files: list[UploadedFile] = Field(default_factory=list, validate_default=True)
    household_size: StrictInt

    @field_validator("files")
    @classmethod
    def files_present(cls, v: list[UploadedFile]) -> list[UploadedFile]:
        if not v:
            raise ValueError("No files provided.")
        if len(v) > MAX_FILES:
            raise ValueError(f"Too many files. Upload at most {MAX_FILES} documents.")
        return v

    @field_validator("household_size")
    @classmethod
    def household_size_in_range(cls, v: int) -> int:
        if not 1 <= v <= MAX_HOUSEHOLD_SIZE:
            raise ValueError(
                f"Household size must be between 1 and {MAX_HOUSEHOLD_SIZE}."
            )
        return v

    @model_validator(mode="after")
    def total_size_within_limit(self) -> "AnalyzeRequest":
        total = sum(f.decoded_size for f in self.files)
        if total > MAX_TOTAL_UPLOAD_BYTES:
            raise ValueError("Uploaded files are too large. Reduce their size and try again.")
        return self


# ═══════════════════════════════════════════════════════
#  Response
# ═══════════════════════════════════════════════════════


class IncomeAssessment(CamelModel):
    """Structured verdict returned by the AI model."""

    is_eligible: bool
    annual_income: Optional[float] = None
    reasoning: str
    document_type: str


class AnalysisResult(IncomeAssessment):
    """The model's verdict plus the locally computed FPL figures."""

    household_size: int
    poverty_level: int
    poverty_threshold: int
