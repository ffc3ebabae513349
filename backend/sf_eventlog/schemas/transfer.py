from datetime import date as date_type

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sf_eventlog.core.categories import CATEGORIES

ALL_CATEGORIES = 'ALL'


def normalize_category(value: str, allow_all: bool = False) -> str:
    normalized = str(value or '').strip()
    if allow_all and normalized.upper() == ALL_CATEGORIES:
        return ALL_CATEGORIES
    if normalized not in CATEGORIES:
        raise ValueError(f'unknown category: {value}')
    return normalized


class TransferRunIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sync_date: date_type = Field(alias='date')
    category: str = Field(min_length=1, max_length=64)
    resume_from_row: int = Field(default=1, ge=1)

    @field_validator('category')
    @classmethod
    def validate_category(cls, value: str) -> str:
        return normalize_category(value, allow_all=True)


class TransferKeyIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sync_date: date_type = Field(alias='date')
    category: str = Field(min_length=1, max_length=64)

    @field_validator('category')
    @classmethod
    def validate_category(cls, value: str) -> str:
        return normalize_category(value)


class TransferProgressOut(BaseModel):
    sync_date: date_type
    category: str
    processed: int
    total: int
    message: str


class ExamineOut(BaseModel):
    sync_date: date_type
    category: str
    file: str
    rows: int
    message: str


class JobStateOut(BaseModel):
    active: bool
    sync_date: date_type | None = None
    category: str | None = None
    processed: int = 0
    total: int = 0


class ApplicationLogOut(BaseModel):
    sync_date: date_type
    error: int
    critical: int
    message: str
