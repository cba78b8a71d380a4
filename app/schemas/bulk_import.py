# app/schemas/bulk_import.py
from typing import List, Optional

from pydantic import BaseModel


class ImportRowError(BaseModel):
    row: int  # spreadsheet row number, header is row 1
    key: Optional[str] = None  # email or sku of the failed row
    error: str


class UserImportResponse(BaseModel):
    total: int = 0
    created: int = 0
    errors: List[ImportRowError] = []


class ImportedCourse(BaseModel):
    id: str
    sku: str
    title: str


class CourseImportResponse(BaseModel):
    total: int = 0
    imported: int = 0
    courses: List[ImportedCourse] = []
    errors: List[ImportRowError] = []
