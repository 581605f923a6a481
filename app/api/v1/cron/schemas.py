from datetime import date
from typing import List
from uuid import UUID

from pydantic import BaseModel


class MarkedTeacher(BaseModel):
    id: UUID
    name: str


class AutoAbsentResult(BaseModel):
    date: date
    marked: int
    teachers: List[MarkedTeacher] = []
    skipped_off_day: bool = False


class AutoOutResult(BaseModel):
    date: date
    checked_out: int
    absent: AutoAbsentResult
