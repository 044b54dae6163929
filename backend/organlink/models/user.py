from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


CallerRole = Literal["coordinator", "surgeon", "hospital", "oracle", "admin"]


class Caller(BaseModel):
    id: str
    role: CallerRole
