from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ReportModel(BaseModel):
    # Report keys stay snake_case on the wire.
    model_config = ConfigDict(from_attributes=True)
