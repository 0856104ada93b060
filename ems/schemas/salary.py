from pydantic import BaseModel, Field, model_validator
from typing import Optional

class SalaryCalculateRequest(BaseModel):
    """Either `month` (0-11) with `year`, or `period` as "YYYY-MM"."""
    user_id: int
    month: Optional[int] = Field(default=None, ge=0, le=11)
    year: Optional[int] = None
    period: Optional[str] = None

    @model_validator(mode="after")
    def check_period(self):
        if self.period is None and (self.month is None or self.year is None):
            raise ValueError("Provide month and year, or period as YYYY-MM")
        return self
