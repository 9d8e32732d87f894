from typing import Optional

from pydantic import BaseModel, Field, field_validator


class AdvisorMessageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4096)
    advisor: str = "advisor"


class OperatorAction(BaseModel):
    by: str = "admin"
    reason: Optional[str] = None


class NumberOverrideRequest(BaseModel):
    phone: str
    name: Optional[str] = None
    reason: Optional[str] = None
    by: str = "admin"

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("phone is required")
        return value


class ToggleRequest(BaseModel):
    enabled: bool


class SimulatedTimeRequest(BaseModel):
    time: str = Field(description="HH:MM for today, or an ISO datetime")


class ScheduleUpdate(BaseModel):
    day_type: str = Field(description="weekdays, saturday or sunday")
    enabled: Optional[bool] = None
    start_hour: Optional[int] = None
    start_minute: Optional[int] = None
    end_hour: Optional[int] = None
    end_minute: Optional[int] = None
