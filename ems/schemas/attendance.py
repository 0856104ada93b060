from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Optional

class GeoCapture(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None
    photo: Optional[str] = None

class AttendanceStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None

class AttendanceResponse(BaseModel):
    id: int
    user_id: int
    date: date
    check_in_time: Optional[datetime] = None
    check_in_latitude: Optional[float] = None
    check_in_longitude: Optional[float] = None
    check_in_address: Optional[str] = None
    check_out_time: Optional[datetime] = None
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    check_out_address: Optional[str] = None
    total_hours: Optional[float] = None
    status: str
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
