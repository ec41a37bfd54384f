from pydantic import BaseModel
from datetime import datetime


class UserStore(BaseModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class UserOut(BaseModel):
    success: bool = True
    user_id: str
    email: str | None
    name: str | None = None
    created_at: datetime | None = None
    credits: int

    class Config:
        from_attributes = True
