from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

class UserDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    name: str
    email: EmailStr
    password_hash: str
    address: Optional[str] = None
    role: str = "customer"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True
