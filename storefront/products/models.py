from datetime import datetime
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, Field

class ProductDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    name: str
    description: str = ""
    price: Decimal
    category: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
