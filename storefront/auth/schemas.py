from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from storefront.shared.security_config import sanitize_input

class UserSignup(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    address: Optional[str] = None

    @field_validator('name', 'address')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

    @field_validator('name')
    def name_required(cls, v):
        if not v:
            raise ValueError('Name is required')
        return v

class UserSignin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class SignupResponse(BaseModel):
    message: str
    customer_id: str = Field(..., alias="customerId")

    class Config:
        populate_by_name = True

class TokenResponse(BaseModel):
    message: str
    token: str
