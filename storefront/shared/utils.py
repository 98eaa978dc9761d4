from datetime import datetime, timedelta
from typing import Optional, List, Any
from fastapi import HTTPException, status, Header, Depends, Request
from motor.motor_asyncio import AsyncIOMotorClient
from passlib.context import CryptContext
from pydantic import BaseModel
from pydantic_settings import BaseSettings
from jose import JWTError, jwt
from bson import ObjectId
from bson.errors import InvalidId
import uuid

# --- Configuration ---
class Settings(BaseSettings):
    SERVICE_NAME: str = "storefront"
    MONGO_URL: str = "mongodb://mongodb:27017"
    MONGO_DB_NAME: str = "storefront"
    SECRET_KEY: str = "secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 48
    ADMIN_EMAILS: List[str] = []
    CART_MAX_RETRIES: int = 5
    RATE_LIMIT_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()

# --- Database ---
def get_db_client(url: str = settings.MONGO_URL) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(url)

def str_to_oid(id: str) -> ObjectId:
    try:
        return ObjectId(id)
    except (InvalidId, TypeError):
        raise NotFoundException("Invalid ID format")

def canonical_id(value: Any) -> str:
    """
    Canonical string form of an identifier.

    ObjectIds and valid 24-hex strings normalise to lowercase hex, so a token
    subject and a path parameter compare equal whatever their original type.
    """
    if isinstance(value, ObjectId):
        return str(value)
    text = str(value).strip()
    if ObjectId.is_valid(text):
        return str(ObjectId(text))
    return text

# --- Pagination ---
def parse_positive_int(value: Optional[str], default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default

class Pagination(BaseModel):
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

def get_pagination(page: Optional[str] = None, limit: Optional[str] = None) -> Pagination:
    return Pagination(page=parse_positive_int(page, 1), limit=parse_positive_int(limit, 10))

# --- Authentication ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None, config: Settings = settings) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)

    # Add JTI
    if "jti" not in to_encode:
        to_encode.update({"jti": str(uuid.uuid4())})

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)
    return encoded_jwt

def verify_token(token: str, config: Settings = settings) -> dict:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise UnauthorizedException("Unauthorized access.")
    if not payload.get("sub"):
        raise UnauthorizedException("Unauthorized access.")
    return payload

# --- Response Models ---
class MessageResponse(BaseModel):
    message: str

class ErrorResponse(BaseModel):
    error: str

class FieldError(BaseModel):
    field: str
    message: str

class ValidationErrorResponse(BaseModel):
    errors: List[FieldError]

class HealthResponse(BaseModel):
    service: str
    status: str
    timestamp: datetime
    version: str
    database: Optional[str] = None


# --- Exceptions ---
class AppException(HTTPException):
    def __init__(
        self,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        detail: str = "An error occurred",
        headers: Optional[dict] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

class NotFoundException(AppException):
    def __init__(self, detail: str = "Resource not found", status_code: int = status.HTTP_404_NOT_FOUND):
        super().__init__(status_code=status_code, detail=detail)

# Cart lookups answer 400 on the wire, but are still "not found" conditions.
class CartNotFoundException(NotFoundException):
    def __init__(self, detail: str = "Cart not found"):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)

class ItemNotInCartException(NotFoundException):
    def __init__(self, detail: str = "Product not found in cart"):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)

class InvalidStateException(AppException):
    def __init__(self, detail: str = "Invalid state"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class ConflictException(AppException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class ForbiddenException(AppException):
    def __init__(self, detail: str = "Access denied."):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class UnauthorizedException(AppException):
    def __init__(self, detail: str = "Unauthorized"):
         super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )

# --- Decorators/Dependencies ---
def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_database(request: Request):
    return request.app.state.mongodb

async def require_auth(
    authorization: Optional[str] = Header(None),
    config: Settings = Depends(get_settings),
) -> dict:
    if not authorization:
        raise UnauthorizedException("Access denied. No token provided.")
    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "bearer" or not param.strip():
        raise UnauthorizedException("Access denied. Token missing.")
    return verify_token(param.strip(), config)

async def get_current_customer(request: Request, payload: dict = Depends(require_auth)) -> str:
    customer_id = canonical_id(payload["sub"])
    request.state.user_id = customer_id
    return customer_id

async def require_admin(payload: dict = Depends(require_auth)) -> dict:
    if payload.get("role") != "admin":
        raise ForbiddenException("Admin access required")
    return payload
