from fastapi import APIRouter, Depends, Request, status
from pymongo.errors import DuplicateKeyError
import logging

from storefront.shared.utils import (
    AppException, Settings, get_database, get_settings,
    get_password_hash, verify_password, create_access_token
)
from storefront.shared.security_config import SIGNIN_RATE, limiter

from storefront.auth.schemas import UserSignup, UserSignin, SignupResponse, TokenResponse
from storefront.auth.models import UserDB

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(user: UserSignup, db=Depends(get_database), config: Settings = Depends(get_settings)):
    existing_user = await db.users.find_one({"email": user.email})
    if existing_user:
        raise AppException(status.HTTP_409_CONFLICT, "Email is already registered")

    admin_emails = {email.lower() for email in config.ADMIN_EMAILS}
    user_db = UserDB(
        name=user.name,
        email=user.email,
        password_hash=get_password_hash(user.password),
        address=user.address,
        role="admin" if user.email.lower() in admin_emails else "customer",
    )
    try:
        new_user = await db.users.insert_one(user_db.dict(by_alias=True, exclude={"id"}))
    except DuplicateKeyError:
        raise AppException(status.HTTP_409_CONFLICT, "Email is already registered")

    logger.info("User registered", extra={"customer_id": str(new_user.inserted_id)})
    return SignupResponse(message="User registered", customer_id=str(new_user.inserted_id))

@router.post("/signin", response_model=TokenResponse)
@limiter.limit(SIGNIN_RATE)
async def signin(
    credentials: UserSignin,
    request: Request,
    db=Depends(get_database),
    config: Settings = Depends(get_settings),
):
    user = await db.users.find_one({"email": credentials.email})
    if not user or not verify_password(credentials.password, user["password_hash"]):
        raise AppException(status.HTTP_400_BAD_REQUEST, "Invalid credentials")

    token = create_access_token(
        data={"sub": str(user["_id"]), "role": user.get("role", "customer")},
        config=config,
    )
    return TokenResponse(message="Login successful", token=token)
