import base64
import binascii
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..email_service import EmailDeliveryError, send_email_verification, send_password_reset_email
from ..models import User
from ..rate_limiter import auth_rate_limit
from ..security_utils import (
    EMAIL_VERIFICATION_MAX_AGE,
    PASSWORD_RESET_MAX_AGE,
    create_access_token,
    generate_timed_token,
    hash_password,
    verify_password,
    verify_timed_token,
)
from ..services.google_service import verify_google_id_token
from ..services.storage_service import DOCUMENT_TYPES, upload_document
from ..shared.validators import validate_email, validate_phone
from ..utils.serializers import serialize_profile, serialize_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

EMAIL_VERIFICATION_PURPOSE = "email-verification"
PASSWORD_RESET_PURPOSE = "password-reset"

PROFILE_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "phone": "phone",
    "avatar": "avatar",
    "bio": "bio",
    "nationality": "nationality",
    "dateOfBirth": "date_of_birth",
    "gender": "gender",
    "occupation": "occupation",
    "language": "language",
    "emirate": "emirate",
    "city": "city",
    "companyName": "company_name",
    "licenseNumber": "license_number",
}


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=8)
    firstName: str = Field(..., min_length=1, max_length=100)
    lastName: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None
    role: Literal["guest", "host", "agent"] = "guest"
    companyName: Optional[str] = None
    licenseNumber: Optional[str] = None
    acceptTerms: bool

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        return validate_phone(v)

    @field_validator("acceptTerms")
    @classmethod
    def must_accept_terms(cls, v):
        if v is not True:
            raise ValueError("Must accept terms")
        return v

    @model_validator(mode="after")
    def agent_needs_company(self):
        if self.role == "agent" and not (self.companyName or "").strip():
            raise ValueError("Company name is required for real estate agents")
        return self


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class ProfileUpdate(BaseModel):
    firstName: Optional[str] = Field(None, min_length=1, max_length=100)
    lastName: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=2000)
    nationality: Optional[str] = None
    dateOfBirth: Optional[str] = None
    gender: Optional[str] = None
    occupation: Optional[str] = None
    language: Optional[str] = None
    emirate: Optional[str] = None
    city: Optional[str] = None
    companyName: Optional[str] = None
    licenseNumber: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        return validate_phone(v)


class DocumentUpload(BaseModel):
    documentType: str
    file: str  # base64, optionally a data: URL
    filename: str
    mimeType: str

    @field_validator("documentType")
    @classmethod
    def validate_document_type(cls, v):
        if v not in DOCUMENT_TYPES:
            raise ValueError("Invalid document type")
        return v


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class EmailRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=8)


class GoogleAuthRequest(BaseModel):
    idToken: str = Field(..., min_length=1)
    role: Literal["guest", "host", "agent"] = "guest"


def auth_payload(user: User) -> dict:
    return {"user": serialize_user(user), "token": create_access_token(user.id, user.email)}


async def _send_verification(user: User) -> None:
    token = generate_timed_token({"user_id": user.id, "email": user.email}, EMAIL_VERIFICATION_PURPOSE)
    try:
        await send_email_verification(user.email, user.first_name, token)
    except EmailDeliveryError as e:
        logger.error(f"❌ Verification email failed for {user.email}: {e}")


# ============================================================================
# REGISTRATION AND LOGIN
# ============================================================================


@router.post("/register", status_code=201, dependencies=[Depends(auth_rate_limit)])
async def register(data: RegisterRequest, db: Session = Depends(get_db)):
    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        first_name=data.firstName.strip(),
        last_name=data.lastName.strip(),
        phone=data.phone,
        is_host=data.role == "host",
        is_agent=data.role == "agent",
        company_name=data.companyName,
        license_number=data.licenseNumber,
        accepted_terms_at=datetime.utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ User registered: {user.email} (role={data.role})")

    await _send_verification(user)

    return {
        "success": True,
        "message": "Registration successful. Please check your email for verification.",
        "data": auth_payload(user),
    }


@router.post("/login", dependencies=[Depends(auth_rate_limit)])
async def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if not user or not verify_password(data.password, user.password_hash):
        logger.warning(f"⚠️ Failed login for {data.email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if user.is_suspended or user.status == "suspended":
        raise HTTPException(status_code=401, detail="Account suspended")
    if not user.is_active or user.status == "deleted":
        raise HTTPException(status_code=401, detail="Account is inactive")

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)

    return {"success": True, "message": "Login successful", "data": auth_payload(user)}


@router.post("/google", dependencies=[Depends(auth_rate_limit)])
async def google_auth(data: GoogleAuthRequest, db: Session = Depends(get_db)):
    """Sign in (or sign up) with a Google ID token"""
    claims = await verify_google_id_token(data.idToken)
    email = claims["email"].lower()
    google_id = claims.get("sub")

    is_new_user = False
    user = db.query(User).filter(User.google_id == google_id).first() if google_id else None
    if not user:
        user = db.query(User).filter(User.email == email).first()

    if user:
        if user.is_suspended or user.status == "suspended":
            raise HTTPException(status_code=401, detail="Account suspended")
        if not user.is_active or user.status == "deleted":
            raise HTTPException(status_code=401, detail="Account is inactive")
        user.google_id = user.google_id or google_id
        user.is_verified = True
        if not user.avatar and claims.get("picture"):
            user.avatar = claims["picture"]
    else:
        is_new_user = True
        user = User(
            email=email,
            first_name=claims.get("given_name") or email.split("@")[0],
            last_name=claims.get("family_name") or "",
            avatar=claims.get("picture"),
            google_id=google_id,
            is_verified=True,
            verified_at=datetime.utcnow(),
            is_host=data.role == "host",
            is_agent=data.role == "agent",
            accepted_terms_at=datetime.utcnow(),
        )
        db.add(user)

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"✅ Google sign-in for {email} (new={is_new_user})")

    return {"success": True, "data": {**auth_payload(user), "isNewUser": is_new_user}}


@router.post("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    return {"success": True, "message": "Logged out successfully"}


@router.post("/refresh-token")
async def refresh_token(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": {"token": create_access_token(current_user.id, current_user.email)}}


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": serialize_user(current_user)}


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": serialize_profile(current_user)}


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updates = {PROFILE_FIELDS[k]: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    for field, value in updates.items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)

    return {"success": True, "message": "Profile updated successfully", "data": serialize_profile(current_user)}


@router.post("/upload-document")
async def upload_kyc_document(
    data: DocumentUpload,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    encoded = data.file.split(",", 1)[1] if data.file.startswith("data:") else data.file
    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid file encoding") from e

    url = await upload_document(db, current_user, data.documentType, content, data.filename, data.mimeType)
    return {
        "success": True,
        "message": "Document uploaded successfully",
        "data": {"documentType": data.documentType, "url": url, "kycStatus": current_user.kyc_status},
    }


# ============================================================================
# EMAIL VERIFICATION AND PASSWORD RESET
# ============================================================================


@router.post("/verify-email")
async def verify_email(data: TokenRequest, db: Session = Depends(get_db)):
    payload = verify_timed_token(data.token, EMAIL_VERIFICATION_PURPOSE, EMAIL_VERIFICATION_MAX_AGE)
    if not payload:
        raise HTTPException(status_code=400, detail="Invalid or expired verification token")

    user = db.query(User).filter(User.id == payload.get("user_id")).first()
    if not user or user.email != payload.get("email"):
        raise HTTPException(status_code=400, detail="Invalid or expired verification token")

    user.is_verified = True
    user.verified_at = user.verified_at or datetime.utcnow()
    if user.verification_level == "unverified":
        user.verification_level = "email_verified"
    db.commit()
    logger.info(f"✅ Email verified for {user.email}")

    return {"success": True, "message": "Email verified successfully"}


@router.post("/resend-verification", dependencies=[Depends(auth_rate_limit)])
async def resend_verification(data: EmailRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if user and not user.is_verified:
        await _send_verification(user)
    return {
        "success": True,
        "message": "If an unverified account exists for this email, a verification link has been sent.",
    }


@router.post("/forgot-password", dependencies=[Depends(auth_rate_limit)])
async def forgot_password(data: EmailRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()
    if user and user.is_active:
        token = generate_timed_token({"user_id": user.id, "email": user.email}, PASSWORD_RESET_PURPOSE)
        try:
            await send_password_reset_email(user.email, user.first_name, token)
        except EmailDeliveryError as e:
            logger.error(f"❌ Password reset email failed for {user.email}: {e}")
    return {
        "success": True,
        "message": "If an account exists for this email, a password reset link has been sent.",
    }


@router.post("/reset-password", dependencies=[Depends(auth_rate_limit)])
async def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    payload = verify_timed_token(data.token, PASSWORD_RESET_PURPOSE, PASSWORD_RESET_MAX_AGE)
    if not payload:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user = db.query(User).filter(User.id == payload.get("user_id")).first()
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    user.password_hash = hash_password(data.newPassword)
    db.commit()
    logger.info(f"🔑 Password reset for {user.email}")

    return {"success": True, "message": "Password reset successfully"}
