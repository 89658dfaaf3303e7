from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    """Public profile returned by auth endpoints"""

    id: str
    email: str
    firstName: str = Field(validation_alias="first_name")
    lastName: str = Field(validation_alias="last_name")
    phone: Optional[str] = None
    avatar: Optional[str] = None
    isHost: bool = Field(validation_alias="is_host")
    isAgent: bool = Field(validation_alias="is_agent")
    isVerified: bool = Field(validation_alias="is_verified")
    isAdmin: bool = Field(False, validation_alias="is_admin")
    kycStatus: Optional[str] = Field(None, validation_alias="kyc_status")
    verificationLevel: Optional[str] = Field(None, validation_alias="verification_level")
    createdAt: Optional[datetime] = Field(None, validation_alias="created_at")

    class Config:
        from_attributes = True


class UserProfileResponse(UserResponse):
    """Extended profile for the owner"""

    status: Optional[str] = None
    companyName: Optional[str] = Field(None, validation_alias="company_name")
    licenseNumber: Optional[str] = Field(None, validation_alias="license_number")
    nationality: Optional[str] = None
    dateOfBirth: Optional[str] = Field(None, validation_alias="date_of_birth")
    gender: Optional[str] = None
    occupation: Optional[str] = None
    bio: Optional[str] = None
    language: Optional[str] = None
    emirate: Optional[str] = None
    city: Optional[str] = None
    emiratesId: Optional[str] = Field(None, validation_alias="emirates_id")
    passportNumber: Optional[str] = Field(None, validation_alias="passport_number")
    lastLoginAt: Optional[datetime] = Field(None, validation_alias="last_login_at")
    updatedAt: Optional[datetime] = Field(None, validation_alias="updated_at")
