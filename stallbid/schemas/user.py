from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from stallbid.enums import AuthProvider, UserRole


class User(BaseModel):
    student_id: int = Field(..., alias="studentId")
    student_name: str = Field("", alias="studentName")
    student_email: str = Field(..., alias="studentEmail")
    collage_id: Optional[str] = Field(None, alias="collageId")
    phone: Optional[str] = None
    department: Optional[str] = None
    year: Optional[int] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    role: UserRole = UserRole.user
    profile_picture: Optional[str] = Field(None, alias="profilePicture")
    email_verified: bool = Field(False, alias="emailVerified")
    active: bool = True
    auth_provider: Optional[AuthProvider] = Field(None, alias="authProvider")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_login: Optional[datetime] = Field(None, alias="lastLogin")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def is_bidder(self) -> bool:
        return self.role in (UserRole.bidder, UserRole.admin)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


class LoginRequest(BaseModel):
    student_email: str = Field(..., alias="studentEmail")
    password: str = Field(..., min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class AuthResponse(BaseModel):
    success: bool = False
    message: str = ""
    token: Optional[str] = None
    user: Optional[User] = None
    email: Optional[str] = None
    requires_verification: bool = Field(False, alias="requiresVerification")
    code: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")
