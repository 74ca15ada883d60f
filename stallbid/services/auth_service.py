import json
from typing import Optional
from urllib.parse import unquote

from loguru import logger
from pydantic import ValidationError

from stallbid.core.config import settings
from stallbid.core.session import SessionContext
from stallbid.schemas.user import AuthResponse, LoginRequest, User
from stallbid.services.api_client import ApiClient

DEFAULT_REDIRECT = "/dashboard"
ADMIN_REDIRECT = "/admin"


class AuthService:
    def __init__(self, api: ApiClient, session: SessionContext):
        self.api = api
        self.session = session

    async def _establish(self, data) -> AuthResponse:
        response = AuthResponse.model_validate(data or {})
        if response.success and response.token and response.user:
            await self.session.save(response.token, response.user)
        return response

    async def login(self, email: str, password: str) -> AuthResponse:
        request = LoginRequest(student_email=email, password=password)
        response = await self._establish(await self.api.post("/auth/login", json=request.model_dump(by_alias=True)))
        if response.requires_verification:
            logger.info(f"Login for {email} needs OTP verification")
        return response

    async def verify_otp(self, email: str, otp: str) -> AuthResponse:
        data = await self.api.post("/auth/verify-otp", params={"email": email, "otp": otp}, json={})
        return await self._establish(data)

    async def resend_otp(self, email: str) -> AuthResponse:
        return AuthResponse.model_validate(
            await self.api.post("/auth/resend-otp", params={"email": email}, json={}) or {}
        )

    async def begin_oauth(self, return_to: str) -> str:
        """Remember where to come back to; returns the provider URL to open"""
        await self.session.set_oauth_redirect(return_to)
        return settings.google_oauth_url

    async def handle_oauth_callback(self, token: str, user_json: str) -> Optional[str]:
        """Store the session from the OAuth redirect. Returns the path to continue to, None on failure."""
        try:
            user = User.model_validate(json.loads(unquote(user_json)))
        except (ValueError, ValidationError) as e:
            logger.error(f"OAuth callback error: {e}")
            return None

        await self.session.save(token, user)
        if user.is_admin:
            await self.session.set_oauth_redirect(None)
            return ADMIN_REDIRECT
        return await self.session.pop_oauth_redirect(DEFAULT_REDIRECT)

    async def get_current_user(self) -> User:
        user = User.model_validate(await self.api.get("/auth/me"))
        await self.session.update_user(user)
        return user

    async def logout(self) -> None:
        await self.session.clear()
        logger.info("Logged out")
