"""Authentication service - login, device challenge, refresh and logout flows."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.config import Settings
from authcore.core.config import settings as default_settings
from authcore.core.request_utils import DeviceContext
from authcore.models.base import utcnow
from authcore.models.principal import Principal
from authcore.services.blacklist import TokenBlacklist
from authcore.services.device_trust import DeviceTrustGate, mask_email
from authcore.services.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidCredentialsError,
    TokenError,
    ValidationError,
)
from authcore.services.lockout import LockoutGuard
from authcore.services.notifications import (
    TEMPLATE_LOGIN_ALERT,
    TEMPLATE_OTP_CODE,
    Notifier,
    get_notifier,
    notify_best_effort,
)
from authcore.services.otp import (
    EMAIL_LOGIN_TTL_MINUTES,
    OTP_PURPOSES,
    OTP_TTL_MINUTES,
    OneTimeCodeService,
)
from authcore.services.principals import (
    PrincipalDirectory,
    burn_dummy_verification,
    hash_secret,
    verify_secret,
)
from authcore.services.revocation import RevocationAuthority
from authcore.services.rotation import RotationCoordinator
from authcore.services.tokens import CredentialIssuer, TokenBundle, decode_token

logger = logging.getLogger(__name__)

INVALID_PHONE_OR_PIN = "Invalid phone number or PIN"
INVALID_EMAIL_OR_PASSWORD = "Invalid email or password"
INVALID_OTP = "OTP is invalid or has expired"
UNAUTHORIZED = "Unauthorized"


@dataclass
class LoginResult:
    """Outcome of a login step: either tokens or a one-time-code challenge."""

    principal: Principal
    tokens: TokenBundle | None = None
    requires_otp: bool = False
    send_to: str | None = None


class AuthService:
    """Composes the credential, device-trust, OTP, lockout and revocation parts."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        blacklist: TokenBlacklist | None = None,
    ):
        self.session = session
        self.settings = settings or default_settings
        self.notifier = notifier or get_notifier()
        self.principals = PrincipalDirectory(session)
        self.issuer = CredentialIssuer(session, self.settings)
        self.codes = OneTimeCodeService(session, self.settings)
        self.devices = DeviceTrustGate(session)
        self.lockout = LockoutGuard(session, self.settings)
        self.revocation = RevocationAuthority(session, blacklist, self.settings)

    # --- Login ---

    @staticmethod
    def _require_device(device: DeviceContext) -> str:
        if not device.device_id:
            raise ValidationError("X-Device-Id header is required")
        return device.device_id

    @staticmethod
    def _assert_active(principal: Principal) -> None:
        if not principal.is_active:
            raise AuthorizationError(principal.banned_reason or "Account has been disabled")

    async def login_with_pin(self, phone: str, pin: str, device: DeviceContext) -> LoginResult:
        """Phone + PIN login.

        Raises InvalidCredentialsError for both "unknown phone" and "wrong PIN"
        to prevent account enumeration. An unrecognized device gets a login
        challenge instead of tokens.
        """
        self._require_device(device)
        principal = await self.principals.get_by_phone(phone)

        if principal is None:
            # Perform a dummy hash to prevent timing attacks
            burn_dummy_verification(pin)
            await self.lockout.record_failure(phone, None, device)
            raise InvalidCredentialsError(INVALID_PHONE_OR_PIN)

        await self.lockout.enforce(principal, phone)

        if not verify_secret(pin, principal.pin_hash):
            await self.lockout.record_failure(phone, principal.id, device)
            raise InvalidCredentialsError(INVALID_PHONE_OR_PIN)

        # Account state is only revealed to a caller holding the right PIN
        self._assert_active(principal)
        if principal.email_verified_at is None:
            raise AuthorizationError(
                "Email is not verified. Sign in with your email to verify it first."
            )

        if not await self.devices.is_trusted(principal.id, device.device_id):
            logger.info(
                "Unrecognized device, sending login challenge",
                extra={"principal_id": str(principal.id), "device_id": device.device_id},
            )
            return await self._challenge(principal, "login", OTP_TTL_MINUTES["login"])

        await self.devices.record_login(principal.id, device)
        await self.lockout.clear(phone)
        tokens = await self.issuer.issue(principal, device)
        await self.session.commit()
        logger.info("Principal logged in", extra={"principal_id": str(principal.id)})
        return LoginResult(principal, tokens=tokens)

    async def login_with_email(
        self, email: str, password: str, device: DeviceContext
    ) -> LoginResult:
        """Email + password login. Always answered with a login challenge."""
        identity = email.strip().lower()
        principal = await self.principals.get_by_email(identity)

        if principal is None:
            burn_dummy_verification(password)
            await self.lockout.record_failure(identity, None, device)
            raise InvalidCredentialsError(INVALID_EMAIL_OR_PASSWORD)

        await self.lockout.enforce(principal, identity)

        if not verify_secret(password, principal.password_hash):
            await self.lockout.record_failure(identity, principal.id, device)
            raise InvalidCredentialsError(INVALID_EMAIL_OR_PASSWORD)

        self._assert_active(principal)

        return await self._challenge(principal, "login", EMAIL_LOGIN_TTL_MINUTES)

    async def _challenge(self, principal: Principal, purpose: str, ttl_minutes: int) -> LoginResult:
        code = await self.codes.issue(principal.id, purpose, ttl_minutes)
        # The code must be durable before it is delivered
        await self.session.commit()
        await notify_best_effort(
            self.notifier,
            principal.email,
            TEMPLATE_OTP_CODE,
            {"name": principal.full_name, "code": code.code, "purpose": purpose},
        )
        return LoginResult(principal, requires_otp=True, send_to=mask_email(principal.email))

    async def verify_login_otp(
        self, identity: str, code: str, device: DeviceContext
    ) -> LoginResult:
        """Finalize a challenged login: trust the device and issue tokens."""
        self._require_device(device)
        principal = await self.principals.get_by_identity(identity)
        if principal is None:
            raise InvalidCredentialsError(INVALID_OTP)
        self._assert_active(principal)

        row = await self.codes.verify(principal.id, "login", code)
        if row is None:
            raise InvalidCredentialsError(INVALID_OTP)

        if principal.email_verified_at is None:
            principal.email_verified_at = utcnow()

        record = await self.devices.record_login(principal.id, device)
        await self.lockout.clear(principal.phone_number)
        if principal.email:
            await self.lockout.clear(principal.email)
        tokens = await self.issuer.issue(principal, device)
        await self.session.commit()

        await notify_best_effort(
            self.notifier,
            principal.email,
            TEMPLATE_LOGIN_ALERT,
            {
                "full_name": principal.full_name,
                "logged_in_at": record.logged_in_at.isoformat(),
                "ip_address": record.ip_address,
                "user_agent": record.user_agent,
                "device_type": record.device_type,
                "platform": record.platform,
                "browser": record.browser,
                "country": record.country,
                "city": record.city,
            },
        )
        logger.info(
            "Principal logged in on new device",
            extra={"principal_id": str(principal.id), "device_id": device.device_id},
        )
        return LoginResult(principal, tokens=tokens)

    # --- One-time code delivery (anti-enumeration: always success-shaped) ---

    async def resend_otp(self, identity: str, purpose: str) -> dict[str, Any]:
        if purpose not in OTP_PURPOSES:
            raise ValidationError(f"purpose must be one of: {', '.join(OTP_PURPOSES)}")
        ttl = OTP_TTL_MINUTES[purpose]
        response = {"purpose": purpose, "ttl_mins": ttl}

        principal = await self.principals.get_by_identity(identity)
        if principal is None:
            return response
        if purpose == "email_verification" and principal.email_verified_at is not None:
            return response

        await self.codes.check_resend_allowed(principal.id, purpose)
        await self._send_code(principal, purpose, ttl)
        return response

    async def forgot_pin(self, phone: str) -> None:
        principal = await self.principals.get_by_phone(phone)
        if principal is not None:
            await self._send_code(principal, "reset_pin", OTP_TTL_MINUTES["reset_pin"])

    async def forgot_password(self, email: str) -> None:
        principal = await self.principals.get_by_email(email)
        if principal is not None:
            await self._send_code(principal, "reset_password", OTP_TTL_MINUTES["reset_password"])

    async def _send_code(self, principal: Principal, purpose: str, ttl_minutes: int) -> None:
        code = await self.codes.issue(principal.id, purpose, ttl_minutes)
        await self.session.commit()
        await notify_best_effort(
            self.notifier,
            principal.email,
            TEMPLATE_OTP_CODE,
            {"name": principal.full_name, "code": code.code, "purpose": purpose},
        )

    # --- Credential changes ---

    async def reset_pin(self, phone: str, code: str, new_pin: str) -> None:
        """Set a new PIN from a reset code and kill every existing session."""
        principal = await self.principals.get_by_phone(phone)
        if principal is None:
            raise ValidationError(INVALID_OTP)
        if await self.codes.verify(principal.id, "reset_pin", code) is None:
            raise ValidationError(INVALID_OTP)

        principal.pin_hash = hash_secret(new_pin)
        await self.revocation.revoke_all_for_user(principal, bump_version=True)
        logger.info("PIN reset", extra={"principal_id": str(principal.id)})

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        """Set a new password from a reset code and kill every existing session."""
        principal = await self.principals.get_by_email(email)
        if principal is None:
            raise ValidationError(INVALID_OTP)
        if await self.codes.verify(principal.id, "reset_password", code) is None:
            raise ValidationError(INVALID_OTP)

        principal.password_hash = hash_secret(new_password)
        await self.revocation.revoke_all_for_user(principal, bump_version=True)
        logger.info("Password reset", extra={"principal_id": str(principal.id)})

    async def change_pin(self, principal: Principal, current_pin: str, new_pin: str) -> None:
        """Change the PIN and invalidate all existing tokens."""
        if not verify_secret(current_pin, principal.pin_hash):
            raise InvalidCredentialsError("Current PIN is incorrect")

        principal.pin_hash = hash_secret(new_pin)
        await self.revocation.revoke_all_for_user(principal, bump_version=True)
        logger.info("PIN changed", extra={"principal_id": str(principal.id)})

    async def change_password(
        self, principal: Principal, current_password: str, new_password: str
    ) -> None:
        """Change the password and invalidate all existing tokens."""
        if not verify_secret(current_password, principal.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        principal.password_hash = hash_secret(new_password)
        await self.revocation.revoke_all_for_user(principal, bump_version=True)
        logger.info("Password changed", extra={"principal_id": str(principal.id)})

    # --- Tokens ---

    async def refresh(self, refresh_token: str) -> TokenBundle:
        return await RotationCoordinator(self.session, self.settings).rotate(refresh_token)

    async def logout(self, refresh_token: str | None, access_token: str | None) -> None:
        """Revoke one refresh session and deny the caller's access token.

        Both steps are best-effort; a bad token never fails the logout.
        """
        await self.revocation.revoke_by_token(refresh_token)
        await self.session.commit()
        await self.revocation.blacklist_access_token(access_token)

    async def logout_all(self, principal: Principal, access_token: str | None) -> int:
        """Revoke every session, bump token_version and deny the current token."""
        count = await self.revocation.revoke_all_for_user(principal, bump_version=True)
        await self.revocation.blacklist_access_token(access_token)
        return count

    async def authenticate_access_token(self, token: str) -> Principal:
        """Resolve the principal behind an access token.

        Checked on every request: signature and expiry, blacklist, principal
        existence, active flag and token_version (re-read from the store).
        Every token failure surfaces as the same AuthenticationError.
        """
        try:
            claims = decode_token(token, expected_type="access", settings=self.settings)
        except TokenError as e:
            logger.debug(f"Access token rejected: {e.message}")
            raise AuthenticationError(UNAUTHORIZED) from None

        if await self.revocation.blacklist.contains(claims.jti):
            logger.info("Blacklisted access token presented", extra={"jti": claims.jti})
            raise AuthenticationError(UNAUTHORIZED)

        principal = await self.principals.get_by_id(claims.principal_id)
        if principal is None:
            raise AuthenticationError(UNAUTHORIZED)
        self._assert_active(principal)
        if claims.token_version < principal.token_version:
            logger.info(
                "Stale token_version presented", extra={"principal_id": str(principal.id)}
            )
            raise AuthenticationError(UNAUTHORIZED)
        return principal
