"""
Authentication service (users service)

Registration, login, token verification and logout. A token is valid only
while its JWT signature and expiry check out AND its session row exists,
so logout revokes immediately.
"""
import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Tuple

from storefront.core.config import settings
from storefront.core.exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidRequestError,
    PermissionDeniedError,
)
from storefront.core.security import (
    create_access_token,
    decode_token,
    get_password_hash,
    hash_token,
    verify_password,
)
from storefront.core.utils import utcnow
from storefront.services.identity_client import TokenClaims
from storefront.stores.users import AuditRecord, UserRecord, UserStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class AuthResult:
    user: UserRecord
    access_token: str
    expires_in: int


@dataclass
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuthService:
    def __init__(self, store: UserStore, token_ttl: Optional[timedelta] = None):
        self.store = store
        self.token_ttl = token_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    async def _audit(self, user_id: Optional[int], action: str, context: Optional[RequestContext], **details):
        context = context or RequestContext()
        await self.store.add_audit(AuditRecord(
            user_id=user_id,
            action=action,
            details=details,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        ))

    async def _open_session(self, user: UserRecord) -> AuthResult:
        token = create_access_token(
            {"sub": user.id, "email": user.email, "role": user.role},
            expires_delta=self.token_ttl,
        )
        await self.store.create_session(user.id, hash_token(token), utcnow() + self.token_ttl)
        return AuthResult(user=user, access_token=token, expires_in=int(self.token_ttl.total_seconds()))

    async def register(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> AuthResult:
        email = (email or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise InvalidRequestError("Invalid email format", details={"field": "email"})
        if not (first_name or "").strip() or not (last_name or "").strip():
            raise InvalidRequestError("First and last name are required", details={"field": "name"})
        if not password or len(password) < settings.PASSWORD_MIN_LENGTH:
            raise InvalidRequestError(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
                details={"field": "password"},
            )
        if await self.store.get_user_by_email(email):
            raise ConflictError("User with this email already exists", details={"email": email})

        user = await self.store.create_user(
            email=email,
            password_hash=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            role="customer",
        )
        result = await self._open_session(user)
        await self._audit(user.id, "register", context, email=email)
        logger.info("Registered user %s (%s)", user.id, email)
        return result

    async def login(self, email: str, password: str, context: Optional[RequestContext] = None) -> AuthResult:
        user = await self.store.get_user_by_email(email or "")
        if user is None or not verify_password(password or "", user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")
        if not user.is_active:
            raise PermissionDeniedError("Account is disabled", code="ACCOUNT_DISABLED")

        user = await self.store.update_user(user.id, last_login=utcnow())
        result = await self._open_session(user)
        await self._audit(user.id, "login", context)
        return result

    async def verify_token(self, token: str) -> Optional[TokenClaims]:
        """IdentityVerifier implementation: None means the token is not acceptable."""
        if not token:
            return None
        payload = decode_token(token)
        if payload is None:
            return None
        session = await self.store.get_session(hash_token(token))
        if session is None or session.expires_at <= utcnow():
            return None
        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            return None
        return TokenClaims(user_id=user_id, email=payload.get("email", ""), role=payload.get("role", "customer"))

    async def logout(self, token: str, context: Optional[RequestContext] = None) -> bool:
        claims = await self.verify_token(token)
        removed = await self.store.delete_session(hash_token(token))
        if claims is not None:
            await self._audit(claims.user_id, "logout", context)
        return removed

    async def get_profile(self, user_id: int) -> UserRecord:
        return await self.store.get_user(user_id)

    async def update_profile(
        self,
        user_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> UserRecord:
        fields = {k: v for k, v in (("first_name", first_name), ("last_name", last_name)) if v is not None}
        if not fields:
            raise InvalidRequestError("Nothing to update")
        user = await self.store.update_user(user_id, **fields)
        await self._audit(user_id, "profile_update", context, fields=sorted(fields))
        return user

    async def list_users(self, offset: int, limit: int) -> Tuple[List[UserRecord], int]:
        return await self.store.list_users(offset=offset, limit=limit)

