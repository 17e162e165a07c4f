"""
User account stores (users service)

Accounts, login sessions (keyed by token digest) and the audit trail.
"""
import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.core.database import ping as db_ping
from storefront.core.exceptions import ConflictError, UserNotFoundError
from storefront.core.ids import SequenceIdGenerator
from storefront.core.utils import utcnow
from storefront.models import User, UserAuditLog, UserSession

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("first_name", "last_name", "last_login", "is_active", "role")


@dataclass
class UserRecord:
    id: int
    email: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "customer"
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


@dataclass
class SessionRecord:
    user_id: int
    token_hash: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class AuditRecord:
    user_id: Optional[int]
    action: str
    details: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore(ABC):
    @abstractmethod
    async def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: str = "customer",
    ) -> UserRecord:
        """Raises ConflictError when the email is taken."""

    @abstractmethod
    async def get_user(self, user_id: int) -> UserRecord:
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def update_user(self, user_id: int, **fields) -> UserRecord:
        ...

    @abstractmethod
    async def list_users(self, offset: int = 0, limit: int = 20) -> Tuple[List[UserRecord], int]:
        ...

    @abstractmethod
    async def create_session(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        ...

    @abstractmethod
    async def get_session(self, token_hash: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    async def delete_session(self, token_hash: str) -> bool:
        ...

    @abstractmethod
    async def add_audit(self, record: AuditRecord) -> None:
        ...

    @abstractmethod
    async def list_audit(self, user_id: int) -> List[AuditRecord]:
        ...

    @abstractmethod
    async def ping(self) -> None:
        ...


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update user fields: {sorted(unknown)}")


class InMemoryUserStore(UserStore):
    def __init__(self, id_generator: Optional[SequenceIdGenerator] = None):
        self._users: Dict[int, UserRecord] = {}
        self._by_email: Dict[str, int] = {}
        self._sessions: Dict[str, SessionRecord] = {}
        self._audit: List[AuditRecord] = []
        self._ids = id_generator or SequenceIdGenerator()
        self._lock = asyncio.Lock()

    def add_user(self, email: str, password_hash: str, **fields) -> UserRecord:
        """Synchronous insert used for seeding."""
        email = normalize_email(email)
        if email in self._by_email:
            raise ConflictError("User with this email already exists", details={"email": email})
        user = UserRecord(id=self._ids.next_int(), email=email, password_hash=password_hash, **fields)
        self._users[user.id] = user
        self._by_email[email] = user.id
        return user

    async def create_user(self, email, password_hash, first_name=None, last_name=None, role="customer"):
        async with self._lock:
            user = self.add_user(
                email, password_hash, first_name=first_name, last_name=last_name, role=role,
            )
            return dataclasses.replace(user)

    async def get_user(self, user_id: int) -> UserRecord:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found", details={"user_id": user_id})
            return dataclasses.replace(user)

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._lock:
            user_id = self._by_email.get(normalize_email(email))
            return dataclasses.replace(self._users[user_id]) if user_id is not None else None

    async def update_user(self, user_id: int, **fields) -> UserRecord:
        _check_fields(fields)
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found", details={"user_id": user_id})
            for key, value in fields.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            return dataclasses.replace(user)

    async def list_users(self, offset: int = 0, limit: int = 20) -> Tuple[List[UserRecord], int]:
        async with self._lock:
            users = sorted(self._users.values(), key=lambda u: (u.created_at, u.id), reverse=True)
            return [dataclasses.replace(u) for u in users[offset:offset + limit]], len(users)

    async def create_session(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        async with self._lock:
            self._sessions[token_hash] = SessionRecord(user_id, token_hash, expires_at)

    async def get_session(self, token_hash: str) -> Optional[SessionRecord]:
        async with self._lock:
            session = self._sessions.get(token_hash)
            return dataclasses.replace(session) if session else None

    async def delete_session(self, token_hash: str) -> bool:
        async with self._lock:
            return self._sessions.pop(token_hash, None) is not None

    async def add_audit(self, record: AuditRecord) -> None:
        async with self._lock:
            self._audit.append(record)

    async def list_audit(self, user_id: int) -> List[AuditRecord]:
        async with self._lock:
            return [dataclasses.replace(r) for r in self._audit if r.user_id == user_id]

    async def ping(self) -> None:
        return None


def _user_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        password_hash=user.password_hash,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role,
        is_active=user.is_active,
        last_login=user.last_login,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


class SqlUserStore(UserStore):
    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    async def create_user(self, email, password_hash, first_name=None, last_name=None, role="customer"):
        email = normalize_email(email)
        user = User(
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=True,
        )
        async with self._sessionmaker() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError("User with this email already exists", details={"email": email}) from e
            await session.refresh(user)
            return _user_record(user)

    async def get_user(self, user_id: int) -> UserRecord:
        async with self._sessionmaker() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found", details={"user_id": user_id})
            return _user_record(user)

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(User).where(User.email == normalize_email(email)))
            user = result.scalar_one_or_none()
            return _user_record(user) if user else None

    async def update_user(self, user_id: int, **fields) -> UserRecord:
        _check_fields(fields)
        async with self._sessionmaker() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found", details={"user_id": user_id})
            for key, value in fields.items():
                setattr(user, key, value)
            await session.commit()
            await session.refresh(user)
            return _user_record(user)

    async def list_users(self, offset: int = 0, limit: int = 20) -> Tuple[List[UserRecord], int]:
        async with self._sessionmaker() as session:
            total = (await session.execute(select(func.count(User.id)))).scalar_one()
            result = await session.execute(
                select(User).order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit)
            )
            return [_user_record(u) for u in result.scalars().all()], total

    async def create_session(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        async with self._sessionmaker() as session:
            session.add(UserSession(user_id=user_id, token_hash=token_hash, expires_at=expires_at))
            await session.commit()

    async def get_session(self, token_hash: str) -> Optional[SessionRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(UserSession).where(UserSession.token_hash == token_hash))
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return SessionRecord(row.user_id, row.token_hash, row.expires_at, row.created_at)

    async def delete_session(self, token_hash: str) -> bool:
        async with self._sessionmaker() as session:
            result = await session.execute(delete(UserSession).where(UserSession.token_hash == token_hash))
            await session.commit()
            return result.rowcount > 0

    async def add_audit(self, record: AuditRecord) -> None:
        async with self._sessionmaker() as session:
            session.add(UserAuditLog(
                user_id=record.user_id,
                action=record.action,
                details=record.details,
                ip_address=record.ip_address,
                user_agent=record.user_agent,
            ))
            await session.commit()

    async def list_audit(self, user_id: int) -> List[AuditRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(UserAuditLog).where(UserAuditLog.user_id == user_id).order_by(UserAuditLog.id)
            )
            return [
                AuditRecord(r.user_id, r.action, r.details or {}, r.ip_address, r.user_agent, r.created_at)
                for r in result.scalars().all()
            ]

    async def ping(self) -> None:
        await db_ping(self._sessionmaker)
