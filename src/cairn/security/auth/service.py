from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from cairn.security.auth.models import AuthCredential, AuthUser, Tenant
from cairn.security.auth.passwords import hash_password, needs_rehash, verify_password


class AuthService:
    def __init__(self, session: Session):
        self.session = session

    def ensure_tenant(self, tenant_id: str, *, name: Optional[str] = None) -> Tenant:
        tenant = self.session.get(Tenant, tenant_id)
        if tenant:
            return tenant
        tenant = Tenant(id=tenant_id, name=name or tenant_id, is_active=True)
        self.session.add(tenant)
        self.session.flush()
        return tenant

    def get_user(self, *, tenant_id: str, username: str) -> Optional[AuthUser]:
        return (
            self.session.query(AuthUser)
            .filter(AuthUser.tenant_id == tenant_id, AuthUser.username == username)
            .first()
        )

    def create_user(
        self,
        *,
        tenant_id: str,
        username: str,
        password: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> AuthUser:
        if self.get_user(tenant_id=tenant_id, username=username):
            raise ValueError("User already exists")

        user = AuthUser(
            id=user_id,
            tenant_id=tenant_id,
            username=username,
            email=email,
            name=name,
            is_active=True,
        )
        self.session.add(user)
        self.session.flush()

        self.session.add(AuthCredential(user_id=user.id, password_hash=hash_password(password)))
        self.session.flush()
        return user

    def set_password(self, *, tenant_id: str, username: str, password: str) -> None:
        user = self.get_user(tenant_id=tenant_id, username=username)
        if not user:
            raise ValueError("User not found")

        cred = self.session.get(AuthCredential, user.id)
        if not cred:
            self.session.add(AuthCredential(user_id=user.id, password_hash=hash_password(password)))
        else:
            cred.password_hash = hash_password(password)
        self.session.flush()

    def authenticate(self, *, tenant_id: str, username: str, password: str) -> AuthUser:
        user = self.get_user(tenant_id=tenant_id, username=username)
        if not user or not user.is_active:
            raise ValueError("Invalid credentials")

        cred = self.session.get(AuthCredential, user.id)
        if not cred or not verify_password(password, cred.password_hash):
            raise ValueError("Invalid credentials")

        if needs_rehash(cred.password_hash):
            cred.password_hash = hash_password(password)
        user.last_login = datetime.utcnow()
        self.session.flush()
        return user
