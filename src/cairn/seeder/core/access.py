from cairn.security.acl.models import UserGroup
from cairn.security.auth.models import AuthUser
from cairn.security.auth.service import AuthService
from cairn.seeder.base import BaseSeeder
from cairn.seeder.registry import SeederRegistry

SUPER_GROUP_SLUG = "administrators"


@SeederRegistry.register
class TenantSeeder(BaseSeeder):
    """Seeds the tenant every other record belongs to."""
    priority = 5

    def run(self):
        AuthService(self.session).ensure_tenant(self.tenant_id, name=self.tenant_id)
        self.log(f"Tenant '{self.tenant_id}' ready.")


@SeederRegistry.register
class AdminSeeder(BaseSeeder):
    """Seeds the admin user and the super group it belongs to."""
    priority = 10

    def run(self):
        admin = self._ensure_admin()
        group = self._ensure_super_group()
        if admin not in group.users:
            group.users.append(admin)
            self.log(f"Added '{admin.username}' to '{group.slug}'.")
        self.session.flush()

    def _ensure_admin(self) -> AuthUser:
        username = self.options.get("admin_username", "admin")
        password = self.options.get("admin_password", "admin")
        service = AuthService(self.session)
        existing = service.get_user(tenant_id=self.tenant_id, username=username)
        if existing:
            existing.is_active = True
            service.set_password(tenant_id=self.tenant_id, username=username, password=password)
            self.log(f"User '{username}' already exists. Password reset.")
            return existing

        user = service.create_user(
            tenant_id=self.tenant_id,
            username=username,
            password=password,
            email=self.options.get("admin_email", f"{username}@example.com"),
            name="Administrator",
            user_id=self.options.get("admin_user_id"),
        )
        self.log(f"Created user '{username}'.")
        return user

    def _ensure_super_group(self) -> UserGroup:
        group = (
            self.session.query(UserGroup)
            .filter_by(tenant_id=self.tenant_id, slug=SUPER_GROUP_SLUG)
            .first()
        )
        if group:
            group.super_group = True
            return group

        group = UserGroup(
            tenant_id=self.tenant_id,
            name="Administrators",
            slug=SUPER_GROUP_SLUG,
            description="Full access to every registered resource",
            super_group=True,
            priority=0,
        )
        self.session.add(group)
        self.session.flush()
        self.log(f"Created super group '{SUPER_GROUP_SLUG}'.")
        return group
