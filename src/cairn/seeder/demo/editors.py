from cairn.security.acl.models import AccessRuleRecord, UserGroup
from cairn.security.auth.service import AuthService
from cairn.seeder.base import BaseSeeder
from cairn.seeder.registry import SeederRegistry

EDITOR_GROUP_SLUG = "editors"
REVIEWER_GROUP_SLUG = "reviewers"


@SeederRegistry.register
class EditorDemoSeeder(BaseSeeder):
    """
    Seeds an editors group managing the categories package, a reviewers group
    that may only read it, and a handful of Faker generated members.

    The last editor also gets a user rule revoking category deletes, which
    shows the user-over-group overlay.
    """
    priority = 500

    def run(self):
        if self._group(EDITOR_GROUP_SLUG) is not None:
            self.log("Demo groups already exist. Skipping demo generation.")
            return

        editors = self._create_group(EDITOR_GROUP_SLUG, "Editors", priority=10)
        reviewers = self._create_group(REVIEWER_GROUP_SLUG, "Reviewers", priority=20)

        self._rule(
            controller="*", package="categories", user_group_id=editors.id,
            create_access=True, read_access=True, update_access=True, delete_access=True,
        )
        self._rule(
            controller="*", package="categories", user_group_id=reviewers.id,
            create_access=False, read_access=True, update_access=False, delete_access=False,
        )

        count = int(self.options.get("demo_users", 5))
        self.log(f"Generating {count} demo editors...")
        service = AuthService(self.session)
        password = self.options.get("demo_password", "demo")
        last = None
        for index in range(count):
            username = self._unique_username()
            user = service.create_user(
                tenant_id=self.tenant_id,
                username=username,
                password=password,
                email=self.fake.email(),
                name=self.fake.name(),
            )
            (editors if index % 2 == 0 else reviewers).users.append(user)
            last = user
        self.session.flush()

        if last is not None:
            self._rule(
                controller="categories", package="categories", user_id=last.id,
                create_access=False, read_access=True, update_access=True, delete_access=False,
            )
        self.log(f"Inserted {count} demo users.")

    def _group(self, slug: str):
        return self.session.query(UserGroup).filter_by(tenant_id=self.tenant_id, slug=slug).first()

    def _create_group(self, slug: str, name: str, priority: int) -> UserGroup:
        group = UserGroup(
            tenant_id=self.tenant_id,
            name=name,
            slug=slug,
            description=self.fake.sentence(nb_words=6),
            super_group=False,
            priority=priority,
        )
        self.session.add(group)
        self.session.flush()
        return group

    def _rule(self, **fields) -> AccessRuleRecord:
        rule = AccessRuleRecord(tenant_id=self.tenant_id, **fields)
        self.session.add(rule)
        return rule

    def _unique_username(self) -> str:
        service = AuthService(self.session)
        while True:
            candidate = self.fake.unique.user_name()
            if service.get_user(tenant_id=self.tenant_id, username=candidate) is None:
                return candidate
