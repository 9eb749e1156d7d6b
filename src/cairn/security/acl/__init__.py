from cairn.security.acl.actions import ALL_ACTIONS, Action, parse_actions
from cairn.security.acl.cache import MemorySessionStore, ResolutionCache
from cairn.security.acl.permission_map import EMPTY_PERMISSION_MAP, EffectivePermissionMap
from cairn.security.acl.query import is_authorized
from cairn.security.acl.registry import MenuItem, Package, PackageRegistry, ResourceRegistry
from cairn.security.acl.resolver import ConflictPolicy, PermissionResolver, merge_rules
from cairn.security.acl.rules import WILDCARD, AccessRule, Group, Subject
from cairn.security.acl.service import AccessControlService
from cairn.security.acl.store import RuleStore, SQLRuleStore

__all__ = [
    "ALL_ACTIONS",
    "Action",
    "parse_actions",
    "MemorySessionStore",
    "ResolutionCache",
    "EMPTY_PERMISSION_MAP",
    "EffectivePermissionMap",
    "is_authorized",
    "MenuItem",
    "Package",
    "PackageRegistry",
    "ResourceRegistry",
    "ConflictPolicy",
    "PermissionResolver",
    "merge_rules",
    "WILDCARD",
    "AccessRule",
    "Group",
    "Subject",
    "AccessControlService",
    "RuleStore",
    "SQLRuleStore",
]
