"""
Resource registry: which package owns which controller.

The resolver only needs the read side (`resolve`, `resources_of`,
`all_resources`). `PackageRegistry` is the in-memory implementation used by
the application; packages are registered from manifests at startup.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from cairn.exceptions.handlers import ConfigurationError

logger = logging.getLogger(__name__)


@runtime_checkable
class ResourceRegistry(Protocol):
    def resolve(self, resource_id: str) -> Optional[str]:
        """Return the package owning `resource_id`, or None when unknown."""

    def resources_of(self, package: str) -> Sequence[str]:
        """Resources owned by `package` in registration order (may be empty)."""

    def all_resources(self) -> Sequence[str]:
        """Every registered resource in registration order."""

    def has_package(self, name: str) -> bool:
        """Whether a package called `name` is registered."""


@dataclass(frozen=True)
class MenuItem:
    title: str
    url: str
    resource: Optional[str] = None
    children: Tuple["MenuItem", ...] = ()


@dataclass(frozen=True)
class Package:
    name: str
    title: str
    author: str
    url: str
    about: str
    controllers: Tuple[str, ...] = ()
    menu: Tuple[MenuItem, ...] = ()
    version: str = ""
    directory: Optional[str] = None


REQUIRED_PACKAGE_FIELDS = ("name", "title", "author", "url", "about")


class PackageRegistry:
    def __init__(self, packages: Sequence[Package] = ()) -> None:
        self._lock = threading.RLock()
        self._packages: Dict[str, Package] = {}
        self._owners: Dict[str, str] = {}
        for package in packages:
            self.register(package)

    def register(self, package: Package) -> Package:
        for field_name in REQUIRED_PACKAGE_FIELDS:
            if not getattr(package, field_name, None):
                raise ConfigurationError(
                    f'Package has no value set for "{field_name}"',
                    config_key=field_name,
                    package=package.name or None,
                )

        with self._lock:
            if package.name in self._packages:
                raise ConfigurationError(
                    f"Package already registered: {package.name}", package=package.name
                )
            seen = set()
            for controller in package.controllers:
                owner = self._owners.get(controller)
                if owner is not None or controller in seen:
                    raise ConfigurationError(
                        f"Controller {controller!r} is already owned by package "
                        f"{owner or package.name!r}",
                        package=package.name,
                        controller=controller,
                    )
                seen.add(controller)

            self._packages[package.name] = package
            for controller in package.controllers:
                self._owners[controller] = package.name

        logger.debug(
            "Registered package %s with %d controller(s)",
            package.name,
            len(package.controllers),
        )
        return package

    def unregister(self, name: str) -> None:
        with self._lock:
            package = self._packages.pop(name, None)
            if package is None:
                return
            for controller in package.controllers:
                self._owners.pop(controller, None)

    def get(self, name: str) -> Optional[Package]:
        with self._lock:
            return self._packages.get(name)

    def packages(self) -> List[Package]:
        with self._lock:
            return list(self._packages.values())

    def resolve(self, resource_id: str) -> Optional[str]:
        with self._lock:
            return self._owners.get(resource_id)

    def has_package(self, name: str) -> bool:
        with self._lock:
            return name in self._packages

    def resources_of(self, package: str) -> Sequence[str]:
        with self._lock:
            found = self._packages.get(package)
            return tuple(found.controllers) if found else ()

    def all_resources(self) -> Sequence[str]:
        with self._lock:
            resources: List[str] = []
            for package in self._packages.values():
                resources.extend(package.controllers)
            return tuple(resources)
