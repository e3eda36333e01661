"""
Module manager.

The application is split into Core modules, which always load, and
Optional modules, which load only when listed in ENABLED_MODULES. A module
is described by a ModuleManifest: its routers, an optional initializer
run against the FastAPI app, and the modules it depends on. Modules are
initialized in dependency order.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import structlog
from fastapi import APIRouter, FastAPI

logger = structlog.get_logger(__name__)


class ModuleType(str, Enum):
    CORE = "core"
    OPTIONAL = "optional"


@dataclass
class ModuleManifest:
    name: str
    version: str = "1.0.0"
    type: ModuleType = ModuleType.CORE
    description: str = ""
    dependencies: List[str] = field(default_factory=list)
    enabled: bool = True
    tags: List[str] = field(default_factory=list)
    routers: List[APIRouter] = field(default_factory=list)
    initializer: Optional[Callable[[FastAPI], None]] = None

    def validate(self) -> List[str]:
        errors = []
        if not self.name or not self.name.strip():
            errors.append("name is required")
        if not self.version or not self.version.strip():
            errors.append("version is required")
        if self.name in self.dependencies:
            errors.append("module cannot depend on itself")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "type": self.type.value,
            "description": self.description,
            "dependencies": list(self.dependencies),
            "enabled": self.enabled,
            "tags": list(self.tags),
        }


class ModuleManager:
    """Registers modules and initializes them against the app."""

    def __init__(self):
        self._modules: Dict[str, ModuleManifest] = {}
        self._initialized: List[str] = []

    def register_module(self, manifest: ModuleManifest) -> None:
        """
        Register a module.

        Raises:
            ValueError: invalid manifest or duplicate module name
        """
        errors = manifest.validate()
        if errors:
            logger.error("module_validation_failed", module_name=manifest.name, errors=errors)
            raise ValueError(f"Module '{manifest.name}' configuration is invalid: {', '.join(errors)}")
        if manifest.name in self._modules:
            raise ValueError(f"Module '{manifest.name}' is already registered")

        self._modules[manifest.name] = manifest
        logger.info(
            "module_registered",
            module_name=manifest.name,
            module_type=manifest.type.value,
            dependencies=manifest.dependencies,
        )

    def discover_modules(
        self,
        enabled_optional: Iterable[str] = (),
        manifests: Optional[Sequence[ModuleManifest]] = None,
    ) -> List[str]:
        """
        Register Core modules and the enabled Optional ones.

        Returns:
            Names of the modules registered by this call
        """
        if manifests is None:
            from hdm_boot.module_registry import builtin_modules
            manifests = builtin_modules()

        enabled = {name.lower() for name in enabled_optional}
        registered = []
        for manifest in manifests:
            if manifest.type == ModuleType.OPTIONAL and manifest.name.lower() not in enabled:
                logger.info("module_skipped", module_name=manifest.name, reason="not enabled")
                continue
            if not manifest.enabled:
                logger.info("module_skipped", module_name=manifest.name, reason="disabled")
                continue
            self.register_module(manifest)
            registered.append(manifest.name)

        logger.info("module_discovery_completed", discovered_modules=len(registered), module_names=registered)
        return registered

    def resolve_dependency_order(self) -> List[str]:
        """
        Topologically sort registered modules.

        Raises:
            RuntimeError: unknown dependency or dependency cycle
        """
        order: List[str] = []
        visiting: List[str] = []

        def visit(name: str) -> None:
            if name in order:
                return
            if name in visiting:
                cycle = " -> ".join(visiting[visiting.index(name):] + [name])
                raise RuntimeError(f"Circular module dependency: {cycle}")

            manifest = self._modules.get(name)
            if manifest is None:
                requester = visiting[-1] if visiting else name
                raise RuntimeError(f"Module '{requester}' depends on unknown module '{name}'")

            visiting.append(name)
            for dependency in manifest.dependencies:
                visit(dependency)
            visiting.pop()
            order.append(name)

        for name in self._modules:
            visit(name)
        return order

    def initialize_module(self, name: str, app: FastAPI) -> None:
        if name in self._initialized:
            return
        manifest = self._modules.get(name)
        if manifest is None:
            raise RuntimeError(f"Module '{name}' not found")

        if manifest.initializer is not None:
            manifest.initializer(app)
        for router in manifest.routers:
            app.include_router(router)

        self._initialized.append(name)
        logger.info("module_initialized", module_name=name, routers=len(manifest.routers))

    def initialize_modules(self, app: FastAPI) -> None:
        for name in self.resolve_dependency_order():
            self.initialize_module(name, app)
        logger.info("module_initialization_completed", initialized_modules=self._initialized)

    def get_module(self, name: str) -> Optional[ModuleManifest]:
        return self._modules.get(name)

    def has_module(self, name: str) -> bool:
        return name in self._modules

    # Modules are loaded when registered
    is_module_loaded = has_module

    def is_module_initialized(self, name: str) -> bool:
        return name in self._initialized

    def get_loaded_modules(self) -> Dict[str, ModuleManifest]:
        return dict(self._modules)

    def get_statistics(self) -> Dict[str, Any]:
        by_status: Dict[str, List[str]] = {}
        for name in self._modules:
            status = "initialized" if name in self._initialized else "registered"
            by_status.setdefault(status, []).append(name)
        return {
            "total_modules": len(self._modules),
            "initialized_modules": len(self._initialized),
            "pending_modules": len(self._modules) - len(self._initialized),
            "modules_by_status": by_status,
            "module_names": list(self._modules),
        }

    def get_modules_health_status(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {
                "status": "initialized" if name in self._initialized else "registered",
                "type": manifest.type.value,
                "version": manifest.version,
            }
            for name, manifest in self._modules.items()
        }
