"""
Unit tests for the module manager.

Tests cover:
- Manifest validation
- Core and optional module discovery
- Dependency ordering, unknown dependencies and cycles
- Initializers and router inclusion
- Statistics of the built-in modules
"""

from unittest.mock import Mock

import pytest
from fastapi import APIRouter, FastAPI

from hdm_boot.module_registry import builtin_modules
from hdm_boot.modules import ModuleManager, ModuleManifest, ModuleType


def manifest(name, dependencies=None, type=ModuleType.CORE, **kwargs) -> ModuleManifest:
    return ModuleManifest(name=name, dependencies=list(dependencies or []), type=type, **kwargs)


# ============================================================================
# REGISTRATION
# ============================================================================


class TestModuleRegistration:
    """Tests for registering manifests."""

    def test_manifest_validation(self):
        """Test empty names and self dependencies are invalid."""
        assert manifest("").validate() == ["name is required"]
        assert "module cannot depend on itself" in manifest("Blog", ["Blog"]).validate()
        assert manifest("Blog").validate() == []

    def test_invalid_manifest_rejected(self):
        """Test registration refuses invalid manifests."""
        with pytest.raises(ValueError, match="configuration is invalid"):
            ModuleManager().register_module(manifest("Blog", ["Blog"]))

    def test_duplicate_rejected(self):
        """Test module names are unique."""
        manager = ModuleManager()
        manager.register_module(manifest("Blog"))

        with pytest.raises(ValueError, match="already registered"):
            manager.register_module(manifest("Blog"))

    def test_discover_skips_disabled_optional_modules(self):
        """Test optional modules load only when enabled."""
        manager = ModuleManager()
        manifests = [
            manifest("Core"),
            manifest("Blog", type=ModuleType.OPTIONAL),
            manifest("Docs", type=ModuleType.OPTIONAL),
            manifest("Legacy", enabled=False),
        ]

        registered = manager.discover_modules(["blog"], manifests)

        assert registered == ["Core", "Blog"]
        assert manager.has_module("Blog")
        assert not manager.has_module("Docs")
        assert not manager.is_module_loaded("Legacy")


# ============================================================================
# INITIALIZATION
# ============================================================================


class TestModuleInitialization:
    """Tests for dependency ordering and initialization."""

    def test_dependency_order(self):
        """Test dependencies initialize before dependents."""
        manager = ModuleManager()
        manager.discover_modules([], [
            manifest("Blog", ["Template"]),
            manifest("Template", ["Language"]),
            manifest("Language"),
        ])

        assert manager.resolve_dependency_order() == ["Language", "Template", "Blog"]

    def test_unknown_dependency(self):
        """Test missing dependencies fail resolution."""
        manager = ModuleManager()
        manager.register_module(manifest("Blog", ["Template"]))

        with pytest.raises(RuntimeError, match="depends on unknown module 'Template'"):
            manager.resolve_dependency_order()

    def test_circular_dependency(self):
        """Test cycles are reported with their path."""
        manager = ModuleManager()
        manager.register_module(manifest("A", ["B"]))
        manager.register_module(manifest("B", ["A"]))

        with pytest.raises(RuntimeError, match="Circular module dependency: A -> B -> A"):
            manager.resolve_dependency_order()

    def test_initialize_runs_initializer_and_includes_routers(self):
        """Test initialization wires the module into the app."""
        app = FastAPI()
        router = APIRouter()

        @router.get("/hello")
        def hello():
            return {"hello": "world"}

        initializer = Mock()
        manager = ModuleManager()
        manager.register_module(manifest("Hello", routers=[router], initializer=initializer))

        manager.initialize_modules(app)
        manager.initialize_modules(app)

        initializer.assert_called_once_with(app)
        assert manager.is_module_initialized("Hello")
        assert "/hello" in [route.path for route in app.routes]

    def test_statistics(self):
        """Test statistics split initialized and pending modules."""
        manager = ModuleManager()
        manager.discover_modules([], [manifest("A"), manifest("B")])
        manager.initialize_module("A", FastAPI())

        stats = manager.get_statistics()

        assert stats["total_modules"] == 2
        assert stats["initialized_modules"] == 1
        assert stats["pending_modules"] == 1
        assert stats["modules_by_status"] == {"initialized": ["A"], "registered": ["B"]}
        assert manager.get_modules_health_status()["B"]["status"] == "registered"


# ============================================================================
# BUILT-IN MODULES
# ============================================================================


class TestBuiltinModules:
    """Tests for the shipped module manifests."""

    def test_core_and_optional_split(self):
        """Test which modules are optional."""
        modules = {m.name: m for m in builtin_modules()}

        optional = sorted(name for name, m in modules.items() if m.type == ModuleType.OPTIONAL)
        assert optional == ["Blog", "Docs", "Home"]
        assert modules["Security"].dependencies == ["User", "Template"]

    def test_builtin_dependencies_resolve(self):
        """Test the built-in graph has no unknown dependencies or cycles."""
        manager = ModuleManager()
        manager.discover_modules(["Home", "Blog", "Docs"], builtin_modules())

        order = manager.resolve_dependency_order()

        assert order.index("Database") < order.index("User") < order.index("Security")
        assert order.index("Language") < order.index("Template") < order.index("Blog")
