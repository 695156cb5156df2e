"""Permission catalog: the static registry of valid (module, action) pairs.

The catalog is built once at process start and never mutated. Any operation
not listed here is an unknown operation and is denied regardless of grants.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache

from warden.authz.types import Operation
from warden.config.settings import get_settings
from warden.core.logging import get_logger
from warden.utils.exceptions import ConfigurationError

logger = get_logger(__name__)

MODULE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

DEFAULT_ACTIONS: tuple[str, ...] = ("create", "read", "update", "delete", "export")

DEFAULT_MODULES: tuple[str, ...] = (
    "tenant_management",  # Tenant management & billing
    "school_config",  # School configuration & academic year
    "user_management",  # Users, roles and permissions
    "students",  # Student information
    "admissions",  # Admissions & enquiries
    "fees",  # Fees & payments
    "attendance_students",
    "attendance_staff",
    "timetable",
    "exams",  # Exams & report cards
    "communication",  # Notices & notifications
    "transport",
    "library",
    "hostel",
    "hr_payroll",
    "inventory",
    "lms",  # Online learning
    "analytics",
    "technical_ops",  # Backups, logs
    "data_export",  # Data export & compliance
)


@dataclass(frozen=True, slots=True)
class ModuleActions:
    """A module and the actions the catalog defines for it.

    Attributes:
        module: Module name
        actions: Actions in canonical order
    """

    module: str
    actions: tuple[str, ...]


class PermissionCatalog:
    """Immutable registry of the operations the system understands.

    Example:
        catalog = PermissionCatalog.from_modules(["students"], DEFAULT_ACTIONS)
        catalog.is_valid_operation("students", "read")   # True
        catalog.is_valid_operation("students", "reed")   # False
    """

    __slots__ = ("_operations", "_listing")

    def __init__(self, operations: Iterable[Operation]):
        ops = frozenset(operations)
        action_order = {action: i for i, action in enumerate(DEFAULT_ACTIONS)}

        by_module: dict[str, set[str]] = {}
        for op in ops:
            by_module.setdefault(op.module, set()).add(op.action)

        self._operations = ops
        self._listing = tuple(
            ModuleActions(
                module=module,
                actions=tuple(
                    sorted(
                        actions,
                        key=lambda a: (action_order.get(a, len(action_order)), a),
                    )
                ),
            )
            for module, actions in sorted(by_module.items())
        )

    @classmethod
    def from_modules(
        cls,
        modules: Iterable[str],
        actions: Iterable[str] = DEFAULT_ACTIONS,
    ) -> "PermissionCatalog":
        """Build a catalog granting every action on every module."""
        action_list = tuple(actions)
        return cls(Operation(module, action) for module in modules for action in action_list)

    def __contains__(self, operation: object) -> bool:
        return operation in self._operations

    def __len__(self) -> int:
        return len(self._operations)

    def is_valid_operation(self, module: str, action: str) -> bool:
        """Whether (module, action) is a known operation."""
        return Operation(module, action) in self._operations

    def list_modules(self) -> list[ModuleActions]:
        """List modules ordered by name, each with its actions in canonical order."""
        return list(self._listing)

    def validate_operations(self, operations: Iterable[Operation]) -> list[Operation]:
        """Return the operations that are not in the catalog, in input order."""
        unknown: list[Operation] = []
        for op in operations:
            if op not in self._operations and op not in unknown:
                unknown.append(op)
        return unknown


@lru_cache
def get_catalog() -> PermissionCatalog:
    """Get the process-wide catalog built from defaults plus configured modules.

    Raises:
        ConfigurationError: If a configured module name is not snake_case
    """
    settings = get_settings()
    modules = list(DEFAULT_MODULES)
    for module in settings.catalog_extra_modules:
        if not MODULE_NAME_PATTERN.match(module):
            raise ConfigurationError(f"Invalid catalog module name: {module!r}")
        if module not in modules:
            modules.append(module)

    catalog = PermissionCatalog.from_modules(modules)
    logger.info("permission_catalog_loaded", modules=len(modules), operations=len(catalog))
    return catalog
