# Overview: Permission system package.
# Re-exports the action definitions, the default role matrix and the oracle.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    CATALOG_PERMISSIONS,
    STOCK_PERMISSIONS,
    WAREHOUSE_PERMISSIONS,
    ORDER_PERMISSIONS,
    INVOICE_PERMISSIONS,
    PARTNER_PERMISSIONS,
    BATCH_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, ROLES, ROLE_LEVELS, has_minimum_role
from .helpers import (
    allowed,
    default_allowed,
    get_all_action_codes,
    get_actions_by_category,
    get_action_definition,
    validate_action_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "CATALOG_PERMISSIONS",
    "STOCK_PERMISSIONS",
    "WAREHOUSE_PERMISSIONS",
    "ORDER_PERMISSIONS",
    "INVOICE_PERMISSIONS",
    "PARTNER_PERMISSIONS",
    "BATCH_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLES",
    "ROLE_LEVELS",
    "has_minimum_role",
    "allowed",
    "default_allowed",
    "get_all_action_codes",
    "get_actions_by_category",
    "get_action_definition",
    "validate_action_code",
]
