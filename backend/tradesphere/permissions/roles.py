# Overview: Default role -> allowed actions matrix.

ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_OPERATOR = "OPERATOR"
ROLE_VIEWER = "VIEWER"

ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_OPERATOR, ROLE_VIEWER)

# Higher level = broader access
ROLE_LEVELS = {
    ROLE_ADMIN: 100,
    ROLE_MANAGER: 75,
    ROLE_OPERATOR: 50,
    ROLE_VIEWER: 25,
}

_VIEW_ALL = [
    "VIEW_PRODUCT",
    "VIEW_STOCK",
    "VIEW_WAREHOUSE",
    "VIEW_ORDER",
    "VIEW_INVOICE",
    "VIEW_SUPPLIERS",
    "VIEW_CUSTOMERS",
    "VIEW_BATCHES",
]

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: _VIEW_ALL + [
        "CREATE_PRODUCT", "UPDATE_PRODUCT", "DELETE_PRODUCT",
        "STOCK_IN", "STOCK_OUT", "STOCK_TRANSFER",
        "MANAGE_WAREHOUSE", "MANAGE_LOCATION",
        "CREATE_ORDER", "UPDATE_ORDER", "DELETE_ORDER",
        "CREATE_INVOICE", "UPDATE_INVOICE", "DELETE_INVOICE", "RECORD_PAYMENT",
        "MANAGE_SUPPLIERS", "MANAGE_CUSTOMERS",
        "MANAGE_BATCHES",
        "MANAGE_SETTINGS",
    ],
    ROLE_MANAGER: _VIEW_ALL + [
        "CREATE_PRODUCT", "UPDATE_PRODUCT", "DELETE_PRODUCT",
        "STOCK_IN", "STOCK_OUT", "STOCK_TRANSFER",
        "MANAGE_WAREHOUSE", "MANAGE_LOCATION",
        "CREATE_ORDER", "UPDATE_ORDER", "DELETE_ORDER",
        "CREATE_INVOICE", "UPDATE_INVOICE", "RECORD_PAYMENT",
        "MANAGE_SUPPLIERS", "MANAGE_CUSTOMERS",
        "MANAGE_BATCHES",
    ],
    ROLE_OPERATOR: _VIEW_ALL + [
        "UPDATE_PRODUCT",
        "STOCK_IN", "STOCK_OUT", "STOCK_TRANSFER",
        "CREATE_ORDER", "UPDATE_ORDER",
        "MANAGE_BATCHES",
    ],
    ROLE_VIEWER: list(_VIEW_ALL),
}


def has_minimum_role(role, minimum_role) -> bool:
    if not role:
        return False
    return ROLE_LEVELS.get(role, 0) >= ROLE_LEVELS.get(minimum_role, 100)
