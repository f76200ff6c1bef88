# Overview: All action definitions organized by category.
# Each action is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- CATALOG --

CATALOG_PERMISSIONS = [
    (
        "VIEW_PRODUCT",
        "View Products",
        "View products, prices and stock levels per product",
        PermissionCategory.CATALOG,
    ),
    (
        "CREATE_PRODUCT",
        "Create Products",
        "Create products, including opening stock",
        PermissionCategory.CATALOG,
    ),
    (
        "UPDATE_PRODUCT",
        "Update Products",
        "Edit product details (SKU and stock are not editable)",
        PermissionCategory.CATALOG,
    ),
    (
        "DELETE_PRODUCT",
        "Delete Products",
        "Delete products that nothing references",
        PermissionCategory.CATALOG,
    ),
]


# -- STOCK --

STOCK_PERMISSIONS = [
    (
        "VIEW_STOCK",
        "View Stock",
        "View stock levels and the movement log",
        PermissionCategory.STOCK,
    ),
    (
        "STOCK_IN",
        "Stock In",
        "Record manual receipts (IN movements)",
        PermissionCategory.STOCK,
    ),
    (
        "STOCK_OUT",
        "Stock Out",
        "Record manual issues (OUT movements)",
        PermissionCategory.STOCK,
    ),
    (
        "STOCK_TRANSFER",
        "Transfer Stock",
        "Move stock between locations (TRANSFER movements)",
        PermissionCategory.STOCK,
    ),
]


# -- WAREHOUSE --

WAREHOUSE_PERMISSIONS = [
    (
        "VIEW_WAREHOUSE",
        "View Warehouses",
        "View warehouses and their locations",
        PermissionCategory.WAREHOUSE,
    ),
    (
        "MANAGE_WAREHOUSE",
        "Manage Warehouses",
        "Create warehouses",
        PermissionCategory.WAREHOUSE,
    ),
    (
        "MANAGE_LOCATION",
        "Manage Locations",
        "Create and deactivate storage locations",
        PermissionCategory.WAREHOUSE,
    ),
]


# -- ORDERS --

ORDER_PERMISSIONS = [
    (
        "VIEW_ORDER",
        "View Orders",
        "View purchase and sales orders",
        PermissionCategory.ORDERS,
    ),
    (
        "CREATE_ORDER",
        "Create Orders",
        "Create purchase and sales orders",
        PermissionCategory.ORDERS,
    ),
    (
        "UPDATE_ORDER",
        "Update Orders",
        "Edit lines, advance status, receive and ship orders",
        PermissionCategory.ORDERS,
    ),
    (
        "DELETE_ORDER",
        "Delete Orders",
        "Delete DRAFT orders",
        PermissionCategory.ORDERS,
    ),
]


# -- INVOICING --

INVOICE_PERMISSIONS = [
    (
        "VIEW_INVOICE",
        "View Invoices",
        "View invoices, payments and the receivables/payables summary",
        PermissionCategory.INVOICING,
    ),
    (
        "CREATE_INVOICE",
        "Create Invoices",
        "Create sales invoices and purchase bills",
        PermissionCategory.INVOICING,
    ),
    (
        "UPDATE_INVOICE",
        "Update Invoices",
        "Edit lines and discount, send, cancel or refund invoices",
        PermissionCategory.INVOICING,
    ),
    (
        "DELETE_INVOICE",
        "Delete Invoices",
        "Delete DRAFT invoices",
        PermissionCategory.INVOICING,
    ),
    (
        "RECORD_PAYMENT",
        "Record Payments",
        "Record and void payments against invoices",
        PermissionCategory.INVOICING,
    ),
]


# -- PARTNERS --

PARTNER_PERMISSIONS = [
    (
        "VIEW_SUPPLIERS",
        "View Suppliers",
        "View suppliers and their price lists",
        PermissionCategory.PARTNERS,
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "Create, edit and delete suppliers and price-list entries",
        PermissionCategory.PARTNERS,
    ),
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "View customers",
        PermissionCategory.PARTNERS,
    ),
    (
        "MANAGE_CUSTOMERS",
        "Manage Customers",
        "Create and edit customers",
        PermissionCategory.PARTNERS,
    ),
]


# -- BATCHES --

BATCH_PERMISSIONS = [
    (
        "VIEW_BATCHES",
        "View Batches",
        "View batches, their movements, serial numbers and the expiry report",
        PermissionCategory.BATCHES,
    ),
    (
        "MANAGE_BATCHES",
        "Manage Batches",
        "Create, adjust and delete batches, set quality status, register and sell serial numbers",
        PermissionCategory.BATCHES,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "MANAGE_SETTINGS",
        "Manage System",
        "Run ledger reconciliation and the overdue sweep, view the audit trail",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    CATALOG_PERMISSIONS
    + STOCK_PERMISSIONS
    + WAREHOUSE_PERMISSIONS
    + ORDER_PERMISSIONS
    + INVOICE_PERMISSIONS
    + PARTNER_PERMISSIONS
    + BATCH_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
