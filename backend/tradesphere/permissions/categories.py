# Overview: Permission category constants for grouping related actions.


class PermissionCategory:
    """Action categories for organization and API display."""
    CATALOG = "CATALOG"
    STOCK = "STOCK"
    WAREHOUSE = "WAREHOUSE"
    ORDERS = "ORDERS"
    INVOICING = "INVOICING"
    PARTNERS = "PARTNERS"
    BATCHES = "BATCHES"
    SYSTEM = "SYSTEM"

    ALL = [CATALOG, STOCK, WAREHOUSE, ORDERS, INVOICING, PARTNERS, BATCHES, SYSTEM]
