from .catalog import Product, Supplier, SupplierProduct, Customer
from .warehouse import Warehouse, Location, LOCATION_TYPES
from .stock import StockItem, StockMovement, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TRANSFER, MOVEMENT_TYPES
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .sales import SalesOrder, SalesOrderItem
from .invoicing import Invoice, InvoiceItem, Payment
from .documents import DocumentSequence, AuditEvent
from .batches import (
    Batch,
    BatchMovement,
    SerialNumber,
    QUALITY_STATUSES,
    BATCH_MOVEMENT_TYPES,
    SERIAL_STATUSES,
)

__all__ = [
    'Product', 'Supplier', 'SupplierProduct', 'Customer',
    'Warehouse', 'Location', 'LOCATION_TYPES',
    'StockItem', 'StockMovement',
    'MOVEMENT_IN', 'MOVEMENT_OUT', 'MOVEMENT_TRANSFER', 'MOVEMENT_TYPES',
    'PurchaseOrder', 'PurchaseOrderItem',
    'SalesOrder', 'SalesOrderItem',
    'Invoice', 'InvoiceItem', 'Payment',
    'DocumentSequence', 'AuditEvent',
    'Batch', 'BatchMovement', 'SerialNumber',
    'QUALITY_STATUSES', 'BATCH_MOVEMENT_TYPES', 'SERIAL_STATUSES',
]
