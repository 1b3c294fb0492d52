from .parties import Store, Supplier, Customer, supplier_products
from .catalog import (
    Category,
    Brand,
    Product,
    ComboComponent,
    PartialSetPrice,
    KIND_SIMPLE,
    KIND_RAW_MATERIAL,
    KIND_COMBO_SET,
    PRODUCT_KINDS,
    COMBO_COMPONENT_NAMES,
)
from .inventory import StockEntry
from .sales import (
    Sale,
    SaleItem,
    SalePayment,
    SaleRefund,
    SaleRefundItem,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
    REFUND_STATE_NONE,
    REFUND_STATE_PARTIAL,
    REFUND_STATE_FULL,
)
from .audit import LedgerEvent

__all__ = [
    'Store', 'Supplier', 'Customer', 'supplier_products',
    'Category', 'Brand', 'Product', 'ComboComponent', 'PartialSetPrice',
    'KIND_SIMPLE', 'KIND_RAW_MATERIAL', 'KIND_COMBO_SET', 'PRODUCT_KINDS', 'COMBO_COMPONENT_NAMES',
    'StockEntry',
    'Sale', 'SaleItem', 'SalePayment', 'SaleRefund', 'SaleRefundItem',
    'PAYMENT_STATUS_PAID', 'PAYMENT_STATUS_PARTIAL', 'PAYMENT_STATUS_PENDING',
    'REFUND_STATE_NONE', 'REFUND_STATE_PARTIAL', 'REFUND_STATE_FULL',
    'LedgerEvent',
]
