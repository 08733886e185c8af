from .catalog import Category, Product, PriceHistory, StockMovement
from .parties import Client, Supplier
from .sales import Sale, SaleItem, SaleRefund, SalePayment
from .purchases import Purchase, PurchaseItem
from .quotes import Quote, QuoteItem
from .currency import Currency, ExchangeRate
from .registers import CashRegister
from .documents import DocumentSequence
from .settings import AppSetting
from .counts import InventoryCount, InventoryCountItem

__all__ = [
    'Category', 'Product', 'PriceHistory', 'StockMovement',
    'Client', 'Supplier',
    'Sale', 'SaleItem', 'SaleRefund', 'SalePayment',
    'Purchase', 'PurchaseItem',
    'Quote', 'QuoteItem',
    'Currency', 'ExchangeRate',
    'CashRegister',
    'DocumentSequence',
    'AppSetting',
    'InventoryCount', 'InventoryCountItem',
]
