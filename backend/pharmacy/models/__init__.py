from .products import Product
from .documents import Invoice, InvoiceItem, CreditNote, CreditNoteItem
from .stock_takes import StockTakeSession, StockTakeEntry
from .activity import ActivityLog

__all__ = [
    'Product',
    'Invoice', 'InvoiceItem', 'CreditNote', 'CreditNoteItem',
    'StockTakeSession', 'StockTakeEntry',
    'ActivityLog',
]
