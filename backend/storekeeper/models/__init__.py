from .catalog import Product
from .sales import Sale, Order
from .purchases import Purchase
from .ledgers import Adjustment, Debt, DebtHistory, Account, Transaction
from .audit import Activity, PendingCompensation

__all__ = [
    'Product',
    'Sale', 'Order',
    'Purchase',
    'Adjustment', 'Debt', 'DebtHistory', 'Account', 'Transaction',
    'Activity', 'PendingCompensation',
]
