from .auth import User, LoginCode, SessionToken, ROLE_USER, ROLE_OFFICE_ASSISTANT
from .inventory import Product, StockBatch
from .ledger import AccountEntry, ShortageContribution
from .reconciliation import StockAdjustment, ShortageAcknowledgement

__all__ = [
    'User', 'LoginCode', 'SessionToken', 'ROLE_USER', 'ROLE_OFFICE_ASSISTANT',
    'Product', 'StockBatch',
    'AccountEntry', 'ShortageContribution',
    'StockAdjustment', 'ShortageAcknowledgement',
]
