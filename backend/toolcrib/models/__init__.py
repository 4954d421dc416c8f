from .inventory import Item
from .loans import Loan, LoanLine
from .history import HistoryEntry

__all__ = [
    'Item',
    'Loan', 'LoanLine',
    'HistoryEntry',
]
