from .tenancy import Gym
from .auth import User, SessionToken
from .members import Member
from .catalog import Product
from .discounts import Discount
from .pos import PosTransaction, PosTransactionItem
from .wallets import Wallet, WalletTransaction
from .invoices import GymInvoice

__all__ = [
    'Gym',
    'User', 'SessionToken',
    'Member',
    'Product',
    'Discount',
    'PosTransaction', 'PosTransactionItem',
    'Wallet', 'WalletTransaction',
    'GymInvoice',
]
