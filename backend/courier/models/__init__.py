from .directory import Branch, Driver, Employee
from .sequences import SequenceCounter
from .parcels import Parcel, ParcelLog
from .manifests import Manifest, ManifestParcel
from .ledger import CashTransaction, Expense, Debt, Payslip

__all__ = [
    'Branch', 'Driver', 'Employee',
    'SequenceCounter',
    'Parcel', 'ParcelLog',
    'Manifest', 'ManifestParcel',
    'CashTransaction', 'Expense', 'Debt', 'Payslip',
]
