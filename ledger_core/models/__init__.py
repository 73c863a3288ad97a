from .account import Account
from .auditlog import AuditLog
from .counterparty import Counterparty, Customer, Supplier
from .inventory import InventoryItem
from .invoice import Invoice, InvoiceLine
from .journal import JournalEntry, JournalLine
from .numbering import NumberSeries
from .voucher import Voucher
