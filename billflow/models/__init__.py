from .catalog import BillingCycle, CustomerPackage, Package, PackageModule
from .customer import Currency, Customer, CustomerStatus
from .invoice import Invoice, InvoiceStatus, PaymentStatus
from .order import Order, OrderStatus
from .payment_method import PaymentMethod
from .subscription import Subscription, SubscriptionStatus
from .transaction import Transaction, TransactionStatus

__all__ = [
    "BillingCycle",
    "Currency",
    "Customer",
    "CustomerPackage",
    "CustomerStatus",
    "Invoice",
    "InvoiceStatus",
    "Order",
    "OrderStatus",
    "Package",
    "PackageModule",
    "PaymentMethod",
    "PaymentStatus",
    "Subscription",
    "SubscriptionStatus",
    "Transaction",
    "TransactionStatus",
]
