import logging
import secrets

from sqlalchemy.exc import IntegrityError

from billflow.errors import ConflictError, NotFoundError, ValidationError
from billflow.models import (
    Customer,
    CustomerPackage,
    Invoice,
    InvoiceStatus,
    Order,
    OrderStatus,
    Package,
    PaymentStatus,
)
from billflow.utils.dates import add_billing_period, utcnow

from .pricing import price_selection

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5
UPDATABLE_FIELDS = ("status", "note")


def generate_order_number() -> str:
    return str(secrets.randbelow(90000) + 10000)


def allocate_order_number(session) -> str:
    """Random five-digit number not yet used by any order or invoice."""
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        number = generate_order_number()
        taken = (
            session.query(Order.id).filter_by(order_number=number).first()
            or session.query(Invoice.id).filter_by(invoice_number=f"INV-{number}").first()
        )
        if not taken:
            return number
    raise ConflictError("Could not allocate a unique order number, please retry")


class OrderBuilder:
    """Creates the customer's pending Order + draft Invoice pair and manages orders."""

    def __init__(self, session):
        self.session = session

    # ============ CREATE ============

    def find_open_pair(self, customer_id):
        order = (
            self.session.query(Order)
            .filter_by(customer_id=customer_id, status=OrderStatus.PENDING, is_delete=False)
            .first()
        )
        invoice = (
            self.session.query(Invoice)
            .filter_by(customer_id=customer_id, status=InvoiceStatus.DRAFT, is_delete=False)
            .first()
        )
        return order, invoice

    def create_order(self, customer_id, acting_user_id):
        """
        Build and persist a pending Order and its draft Invoice.

        Returns ``(order, invoice, created)``. When the customer already has a
        pending order or draft invoice, that pair is returned unchanged with
        ``created=False``; the partial unique indexes make the same true for
        a concurrent request that loses the race.
        """
        order, invoice = self.find_open_pair(customer_id)
        if order or invoice:
            logger.info("Open order already exists", extra={"customer_id": customer_id})
            return order, invoice, False

        customer = self.session.query(Customer).filter_by(id=customer_id, is_delete=False).first()
        if not customer:
            raise NotFoundError("Customer not found")

        customer_package = (
            self.session.query(CustomerPackage)
            .filter_by(customer_id=customer_id, is_delete=False)
            .order_by(CustomerPackage.id.desc())
            .first()
        )
        if not customer_package:
            raise NotFoundError("Customer package not found")

        package = self.session.query(Package).filter_by(id=customer_package.package_id, is_delete=False).first()
        if not package:
            raise NotFoundError("Package not found")

        pricing = price_selection(package, customer_package.add_ons)
        now = utcnow()
        due_date = add_billing_period(now, package.billing_cycle)
        order_number = allocate_order_number(self.session)

        order = Order(
            customer_id=customer.id,
            order_number=order_number,
            original_order_number=f"ORD-{order_number}",
            custom_order_number=f"CUST-ORD-{order_number}",
            order_date=now,
            sub_total=pricing.sub_total,
            discount=pricing.discount,
            discount_type=pricing.discount_type,
            total=pricing.total,
            status=OrderStatus.PENDING,
            currency_id=customer.currency_id,
            added_by=acting_user_id,
        )
        invoice = Invoice(
            invoice_number=f"INV-{order_number}",
            customer_id=customer.id,
            user_id=acting_user_id,
            currency_id=customer.currency_id,
            amount=pricing.total,
            total=pricing.total,
            sub_total=pricing.sub_total,
            discount_value=pricing.discount,
            discount_type=pricing.discount_type,
            outstanding_balance=pricing.total,
            status=InvoiceStatus.DRAFT,
            payment_status=PaymentStatus.PENDING,
            items=pricing.items,
            plan=package.billing_cycle,
            due_date=due_date,
            issue_date=now,
            customer_name=customer.full_name,
            customer_email=customer.email,
        )

        try:
            self.session.add(order)
            self.session.flush()
            invoice.order_id = order.id
            self.session.add(invoice)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            order, invoice = self.find_open_pair(customer_id)
            if order or invoice:
                logger.info("Lost order creation race, returning existing pair", extra={"customer_id": customer_id})
                return order, invoice, False
            raise ConflictError("Could not create order, please retry")

        logger.info(
            "Order and invoice created",
            extra={
                "customer_id": customer.id,
                "order_id": order.id,
                "invoice_id": invoice.id,
                "total": str(pricing.total),
            },
        )
        return order, invoice, True

    # ============ READ / UPDATE ============

    def get_order(self, order_id) -> Order:
        order = self.session.query(Order).filter_by(id=order_id, is_delete=False).first()
        if not order:
            raise NotFoundError("Order not found")
        return order

    def list_customer_orders(self, customer_id):
        return (
            self.session.query(Order)
            .filter_by(customer_id=customer_id, is_delete=False)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def list_orders(self, page=1, limit=20, status=None, customer_id=None):
        query = self.session.query(Order).filter_by(is_delete=False)
        if status:
            query = query.filter_by(status=status)
        if customer_id:
            query = query.filter_by(customer_id=customer_id)

        total = query.count()
        orders = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        pagination = {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        }
        return orders, pagination

    def update_order(self, order_id, changes: dict) -> Order:
        order = self.get_order(order_id)

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        if "status" in changes and changes["status"] not in OrderStatus.ALL:
            raise ValidationError(f"Invalid order status: {changes['status']}")

        for name, value in changes.items():
            setattr(order, name, value)
        if order.status not in OrderStatus.OPEN:
            self._void_draft_invoice(order)

        try:
            self.session.commit()
        except IntegrityError:
            # another pending order already exists for this customer
            self.session.rollback()
            raise ConflictError("Customer already has a pending order")

        logger.info("Order updated", extra={"order_id": order.id, "fields": sorted(changes)})
        return order

    def delete_order(self, order_id) -> None:
        order = self.get_order(order_id)
        order.is_delete = True
        invoice = self._void_draft_invoice(order)
        if invoice is not None:
            invoice.is_delete = True
        self.session.commit()
        logger.info("Order deleted", extra={"order_id": order_id})

    def _void_draft_invoice(self, order):
        """A closed order's unpaid draft invoice can no longer be paid; void it."""
        invoice = (
            self.session.query(Invoice)
            .filter_by(order_id=order.id, status=InvoiceStatus.DRAFT, is_delete=False)
            .first()
        )
        if invoice is None:
            return None
        invoice.status = InvoiceStatus.VOID
        invoice.payment_status = PaymentStatus.CANCELLED
        invoice.outstanding_balance = 0
        logger.info("Draft invoice voided", extra={"order_id": order.id, "invoice_id": invoice.id})
        return invoice
