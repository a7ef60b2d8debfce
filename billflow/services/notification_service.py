import logging

from flask_mail import Message

from billflow.models import Currency, Customer, Invoice, PaymentStatus

from .email_templates import EmailTemplates

logger = logging.getLogger(__name__)


class NotificationService:
    """Customer-facing invoice emails sent through Flask-Mail."""

    def __init__(self, mail, session, default_sender=None):
        self.mail = mail
        self.session = session
        self.default_sender = default_sender

    def send_email(self, to_email, subject, html_content):
        message = Message(subject=subject, recipients=[to_email], html=html_content, sender=self.default_sender)
        self.mail.send(message)
        logger.info("Email sent", extra={"subject": subject})

    def send_invoice_email(self, invoice_id):
        """
        Email the customer about an invoice's payment outcome.

        Called after the settling transaction has committed, so a mail failure
        is logged and never undoes or fails the settlement.
        """
        try:
            invoice = self.session.get(Invoice, invoice_id)
            if invoice is None:
                return False
            customer = self.session.get(Customer, invoice.customer_id)
            if customer is None or not customer.email:
                return False

            currency = self.session.get(Currency, invoice.currency_id) if invoice.currency_id else None
            symbol = currency.currency_symbol if currency else None

            if invoice.payment_status == PaymentStatus.PAID:
                subject, html = EmailTemplates.invoice_paid(customer, invoice, symbol)
            else:
                subject, html = EmailTemplates.invoice_payment_failed(customer, invoice, symbol)

            self.send_email(customer.email, subject, html)
            return True
        except Exception:
            logger.exception("Failed to send invoice email", extra={"invoice_id": invoice_id})
            return False
