from billflow.utils.money import round_money


def _money(amount, currency_symbol):
    return f"{currency_symbol or ''}{round_money(amount):,.2f}"


def _date(value):
    return value.strftime("%B %d, %Y") if value else "N/A"


class EmailTemplates:
    """Invoice email bodies. Each template returns ``(subject, html)``."""

    @staticmethod
    def invoice_paid(customer, invoice, currency_symbol=None):
        subject = f"Payment Received - Invoice {invoice.invoice_number}"
        html = f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h1>Thank you for your payment</h1>
                <p>Hello {customer.full_name or customer.email},</p>
                <p>We received your payment for invoice <strong>{invoice.invoice_number}</strong>.</p>
                <p><strong>Amount paid:</strong> {_money(invoice.total, currency_symbol)}</p>
                <p><strong>Plan:</strong> {invoice.plan or 'N/A'}</p>
                <p><strong>Issued:</strong> {_date(invoice.issue_date)}</p>
                <p>Outstanding balance: {_money(invoice.outstanding_balance, currency_symbol)}</p>
            </div>
        </body>
        </html>
        """
        return subject, html

    @staticmethod
    def invoice_payment_failed(customer, invoice, currency_symbol=None):
        subject = f"Payment Failed - Invoice {invoice.invoice_number}"
        html = f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h1>Payment Failed</h1>
                <p>Hello {customer.full_name or customer.email},</p>
                <p>We were unable to renew your subscription.</p>
                <p><strong>Invoice:</strong> {invoice.invoice_number}</p>
                <p><strong>Amount due:</strong> {_money(invoice.outstanding_balance, currency_symbol)}</p>
                <p><strong>Due date:</strong> {_date(invoice.due_date)}</p>
                <p>Please update your payment method to keep your account active.</p>
            </div>
        </body>
        </html>
        """
        return subject, html
