"""Invoice construction and best-effort delivery. Used by the pay step after a successful commit."""
import base64
import logging
from datetime import datetime

import requests

from app.agent.entities import Invoice, to_money
from app.core.audit import mask_email

logger = logging.getLogger(__name__)


def invoice_id_for(order_id: str) -> str:
    """INV- + first 8 characters of the order id, upper-cased."""
    return f"INV-{str(order_id)[:8].upper()}"


def build_invoice(order_id: str, session, email: str, paid_at: datetime) -> Invoice:
    return Invoice(
        invoice_id=invoice_id_for(order_id),
        order_id=order_id,
        medicine_name=session.product_name,
        quantity=session.quantity,
        unit_price=to_money(session.unit_price),
        total_paid=to_money(session.total_price),
        customer_email=email,
        paid_at=paid_at,
    )


def format_invoice_message(invoice: Invoice, business_name: str = None) -> str:
    """
    Format invoice details as a plain-text message body.

    Args:
        invoice: Invoice object
        business_name: Name of the pharmacy (optional)
    """
    business_name = business_name or "Pharmacy"
    message = f"""
INVOICE {invoice.invoice_id}

Order: {invoice.order_id}
Date: {invoice.paid_at.strftime('%d %b %Y, %I:%M %p')}
Customer: {invoice.customer_email}

{invoice.quantity} x {invoice.medicine_name} @ {invoice.unit_price:.2f}
Total paid: {invoice.total_paid:.2f}

---
Thank you for your order!
For queries, contact: {business_name}
""".strip()

    return message


class InvoiceNotifier:
    """Fire-and-forget invoice dispatch. Must return a bool, never raise."""

    def send_invoice(self, email: str, invoice: Invoice) -> bool:
        raise NotImplementedError


class EmailInvoiceNotifier(InvoiceNotifier):
    """
    POSTs the invoice to the email dispatch endpoint.

    Payload: {"email", "invoice", "message", "attachment": {"filename", "content_base64"}}
    A missing URL, transport error or non-2xx response returns False.
    """

    def __init__(self, url: str, timeout: float = 10, http=None, attach_pdf: bool = True):
        self.url = url
        self.timeout = timeout
        self.http = http or requests.Session()
        self.attach_pdf = attach_pdf

    def _payload(self, email: str, invoice: Invoice) -> dict:
        payload = {
            "email": email,
            "invoice": invoice.model_dump(mode="json"),
            "message": format_invoice_message(invoice),
        }
        if self.attach_pdf:
            # Imported lazily: reportlab is only needed when a PDF is attached
            from app.services.pdf_service import generate_invoice_pdf

            pdf = generate_invoice_pdf(invoice)
            payload["attachment"] = {
                "filename": f"{invoice.invoice_id}.pdf",
                "content_base64": base64.b64encode(pdf.getvalue()).decode("ascii"),
            }
        return payload

    def send_invoice(self, email: str, invoice: Invoice) -> bool:
        if not self.url:
            logger.info(f"[InvoiceNotifier] No dispatch URL configured; invoice {invoice.invoice_id} not sent")
            return False
        try:
            resp = self.http.post(self.url, json=self._payload(email, invoice), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[InvoiceNotifier] Error sending invoice {invoice.invoice_id}: {e}")
            return False
        if not resp.ok:
            logger.warning(
                f"[InvoiceNotifier] Dispatch of {invoice.invoice_id} to {mask_email(email)} failed: {resp.status_code}"
            )
            return False
        logger.info(f"[InvoiceNotifier] Invoice {invoice.invoice_id} sent to {mask_email(email)}")
        return True
