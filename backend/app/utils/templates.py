# utils/templates.py - plain message text for order notifications
import html
import logging

logger = logging.getLogger("storefront")

SMS_TEMPLATES = {
    "order_confirmation": "Hi {name}, payment received for order {order_number} ({amount}). We're preparing it now. - {store}",
    "status_update": "Hi {name}, your order {order_number} is now {status}.{tracking} - {store}",
    "payment_link": "Hi {name}, your order {order_number} ({amount}) is awaiting payment. Complete it here: {link} - {store}",
    "welcome": "Welcome to {store}, {name}! Thanks for signing up.",
}

EMAIL_TEMPLATES = {
    "order_confirmation": {
        "subject": "Order {order_number} confirmed",
        "body": "Hi {name},<br><br>We've received your payment of <strong>{amount}</strong> for order <strong>{order_number}</strong>. We'll let you know when it ships.",
    },
    "status_update": {
        "subject": "Order {order_number} is {status}",
        "body": "Hi {name},<br><br>Your order <strong>{order_number}</strong> is now <strong>{status}</strong>.{tracking}",
    },
    "payment_link": {
        "subject": "Complete payment for order {order_number}",
        "body": "Hi {name},<br><br>Your order <strong>{order_number}</strong> ({amount}) is still awaiting payment.<br><br><a href=\"{link}\">Pay now</a>",
    },
    "welcome": {
        "subject": "Welcome to {store}",
        "body": "Hi {name},<br><br>Thanks for creating an account with {store}.",
    },
    "contact": {
        "subject": "New contact message from {name}",
        "body": "<strong>From:</strong> {name} &lt;{email}&gt;<br><strong>Subject:</strong> {subject}<br><br>{message}",
    },
}


def email_layout(body: str, title: str, store: str) -> str:
    return f"""
    <div style="font-family:-apple-system, 'Segoe UI', sans-serif; background:#f9fafb; padding:32px 16px;">
      <div style="max-width:520px; margin:0 auto; background:#ffffff; border-radius:12px; padding:32px;">
        <p style="margin:0 0 24px; color:#6b7280; font-size:12px; text-transform:uppercase; letter-spacing:2px;">{html.escape(store)}</p>
        <h2 style="margin:0 0 16px; color:#111827; font-size:22px;">{title}</h2>
        <div style="color:#374151; font-size:14px; line-height:1.7;">{body}</div>
      </div>
    </div>
    """


def render_sms(kind: str, context: dict) -> str:
    try:
        return SMS_TEMPLATES[kind].format(**context)
    except KeyError as e:
        logger.error(f"SMS template '{kind}' missing key {e}")
        raise


def render_email(kind: str, context: dict, store: str):
    """Returns (subject, html). Context values are escaped."""
    template = EMAIL_TEMPLATES[kind]
    safe = {k: html.escape(str(v)) for k, v in context.items()}
    subject = template["subject"].format(**context)
    body = template["body"].format(**safe)
    return subject, email_layout(body, html.escape(subject), store)
