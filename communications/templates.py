"""
Message templates for scheduled communications.

Bodies are stored as built here; the HTML wrapper is applied at delivery
time so a template change never rewrites already-scheduled rows.
"""

import re
from html import escape
from typing import Any, Mapping, Optional, Sequence

from database.records import CustomerProfile, InventoryVehicle

MAX_EMAIL_VEHICLES = 5


def _money(value: Optional[float]) -> str:
    return f"${value:,.0f}" if value else "Flexible"


def contact_field(agent: Any, key: str, default: str = "") -> str:
    if isinstance(agent, Mapping):
        return agent.get(key) or default
    return getattr(agent, key, None) or default


def sms_subject() -> str:
    return "Your Vehicle Matches"


def sms_body(customer: CustomerProfile, assigned_agent: Any, link: str) -> str:
    name = customer.name or "there"
    return (
        f"Hi {name}, here are your matched vehicles: {link}\n\n"
        f"{contact_field(assigned_agent, 'name', 'Our sales specialist')} will follow up shortly.\n"
        f"{contact_field(assigned_agent, 'phone')}"
    ).rstrip()


def summary_subject(customer: CustomerProfile) -> str:
    return f"Your Vehicle Search Results - {customer.preferred_make or 'Multiple'} Options Available"


def summary_body(
    customer: CustomerProfile,
    assigned_agent: Any,
    vehicles: Sequence[InventoryVehicle],
    link: Optional[str] = None,
    dealership_name: str = "The Dealership",
) -> str:
    """Plain-text recap: assigned salesperson, preferences, top matches and a link to the rest."""
    agent_name = contact_field(assigned_agent, "name", "Our sales specialist")
    lines = [
        f"Dear {customer.name or 'Valued Customer'},",
        "",
        "Thank you for your interest in finding the perfect vehicle with us today!",
        "",
        "Your Assigned Sales Specialist:",
        agent_name,
        f"Email: {contact_field(assigned_agent, 'email')}",
        f"Phone: {contact_field(assigned_agent, 'phone')}",
        "",
        "Your Vehicle Preferences:",
        f"- {customer.preferred_year or 'Any Year'} {customer.preferred_make or 'Any Make'} "
        f"{customer.preferred_model or 'Any Model'}",
        f"- Budget: {_money(customer.budget)}",
        f"- Mileage Range: {customer.min_mileage or 0} - {customer.max_mileage or 'Any'} miles",
    ]

    if vehicles:
        lines += ["", f"Matched Vehicles ({len(vehicles)} found):"]
        for v in list(vehicles)[:MAX_EMAIL_VEHICLES]:
            lines.append(
                f"- {v.year} {v.make} {v.model} - ${v.price:,.0f} - "
                f"{v.mileage:,} miles (Stock #{v.stock_number})"
            )
        if link:
            lines += ["", f"View All Matches: {link}"]

    lines += [
        "",
        "Next Steps:",
        f"1. {agent_name} will contact you within the next hour to discuss your options",
        "2. Feel free to browse the inventory link above",
        "3. Reply to this email with any questions or specific requirements",
        "",
        "We look forward to helping you find your perfect vehicle!",
        "",
        "Best regards,",
        f"{dealership_name} Team",
    ]
    return "\n".join(lines)


def contact_request_subject(customer: Optional[CustomerProfile]) -> str:
    return f"Urgent: Customer Contact Request - {(customer.name if customer else None) or 'Website Visitor'}"


def contact_request_body(
    customer: Optional[CustomerProfile],
    message: str,
    contact_method: Optional[str] = None,
    vehicle: Optional[InventoryVehicle] = None,
) -> str:
    """Note to the salesperson when a caller writes in from their inventory link."""
    name = (customer.name if customer else None) or "A customer"
    lines = [
        f"{name} has submitted a contact request from their inventory link.",
        "",
        f"Contact Method Preferred: {contact_method or 'Any'}",
        f"Phone: {(customer.phone_number if customer else None) or 'Not provided'}",
        f"Email: {(customer.email if customer else None) or 'Not provided'}",
        "",
        f"Message: {message or '(no message)'}",
    ]
    if vehicle is not None:
        lines += ["", f"Regarding: {vehicle.year} {vehicle.make} {vehicle.model} (Stock #{vehicle.stock_number})"]
    lines += ["", "Please follow up immediately."]
    return "\n".join(lines)


_DEFAULT_HTML = """<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: #2c3e50; color: white; padding: 20px; text-align: center; }}
        .content {{ padding: 20px; background-color: #f9f9f9; white-space: pre-line; }}
        .footer {{ background-color: #34495e; color: white; padding: 10px; text-align: center; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{dealership}</h1></div>
        <div class="content">{content}</div>
        <div class="footer"><p>{dealership} | {phone}</p></div>
    </div>
</body>
</html>"""

_EDUCATION_HTML = """<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Georgia, serif; line-height: 1.8; color: #444; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ border-bottom: 2px solid #e74c3c; padding-bottom: 10px; margin-bottom: 20px; }}
        .tip {{ background-color: #ecf0f1; padding: 15px; margin: 15px 0; border-left: 4px solid #e74c3c; }}
        .footer {{ margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; font-size: 12px; color: #777; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h2>Car Buying Tips &amp; Education</h2></div>
        {content}
        <div class="footer">
            <p>This educational content is provided by {dealership}</p>
            <p>Questions? Reply to this email or call us at {phone}</p>
        </div>
    </div>
</body>
</html>"""

HTML_TEMPLATES = {
    "default": _DEFAULT_HTML,
    "education": _EDUCATION_HTML,
}


def wrap_html(content: str, template: str = "default", dealership: str = "Your Dealership",
              phone: str = "") -> str:
    """
    Wrap a stored body in the named HTML layout; unknown names use the default.

    Plain-text bodies carry caller-supplied values and are escaped. Education
    bodies are authored HTML and go in as stored.
    """
    layout = HTML_TEMPLATES.get(template, _DEFAULT_HTML)
    if layout is not _EDUCATION_HTML:
        content = escape(content)
    return layout.format(content=content, dealership=escape(dealership), phone=escape(phone))


def strip_html(html: str) -> str:
    text = re.sub(r"<[^>]*>", "", html)
    return re.sub(r"\n\s*\n", "\n\n", text).strip()
