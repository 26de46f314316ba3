"""
Built-in email templates.

Each tenant gets a copy of these rows the first time its templates are
listed, and "reset to default" restores a row from here. Bodies are short
placeholders; ``{{variable}}`` markers are filled in at send time.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class DefaultEmailTemplate:
    event_key: str
    name: str
    subject: str
    body_html: str
    variables: tuple[str, ...]


def _template(event_key: str, name: str, subject: str, body: str, *variables: str) -> DefaultEmailTemplate:
    body_html = f"<p>{body}</p><p>{{{{gymName}}}}</p>"
    if "memberName" in variables:
        body_html = "<p>Hi {{memberName}},</p>" + body_html
    return DefaultEmailTemplate(
        event_key=event_key,
        name=name,
        subject=subject,
        body_html=body_html,
        variables=variables,
    )


DEFAULT_EMAIL_TEMPLATES: tuple[DefaultEmailTemplate, ...] = (
    # Members
    _template("welcome", "Welcome Email", "Welcome to {{gymName}}!",
              "Welcome aboard. Reply to {{gymEmail}} with any questions.",
              "memberName", "gymName", "gymEmail"),
    _template("birthday", "Birthday Email", "Happy Birthday, {{memberName}}!",
              "Everyone here wishes you a great birthday.",
              "memberName", "gymName"),
    _template("inactive_reengagement", "Inactive Re-engagement", "We miss you at {{gymName}}!",
              "It has been {{daysSinceLastClass}} days since your last class.",
              "memberName", "daysSinceLastClass", "gymName"),
    _template("promotion_congrats", "Promotion Congratulations", "Congratulations! Promoted to {{newRank}}",
              "You have been promoted to {{newRank}} in {{styleName}}.",
              "memberName", "newRank", "styleName", "gymName"),
    # Billing
    _template("invoice_created", "Invoice Created", "Invoice {{invoiceNumber}} - {{amount}} Due",
              "Invoice {{invoiceNumber}} for {{planName}} is due on {{dueDate}}: {{amount}}.",
              "memberName", "invoiceNumber", "planName", "amount", "dueDate", "gymName"),
    _template("payment_received", "Payment Received", "Payment Received - {{amount}}",
              "We received {{amount}} for {{planName}} (invoice {{invoiceNumber}}).",
              "memberName", "amount", "planName", "invoiceNumber", "gymName"),
    _template("past_due", "Past Due Alert", "Payment Past Due - {{amount}}",
              "Invoice {{invoiceNumber}} for {{amount}} was due on {{dueDate}}.",
              "memberName", "amount", "dueDate", "invoiceNumber", "gymName", "gymEmail"),
    _template("dunning_friendly", "Dunning - Friendly Reminder", "Payment Reminder - {{amount}}",
              "A friendly reminder that invoice {{invoiceNumber}} is outstanding.",
              "memberName", "amount", "invoiceNumber", "gymName"),
    _template("dunning_urgent", "Dunning - Urgent Notice", "Urgent: Payment Overdue - {{amount}}",
              "Invoice {{invoiceNumber}} is overdue. Please pay {{amount}} now.",
              "memberName", "amount", "invoiceNumber", "gymName"),
    _template("dunning_final", "Dunning - Final Notice", "Final Notice: Payment Required - {{amount}}",
              "This is the final notice for invoice {{invoiceNumber}}.",
              "memberName", "amount", "invoiceNumber", "gymName", "gymEmail"),
    _template("dunning_suspension", "Dunning - Account Suspended", "Account Suspended - Payment Required",
              "Your account is suspended until invoice {{invoiceNumber}} is paid.",
              "memberName", "amount", "invoiceNumber", "gymName", "gymEmail"),
    # Memberships
    _template("membership_expiry", "Membership Expiry Warning", "Your Membership Expires {{expiryDate}}",
              "Your {{planName}} membership expires on {{expiryDate}}.",
              "memberName", "planName", "expiryDate", "gymName"),
    _template("renewal_reminder", "Renewal Reminder", "Your membership expires in {{daysRemaining}} days",
              "Your {{planName}} membership expires on {{expiryDate}}.",
              "memberName", "planName", "expiryDate", "daysRemaining", "gymName"),
    _template("cancellation_confirmation", "Cancellation Confirmation", "Cancellation Confirmed - {{planName}}",
              "Your {{planName}} membership ends on {{effectiveDate}}. Fee: {{earlyTerminationFee}}.",
              "memberName", "planName", "effectiveDate", "earlyTerminationFee", "gymName", "gymEmail"),
    _template("trial_expiring", "Trial Expiring", "Your trial at {{gymName}} is ending soon",
              "Your trial ends {{expiresAt}} with {{classesRemaining}} classes left.",
              "memberName", "expiresAt", "classesRemaining", "gymName"),
    # Classes
    _template("class_reminder", "Class Reminder", "Class Reminder: {{className}}",
              "See you at {{className}} on {{classDate}} at {{classTime}}.",
              "memberName", "className", "classDate", "classTime", "gymName"),
    _template("booking_confirmed", "Booking Confirmed", "Booking Confirmed: {{className}}",
              "You are booked into {{className}} on {{classDate}} at {{classTime}}.",
              "memberName", "className", "classDate", "classTime", "gymName"),
    _template("booking_waitlisted", "Booking Waitlisted", "Waitlisted: {{className}}",
              "You are number {{waitlistPosition}} on the waitlist for {{className}}.",
              "memberName", "className", "classDate", "classTime", "waitlistPosition", "gymName"),
    _template("waitlist_promotion", "Waitlist Promotion", "Spot Confirmed: {{className}}",
              "A spot opened up in {{className}} on {{classDate}} at {{classTime}}.",
              "memberName", "className", "classDate", "classTime", "gymName"),
    # Onboarding
    _template("enrollment_confirmation", "Enrollment Confirmation", "Application Received - {{gymName}}",
              "Thanks {{firstName}}, we received your application for {{planName}}.",
              "firstName", "planName", "gymName", "gymEmail"),
    _template("waiver_welcome", "Waiver Welcome / Portal Access", "Welcome to {{gymName}} - Your Portal Access",
              "Sign in to the member portal at {{portalUrl}} with {{memberEmail}}.",
              "memberName", "memberEmail", "portalUrl", "gymName", "gymEmail"),
    _template("waiver_confirmed", "Waiver Confirmed / Portal Access", "Your Waiver Has Been Confirmed - {{gymName}}",
              "Your waiver is confirmed. Sign in at {{portalUrl}} or use {{magicLoginUrl}}.",
              "memberName", "memberEmail", "portalUrl", "magicLoginUrl", "gymName", "gymEmail"),
    _template("magic_link", "Magic Link Login", "Sign in to {{gymName}}",
              "Use this link to sign in: {{loginUrl}}",
              "memberName", "loginUrl", "gymName"),
    _template("custom_message", "Custom Message", "{{subject}}",
              "{{message}}",
              "memberName", "subject", "message", "gymName"),
    # Staff alerts
    _template("low_stock_alert", "Low Stock Alert", "Low Stock: {{itemName}} ({{currentQuantity}} remaining)",
              "{{itemName}} is at {{currentQuantity}}, below the threshold of {{threshold}}.",
              "itemName", "currentQuantity", "threshold", "gymName"),
    _template("promotion_eligibility", "Promotion Eligibility Alert", "{{eligibleCount}} member(s) eligible for promotion",
              "Eligible members: {{eligibleList}}",
              "eligibleList", "eligibleCount", "gymName"),
)

_BY_KEY = {template.event_key: template for template in DEFAULT_EMAIL_TEMPLATES}


def get_default_template(event_key: str) -> Optional[DefaultEmailTemplate]:
    return _BY_KEY.get(event_key)
