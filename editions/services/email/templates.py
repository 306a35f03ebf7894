"""
Subject / body templates keyed by email type. Content dicts are rendered with str.format_map;
a missing key renders empty rather than failing the send.
"""
from editions.services.email.types import AdminEmailType, EmailType


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


EMAIL_TEMPLATES: dict[str, tuple[str, str]] = {
    EmailType.PREORDER_CONFIRMATION.value: (
        "Your preorder for {editionCode} is confirmed",
        "<p>Hi {name},</p><p>Thank you for preordering {editionCode} ({plan}). "
        "We will let you know the moment it is released.</p>",
    ),
    EmailType.SUBSCRIPTION_STARTED.value: (
        "Welcome to your Editions subscription",
        "<p>Hi {name},</p><p>Your subscription is active. Your next edition is #{nextEdition}.</p>",
    ),
    EmailType.SUBSCRIPTION_RENEWED.value: (
        "Your Editions subscription has renewed",
        "<p>Hi {name},</p><p>Thanks for staying with us. Your next edition is #{nextEdition}.</p>",
    ),
    EmailType.NEW_EDITION_RELEASED.value: (
        "{editionTitle} is out now",
        "<p>Hi {name},</p><p>{editionTitle} ({editionCode}) has just been released.</p>"
        "<p><a href=\"{editionLink}\">Read it here</a></p>",
    ),
    AdminEmailType.NEW_PREORDER.value: (
        "[admin] New preorder: {email}",
        "<p>{name} ({email}) preordered {editionCode} on plan {plan} for {amount}.</p>",
    ),
    AdminEmailType.SUBSCRIPTION_STARTED.value: (
        "[admin] Subscription started: {email}",
        "<p>{name} ({email}) started a {plan} subscription. Period {periodStart} to {periodEnd}.</p>",
    ),
    AdminEmailType.SUBSCRIPTION_RENEWED.value: (
        "[admin] Subscription renewed: {email}",
        "<p>{name} ({email}) renewed their {plan} subscription at {renewedAt}. "
        "Next period ends {nextPeriodEnd}.</p>",
    ),
}


def render(template_type: str, content: dict) -> tuple[str, str]:
    try:
        subject, body = EMAIL_TEMPLATES[template_type]
    except KeyError:
        raise KeyError(f"No email template for type={template_type}") from None
    values = _Blank({k: "" if v is None else v for k, v in content.items()})
    return subject.format_map(values), body.format_map(values)
