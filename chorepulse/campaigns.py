"""
Email campaigns: template rendering, preference checks, send history and the
queued-delivery path used by the worker.

Templates live in chorepulse/templates/email and are rendered with Jinja2.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from chorepulse.config import Settings, get_settings
from chorepulse.db import (
    DbClient,
    EmailPreferencesRecord,
    EmailQueueRecord,
    EmailSendHistoryRecord,
    OrganizationRecord,
    UserRecord,
)
from chorepulse.mailer import EmailSender, send_email
from chorepulse.queue import EmailQueue
from chorepulse.timefmt import utc_datetime

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "email"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

CAMPAIGN_TYPES = (
    "owner_welcome",
    "owner_task_tips",
    "owner_science_upgrade",
    "owner_family_report",
    "owner_momentum",
    "owner_graduation",
    "user_welcome",
    "user_first_task",
    "user_team_update",
    "weekly_report",
    "trial_renewal_reminder",
    "payment_confirmation",
    "post_payment_encouragement",
)

# Sent at most once per user.
ONBOARDING_CAMPAIGNS = frozenset(
    {
        "owner_welcome",
        "owner_task_tips",
        "owner_science_upgrade",
        "owner_family_report",
        "owner_momentum",
        "owner_graduation",
        "user_welcome",
        "user_first_task",
        "user_team_update",
    }
)

PREFERENCE_MAP = {
    "owner_welcome": "welcome_emails",
    "owner_task_tips": "tips_and_encouragement",
    "owner_science_upgrade": "product_updates",
    "owner_family_report": "weekly_reports",
    "owner_momentum": "tips_and_encouragement",
    "owner_graduation": "welcome_emails",
    "user_welcome": "welcome_emails",
    "user_first_task": "tips_and_encouragement",
    "user_team_update": "weekly_reports",
    "weekly_report": "weekly_reports",
    "streak_alert": "streak_reminders",
    "achievement": "achievements_notifications",
    "referral": "referral_emails",
}

SUBJECTS = {
    "owner_welcome": "Welcome to ChorePulse! Here's what to do first 🎉",
    "owner_task_tips": "3 pro tips to create tasks your family will actually complete ✨",
    "owner_science_upgrade": "Why organized families are happier families 💙",
    "owner_family_report": "📊 Your first family report: {{ familyName }}'s week in review",
    "owner_momentum": "5 ways to keep your family motivated 💪",
    "owner_graduation": "🎓 You're a ChorePulse Pro! Here's what's next",
    "user_welcome": "Welcome to {{ familyName }} on ChorePulse! 👋",
    "user_first_task": "Ready to earn your first points? 🌟",
    "user_team_update": "See how {{ familyName }} is doing this week! 📈",
    "weekly_report": "📊 {{ familyName }}'s Weekly Report: {{ dateRange }}",
    "streak_alert": "🔥 Don't break your {{ streakDays }}-day streak!",
    "achievement": "🏆 Achievement Unlocked: {{ achievementName }}",
    "trial_renewal_reminder": "⏰ Your Trial Ends Tomorrow - Important Billing Information",
    "payment_confirmation": "✅ Payment Confirmed - Thank You!",
    "post_payment_encouragement": "🚀 You're All Set! Make the Most of {{ planName or 'Your Subscription' }}",
}
DEFAULT_SUBJECT = "ChorePulse Update"

ROLE_DESCRIPTIONS = {
    "adult": "a parent who can create tasks, approve completions and manage rewards",
    "teen": "a teen member who completes tasks and earns points",
    "kid": "a kid member who completes tasks and earns points",
}


class UnknownCampaignError(ValueError):
    pass


def default_campaign_data(settings: Optional[Settings] = None) -> dict:
    settings = settings or get_settings()
    app_url = settings.app_url.rstrip("/")
    return {
        "appUrl": app_url,
        "parentName": "Parent",
        "userName": "User",
        "familyName": "Your Family",
        "ownerName": "Family Owner",
        "userRole": "Member",
        "unsubscribeUrl": f"{app_url}/unsubscribe",
        "proPricing": settings.pro_pricing,
        "premiumPricing": settings.premium_pricing,
    }


def campaign_subject(campaign_type: str, data: dict) -> str:
    source = SUBJECTS.get(campaign_type)
    if not source:
        return DEFAULT_SUBJECT
    return _env.from_string(source).render(**data)


def render_campaign(campaign_type: str, data: dict, settings: Optional[Settings] = None) -> str:
    if campaign_type not in CAMPAIGN_TYPES:
        raise UnknownCampaignError(campaign_type)
    context = {**default_campaign_data(settings), **data}
    return _env.get_template(f"{campaign_type}.html").render(**context)


def ensure_preferences(db: DbClient, user: UserRecord) -> EmailPreferencesRecord:
    """Return the user's email preferences, creating the defaults on first use."""
    prefs = db.find_one(EmailPreferencesRecord, user_id=user.id)
    if prefs:
        return prefs
    return db.insert(EmailPreferencesRecord(user_id=user.id, email=user.email))


def can_send(db: DbClient, user_id: str, campaign_type: str) -> bool:
    prefs = db.find_one(EmailPreferencesRecord, user_id=user_id)
    if not prefs:
        return True
    if prefs.unsubscribed_all:
        return False
    field_name = PREFERENCE_MAP.get(campaign_type)
    if field_name and getattr(prefs, field_name) is False:
        return False
    return True


def already_sent(db: DbClient, user_id: str, campaign_type: str) -> bool:
    return (
        db.find_one(
            EmailSendHistoryRecord, user_id=user_id, campaign_type=campaign_type, status="sent"
        )
        is not None
    )


def build_campaign_data(
    db: DbClient,
    user: UserRecord,
    campaign_type: str,
    custom_data: Optional[dict] = None,
    settings: Optional[Settings] = None,
) -> dict:
    """Template context for one user: names, role flags and the unsubscribe link."""
    settings = settings or get_settings()
    custom_data = dict(custom_data or {})
    org = db.get(OrganizationRecord, user.organization_id)
    owner = db.find_one(UserRecord, organization_id=user.organization_id, is_account_owner=True)
    prefs = ensure_preferences(db, user)

    data = {
        "userName": user.name,
        "userRole": user.role,
        "roleDescription": ROLE_DESCRIPTIONS.get(user.role, "a family member"),
        "familyName": org.name if org else "Your Family",
        "ownerName": owner.name if owner else "Family Owner",
        "unsubscribeUrl": (
            f"{settings.app_url.rstrip('/')}/unsubscribe?token={prefs.unsubscribe_token}"
        ),
    }
    data.update(custom_data)
    tier = custom_data.get("subscriptionTier")
    if tier is None and org is not None:
        tier = "trial" if org.subscription_status == "trialing" else org.subscription_tier
    data["isKidOrTeen"] = user.role in ("kid", "teen")
    data["isManagerOrParent"] = user.is_manager or user.role == "adult"
    data["isFreeUser"] = tier == "free"
    data["isTrialUser"] = tier == "trial"
    if campaign_type.startswith("owner_"):
        data["parentName"] = user.name
    return data


def _record_history(
    db: DbClient,
    *,
    user_id: str,
    campaign_type: str,
    email: str,
    subject: str,
    sent: bool,
) -> None:
    db.insert(
        EmailSendHistoryRecord(
            user_id=user_id,
            campaign_type=campaign_type,
            email=email,
            subject=subject,
            status="sent" if sent else "failed",
            sent_at=time.time() if sent else None,
            error_message=None if sent else "Failed to send email",
        )
    )


def send_campaign(
    db: DbClient,
    sender: EmailSender,
    user: UserRecord,
    campaign_type: str,
    data: dict,
    settings: Optional[Settings] = None,
) -> bool:
    """Render and send a campaign now, recording the attempt in send history."""
    subject = campaign_subject(campaign_type, data)
    try:
        html = render_campaign(campaign_type, data, settings)
    except TemplateError:
        logger.exception("Failed to render %s for user %s", campaign_type, user.id)
        sent = False
    else:
        sent = send_email(sender, user.email, subject, html)
    _record_history(
        db,
        user_id=user.id,
        campaign_type=campaign_type,
        email=user.email,
        subject=subject,
        sent=sent,
    )
    return sent


def enqueue_campaign(
    db: DbClient,
    queue: EmailQueue,
    user: UserRecord,
    campaign_type: str,
    data: dict,
    *,
    scheduled_for: Optional[float] = None,
    priority: int = 5,
) -> EmailQueueRecord:
    item = db.insert(
        EmailQueueRecord(
            user_id=user.id,
            email=user.email,
            campaign_type=campaign_type,
            subject=campaign_subject(campaign_type, data),
            data=data,
            scheduled_for=scheduled_for or time.time(),
            priority=priority,
        )
    )
    queue.enqueue(item.id, scheduled_for=item.scheduled_for, priority=item.priority)
    logger.info("Queued %s email %s for user %s", campaign_type, item.id, user.id)
    return item


def deliver_queued(
    db: DbClient,
    sender: EmailSender,
    item_id: str,
    settings: Optional[Settings] = None,
) -> bool:
    """
    Send one queued email. Returns True when the item was handled (sent or
    marked failed), False when it no longer needs work.
    """
    item = db.get(EmailQueueRecord, item_id)
    if not item:
        logger.warning("Received email id %s from queue but no row found", item_id)
        return False
    if item.status != "queued":
        logger.info("Skipping email %s with status %s", item.id, item.status)
        return False
    if not can_send(db, item.user_id, item.campaign_type):
        db.update(EmailQueueRecord, item.id, status="failed", attempts=item.attempts + 1)
        logger.info("User %s opted out of %s", item.user_id, item.campaign_type)
        return True

    try:
        html = render_campaign(item.campaign_type, item.data, settings)
    except (TemplateError, UnknownCampaignError):
        logger.exception("Failed to render queued email %s", item.id)
        sent = False
    else:
        sent = send_email(sender, item.email, item.subject, html)

    db.update(
        EmailQueueRecord, item.id, status="sent" if sent else "failed", attempts=item.attempts + 1
    )
    _record_history(
        db,
        user_id=item.user_id,
        campaign_type=item.campaign_type,
        email=item.email,
        subject=item.subject,
        sent=sent,
    )
    return True


def send_parental_consent_email(
    sender: EmailSender,
    *,
    parent_email: str,
    parent_name: str,
    child_name: str,
    child_age: int,
    consent_date: float,
    organization_name: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> bool:
    settings = settings or get_settings()
    html = _env.get_template("parental_consent.html").render(
        appUrl=settings.app_url.rstrip("/"),
        parentName=parent_name,
        childName=child_name,
        childAge=child_age,
        organizationName=organization_name or "your family",
        consentDate=utc_datetime(consent_date).strftime("%B %d, %Y at %I:%M %p UTC"),
    )
    text = (
        f"Dear {parent_name},\n\n"
        f"This email confirms that you have given parental consent for {child_name} "
        f"(age {child_age}) to use ChorePulse as part of {organization_name or 'your family'}.\n"
    )
    return send_email(
        sender, parent_email, f"Parental Consent Confirmation for {child_name}", html, text
    )
