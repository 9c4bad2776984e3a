"""
Pydantic request schemas for the ChorePulse API.

Bodies arrive in camelCase. Fields whose validation messages are part of the
API contract are optional here and checked by the handlers.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def provided(self) -> dict:
        """Fields the client actually sent, keyed by snake_case name."""
        return self.model_dump(exclude_unset=True)


# Auth


class SignupRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    family_name: Optional[str] = None


class SigninRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class PinLoginRequest(CamelModel):
    family_code: Optional[str] = None
    username: Optional[str] = None
    pin: Optional[str] = None


# Tasks


class TaskCreateRequest(CamelModel):
    name: Optional[str] = None
    category: Optional[str] = None
    frequency: Optional[str] = None
    points: Optional[float] = None
    description: Optional[str] = None
    due_time: Optional[str] = None
    requires_photo: bool = False
    requires_approval: bool = False
    assign_to: list[str] = []
    recurrence_interval: Optional[int] = None
    recurrence_day_of_week: Optional[int] = None


class TaskUpdateRequest(CamelModel):
    name: Optional[str] = None
    category: Optional[str] = None
    frequency: Optional[str] = None
    points: Optional[float] = None
    description: Optional[str] = None
    due_time: Optional[str] = None
    status: Optional[str] = None
    requires_photo: Optional[bool] = None
    requires_approval: Optional[bool] = None
    assign_to: Optional[list[str]] = None
    recurrence_interval: Optional[int] = None
    recurrence_day_of_week: Optional[int] = None


class TaskCompleteRequest(CamelModel):
    photo_url: Optional[str] = None
    notes: Optional[str] = None


class PhotoUploadRequest(CamelModel):
    filename: str
    content_type: str = "image/jpeg"


class CompletionReviewRequest(CamelModel):
    approved: Any = None
    notes: Optional[str] = None


# Rewards


class RewardCreateRequest(CamelModel):
    name: Optional[str] = None
    category: Optional[str] = None
    points: Optional[float] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    stock_quantity: Optional[int] = None
    max_per_month: Optional[int] = None
    age_restriction: Optional[str] = None
    requires_approval: bool = True


class RedeemRequest(CamelModel):
    notes: Optional[str] = None


class RedemptionActionRequest(CamelModel):
    action: Optional[str] = None
    admin_notes: Optional[str] = None


# Achievements


class AchievementAckRequest(CamelModel):
    achievement_ids: Any = None


class MilestoneCreateRequest(CamelModel):
    title: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None
    reference_id: Optional[str] = None


# Users


class UserCreateRequest(CamelModel):
    name: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    pin: Optional[str] = None
    avatar: Optional[str] = None
    color: Optional[str] = None
    birthday: Optional[str] = None
    parent_consent: bool = False
    parent_email: Optional[str] = None
    is_family_manager: bool = False


class UserUpdateRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    color: Optional[str] = None
    birthday: Optional[str] = None
    role: Optional[str] = None
    is_family_manager: Optional[bool] = None
    pin_required: Optional[bool] = None


class PinUpdateRequest(CamelModel):
    pin: Optional[str] = None


# Organizations


class OrganizationUpdateRequest(CamelModel):
    name: Optional[str] = None
    timezone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class HouseholdUpdateRequest(CamelModel):
    home_features: Optional[list[str]] = None
    special_considerations: Optional[str] = None
    has_pets: Optional[bool] = None
    pet_types: Optional[list[str]] = None
    age_groups: Optional[list[str]] = None
    number_of_cars: Optional[int] = None
    number_of_bikes: Optional[int] = None


class PropertyLookupRequest(CamelModel):
    address: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class InvitationAcceptRequest(CamelModel):
    token: Optional[str] = None
    org_id: Optional[str] = None
    password: Optional[str] = None


# Calendar


class CalendarSettingsUpdate(CamelModel):
    sync_enabled: Optional[bool] = None
    sync_tasks_to_calendar: Optional[bool] = None
    sync_calendar_to_tasks: Optional[bool] = None
    calendar_name: Optional[str] = None


# Email


class CampaignTriggerRequest(CamelModel):
    user_id: Optional[str] = None
    campaign_type: Optional[str] = None
    custom_data: dict = {}
    queue: bool = False


class EmailPreferencesUpdate(CamelModel):
    welcome_emails: Optional[bool] = None
    weekly_reports: Optional[bool] = None
    tips_and_encouragement: Optional[bool] = None
    achievements_notifications: Optional[bool] = None
    streak_reminders: Optional[bool] = None
    referral_emails: Optional[bool] = None
    product_updates: Optional[bool] = None
    surveys: Optional[bool] = None
    unsubscribed_all: Optional[bool] = None


# AI


class ParseTaskRequest(CamelModel):
    input: Any = None
