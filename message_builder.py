#!/usr/bin/env python3
"""
Message Builder
Renders WhatsApp notification text for subscribers and admins
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from change_detector import format_date
from config import COURT_NAME, TIMEZONE
from models import CaseChange, CaseSnapshot, Subscription, User

PRIORITY_EMOJI = {
    "urgent": "🚨",
    "high": "🔴",
    "medium": "🟡",
    "low": "🔵",
}

LISTING_ROWS = 3


def _local_now(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(ZoneInfo(TIMEZONE))
    return moment.strftime("%d/%m/%Y %I:%M %p")


def format_case_details(snapshot: Optional[CaseSnapshot]) -> str:
    """Short case details block appended under the change summary"""
    if snapshot is None:
        return ""

    lines = ["📊 *CASE DETAILS:*"]
    if snapshot.case_title:
        lines.append(f"📝 *Title:* {snapshot.case_title}")
    if snapshot.case_status:
        lines.append(f"📋 *Status:* {snapshot.case_status}")

    if snapshot.next_hearing_date:
        lines.append(f"📅 *Next Hearing Date:* {format_date(snapshot.next_hearing_date)}")
    else:
        lines.append("📅 *Next Hearing Date:* Not scheduled")

    if snapshot.stage_of_case and snapshot.stage_of_case.strip():
        lines.append(f"⚖️ *Stage of Case:* {snapshot.stage_of_case}")
    if snapshot.coram and snapshot.coram.strip():
        lines.append(f"👨‍⚖️ *Coram:* {snapshot.coram}")

    if snapshot.listing_history:
        lines.append("")
        lines.append("📅 *RECENT LISTINGS:*")
        for entry in snapshot.listing_history[-LISTING_ROWS:]:
            justice = entry.justice or "N/A"
            if entry.bench_id:
                justice += f" (Bench ID: {entry.bench_id})"
            lines.append(
                f"{format_date(entry.listing_date)} | {entry.cause_list_type or 'N/A'} | "
                f"{justice} | {entry.short_order or 'N/A'}"
            )

    return "\n".join(lines) + "\n\n"


def build_notification_message(
    user: User,
    subscription: Subscription,
    change: CaseChange,
    now: Optional[datetime] = None,
) -> str:
    """
    Build the personalized message for one subscriber

    Args:
        user: Subscriber
        subscription: The subscriber's subscription to the case
        change: Changed case emitted by the scheduler
        now: Timestamp shown in the footer, defaults to the current local time
    """
    changes = change.changes
    snapshot = change.snapshot
    case_alias = subscription.alias or (snapshot.case_title if snapshot else "") or change.cino
    priority = changes.notification_priority

    message = f"🏛️ *{COURT_NAME} Update*\n\n"
    message += f"👋 Hi {user.name or 'there'},\n\n"
    message += f"📋 *Case:* {case_alias}\n"
    message += f"🔢 *CINO:* {change.cino}\n\n"
    message += f"{PRIORITY_EMOJI.get(priority, '🔵')} *Priority:* {priority.upper()}\n\n"

    message += "📝 *Changes Detected:*\n"
    message += changes.changes_summary + "\n\n"

    message += format_case_details(snapshot)

    if changes.requires_attention():
        message += "⚠️ *Important:* This update requires your attention.\n\n"

    message += f"⏰ *Updated:* {_local_now(now)}\n\n"
    message += "---\n"
    message += f"🤖 *{COURT_NAME} Monitor*"
    return message


def build_error_alert(error: BaseException, run_count: int, now: Optional[datetime] = None) -> str:
    return (
        f"🚨 *{COURT_NAME} Monitor Error*\n\n"
        f"⏰ *Time:* {_local_now(now)}\n"
        f"🔄 *Cycle:* #{run_count}\n"
        f"❌ *Error:* {error}\n\n"
        "Please check the system logs for more details."
    )
