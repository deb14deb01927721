#!/usr/bin/env python3
"""
Notification Dispatcher
Sends personalized notifications for changed cases to their subscribers
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence

from config import MESSAGE_DELAY
from errors import TransportError
from message_builder import build_notification_message
from models import CaseChange, ChangeSet, NotificationOutcome, Subscription, User

logger = logging.getLogger(__name__)

# Changed field -> subscription opt-in keys that cover it
FIELD_NOTIFICATION_KINDS = {
    "case_status": ("status_change",),
    "stage_of_case": ("status_change",),
    "coram": ("status_change",),
    "next_hearing_date": ("hearing_date",),
    "listing_history": ("listing_update", "order_update"),
    "ia_applications": ("ia_update",),
}


def wants_notification(subscription: Subscription, changes: ChangeSet) -> bool:
    """True when at least one changed field is covered by the subscription's opt-ins"""
    for name in changes.changed_fields:
        kinds = FIELD_NOTIFICATION_KINDS.get(name)
        if kinds is None:
            if subscription.is_active:
                return True
            continue
        if any(subscription.wants(kind) for kind in kinds):
            return True
    return False


class NotificationDispatcher:
    """
    One message per (subscriber, changed case)

    Failed sends are recorded as failed outcomes and are not retried in the
    same cycle. Counters are only bumped for successful sends.
    """

    def __init__(
        self,
        store,
        transport,
        message_delay: float = MESSAGE_DELAY,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.store = store
        self.transport = transport
        self.message_delay = message_delay
        self.sleep = sleep

    async def dispatch(self, changes: Sequence[CaseChange]) -> List[NotificationOutcome]:
        outcomes = []
        sent_any = False

        for change in changes:
            if not change.changes.has_changes:
                continue

            try:
                subscriptions = await asyncio.to_thread(self.store.find_subscriptions, change.cino)
            except Exception as e:
                logger.error(f"❌ Could not load subscriptions for case {change.cino}: {e}")
                continue

            if not subscriptions:
                logger.info(f"📭 No active subscriptions for case {change.cino}")
                continue

            for subscription in subscriptions:
                if not subscription.is_active:
                    continue

                try:
                    user = await asyncio.to_thread(self.store.get_user, subscription.user_id)
                except Exception as e:
                    logger.error(f"❌ Could not load user {subscription.user_id}: {e}")
                    continue

                if user is None or not user.is_active:
                    logger.debug(f"Skipping inactive or missing user {subscription.user_id}")
                    continue

                if not wants_notification(subscription, change.changes):
                    logger.info(
                        f"Subscription {subscription.id} opted out of {', '.join(change.changes.changed_fields)}"
                    )
                    continue

                # Space out consecutive messages to stay under the transport's rate limit
                if sent_any and self.message_delay > 0:
                    await self.sleep(self.message_delay)

                outcomes.append(await self.send_notification(user, subscription, change))
                sent_any = True

        sent = sum(1 for o in outcomes if o.success)
        logger.info(f"Notifications: {sent} sent, {len(outcomes) - sent} failed")
        return outcomes

    async def send_notification(
        self,
        user: User,
        subscription: Subscription,
        change: CaseChange,
    ) -> NotificationOutcome:
        message = build_notification_message(user, subscription, change)

        try:
            result = await asyncio.to_thread(self.transport.send, [user.mobile_number], message)
        except TransportError as e:
            logger.error(f"❌ Transport rejected notification to {user.mobile_number}: {e}")
            return self._failed(user, change, str(e))
        except Exception as e:
            logger.error(f"❌ Error sending notification to {user.mobile_number}: {e}")
            return self._failed(user, change, str(e))

        if not result.success:
            logger.error(f"❌ Notification to {user.mobile_number} failed: {result.error}")
            return self._failed(user, change, result.error or "Unknown transport error")

        outcome = NotificationOutcome(
            user_id=user.id,
            mobile_number=user.mobile_number,
            cino=change.cino,
            success=True,
            message_id=result.message_id,
        )

        try:
            await asyncio.to_thread(self.store.record_notification, subscription, outcome)
        except Exception as e:
            logger.error(f"❌ Could not record notification for subscription {subscription.id}: {e}")

        logger.info(f"✅ Notified {user.mobile_number} about case {change.cino}")
        return outcome

    @staticmethod
    def _failed(user: User, change: CaseChange, error: str) -> NotificationOutcome:
        return NotificationOutcome(
            user_id=user.id,
            mobile_number=user.mobile_number,
            cino=change.cino,
            success=False,
            error=error,
        )
