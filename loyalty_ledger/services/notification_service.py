"""
Events emitted after a movement commits.

Sinks are fire-and-forget: a failing sink is logged and never rolls back
or fails the movement that triggered it.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from loyalty_ledger.services.clock import utcnow
from loyalty_ledger.services.tier_service import tier_rank


logger = logging.getLogger(__name__)

TIER_UPGRADED = "TIER_UPGRADED"
TIER_DOWNGRADED = "TIER_DOWNGRADED"
LOW_BALANCE = "LOW_BALANCE"

LOW_BALANCE_THRESHOLD = int(os.getenv("LEDGER_LOW_BALANCE_THRESHOLD") or "100")


@dataclass(frozen=True)
class LedgerEvent:
    event_type: str
    account_id: str
    customer_id: str
    program_id: str
    payload: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


class NotificationSink(Protocol):
    def publish(self, event: LedgerEvent) -> None:
        ...


class LoggingNotificationSink:
    def publish(self, event: LedgerEvent) -> None:
        logger.info(
            "ledger event",
            extra={
                "event_type": event.event_type,
                "account_id": event.account_id,
                "payload": event.payload,
            },
        )


def build_events(outcome, *, low_balance_threshold: int = LOW_BALANCE_THRESHOLD) -> list[LedgerEvent]:
    account = outcome.account
    movement = outcome.movement
    common = {
        "account_id": str(account.id),
        "customer_id": str(account.customer_id),
        "program_id": str(account.program_id),
    }
    events = []

    if outcome.tier_before != outcome.tier_after:
        upgraded = tier_rank(outcome.tier_after) > tier_rank(outcome.tier_before)
        events.append(
            LedgerEvent(
                event_type=TIER_UPGRADED if upgraded else TIER_DOWNGRADED,
                payload={
                    "fromTier": outcome.tier_before,
                    "toTier": outcome.tier_after,
                    "reason": movement.type,
                    "balance": int(movement.balance_after),
                    "movementId": str(movement.id),
                },
                **common,
            )
        )

    if movement.amount < 0 and outcome.balance_before >= low_balance_threshold > movement.balance_after:
        events.append(
            LedgerEvent(
                event_type=LOW_BALANCE,
                payload={
                    "balance": int(movement.balance_after),
                    "threshold": low_balance_threshold,
                    "movementId": str(movement.id),
                },
                **common,
            )
        )

    return events


class NotificationHook:
    """After-commit hook publishing tier-change and low-balance events."""

    def __init__(self, sink: NotificationSink, *, low_balance_threshold: int = LOW_BALANCE_THRESHOLD):
        self.sink = sink
        self.low_balance_threshold = low_balance_threshold

    def __call__(self, outcome) -> None:
        for event in build_events(outcome, low_balance_threshold=self.low_balance_threshold):
            try:
                self.sink.publish(event)
            except Exception:
                logger.exception(
                    "notification sink failed",
                    extra={"event_type": event.event_type, "account_id": event.account_id},
                )


def audit_log_hook(outcome) -> None:
    movement = outcome.movement
    logger.info(
        "ledger movement committed",
        extra={
            "account_id": str(movement.account_id),
            "movement_id": str(movement.id),
            "type": movement.type,
            "points": int(movement.amount),
            "balance_after": int(movement.balance_after),
            "sequence": movement.sequence,
        },
    )
