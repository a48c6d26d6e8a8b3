"""Paid-access windows and the User <-> Subscriber role transitions they drive.

A subscription is active iff ``is_activated = 1 AND end_date > now``. Purchase,
the periodic expiry sweep, the profile reconciliation and playlist permission
checks all go through ``has_active_subscription`` so they cannot disagree.
"""

import logging
import os
import uuid

from dateutil.relativedelta import relativedelta

import payment
from database import db, now_iso, to_iso, utcnow
from errors import Conflict, NotFound, PaymentDeclined
from models import ROLE_SUBSCRIBER, ROLE_USER, PaymentDetails

logger = logging.getLogger(__name__)

SUBSCRIPTION_MONTHS = 1


def _subscription_row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "start_date": row["start_date"],
        "end_date": row["end_date"],
        "is_activated": bool(row["is_activated"]),
        "amount": row["amount"],
        "transaction_id": row["transaction_id"],
        "status": row["status"],
    }


def subscription_price() -> float:
    return float(os.environ.get("SUBSCRIPTION_PRICE", "299.00"))


def has_active_subscription(conn, user_id: int) -> bool:
    row = conn.execute(
        "SELECT 1 FROM subscriptions WHERE user_id=? AND is_activated=1 AND end_date > ? LIMIT 1",
        (user_id, now_iso()),
    ).fetchone()
    return row is not None


def active_subscription(user_id: int) -> dict | None:
    with db() as conn:
        row = conn.execute(
            """
            SELECT * FROM subscriptions
            WHERE user_id=? AND is_activated=1 AND end_date > ?
            ORDER BY end_date DESC
            LIMIT 1
            """,
            (user_id, now_iso()),
        ).fetchone()
    return _subscription_row_to_dict(row) if row else None


def list_subscriptions(user_id: int) -> list[dict]:
    with db() as conn:
        rows = conn.execute(
            "SELECT * FROM subscriptions WHERE user_id=? ORDER BY start_date DESC, id DESC",
            (user_id,),
        ).fetchall()
    return [_subscription_row_to_dict(r) for r in rows]


def _transaction_id(user_id: int) -> str:
    return f"SUB_{utcnow():%Y%m%d%H%M%S}_{user_id}_{uuid.uuid4().hex[:8]}"


def purchase(user_id: int, details: PaymentDetails) -> dict:
    """Charge for one month of access and make the buyer a subscriber.

    The subscription row and the role change commit together. Musicians and
    admins keep their role; they already have every subscriber permission.
    """
    amount = subscription_price()
    with db(immediate=True) as conn:
        user = conn.execute("SELECT id, username, role FROM users WHERE id=?", (user_id,)).fetchone()
        if not user:
            raise NotFound(f"User {user_id} not found")
        if has_active_subscription(conn, user_id):
            raise Conflict("User already has an active subscription")

        transaction_id = _transaction_id(user_id)
        if not payment.charge(details, amount, transaction_id):
            raise PaymentDeclined("Payment was declined; check the card details")

        start = utcnow()
        end = start + relativedelta(months=SUBSCRIPTION_MONTHS)
        subscription_id = conn.execute(
            """
            INSERT INTO subscriptions (user_id, start_date, end_date, is_activated, amount, transaction_id, status)
            VALUES (?, ?, ?, 1, ?, ?, 'paid')
            """,
            (user_id, to_iso(start), to_iso(end), amount, transaction_id),
        ).lastrowid
        # Musicians and admins already hold every subscriber permission; only user/subscriber flip.
        conn.execute(
            "UPDATE users SET role=? WHERE id=? AND role IN (?, ?)",
            (ROLE_SUBSCRIBER, user_id, ROLE_USER, ROLE_SUBSCRIBER),
        )
        row = conn.execute("SELECT * FROM subscriptions WHERE id=?", (subscription_id,)).fetchone()

    logger.info(f"User {user['username']} subscribed until {to_iso(end)} (transaction {transaction_id})")
    return _subscription_row_to_dict(row)


def sweep_expired() -> int:
    """Deactivate lapsed subscriptions and downgrade subscribers left without one.

    Each subscription is settled in its own write transaction that re-checks the
    expiry and the user's other subscriptions, so a purchase committed between the
    initial scan and the write is always seen. Returns how many rows were
    deactivated; a run with nothing expired writes nothing.
    """
    with db() as conn:
        expired = conn.execute(
            "SELECT id, user_id FROM subscriptions WHERE is_activated=1 AND end_date <= ?",
            (now_iso(),),
        ).fetchall()

    deactivated = 0
    for row in expired:
        with db(immediate=True) as conn:
            cur = conn.execute(
                "UPDATE subscriptions SET is_activated=0 WHERE id=? AND is_activated=1 AND end_date <= ?",
                (row["id"], now_iso()),
            )
            if cur.rowcount == 0:
                continue
            deactivated += 1
            if has_active_subscription(conn, row["user_id"]):
                continue
            downgraded = conn.execute(
                "UPDATE users SET role=? WHERE id=? AND role=?",
                (ROLE_USER, row["user_id"], ROLE_SUBSCRIBER),
            ).rowcount
        if downgraded:
            logger.info(f"Subscription {row['id']} expired; user {row['user_id']} reverted to user role")

    if deactivated:
        logger.info(f"Expiry sweep deactivated {deactivated} subscription(s)")
    return deactivated


def reconcile_role(conn, user_id: int, role: str) -> str:
    """Downgrade a subscriber whose subscriptions have all lapsed. Returns the resulting role."""
    if role != ROLE_SUBSCRIBER or has_active_subscription(conn, user_id):
        return role
    conn.execute("UPDATE users SET role=? WHERE id=? AND role=?", (ROLE_USER, user_id, ROLE_SUBSCRIBER))
    logger.info(f"User {user_id} has no active subscription; role reset to user")
    return ROLE_USER
