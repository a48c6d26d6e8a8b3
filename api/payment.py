import logging
import os

from models import PaymentDetails

logger = logging.getLogger(__name__)


def charge(details: PaymentDetails, amount: float, transaction_id: str) -> bool:
    """Charge a card for a subscription.

    Only the simulated gateway exists: with PAYMENT_TEST_MODE enabled (the default)
    every charge succeeds; otherwise every charge is declined.
    """
    test_mode = os.environ.get("PAYMENT_TEST_MODE", "true").lower() in ("1", "true", "yes")
    card_ending = details.card_number.replace(" ", "")[-4:]

    if test_mode:
        logger.info(f"Test payment accepted: transaction={transaction_id} amount={amount:.2f} card=****{card_ending}")
        return True

    logger.error(f"No payment gateway configured; declining transaction {transaction_id}")
    return False
