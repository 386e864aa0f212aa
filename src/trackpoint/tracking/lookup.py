"""Order number + phone lookup for customers without a tracking link."""

import logging

from trackpoint.tracking.errors import LookupFailed, NotFound, StoreError, ValidationError
from trackpoint.tracking.records import DeliveryRecord, digits_only
from trackpoint.tracking.store import LookupCriteria, RecordStore

logger = logging.getLogger(__name__)

PHONE_SUFFIX_LENGTH = 4

NOT_FOUND_MESSAGE = "Order not found. Check your details or contact support."


class LookupGate:
    """Authorizes viewing a delivery from an order number and phone suffix.

    Both factors must match: a fragment of the tracking code
    (case-insensitive) and the last four digits of the customer's phone.
    A miss on either factor is reported the same way, so an order number
    alone never confirms that an order exists.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    async def authorize(
        self,
        tenant_id: str,
        order_number: str,
        phone: str,
    ) -> DeliveryRecord:
        """Return the matching record.

        Raises:
            ValidationError: empty order number or fewer than four phone digits.
            NotFound: nothing matches both factors.
            LookupFailed: the store couldn't be queried.
        """
        fragment = (order_number or "").strip()
        if not fragment:
            raise ValidationError("Order number is required")

        digits = digits_only(phone)
        if len(digits) < PHONE_SUFFIX_LENGTH:
            raise ValidationError(
                f"Phone number must contain at least {PHONE_SUFFIX_LENGTH} digits"
            )
        suffix = digits[-PHONE_SUFFIX_LENGTH:]

        try:
            record = await self.store.fetch(
                LookupCriteria(tenant_id=tenant_id, order_fragment=fragment, phone_digits=suffix)
            )
        except StoreError as e:
            logger.warning("Lookup failed for tenant %s: %s", tenant_id, e)
            raise LookupFailed("Unable to look up order right now, please try again") from e

        if record is None or not self._matches(record, tenant_id, fragment, suffix):
            raise NotFound(NOT_FOUND_MESSAGE)

        return record

    @staticmethod
    def _matches(record: DeliveryRecord, tenant_id: str, fragment: str, suffix: str) -> bool:
        return (
            record.tenant_id == tenant_id
            and fragment.lower() in record.tracking_code.lower()
            and record.phone_ends_with(suffix)
        )
