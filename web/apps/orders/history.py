"""Best-effort, append-only status history.

Entries are written with a parameterized ORM insert after the primary
transition has committed. A failed write is logged and swallowed; it never
changes the result the caller sees.
"""

import logging

from django.db import transaction

from .domain import HistoryEntry, HistorySinkPort
from .models import OrderStatusHistory

logger = logging.getLogger("orders")


class StatusHistoryRecorder(HistorySinkPort):
    def record(self, entry: HistoryEntry) -> None:
        try:
            # own savepoint, so a failed insert cannot poison an outer transaction
            with transaction.atomic():
                OrderStatusHistory.objects.create(
                    order_id=entry.order_id,
                    status=entry.status,
                    comment=entry.comment,
                    created_by=entry.created_by,
                    notify_customer=entry.notify_customer,
                )
        except Exception:
            logger.warning(
                "status history not recorded",
                extra={"order_id": str(entry.order_id), "status": entry.status},
                exc_info=True,
            )
