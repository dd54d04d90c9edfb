"""Fire-and-forget customer and admin emails.

Requests hand a message to the notifier and return right away. Delivery
runs on a small thread pool. There is no retry: a failed delivery is
logged and kept in ``dead_letters`` for an operator to look at.
"""
import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from functools import partial

from utils.email_templates import render
from utils.emailer import send_email, smtp_settings

logger = logging.getLogger("seatclean.notifications")

TEMPLATE_KEYS = ("BUSINESS_NAME", "ADMIN_EMAIL", "ADMIN_DASHBOARD_URL")


class InlineExecutor:
    """Runs submitted work immediately; used in tests."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True):
        pass


class Notifier:

    def __init__(self, sender, settings: dict, executor=None, dead_letter_size=100):
        self.sender = sender
        self.settings = settings
        self.executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")
        self.dead_letters = deque(maxlen=dead_letter_size)

    @classmethod
    def from_config(cls, config, sender=None):
        if config.get("NOTIFY_INLINE"):
            executor = InlineExecutor()
        else:
            executor = ThreadPoolExecutor(
                max_workers=config.get("NOTIFY_WORKERS", 2),
                thread_name_prefix="notify",
            )
        return cls(
            sender=sender or partial(send_email, smtp_settings(config)),
            settings={key: config.get(key) for key in TEMPLATE_KEYS},
            executor=executor,
        )

    def submit(self, kind: str, booking):
        """Queue an email about ``booking``; never raises."""
        try:
            message = render(kind, booking, self.settings)
        except Exception:
            logger.exception(f"Could not render {kind} email for booking {booking.id}")
            return None
        return self.executor.submit(self._deliver, kind, booking.id, message)

    def _deliver(self, kind, booking_id, message) -> bool:
        try:
            ok, error = self.sender(message["to"], message["subject"], message["html"])
        except Exception as exc:
            ok, error = False, str(exc)

        if ok:
            logger.info(f"Sent {kind} email for booking {booking_id} to {message['to']}")
            return True

        self.dead_letters.append({
            "kind": kind,
            "booking_id": booking_id,
            "to": message["to"],
            "subject": message["subject"],
            "error": error,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        })
        logger.error(f"Failed to send {kind} email for booking {booking_id}: {error}")
        return False

    def shutdown(self, wait=True):
        self.executor.shutdown(wait=wait)
