import logging
from typing import Callable

from fastapi.concurrency import run_in_threadpool

from app.schemas.notification_schema import LeaveRequestNotice, LeaveStatusNotice, WelcomeNotice
from app.utils.email import send_leave_request_email, send_leave_status_email, send_welcome_email


logger = logging.getLogger("uvicorn.error")


class EmailNotifier:
    """Best-effort email delivery.

    Failures are logged and swallowed so a state transition that has already
    been persisted is never undone by a mail outage.
    """

    async def _deliver(self, send: Callable, notice) -> bool:
        try:
            # smtplib blocks; keep it off the event loop
            await run_in_threadpool(send, notice)
        except Exception as exc:
            logger.warning("Email to %s failed: %s", notice.to, exc)
            return False
        logger.info("Email %s sent to %s", type(notice).__name__, notice.to)
        return True

    async def leave_requested(self, notice: LeaveRequestNotice) -> bool:
        return await self._deliver(send_leave_request_email, notice)

    async def leave_decided(self, notice: LeaveStatusNotice) -> bool:
        return await self._deliver(send_leave_status_email, notice)

    async def user_created(self, notice: WelcomeNotice) -> bool:
        return await self._deliver(send_welcome_email, notice)


_notifier = EmailNotifier()


def get_notifier() -> EmailNotifier:
    return _notifier
