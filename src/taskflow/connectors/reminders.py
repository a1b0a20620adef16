# src/taskflow/connectors/reminders.py

from __future__ import annotations

"""
Reminder delivery (ReminderSender implementations).

- EmailReminderSender: SMTP, run in a worker thread so the sweep loop is not blocked.
- LogReminderSender: writes the reminder to the log only; used when email is not configured.
"""

import asyncio
import logging
import smtplib
from collections.abc import Callable
from email.message import EmailMessage
from email.utils import formataddr

from ..core.errors import DispatchError
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)

AddressResolver = Callable[[str], str | None]


def _fmt_dt(dt) -> str:
    if dt is None:
        return "no due date"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def build_reminder_message(task: Task, *, from_addr: str, to_addr: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"Reminder: {task.title}"
    msg["From"] = from_addr
    msg["To"] = to_addr

    lines = [
        f"Reminder for your task \"{task.title}\".",
        "",
        f"Due: {_fmt_dt(task.due_date)}",
        f"Priority: {task.priority.value}",
    ]
    if task.description:
        lines += ["", task.description]
    msg.set_content("\n".join(lines) + "\n")
    return msg


class LogReminderSender:
    async def send_reminder(self, task: Task) -> None:
        logger.info(
            "REMINDER (log only) task_id=%s owner=%s title=%r due=%s",
            task.id,
            task.owner_id,
            task.title,
            task.due_date,
        )


class EmailReminderSender:
    """
    Send reminders by email.

    The recipient is resolved from the task owner: owner ids that look like an
    address are used as-is, everything else goes to settings.reminder_email.
    """

    def __init__(self, settings, *, resolve_address: AddressResolver | None = None) -> None:
        self._host = settings.email_host
        self._port = int(settings.email_port)
        self._user = settings.email_user
        self._password = settings.email_password
        self._secure = bool(settings.email_secure)
        self._from = formataddr((settings.from_name, settings.from_email or settings.email_user))
        self._fallback_to = settings.reminder_email
        self._resolve = resolve_address or self._default_resolve

        if not self._host:
            raise ValueError("email_host is required for EmailReminderSender")

    def _default_resolve(self, owner_id: str) -> str | None:
        if "@" in (owner_id or ""):
            return owner_id
        return self._fallback_to or None

    def _deliver(self, msg: EmailMessage) -> None:
        if self._secure:
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(self._host, self._port, timeout=30)
        else:
            smtp = smtplib.SMTP(self._host, self._port, timeout=30)
        with smtp:
            if not self._secure:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
            if self._user:
                smtp.login(self._user, self._password)
            smtp.send_message(msg)

    async def send_reminder(self, task: Task) -> None:
        to_addr = self._resolve(task.owner_id)
        if not to_addr:
            raise DispatchError(f"No email address for owner {task.owner_id!r} (task {task.id})")

        msg = build_reminder_message(task, from_addr=self._from, to_addr=to_addr)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DispatchError(f"SMTP send failed for task {task.id}: {e}") from e

        logger.info("Reminder email sent task_id=%s to=%s", task.id, to_addr)


def create_reminder_sender(settings) -> EmailReminderSender | LogReminderSender:
    if not getattr(settings, "email_enabled", False):
        logger.info("Email disabled: reminders will only be logged.")
        return LogReminderSender()
    try:
        return EmailReminderSender(settings)
    except ValueError:
        logger.warning("Email enabled but not configured (set TASKFLOW_EMAIL_HOST); logging reminders instead.")
        return LogReminderSender()
