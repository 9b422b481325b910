# clinic_api/reminders.py

import logging

from .models import Appointment
from .scheduling.values import ReminderRecord

logger = logging.getLogger(__name__)


class ReminderDispatcher:
    """Delivers appointment reminders over email, SMS or phone."""

    channels = ("email", "sms", "phone")

    def send(self, appointment: Appointment, reminder: ReminderRecord) -> None:
        raise NotImplementedError


class LoggingReminderDispatcher(ReminderDispatcher):
    # No transport is wired up; the reminder is only recorded and logged.
    def send(self, appointment: Appointment, reminder: ReminderRecord) -> None:
        logger.info(
            "%s reminder sent for appointment %s",
            reminder.type,
            appointment.appointment_code,
        )
