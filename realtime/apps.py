"""
Django app configuration for the realtime app.

The app owns the process-wide BroadcastRelay; consumers and views get it from
here unless one is injected (tests pass their own).
"""

import logging
from typing import Optional

from django.apps import AppConfig, apps

from codeshare.config import config
from .relay import BroadcastRelay

logger = logging.getLogger(__name__)


class RealtimeConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "realtime"
    verbose_name = "Live code relay"

    relay: Optional[BroadcastRelay] = None

    def ready(self):
        self.relay = BroadcastRelay(teacher_group=config.TEACHER_GROUP)
        logger.info("Classroom relay ready (teacher group %s)", self.relay.teacher_group)


def get_relay(relay: Optional[BroadcastRelay] = None) -> BroadcastRelay:
    """Return `relay` if given, else the one owned by the realtime app."""
    if relay is not None:
        return relay
    return apps.get_app_config("realtime").relay
