from __future__ import annotations

import os
import time

from django.http import JsonResponse

from realtime.apps import get_relay


def health(request):
    """
    Liveness endpoint for the load balancer.

    No DB query: the classroom state is in memory, so the student count comes
    straight from the relay.
    """

    return JsonResponse(
        {
            "status": "ok",
            "ts": int(time.time()),
            "instance_id": os.environ.get("INSTANCE_ID", "unknown-instance"),
            "students": get_relay().student_count(),
        }
    )
