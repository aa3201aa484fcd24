"""
HTTP views for the realtime app.

- GET  /api/students/: the teacher's roster (display name / username pairs only)
- POST /api/students/logout/: drop a student's session, as the login flow's
  logout route does
"""

from __future__ import annotations

import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from pydantic import ValidationError

from .apps import get_relay
from .serializers import LogoutRequest

logger = logging.getLogger(__name__)


@require_http_methods(["GET"])
async def roster_view(request):
    relay = get_relay()
    return JsonResponse(
        {
            "students": [profile.as_dict() for profile in relay.roster()],
            # Whether anyone is being broadcast, never who.
            "selected": relay.current_selection_id() is not None,
        }
    )


@csrf_exempt
@require_http_methods(["POST"])
async def logout_view(request):
    """POST /api/students/logout/ - remove a student from the classroom."""
    try:
        body = json.loads(request.body or b"{}")
        req = LogoutRequest.model_validate(body)
    except json.JSONDecodeError:
        return JsonResponse({"detail": "Invalid JSON"}, status=400)
    except ValidationError as e:
        return JsonResponse({"detail": str(e)}, status=400)

    student_id = req.id
    if student_id is None:
        user = await request.auser()
        if not user.is_authenticated:
            return JsonResponse({"detail": "id is required when not logged in"}, status=400)
        student_id = str(user.pk)

    removed = get_relay().student_disconnected(student_id)
    logger.info("Logout for student %s (removed=%s)", student_id, removed)
    return JsonResponse({"id": student_id, "removed": removed})
