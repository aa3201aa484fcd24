from django.urls import re_path

from .consumers import StudentConsumer, TeacherConsumer


websocket_urlpatterns = [
    # General channel: every student editor streams its snapshots here
    re_path(r"^ws/code/$", StudentConsumer.as_asgi()),
    # Restricted channel: the teacher view selects a student and receives code
    re_path(r"^ws/teach/$", TeacherConsumer.as_asgi()),
]
