from django.urls import path

from notifications.api import views


app_name = "notifications"

urlpatterns = [
    path("", views.notification_list, name="notification_list"),
    path("mark-read/", views.notification_mark_read, name="notification_mark_read"),
]
