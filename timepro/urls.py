from django.urls import path

from timesheets.api import api

urlpatterns = [
    path("api/", api.urls),
]
