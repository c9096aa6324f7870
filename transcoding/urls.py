from django.urls import path
from .views import RecordStatusView, StorageEventView

urlpatterns = [
    path("storage-events/", StorageEventView.as_view(), name="storage_events"),
    path("records/<str:collection>/<int:pk>/", RecordStatusView.as_view(), name="record_status"),
]
