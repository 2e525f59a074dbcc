from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import AuditLogViewSet, PartnerViewSet, SystemSettingsView, healthz, readyz

router = DefaultRouter()
router.register(r"partners", PartnerViewSet, basename="partner")
router.register(r"admin/audit-logs", AuditLogViewSet, basename="audit-log")

urlpatterns = router.urls + [
    path("settings/", SystemSettingsView.as_view(), name="system-settings"),
    path("healthz/", healthz, name="healthz"),
    path("readyz/", readyz, name="readyz"),
]
