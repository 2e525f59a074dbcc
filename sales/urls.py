from rest_framework.routers import DefaultRouter

from sales.views import InvoiceViewSet, SaleViewSet

router = DefaultRouter()
router.register(r"sales", SaleViewSet, basename="sale")
router.register(r"invoices", InvoiceViewSet, basename="invoice")

urlpatterns = router.urls
