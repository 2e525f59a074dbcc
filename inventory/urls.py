from rest_framework.routers import DefaultRouter

from inventory.views import ProductionBatchViewSet, ProductTypeViewSet, RawMaterialViewSet, StorageLocationViewSet

router = DefaultRouter()
router.register(r"product-types", ProductTypeViewSet, basename="product-type")
router.register(r"storage-locations", StorageLocationViewSet, basename="storage-location")
router.register(r"production-batches", ProductionBatchViewSet, basename="production-batch")
router.register(r"raw-materials", RawMaterialViewSet, basename="raw-material")

urlpatterns = router.urls
