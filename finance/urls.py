from django.urls import path
from rest_framework.routers import DefaultRouter

from finance.views import (
    ExpenseCategoryViewSet,
    ExpenseViewSet,
    FinancialTransactionViewSet,
    RawMaterialPurchaseView,
)

router = DefaultRouter()
router.register(r"expense-categories", ExpenseCategoryViewSet, basename="expense-category")
router.register(r"expenses", ExpenseViewSet, basename="expense")
router.register(r"transactions", FinancialTransactionViewSet, basename="transaction")

urlpatterns = router.urls + [
    path("raw-material-purchases/", RawMaterialPurchaseView.as_view(), name="raw-material-purchase"),
]
