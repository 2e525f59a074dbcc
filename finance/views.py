from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import create_audit_log_from_request
from common.db import query_id
from common.permissions import RoleCapabilityPermission
from finance.models import Expense, ExpenseCategory, FinancialTransaction
from finance.serializers import (
    ExpenseCategorySerializer,
    ExpenseSerializer,
    ExpenseWriteSerializer,
    FinancialTransactionSerializer,
    RawMaterialPurchaseSerializer,
)
from finance.services import ExpenseLedger
from inventory.serializers import RawMaterialSerializer


class ExpenseCategoryViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ExpenseCategory.objects.order_by("name")
    serializer_class = ExpenseCategorySerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "expenses.view", "retrieve": "expenses.view"}


class ExpenseViewSet(viewsets.ModelViewSet):
    queryset = Expense.objects.select_related("category", "partner", "raw_material")
    serializer_class = ExpenseSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "expenses.view",
        "retrieve": "expenses.view",
        "create": "expenses.manage",
        "update": "expenses.manage",
        "partial_update": "expenses.manage",
        "destroy": "expenses.delete",
    }

    def get_queryset(self):
        qs = super().get_queryset().order_by("-date", "-created_at")
        category_id = self.request.query_params.get("category")
        if category_id:
            qs = qs.filter(category_id=category_id)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = ExpenseWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        expense = ExpenseLedger().create(serializer.validated_data)
        payload = ExpenseSerializer(expense).data
        create_audit_log_from_request(
            request, action="expense.create", entity="expense", entity_id=expense.id, after_snapshot=payload
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        instance = self.get_object()
        before_snapshot = ExpenseSerializer(instance).data
        serializer = ExpenseWriteSerializer(data=request.data, partial=kwargs.get("partial", False))
        serializer.is_valid(raise_exception=True)
        expense = ExpenseLedger().edit(instance.id, serializer.validated_data)
        payload = ExpenseSerializer(expense).data
        create_audit_log_from_request(
            request,
            action="expense.update",
            entity="expense",
            entity_id=expense.id,
            before_snapshot=before_snapshot,
            after_snapshot=payload,
        )
        return Response(payload)

    def destroy(self, request, *args, **kwargs):
        instance = self.get_object()
        before_snapshot = ExpenseSerializer(instance).data
        ExpenseLedger().delete(instance.id)
        create_audit_log_from_request(
            request, action="expense.delete", entity="expense", entity_id=instance.id, before_snapshot=before_snapshot
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class FinancialTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = FinancialTransaction.objects.select_related("partner")
    serializer_class = FinancialTransactionSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "expenses.view", "retrieve": "expenses.view"}

    def get_queryset(self):
        qs = super().get_queryset().order_by("-date", "-created_at")
        txn_type = self.request.query_params.get("type")
        if txn_type:
            qs = qs.filter(type=txn_type.upper())
        partner_id = query_id(self.request.query_params, "partner")
        if partner_id:
            qs = qs.filter(partner_id=partner_id)
        return qs


class RawMaterialPurchaseView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "expenses.manage"}

    def post(self, request):
        serializer = RawMaterialPurchaseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        is_existing = data["mode"] == RawMaterialPurchaseSerializer.Mode.EXISTING

        material, expense = ExpenseLedger().record_purchase(
            quantity=data["quantity"],
            date=data.get("date") or timezone.localdate(),
            raw_material_id=data.get("raw_material_id") if is_existing else None,
            new_material=None if is_existing else dict(data["material"]),
            purchase_amount=data.get("purchase_amount"),
            partner=data.get("partner"),
            bill_number=data.get("bill_number"),
        )
        payload = {
            "raw_material": RawMaterialSerializer(material).data,
            "expense": ExpenseSerializer(expense).data if expense else None,
        }
        create_audit_log_from_request(
            request,
            action="raw_material.purchase",
            entity="raw_material",
            entity_id=material.id,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED)
