from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from finance.models import Expense
from finance.serializers import ExpenseSerializer
from inventory.models import ProductionBatch, ProductType, RawMaterial, StorageLocation
from inventory.serializers import (
    ProductionBatchCreateSerializer,
    ProductionBatchSerializer,
    ProductionBatchUpdateSerializer,
    ProductTypeSerializer,
    RawMaterialSerializer,
    StorageLocationSerializer,
)
from inventory.services import delete_production_batch, record_production_batch, update_production_batch


class ProductTypeViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ProductType.objects.order_by("name")
    serializer_class = ProductTypeSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "masterdata.view", "retrieve": "masterdata.view"}


class StorageLocationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = StorageLocation.objects.order_by("name")
    serializer_class = StorageLocationSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "masterdata.view", "retrieve": "masterdata.view"}


class ProductionBatchViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = ProductionBatch.objects.select_related("product_type", "storage_location").prefetch_related(
        "materials__raw_material"
    )
    serializer_class = ProductionBatchSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "create": "production.record",
        "partial_update": "production.record",
        "destroy": "production.delete",
    }

    def get_queryset(self):
        qs = super().get_queryset().order_by("-production_date", "-created_at")
        product_type_id = self.request.query_params.get("product_type")
        if product_type_id:
            qs = qs.filter(product_type_id=product_type_id)
        if self.request.query_params.get("in_stock") == "true":
            qs = qs.filter(remaining_quantity__gt=0)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = ProductionBatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        batch = record_production_batch(
            product_type=data["product_type"],
            storage_location=data["storage_location"],
            quantity=data["quantity"],
            production_date=data["production_date"],
            notes=data["notes"],
            materials_used=[dict(item) for item in data["materials_used"]],
            skip_raw_materials=data["skip_raw_materials"],
        )
        payload = ProductionBatchSerializer(self.get_queryset().get(id=batch.id)).data
        create_audit_log_from_request(
            request,
            action="production_batch.create",
            entity="production_batch",
            entity_id=batch.id,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        batch = self.get_object()
        before_snapshot = self.get_serializer(batch).data
        serializer = ProductionBatchUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        update_production_batch(batch.id, serializer.validated_data)
        payload = ProductionBatchSerializer(self.get_queryset().get(id=batch.id)).data
        create_audit_log_from_request(
            request,
            action="production_batch.update",
            entity="production_batch",
            entity_id=batch.id,
            before_snapshot=before_snapshot,
            after_snapshot=payload,
        )
        return Response(payload)

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        delete_production_batch(instance.id)
        create_audit_log_from_request(
            self.request,
            action="production_batch.delete",
            entity="production_batch",
            entity_id=instance.id,
            before_snapshot=before_snapshot,
        )


class RawMaterialViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = RawMaterial.objects.order_by("name")
    serializer_class = RawMaterialSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "inventory.view",
        "retrieve": "inventory.view",
        "purchases": "expenses.view",
    }

    @action(detail=True, methods=["get"], url_path="purchases")
    def purchases(self, request, pk=None):
        material = self.get_object()
        qs = (
            Expense.objects.filter(raw_material=material)
            .select_related("category", "partner", "raw_material")
            .order_by("-date", "-created_at")
        )
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(ExpenseSerializer(page, many=True).data)
        return Response(ExpenseSerializer(qs, many=True).data)
