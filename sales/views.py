from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.db import query_id
from common.permissions import RoleCapabilityPermission
from sales.models import Invoice, Sale
from sales.serializers import (
    AddProductLineSerializer,
    InvoiceBatchEditSerializer,
    InvoiceNumberCheckSerializer,
    InvoiceSerializer,
    MultiBatchCreateSerializer,
    MultiProductCreateSerializer,
    SaleEditSerializer,
    SaleSerializer,
    SingleSaleCreateSerializer,
)
from sales.services import InvoiceLedger, invoice_number_exists

INVOICE_QUERYSET = Invoice.objects.select_related("partner", "transportation").prefetch_related(
    "sales__product_type", "sales__production_batch__storage_location"
)


def _invoice_payload(invoice_id):
    return InvoiceSerializer(INVOICE_QUERYSET.get(id=invoice_id)).data


class InvoiceCreateMixin:
    def _create_invoice(self, request, serializer_class):
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        invoice = InvoiceLedger().create(serializer.header(), serializer.line())

        payload = _invoice_payload(invoice.id)
        create_audit_log_from_request(
            request,
            action="invoice.create",
            entity="invoice",
            entity_id=invoice.id,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED)


class SaleViewSet(
    InvoiceCreateMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Sale.objects.select_related("invoice", "product_type", "production_batch__storage_location")
    serializer_class = SaleSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    permission_action_map = {
        "list": "sales.view",
        "retrieve": "sales.view",
        "create": "sales.manage",
        "multi_batch": "sales.manage",
        "multi_product": "sales.manage",
        "add_product": "sales.manage",
        "partial_update": "sales.manage",
        "destroy": "sales.delete",
    }

    def get_queryset(self):
        qs = super().get_queryset().order_by("-created_at")
        invoice_id = query_id(self.request.query_params, "invoice")
        if invoice_id:
            qs = qs.filter(invoice_id=invoice_id)
        batch_id = query_id(self.request.query_params, "batch")
        if batch_id:
            qs = qs.filter(production_batch_id=batch_id)
        return qs

    def create(self, request, *args, **kwargs):
        return self._create_invoice(request, SingleSaleCreateSerializer)

    @action(detail=False, methods=["post"], url_path="multi-batch")
    def multi_batch(self, request):
        return self._create_invoice(request, MultiBatchCreateSerializer)

    @action(detail=False, methods=["post"], url_path="multi-product")
    def multi_product(self, request):
        return self._create_invoice(request, MultiProductCreateSerializer)

    @action(detail=False, methods=["post"], url_path="products")
    def add_product(self, request):
        serializer = AddProductLineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invoice_id = serializer.validated_data["invoice_id"]
        before_snapshot = None
        if Invoice.objects.filter(id=invoice_id).exists():
            before_snapshot = _invoice_payload(invoice_id)

        invoice = InvoiceLedger().add_line(invoice_id, serializer.line())
        payload = _invoice_payload(invoice.id)
        create_audit_log_from_request(
            request,
            action="invoice.add_line",
            entity="invoice",
            entity_id=invoice.id,
            before_snapshot=before_snapshot,
            after_snapshot=payload,
        )
        return Response(payload)

    def partial_update(self, request, *args, **kwargs):
        sale = self.get_object()
        before_snapshot = _invoice_payload(sale.invoice_id)
        serializer = SaleEditSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        sale = InvoiceLedger().edit_sale(sale.id, serializer.changes())
        invoice_payload = _invoice_payload(sale.invoice_id)
        create_audit_log_from_request(
            request,
            action="sale.update",
            entity="sale",
            entity_id=sale.id,
            before_snapshot=before_snapshot,
            after_snapshot=invoice_payload,
        )
        return Response({"invoice": invoice_payload, "sale": SaleSerializer(self.get_queryset().get(id=sale.id)).data})

    def destroy(self, request, *args, **kwargs):
        sale = self.get_object()
        before_snapshot = _invoice_payload(sale.invoice_id)
        result = InvoiceLedger().delete_sale(sale.id)
        create_audit_log_from_request(
            request,
            action="sale.delete",
            entity="sale",
            entity_id=sale.id,
            before_snapshot=before_snapshot,
            after_snapshot=result,
        )
        return Response({"deleted": True, **result})


class InvoiceViewSet(mixins.DestroyModelMixin, viewsets.ReadOnlyModelViewSet):
    queryset = INVOICE_QUERYSET
    serializer_class = InvoiceSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "sales.view",
        "retrieve": "sales.view",
        "check_number": "sales.view",
        "edit_batches": "sales.manage",
        "clear_sales": "sales.delete",
        "destroy": "sales.delete",
    }

    def get_queryset(self):
        qs = super().get_queryset().order_by("-invoice_date", "-created_at")
        params = self.request.query_params
        partner_id = query_id(params, "partner")
        if partner_id:
            qs = qs.filter(partner_id=partner_id)
        transportation_id = query_id(params, "transportation")
        if transportation_id:
            qs = qs.filter(transportation_id=transportation_id)
        if params.get("date_from"):
            qs = qs.filter(invoice_date__gte=params["date_from"])
        if params.get("date_to"):
            qs = qs.filter(invoice_date__lte=params["date_to"])
        if params.get("payment_status"):
            qs = qs.filter(payment_status=params["payment_status"].upper())
        if params.get("search"):
            qs = qs.filter(invoice_number__icontains=params["search"])
        return qs

    @action(detail=False, methods=["get"], url_path="check-number")
    def check_number(self, request):
        serializer = InvoiceNumberCheckSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        invoice_number = serializer.validated_data["invoice_number"]
        exists = invoice_number_exists(invoice_number)
        message = (
            f"Invoice number {invoice_number} already exists. Please use a different invoice number."
            if exists
            else "Invoice number is available."
        )
        return Response({"exists": exists, "message": message})

    @action(detail=True, methods=["patch"], url_path="batches")
    def edit_batches(self, request, pk=None):
        invoice = self.get_object()
        before_snapshot = self.get_serializer(invoice).data
        serializer = InvoiceBatchEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        InvoiceLedger().edit_batches(invoice.id, serializer.header(), serializer.line())
        payload = _invoice_payload(invoice.id)
        create_audit_log_from_request(
            request,
            action="invoice.edit_batches",
            entity="invoice",
            entity_id=invoice.id,
            before_snapshot=before_snapshot,
            after_snapshot=payload,
        )
        return Response(payload)

    @action(detail=True, methods=["delete"], url_path="sales")
    def clear_sales(self, request, pk=None):
        invoice = self.get_object()
        before_snapshot = self.get_serializer(invoice).data
        InvoiceLedger().clear_sales(invoice.id)
        payload = _invoice_payload(invoice.id)
        create_audit_log_from_request(
            request,
            action="invoice.clear_sales",
            entity="invoice",
            entity_id=invoice.id,
            before_snapshot=before_snapshot,
            after_snapshot=payload,
        )
        return Response(payload)

    def perform_destroy(self, instance):
        before_snapshot = self.get_serializer(instance).data
        InvoiceLedger().delete_invoice(instance.id)
        create_audit_log_from_request(
            self.request,
            action="invoice.delete",
            entity="invoice",
            entity_id=instance.id,
            before_snapshot=before_snapshot,
        )
