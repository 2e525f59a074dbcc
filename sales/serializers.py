from rest_framework import serializers

from core.models import Partner
from sales.allocation import BatchAllocation, MultiBatchLine, MultiProductLine, ProductLine, SingleLine
from sales.models import Invoice, Sale

HEADER_INPUT_FIELDS = (
    "invoice_number",
    "partner",
    "invoice_date",
    "is_gst",
    "cgst_rate",
    "sgst_rate",
    "igst_rate",
    "payment_type",
    "payment_status",
    "paid_amount",
    "remarks",
    "transport_mode",
    "transportation",
    "driver_name",
    "driver_phone",
    "transport_vehicle",
    "delivery_city",
)


def _allocations(selections):
    return tuple(BatchAllocation(batch_id=item["batch_id"], quantity=item["quantity"]) for item in selections)


class SaleSerializer(serializers.ModelSerializer):
    product_type_name = serializers.CharField(source="product_type.name", read_only=True)
    is_service = serializers.BooleanField(source="product_type.is_service", read_only=True)
    storage_location_name = serializers.CharField(
        source="production_batch.storage_location.name", read_only=True, default=None
    )
    invoice_number = serializers.CharField(source="invoice.invoice_number", read_only=True)

    class Meta:
        model = Sale
        fields = [
            "id",
            "invoice",
            "invoice_number",
            "product_type",
            "product_type_name",
            "is_service",
            "production_batch",
            "storage_location_name",
            "quantity",
            "rate",
            "amount",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class InvoiceSerializer(serializers.ModelSerializer):
    partner_name = serializers.CharField(source="partner.name", read_only=True)
    transportation_name = serializers.CharField(source="transportation.name", read_only=True, default=None)
    sales = SaleSerializer(many=True, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoice_number",
            "partner",
            "partner_name",
            "invoice_date",
            "is_gst",
            "cgst_rate",
            "sgst_rate",
            "igst_rate",
            "subtotal",
            "cgst_amount",
            "sgst_amount",
            "igst_amount",
            "total_amount",
            "payment_type",
            "payment_status",
            "paid_amount",
            "pending_amount",
            "remarks",
            "transport_mode",
            "transportation",
            "transportation_name",
            "driver_name",
            "driver_phone",
            "transport_vehicle",
            "delivery_city",
            "sales",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BatchSelectionSerializer(serializers.Serializer):
    batch_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=0)


class InvoiceHeaderSerializer(serializers.Serializer):
    """Invoice header fields shared by every create and edit payload."""

    invoice_number = serializers.CharField(max_length=64)
    partner = serializers.PrimaryKeyRelatedField(queryset=Partner.objects.all())
    invoice_date = serializers.DateField()
    is_gst = serializers.BooleanField(required=False, default=True)
    cgst_rate = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0, required=False, allow_null=True)
    sgst_rate = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0, required=False, allow_null=True)
    igst_rate = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0, required=False, allow_null=True)
    payment_type = serializers.ChoiceField(choices=Invoice.PaymentType.choices, required=False)
    payment_status = serializers.ChoiceField(choices=Invoice.PaymentStatus.choices, required=False)
    paid_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    transport_mode = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    transportation = serializers.PrimaryKeyRelatedField(
        queryset=Partner.objects.all(), required=False, allow_null=True
    )
    driver_name = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    driver_phone = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    transport_vehicle = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    delivery_city = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)

    def validate_invoice_number(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Invoice number cannot be blank.")
        return value

    def header(self):
        return {key: value for key, value in self.validated_data.items() if key in HEADER_INPUT_FIELDS}


class SingleSaleCreateSerializer(InvoiceHeaderSerializer):
    product_type_id = serializers.UUIDField()
    production_batch_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)

    def line(self):
        data = self.validated_data
        return SingleLine(
            product_type_id=data["product_type_id"],
            rate=data["rate"],
            quantity=data.get("quantity"),
            batch_id=data.get("production_batch_id"),
        )


class MultiBatchCreateSerializer(InvoiceHeaderSerializer):
    product_type_id = serializers.UUIDField()
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    batch_selections = BatchSelectionSerializer(many=True, allow_empty=False)

    def line(self):
        data = self.validated_data
        return MultiBatchLine(
            product_type_id=data["product_type_id"],
            rate=data["rate"],
            allocations=_allocations(data["batch_selections"]),
        )


class ProductItemSerializer(serializers.Serializer):
    product_type_id = serializers.UUIDField()
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    batch_selections = BatchSelectionSerializer(many=True, required=False, default=list)
    # Service lines carry their own quantity instead of batch selections.
    quantity = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class MultiProductCreateSerializer(InvoiceHeaderSerializer):
    items = ProductItemSerializer(many=True, allow_empty=False)

    def line(self):
        return MultiProductLine(
            items=tuple(
                ProductLine(
                    product_type_id=item["product_type_id"],
                    rate=item["rate"],
                    allocations=_allocations(item["batch_selections"]),
                    quantity=item.get("quantity"),
                )
                for item in self.validated_data["items"]
            )
        )


class AddProductLineSerializer(ProductItemSerializer):
    invoice_id = serializers.UUIDField()

    def line(self):
        data = self.validated_data
        return ProductLine(
            product_type_id=data["product_type_id"],
            rate=data["rate"],
            allocations=_allocations(data["batch_selections"]),
            quantity=data.get("quantity"),
        )


class SaleEditSerializer(InvoiceHeaderSerializer):
    """Edit of one sale plus its invoice header; every field is optional."""

    quantity = serializers.IntegerField(min_value=0, required=False)
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    production_batch_id = serializers.UUIDField(required=False, allow_null=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    cgst_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    sgst_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    igst_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)

    def changes(self):
        return dict(self.validated_data)


class InvoiceBatchEditSerializer(InvoiceHeaderSerializer):
    """Header fields are optional here; the product line and every selection are not."""

    invoice_number = serializers.CharField(max_length=64, required=False)
    partner = serializers.PrimaryKeyRelatedField(queryset=Partner.objects.all(), required=False)
    invoice_date = serializers.DateField(required=False)
    is_gst = serializers.BooleanField(required=False)
    product_type_id = serializers.UUIDField()
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    batch_selections = BatchSelectionSerializer(many=True, allow_empty=False)

    def line(self):
        data = self.validated_data
        return ProductLine(
            product_type_id=data["product_type_id"],
            rate=data["rate"],
            allocations=_allocations(data["batch_selections"]),
        )


class InvoiceNumberCheckSerializer(serializers.Serializer):
    invoice_number = serializers.CharField(max_length=64)
