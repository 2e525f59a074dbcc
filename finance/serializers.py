from rest_framework import serializers

from core.models import Partner
from finance.models import Expense, ExpenseCategory, FinancialTransaction
from inventory.models import RawMaterial


class ExpenseCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ExpenseCategory
        fields = ["id", "name", "is_default", "created_at"]
        read_only_fields = fields


class ExpenseSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source="category.name", read_only=True)
    partner_name = serializers.CharField(source="partner.name", read_only=True, default=None)
    raw_material_name = serializers.CharField(source="raw_material.name", read_only=True, default=None)

    class Meta:
        model = Expense
        fields = [
            "id",
            "category",
            "category_name",
            "partner",
            "partner_name",
            "raw_material",
            "raw_material_name",
            "description",
            "quantity",
            "rate",
            "amount",
            "date",
            "bill_number",
            "payment_status",
            "paid_amount",
            "pending_amount",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ExpenseWriteSerializer(serializers.Serializer):
    """Input for creating (all required fields) or editing (``partial=True``) an expense."""

    category_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    date = serializers.DateField()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    partner = serializers.PrimaryKeyRelatedField(queryset=Partner.objects.all(), required=False, allow_null=True)
    raw_material = serializers.PrimaryKeyRelatedField(
        queryset=RawMaterial.objects.all(), required=False, allow_null=True
    )
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3, required=False, allow_null=True)
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    bill_number = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    payment_status = serializers.ChoiceField(choices=Expense.PaymentStatus.choices, required=False)
    paid_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)


class FinancialTransactionSerializer(serializers.ModelSerializer):
    partner_name = serializers.CharField(source="partner.name", read_only=True, default=None)

    class Meta:
        model = FinancialTransaction
        fields = [
            "id",
            "type",
            "amount",
            "date",
            "description",
            "partner",
            "partner_name",
            "invoice",
            "expense",
            "created_at",
        ]
        read_only_fields = fields


class NewRawMaterialSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    unit = serializers.CharField(max_length=32)
    min_stock_level = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0, required=False)


class RawMaterialPurchaseSerializer(serializers.Serializer):
    class Mode:
        EXISTING = "existing"
        NEW = "new"

    mode = serializers.ChoiceField(choices=[Mode.EXISTING, Mode.NEW], default=Mode.NEW)
    raw_material_id = serializers.UUIDField(required=False, allow_null=True)
    material = NewRawMaterialSerializer(required=False)
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0, default=0)
    purchase_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    partner = serializers.PrimaryKeyRelatedField(queryset=Partner.objects.all(), required=False, allow_null=True)
    date = serializers.DateField(required=False)
    bill_number = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs["mode"] == self.Mode.EXISTING and not attrs.get("raw_material_id"):
            raise serializers.ValidationError({"raw_material_id": "This field is required for existing materials."})
        if attrs["mode"] == self.Mode.NEW and not attrs.get("material"):
            raise serializers.ValidationError({"material": "Name and unit are required for a new material."})
        return attrs
