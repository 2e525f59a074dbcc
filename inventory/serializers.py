from rest_framework import serializers

from inventory.models import ProductionBatch, ProductionMaterial, ProductType, RawMaterial, StorageLocation


class ProductTypeSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductType
        fields = [
            "id",
            "name",
            "hsn_number",
            "is_service",
            "cgst_rate",
            "sgst_rate",
            "igst_rate",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class StorageLocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = StorageLocation
        fields = ["id", "name", "description", "created_at", "updated_at"]
        read_only_fields = fields


class RawMaterialSerializer(serializers.ModelSerializer):
    is_low_stock = serializers.SerializerMethodField()

    class Meta:
        model = RawMaterial
        fields = [
            "id",
            "name",
            "unit",
            "current_stock",
            "min_stock_level",
            "is_low_stock",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_is_low_stock(self, obj):
        return obj.current_stock <= obj.min_stock_level


class ProductionMaterialSerializer(serializers.ModelSerializer):
    raw_material_name = serializers.CharField(source="raw_material.name", read_only=True)
    unit = serializers.CharField(source="raw_material.unit", read_only=True)

    class Meta:
        model = ProductionMaterial
        fields = ["id", "raw_material", "raw_material_name", "unit", "quantity_used"]
        read_only_fields = fields


class ProductionBatchSerializer(serializers.ModelSerializer):
    product_type_name = serializers.CharField(source="product_type.name", read_only=True)
    storage_location_name = serializers.CharField(source="storage_location.name", read_only=True)
    materials = ProductionMaterialSerializer(many=True, read_only=True)

    class Meta:
        model = ProductionBatch
        fields = [
            "id",
            "product_type",
            "product_type_name",
            "storage_location",
            "storage_location_name",
            "quantity",
            "remaining_quantity",
            "production_date",
            "notes",
            "materials",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class MaterialUsageSerializer(serializers.Serializer):
    raw_material_id = serializers.UUIDField()
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0)


class ProductionBatchCreateSerializer(serializers.Serializer):
    product_type = serializers.PrimaryKeyRelatedField(queryset=ProductType.objects.all())
    storage_location = serializers.PrimaryKeyRelatedField(queryset=StorageLocation.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    production_date = serializers.DateField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    materials_used = MaterialUsageSerializer(many=True, required=False, default=list)
    skip_raw_materials = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs["product_type"].is_service:
            raise serializers.ValidationError({"product_type": "Service products are not produced in batches."})
        if not attrs["skip_raw_materials"] and not attrs["materials_used"]:
            raise serializers.ValidationError({"materials_used": "At least one raw material must be used."})
        return attrs


class ProductionBatchUpdateSerializer(serializers.Serializer):
    storage_location = serializers.PrimaryKeyRelatedField(queryset=StorageLocation.objects.all(), required=False)
    production_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    remaining_quantity = serializers.IntegerField(min_value=0, required=False)
