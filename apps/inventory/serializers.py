from rest_framework import serializers

from .models import Lot, School, StockLevel, StockMovement


class SchoolSerializer(serializers.ModelSerializer):
    class Meta:
        model = School
        fields = ['id', 'name', 'code', 'is_active']


class LotSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)

    class Meta:
        model = Lot
        fields = [
            'id', 'school', 'product', 'product_name', 'batch_label',
            'initial_quantity', 'remaining_quantity', 'expiration_date',
            'status', 'created_at',
        ]


class StockLevelSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = StockLevel
        fields = [
            'id', 'school', 'product', 'quantity', 'minimum_quantity',
            'maximum_quantity', 'status', 'status_display', 'needs_reconciliation',
            'updated_at',
        ]


class StockMovementSerializer(serializers.ModelSerializer):
    type_display = serializers.CharField(source='get_type_display', read_only=True)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'school', 'product', 'lot', 'type', 'type_display',
            'quantity_before', 'quantity_delta', 'quantity_after',
            'reason', 'source_doc', 'user', 'transfer_group', 'created_at',
        ]
