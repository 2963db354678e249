from rest_framework import serializers

from ..models import Descriptor


class DescriptorSerializer(serializers.ModelSerializer):

    class Meta:
        model = Descriptor
        fields = ['id', 'name', 'descriptor', 'm_required', 'n_total', 'first_address', 'created_at']
        read_only_fields = fields


class DescriptorCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    xpub_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    m = serializers.IntegerField()
    n = serializers.IntegerField(required=False, allow_null=True)
