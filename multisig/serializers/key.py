import logging

from rest_framework import serializers

from ..models import ExtendedKey

LOGGER = logging.getLogger(__name__)


class ExtendedKeySerializer(serializers.ModelSerializer):

    class Meta:
        model = ExtendedKey
        fields = ['id', 'label', 'xpub', 'created_at']
        read_only_fields = ['id', 'created_at']
        validators = []

    def create(self, validated_data):
        registry = self.context['registry']
        return registry.register(validated_data['label'], validated_data['xpub'])

    def update(self, instance, validated_data):
        registry = self.context['registry']
        return registry.relabel(instance.id, validated_data.get('label', instance.label))


class KeyMatchSerializer(serializers.Serializer):
    key_id = serializers.IntegerField()
    label = serializers.CharField()
    path = serializers.CharField()
