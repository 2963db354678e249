import logging

from rest_framework import serializers

from ..models import PsbtRecord
from .key import KeyMatchSerializer

LOGGER = logging.getLogger(__name__)


class PsbtRecordSerializer(serializers.ModelSerializer):
    psbt = serializers.CharField(source='psbt_data', read_only=True)

    class Meta:
        model = PsbtRecord
        fields = [
            'id', 'name', 'psbt', 'm_required', 'n_total', 'signatures_count',
            'status', 'notes', 'txid', 'confirmations', 'block_height',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class PsbtUploadSerializer(serializers.Serializer):
    """
    Upload payload. A client-sent `signatures_count` is not a declared field
    and is dropped; the count always comes from the PSBT itself.
    """
    name = serializers.CharField(max_length=255)
    psbt = serializers.CharField(trim_whitespace=True)
    m = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    n = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class PsbtUpdateSerializer(serializers.Serializer):
    psbt = serializers.CharField(trim_whitespace=True)


class PsbtNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(allow_blank=True, allow_null=True)


class PsbtInspectSerializer(serializers.Serializer):
    psbt = serializers.CharField(trim_whitespace=True)


class SignerStatusSerializer(serializers.Serializer):
    pubkey = serializers.CharField()
    has_signed = serializers.BooleanField()
    match = KeyMatchSerializer(allow_null=True)


class InputSummarySerializer(serializers.Serializer):
    txid = serializers.CharField()
    vout = serializers.IntegerField()
    value = serializers.IntegerField(allow_null=True)
    signatures = serializers.IntegerField()


class OutputSummarySerializer(serializers.Serializer):
    address = serializers.CharField(allow_null=True)
    value = serializers.IntegerField()


class SignatureInfoSerializer(serializers.Serializer):
    txid = serializers.CharField()
    m = serializers.IntegerField(allow_null=True)
    n = serializers.IntegerField(allow_null=True)
    signatures_count = serializers.IntegerField()
    is_complete = serializers.BooleanField()
    signers = SignerStatusSerializer(many=True)
    input_signatures = serializers.ListField(child=serializers.IntegerField())
    inputs = InputSummarySerializer(many=True)
    outputs = OutputSummarySerializer(many=True)
    fee = serializers.IntegerField(allow_null=True)


class EndpointResultSerializer(serializers.Serializer):
    endpoint = serializers.CharField()
    accepted = serializers.BooleanField()
    txid = serializers.CharField(allow_null=True)
    error = serializers.CharField(allow_null=True)
    kind = serializers.CharField(allow_null=True)
