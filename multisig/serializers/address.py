from rest_framework import serializers

MAX_ADDRESSES_PER_REQUEST = 100


class AddressRequestSerializer(serializers.Serializer):
    xpub_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    m = serializers.IntegerField()
    n = serializers.IntegerField()
    index = serializers.IntegerField(default=0, min_value=0)
    count = serializers.IntegerField(default=1, min_value=1, max_value=MAX_ADDRESSES_PER_REQUEST)


class DerivedAddressSerializer(serializers.Serializer):
    index = serializers.IntegerField()
    address = serializers.CharField()
    witness_script = serializers.SerializerMethodField()
    pubkeys = serializers.SerializerMethodField()

    def get_witness_script(self, obj):
        return obj.witness_script.hex()

    def get_pubkeys(self, obj):
        return [pubkey.hex() for pubkey in obj.pubkeys]
