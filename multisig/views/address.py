from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.response import Response

from .. import services
from ..serializers import AddressRequestSerializer, DerivedAddressSerializer
from .base import MultisigAPIView


class AddressDeriveView(MultisigAPIView):

    @swagger_auto_schema(request_body=AddressRequestSerializer, responses={200: DerivedAddressSerializer(many=True)})
    def post(self, request):
        serializer = AddressRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        addresses = services.derive_for_keys(
            self.get_multisig_context(),
            self.get_scope(),
            data['xpub_ids'],
            data['m'],
            data['n'],
            index=data['index'],
            count=data['count'],
        )
        return Response({
            "m": data['m'],
            "n": data['n'],
            "descriptor": addresses[0].descriptor,
            "addresses": DerivedAddressSerializer(addresses, many=True).data,
        })
