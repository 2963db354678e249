from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.response import Response

from .. import services
from ..serializers import DescriptorCreateSerializer, DescriptorSerializer
from .base import MultisigAPIView


class DescriptorListCreateView(MultisigAPIView):

    def get(self, request):
        descriptors = self.get_multisig_context().descriptor_store.list(self.get_scope())
        return Response(DescriptorSerializer(descriptors, many=True).data)

    @swagger_auto_schema(request_body=DescriptorCreateSerializer, responses={201: DescriptorSerializer})
    def post(self, request):
        serializer = DescriptorCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        descriptor = services.create_descriptor(
            self.get_multisig_context(),
            self.get_scope(),
            data['name'],
            data['xpub_ids'],
            data['m'],
            n=data.get('n'),
        )
        return Response(DescriptorSerializer(descriptor).data, status=status.HTTP_201_CREATED)


class DescriptorDetailView(MultisigAPIView):

    def get(self, request, pk):
        descriptor = self.get_multisig_context().descriptor_store.get(pk, scope=self.get_scope())
        return Response(DescriptorSerializer(descriptor).data)

    def delete(self, request, pk):
        if not self.get_multisig_context().descriptor_store.delete(pk, scope=self.get_scope()):
            return Response({"error": "Descriptor not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response({"success": True}, status=status.HTTP_200_OK)
