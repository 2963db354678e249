import logging

from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.response import Response

from ..serializers import ExtendedKeySerializer
from .base import MultisigAPIView

LOGGER = logging.getLogger(__name__)


class XpubListCreateView(MultisigAPIView):

    @swagger_auto_schema(responses={200: ExtendedKeySerializer(many=True)})
    def get(self, request):
        registry = self.get_multisig_context().registry(self.get_scope())
        return Response(ExtendedKeySerializer(registry.list(), many=True).data)

    @swagger_auto_schema(request_body=ExtendedKeySerializer, responses={201: ExtendedKeySerializer})
    def post(self, request):
        registry = self.get_multisig_context().registry(self.get_scope())
        serializer = ExtendedKeySerializer(data=request.data, context={'registry': registry})
        if serializer.is_valid():
            key = serializer.save()
            return Response(ExtendedKeySerializer(key).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class XpubDetailView(MultisigAPIView):

    def get(self, request, pk):
        registry = self.get_multisig_context().registry(self.get_scope())
        return Response(ExtendedKeySerializer(registry.get(pk)).data)

    @swagger_auto_schema(request_body=ExtendedKeySerializer, responses={200: ExtendedKeySerializer})
    def put(self, request, pk):
        registry = self.get_multisig_context().registry(self.get_scope())
        key = registry.get(pk)
        serializer = ExtendedKeySerializer(key, data=request.data, partial=True, context={'registry': registry})
        if serializer.is_valid():
            key = serializer.save()
            return Response(ExtendedKeySerializer(key).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    def delete(self, request, pk):
        registry = self.get_multisig_context().registry(self.get_scope())
        if not registry.remove(pk):
            return Response({"error": "XPub not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response({"success": True}, status=status.HTTP_200_OK)
