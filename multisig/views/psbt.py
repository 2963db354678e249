import logging

from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.response import Response

from .. import services
from ..inspector import inspect
from ..serializers import (
    EndpointResultSerializer,
    PsbtInspectSerializer,
    PsbtNotesSerializer,
    PsbtRecordSerializer,
    PsbtUpdateSerializer,
    PsbtUploadSerializer,
    SignatureInfoSerializer,
)
from .base import MultisigAPIView

LOGGER = logging.getLogger(__name__)


def upload_response(result, status_code=status.HTTP_200_OK):
    data = PsbtRecordSerializer(result.record).data
    data['outcome'] = result.outcome
    data['added_signatures'] = result.added_signatures
    return Response(data, status=status_code)


class PsbtListCreateView(MultisigAPIView):

    @swagger_auto_schema(responses={200: PsbtRecordSerializer(many=True)})
    def get(self, request):
        records = self.get_multisig_context().psbt_store.list(self.get_scope())
        return Response(PsbtRecordSerializer(records, many=True).data)

    @swagger_auto_schema(request_body=PsbtUploadSerializer, responses={201: PsbtRecordSerializer})
    def post(self, request):
        serializer = PsbtUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        result = services.upload_psbt(
            self.get_multisig_context(),
            self.get_scope(),
            data['name'],
            data['psbt'],
            m=data.get('m'),
            n=data.get('n'),
            notes=data.get('notes'),
        )
        if result.outcome == services.CREATED:
            return upload_response(result, status.HTTP_201_CREATED)
        return upload_response(result)


class PsbtDetailView(MultisigAPIView):

    def get(self, request, pk):
        record = self.get_multisig_context().psbt_store.get(pk, scope=self.get_scope())
        return Response(PsbtRecordSerializer(record).data)

    @swagger_auto_schema(request_body=PsbtUpdateSerializer, responses={200: PsbtRecordSerializer})
    def put(self, request, pk):
        serializer = PsbtUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        result = services.update_psbt(
            self.get_multisig_context(), self.get_scope(), pk, serializer.validated_data['psbt']
        )
        return upload_response(result)

    def delete(self, request, pk):
        if not services.delete_psbt(self.get_multisig_context(), self.get_scope(), pk):
            return Response({"error": "PSBT not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response({"success": True}, status=status.HTTP_200_OK)


class PsbtNotesView(MultisigAPIView):

    @swagger_auto_schema(request_body=PsbtNotesSerializer, responses={200: PsbtRecordSerializer})
    def patch(self, request, pk):
        serializer = PsbtNotesSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        record = services.update_notes(
            self.get_multisig_context(), self.get_scope(), pk, serializer.validated_data['notes']
        )
        return Response(PsbtRecordSerializer(record).data)


class PsbtSignersView(MultisigAPIView):

    @swagger_auto_schema(responses={200: SignatureInfoSerializer})
    def get(self, request, pk):
        record, info = services.inspect_record(self.get_multisig_context(), self.get_scope(), pk)
        data = SignatureInfoSerializer(info).data
        data['id'] = record.id
        data['status'] = record.status
        return Response(data)


class PsbtBroadcastView(MultisigAPIView):

    def post(self, request, pk):
        result = services.broadcast_record(self.get_multisig_context(), pk, scope=self.get_scope())
        data = PsbtRecordSerializer(result.record).data
        data['already_broadcast'] = result.outcome.already_broadcast
        data['results'] = EndpointResultSerializer(result.outcome.results, many=True).data
        return Response(data, status=status.HTTP_200_OK)


class PsbtInspectView(MultisigAPIView):

    @swagger_auto_schema(request_body=PsbtInspectSerializer, responses={200: SignatureInfoSerializer})
    def post(self, request):
        serializer = PsbtInspectSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        context = self.get_multisig_context()
        info = inspect(serializer.validated_data['psbt'], registry=context.registry(self.get_scope()))
        return Response(SignatureInfoSerializer(info).data)
