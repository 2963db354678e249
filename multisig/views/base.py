import logging

from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..context import get_context
from ..exceptions import (
    BroadcastFailed,
    Duplicate,
    MultisigError,
    NotFound,
    StaleRecord,
)
from ..serializers import EndpointResultSerializer

LOGGER = logging.getLogger(__name__)

ERROR_STATUS = {
    Duplicate: status.HTTP_409_CONFLICT,
    StaleRecord: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
    BroadcastFailed: status.HTTP_502_BAD_GATEWAY,
}


def error_response(exc):
    body = {"error": exc.message}
    if isinstance(exc, BroadcastFailed):
        body["results"] = EndpointResultSerializer(exc.results, many=True).data
    return Response(body, status=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST))


class MultisigAPIView(APIView):
    """Scope-aware base view translating multisig failures into {"error": ...} responses."""

    def get_scope(self):
        return getattr(self.request, 'multisig_scope', None) or getattr(settings, 'MULTISIG_DEFAULT_SCOPE', '0')

    def get_multisig_context(self):
        return get_context()

    def handle_exception(self, exc):
        if isinstance(exc, MultisigError):
            LOGGER.info('%s %s failed: %s', self.request.method, self.request.path, exc.message)
            return error_response(exc)
        return super().handle_exception(exc)
