import logging

from django.conf import settings

LOGGER = logging.getLogger(__name__)

SCOPE_HEADER = 'X-Session-Id'
SCOPE_QUERY_PARAM = 'session'
MAX_SCOPE_LENGTH = 100


class ScopeMiddleware:
    """
    Resolves the partition a multisig request works in from the X-Session-Id
    header or the `session` query parameter, into `request.multisig_scope`.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        default_scope = getattr(settings, 'MULTISIG_DEFAULT_SCOPE', '0')
        scope = request.headers.get(SCOPE_HEADER) or request.GET.get(SCOPE_QUERY_PARAM) or default_scope
        request.multisig_scope = scope.strip()[:MAX_SCOPE_LENGTH] or default_scope
        return self.get_response(request)
