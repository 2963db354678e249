from django.urls import include, path, re_path

from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi
from drf_yasg.generators import OpenAPISchemaGenerator

from multisig.urls import urlpatterns as multisig_urlpatterns


class PathOperationIdSchemaGenerator(OpenAPISchemaGenerator):

    def get_operation(self, view, path, prefix, method, components, request, **kwargs):
        """
        Names operations after their URL path so views mounted on several
        paths still get unique operationIds.
        """
        operation = super().get_operation(view, path, prefix, method, components, request, **kwargs)
        parts = []
        for part in (prefix + path).strip('/').split('/'):
            if part.startswith('{') and part.endswith('}'):
                part = part[1:-1]
            parts.append(part.replace('-', '_'))
        if parts:
            operation['operationId'] = f"{'_'.join(parts)}_{method.lower()}"
        return operation


schema_view = get_schema_view(
   openapi.Info(
      title="cosigner",
      default_version='v1',
      description="Coordinator for multisig Bitcoin PSBT signing sessions",
   ),
   public=True,
   permission_classes=(permissions.AllowAny,),
   generator_class=PathOperationIdSchemaGenerator,
)


urlpatterns = [
    re_path(r'^swagger(?P<format>\.json|\.yaml)$', schema_view.without_ui(cache_timeout=0), name='schema-json'),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
    path('multisig/', include(multisig_urlpatterns)),
]
