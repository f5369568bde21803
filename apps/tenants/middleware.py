"""
Tenant Middleware - binds the request's tenant for the whole request

Authentication happens upstream: the identity provider hands us an already
authenticated tenant identifier, either as `request.tenant_id` (set by an
earlier middleware) or in the `X-Tenant-ID` header. The binding is released
when the response is produced, also when the view raises.
"""
import logging

from django.http import JsonResponse

from .context import bind
from .exceptions import TenantError

logger = logging.getLogger(__name__)


class TenantContextMiddleware:
    TENANT_HEADER = 'X-Tenant-ID'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.tenant = None

        tenant_id = self._get_tenant_id(request)
        if not tenant_id:
            return self.get_response(request)

        try:
            scope = bind(tenant_id)
        except TenantError as e:
            logger.warning(f"Requisição recusada para tenant {tenant_id}: {e}")
            return JsonResponse({'error': str(e)}, status=403)

        with scope:
            request.tenant = scope.tenant
            return self.get_response(request)

    def _get_tenant_id(self, request):
        tenant_id = getattr(request, 'tenant_id', None)
        if tenant_id:
            return tenant_id
        return request.headers.get(self.TENANT_HEADER)
