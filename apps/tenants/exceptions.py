"""
Tenant isolation errors.

All of them are fatal to the running operation and must never be retried:
they signal that the caller is not allowed to see (or does not have) the data
it asked for.
"""


class TenantError(Exception):
    """Base class for isolation failures."""
    category = 'isolation'


class TenantNotFoundError(TenantError):
    def __init__(self, tenant_id):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant '{tenant_id}' não encontrado.")


class TenantInactiveError(TenantError):
    def __init__(self, tenant_id, status):
        self.tenant_id = tenant_id
        self.status = status
        super().__init__(f"Tenant '{tenant_id}' não está ativo (status: {status}).")


class TenantContextMissingError(TenantError):
    def __init__(self, message="Nenhum tenant vinculado ao contexto atual."):
        super().__init__(message)


class CrossTenantAccessError(TenantError):
    """A row outside the bound tenant was referenced or about to be written."""

    def __init__(self, entity, entity_id, tenant_id):
        self.entity = entity
        self.entity_id = entity_id
        self.tenant_id = tenant_id
        super().__init__(f"{entity} '{entity_id}' não pertence ao tenant '{tenant_id}'.")


class TenantLimitError(TenantError):
    """Plan limit reached. Client-input class, not an isolation breach."""
    category = 'validation'

    LABELS = {'schools': 'escolas', 'products': 'produtos'}

    def __init__(self, resource, limit):
        self.resource = resource
        self.limit = limit
        label = self.LABELS.get(resource, resource)
        super().__init__(f"Limite de {label} do plano atingido ({limit}). Faça upgrade para cadastrar mais.")
