from app.schemas.auth import Token, UserLogin, UserResponse
from app.schemas.property import PropertyCreate, PropertyResponse, PropertyUpdate
from app.schemas.activity_provider import (
    BulkImportResult,
    ProviderCreate,
    ProviderDetail,
    ProviderLinkCreate,
    ProviderPage,
    ProviderResponse,
    ProviderUpdate,
)
from app.schemas.audit_log import AuditLogDetail, AuditLogEntry, AuditLogPage
