from .errors import (
    SyncError, ConfigurationError, AuthError, NotFoundError, NoRecordsError,
    ZohoAPIError, MappingError, MappingConflictError, RecordReconcileError,
    UnauthorizedError, InvalidPayloadError,
)
from .models import (
    FieldMapping, SyncErrorEntry, SyncResult, SyncRequest, REProSyncRequest,
    SyncAllRequest, WebhookPayload, CurrentUser, PolicyRef,
)
from .entity_store import (
    EntityStore, PostgresEntityStore, InMemoryEntityStore, claims_for_policy,
)
from .settings import Settings
from .zoho_auth import CredentialProvider, ZohoTokenProvider
from .sync_service import SyncService
