"""Shared constants for the Cord to Liveblocks migration tool."""

import uuid

# ---------------------------------------------------------------------------
# HTTP status codes
# ---------------------------------------------------------------------------

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_RATE_LIMIT = 429
HTTP_SERVER_ERROR_MIN = 500

# ---------------------------------------------------------------------------
# Liveblocks API
# ---------------------------------------------------------------------------

DEFAULT_API_BASE_URL = "https://api.liveblocks.io"
DEFAULT_SECRET_ENV_VAR = "LIVEBLOCKS_SECRET_KEY"
PRODUCTION_SECRET_PREFIX = "sk_prod_"
ROOMS_PAGE_SIZE = 100
ROOM_WRITE_PERMISSION = "room:write"
MAX_RETRY_DELAY_SECONDS = 60
RETRY_BACKOFF_FACTOR = 2.0

# ---------------------------------------------------------------------------
# Environments
# ---------------------------------------------------------------------------

ENVIRONMENT_PRODUCTION = "production"
ENVIRONMENT_STAGING = "staging"

# ---------------------------------------------------------------------------
# Thread metadata keys
# ---------------------------------------------------------------------------

META_THREAD_ID = "cordThreadId"
META_ORG_ID = "cordOrgId"
META_CREATED_TIMESTAMP = "cordCreatedTimestamp"
META_COMMENT_PAIRS = "messageToCommentPairs"
META_LEDGER_VERSION = "cordLedgerVersion"

LEDGER_VERSION = 1
LEDGER_MESSAGE_KEY = "cordMessageId"
LEDGER_COMMENT_KEY = "liveblocksCommentId"

# Keys owned by the migration; location keys may never shadow them.
RESERVED_THREAD_METADATA_KEYS = frozenset(
    {
        META_THREAD_ID,
        META_ORG_ID,
        META_CREATED_TIMESTAMP,
        META_COMMENT_PAIRS,
        META_LEDGER_VERSION,
    }
)

# ---------------------------------------------------------------------------
# Room keys
# ---------------------------------------------------------------------------

# Never change: every room id ever created is derived from this namespace.
ROOM_KEY_NAMESPACE = uuid.UUID("6c1a4f2e-9b7d-5e3a-8f41-2d0c7b95e6a8")

# ---------------------------------------------------------------------------
# Comment bodies
# ---------------------------------------------------------------------------

COMMENT_BODY_VERSION = 1

# ---------------------------------------------------------------------------
# Batching defaults
# ---------------------------------------------------------------------------

DEFAULT_BATCH_WIDTH = 10
DEFAULT_BATCH_DELAY_MS = 50

# ---------------------------------------------------------------------------
# Output files
# ---------------------------------------------------------------------------

OUTPUT_ROOT_DIR = "cord_migration_output"
MAIN_LOG_FILE = "migration.log"
AUDIT_LOG_FILE = "failed_messages.jsonl"
REPORT_FILE = "migration_report.yaml"
