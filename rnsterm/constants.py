# Wire constants for the JSON message envelope

# Envelope keys
K_ID = "id"
K_CONTENT_TYPE = "contentType"
K_CONTENT = "content"
K_TS = "timestamp"
K_TOPIC = "topic"
K_GROUP_ID = "groupId"
K_OPTIONS = "options"

# Variant-specific top-level keys
K_TARGET_ID = "targetID"
K_READ_IDS = "readIds"
K_REQUEST_TYPE = "requestType"
K_RESPONSE_TYPE = "responseType"
K_VERSION = "version"

# Content types
CT_TEXT = "text"
CT_RECEIPT = "receipt"
CT_READ = "read"
CT_CONTACT = "contact"

# Pure acknowledgment traffic; never acknowledged or routed further.
ACK_CONTENT_TYPES = frozenset({CT_RECEIPT, CT_READ})

# Contact profile exchange
PROFILE_FULL = "full"
AVATAR_BASE64 = "base64"

# Command surface
COMMAND_PREFIX = "/"
DEFAULT_USAGE = "/<command> [options]"
HELP_COMMAND = "help"

# Reply texts
ERROR_PREFIX = "> ⚠️ **Error**: "
TEXT_PERMISSION_DENIED = "Permission denied"
TEXT_INTERNAL_ERROR = "Internal server error"

# Transport
DEFAULT_NUM_SUB_CLIENTS = 4
DEFAULT_MSG_HOLDING_S = 8640000
MAX_HELD_PER_PEER = 64
MAX_HELD_TOTAL = 4096
DEFAULT_DEST_NAME = "rnsterm"

AUTHORIZED_TEMPLATE = """# Authorized Reticulum identity hashes
# One address per line
# Example addresses:
# 77dba12e1b8cb518ae1ea9b1d872098f
"""
