"""
System-Wide Constants for the Coordination Layer

All defaults for the ZooKeeper session and its retry policy live here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000

# =============================================================================
# SESSION
# =============================================================================
ZK_NUM_RETRIES_DEFAULT: Final[int] = 1000
ZK_TIMEOUT_MS_DEFAULT: Final[int] = 10 * SECOND_MS
ZK_RETRY_INTERVAL_MS_DEFAULT: Final[int] = 1 * SECOND_MS
ZK_CONNECT_TIMEOUT_MS_DEFAULT: Final[int] = 15 * SECOND_MS

# =============================================================================
# SECURITY
# =============================================================================
ZK_ACL_DEFAULT: Final[str] = "world:anyone:rwcda"
ZK_SASL_SERVICE_DEFAULT: Final[str] = "zookeeper"
SASL_MECHANISM_GSSAPI: Final[str] = "GSSAPI"
HOST_PLACEHOLDER: Final[str] = "_HOST"

# =============================================================================
# NODE VERSIONS
# =============================================================================
ANY_VERSION: Final[int] = -1
SEQUENCE_WIDTH: Final[int] = 10

# =============================================================================
# ENVIRONMENT
# =============================================================================
ENV_PREFIX: Final[str] = "COORDMESH_"
