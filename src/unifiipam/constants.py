"""
Names shared with the orchestration platform.

These strings are persisted on resources (finalizers, annotations, labels,
pool references) so changing any of them breaks compatibility with objects
already in the store.
"""

# =============================================================================
# API Identity
# =============================================================================

API_GROUP = "ipam.cluster.x-k8s.io"
API_VERSION = f"{API_GROUP}/v1beta2"

POOL_KIND = "UnifiIPPool"
INSTANCE_KIND = "UnifiInstance"
CLAIM_KIND = "IPAddressClaim"
ADDRESS_KIND = "IPAddress"
SECRET_KIND = "Secret"

# =============================================================================
# Finalizers (deletion guards)
# =============================================================================

# On the claim: release the address before the claim may disappear.
RELEASE_ADDRESS_FINALIZER = "ipam.cluster.x-k8s.io/ReleaseAddress"

# On the address: block its deletion while the claim still exists.
PROTECT_ADDRESS_FINALIZER = "ipam.cluster.x-k8s.io/ProtectAddress"

# On the pool: block its deletion while addresses still reference it.
PROTECT_POOL_FINALIZER = "ipam.cluster.x-k8s.io/ProtectPool"

# =============================================================================
# Annotations and Labels
# =============================================================================

# Claim annotation carrying a requested address.
REQUESTED_ADDRESS_ANNOTATION = "ipAddress"

PAUSED_ANNOTATION = "cluster.x-k8s.io/paused"
SKIP_VALIDATE_DELETE_ANNOTATION = "ipam.cluster.x-k8s.io/skip-validate-delete-webhook"

CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
WATCH_FILTER_LABEL = "cluster.x-k8s.io/watch-filter"

# =============================================================================
# Provider
# =============================================================================

DEFAULT_SITE = "default"
CREDENTIALS_API_KEY = "apiKey"
