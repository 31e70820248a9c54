"""Constants used across the operator."""

# Tag used to identify operator-managed networks
MANAGED_BY_TAG = "managed-by-openstack-operator"

# Custom resource coordinates
API_GROUP = "sunet.se"
API_VERSION = "v1alpha1"

FINALIZER = "sunet.se/openstack-resource-operator"

# Network wait defaults (seconds)
NETWORK_CREATE_TIMEOUT = 600
NETWORK_DELETE_TIMEOUT = 600
NETWORK_POLL_DELAY = 5.0
NETWORK_POLL_INTERVAL = 3.0

# Senlin profile type used for clustered servers
DEFAULT_PROFILE_TYPE = "os.nova.server"
DEFAULT_PROFILE_VERSION = "1.0"
