"""Kopf handlers for OpenStack resources.

This package contains handlers for:
- OpenstackNetwork (Neutron networks)
- OpenstackClusterProfile (Senlin clustering profiles)

All handlers follow the same patterns:
- Create/update/delete via Kopf decorators
- Status tracking via patch.status
- Periodic timers that detect resources removed outside the operator
"""

# Import handlers to register them with Kopf
from handlers.network import *  # noqa: F401, F403
from handlers.cluster_profile import *  # noqa: F401, F403
