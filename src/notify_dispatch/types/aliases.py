"""Type aliases using PEP 695 syntax."""

from collections.abc import Callable, Mapping

from notify_dispatch.types.models import Channel, ProviderChain
from notify_dispatch.types.protocols import JobQueue, NotificationProvider

# Decrypted provider credentials, opaque to the orchestration layer
type Credentials = Mapping[str, object]

# Builds a provider instance from decrypted credentials
type ProviderFactory = Callable[[Credentials], NotificationProvider]

# Optional provider chain per channel
type ProviderChainMap = Mapping[Channel, ProviderChain]

# Queue handle per channel, validated to cover every channel
type QueueTable = Mapping[Channel, JobQueue]
