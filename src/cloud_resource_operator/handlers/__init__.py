"""Handler modules for CRD resources."""

# Import handlers to register them - all handlers register themselves via @kopf decorators
from . import blobstorage  # noqa: F401
from . import redis  # noqa: F401
