__version__ = "0.1.0"

from .config import Config, load_config
from .core import CallContext, UpstreamClient
from .core.errors import (
    ApiError,
    ConfigurationError,
    OperationCancelled,
    ParameterMismatchError,
    ReconcileError,
    ResponseDecodeError,
    ServerExistsError,
    ServerNotFoundError,
    TransportError,
    UpstreamSyncError,
    find_status_error,
)
from .sync import ReconcileResult, StreamUpstreamServer, UpstreamServer

__all__ = [
    "ApiError",
    "CallContext",
    "Config",
    "ConfigurationError",
    "OperationCancelled",
    "ParameterMismatchError",
    "ReconcileError",
    "ReconcileResult",
    "ResponseDecodeError",
    "ServerExistsError",
    "ServerNotFoundError",
    "StreamUpstreamServer",
    "TransportError",
    "UpstreamClient",
    "UpstreamServer",
    "UpstreamSyncError",
    "find_status_error",
    "load_config",
    "__version__",
]
