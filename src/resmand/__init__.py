"""resmand - resource configuration daemon with an async bus client."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("resmand")
except PackageNotFoundError:
    __version__ = "0+local"
from resmand.client import ResmandClient
from resmand.config import ResmandConfig
from resmand.exceptions import (
    EncodingError,
    FileReadError,
    KeyRejected,
    PreprocessExecError,
    ResmandConfigError,
    ResmandError,
    ResmandRemoteError,
    ResmandTransportError,
    ResourceLoadError,
)
from resmand.notifier import ChangeNotifier
from resmand.parser import is_valid_key, parse_config
from resmand.service import ResourceService
from resmand.state.events import ChangeEvent
from resmand.state.store import ResourceStore

__all__ = [
    "__version__",
    "ChangeEvent",
    "ChangeNotifier",
    "EncodingError",
    "FileReadError",
    "KeyRejected",
    "PreprocessExecError",
    "ResmandClient",
    "ResmandConfig",
    "ResmandConfigError",
    "ResmandError",
    "ResmandRemoteError",
    "ResmandTransportError",
    "ResourceLoadError",
    "ResourceService",
    "ResourceStore",
    "is_valid_key",
    "parse_config",
]
