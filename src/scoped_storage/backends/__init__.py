"""Storage backends that perform the actual I/O for scoped storage handles.

The Azure backends are not imported here so that their SDKs are only loaded
when a connection actually uses them.
"""
from .base import StorageBackend, Visibility
from .core import BackendController
from .local import LocalBackend
from .memory import MemoryBackend
