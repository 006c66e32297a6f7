"""
    Scoped storage: files and folders below a fixed root on a pluggable backend.

    A StorageRoot binds a base path to a backend connection. A ScopedStorage
    handle adds a sub folder to that root and resolves every name it is given
    to ``base_path/sub_folder/name`` before asking the backend to do anything.
    Names cannot climb out of the root: traversal sequences (``../``, ``/..``
    and a bare ``..``) are stripped unless the root explicitly allows them,
    and a root without a base path is refused unless it explicitly allows
    working in the root of the backend.

    Backends (local disk, memory, Azure blob containers and file shares) are
    built by the BackendController from the [storage.connections] section of
    the configuration and shared by every handle on the same connection.

    Folder moves and copies are composed of individual file operations. Many
    object stores have no real directories, so folders are recreated and
    removed explicitly rather than renamed. These operations are not atomic:
    a failure part way through leaves the files that were already moved at
    their new location.
"""
from .backends import BackendController, StorageBackend, Visibility
from .config import StorageRoot
from .errors import (
    StorageError, StorageErrorKind, StorageConfigurationError, StorageFileNotFoundError,
    StorageFileAlreadyExistsError, StorageFolderNotEmptyError, StorageStreamError,
    BackendError, BackendNotFoundError, BackendAlreadyExistsError
)
from .handle import ScopedStorage

__VERSION__ = "0.1.0"
