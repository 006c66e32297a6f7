"""Error classes raised by scoped storage handles and their backends.

Every error is a :class:`StorageError` so callers can catch broadly, and each
class carries a :class:`StorageErrorKind` so callers can branch on the kind
without caring which backend produced it.
"""
import enum
import typing as t

from scoped_storage.util import ScopedStorageError


class StorageErrorKind(enum.Enum):
    """Closed set of failure kinds surfaced by a handle."""

    GENERAL = "general"
    CONFIGURATION = "configuration"
    FILE_NOT_FOUND = "file_not_found"
    FILE_ALREADY_EXISTS = "file_already_exists"
    FOLDER_NOT_EMPTY = "folder_not_empty"
    STREAM = "stream"
    BACKEND = "backend"


class StorageError(ScopedStorageError):
    """Error class specifically for storage errors."""

    kind: StorageErrorKind = StorageErrorKind.GENERAL

    def __init__(self, msg: str, code: t.Optional[int] = None, is_recoverable: bool = False, code_space: str = "STORAGE"):
        super().__init__(msg, code_space, code, is_recoverable=is_recoverable)


class StorageConfigurationError(StorageError):

    kind = StorageErrorKind.CONFIGURATION

    def __init__(self, msg: str, code: int = 1000):
        super().__init__(msg, code)


class StorageFileNotFoundError(StorageError):

    kind = StorageErrorKind.FILE_NOT_FOUND

    def __init__(self, msg: str, code: int = 1001):
        super().__init__(msg, code)


class StorageFileAlreadyExistsError(StorageError):

    kind = StorageErrorKind.FILE_ALREADY_EXISTS

    def __init__(self, msg: str, code: int = 1002):
        super().__init__(msg, code)


class StorageFolderNotEmptyError(StorageError):

    kind = StorageErrorKind.FOLDER_NOT_EMPTY

    def __init__(self, msg: str = "Folder is not empty", code: int = 1003):
        super().__init__(msg, code)


class StorageStreamError(StorageError):

    kind = StorageErrorKind.STREAM

    def __init__(self, msg: str, code: int = 1004):
        super().__init__(msg, code, is_recoverable=True)


class BackendError(StorageError):
    """Raised by backends for any failure not otherwise classified."""

    kind = StorageErrorKind.BACKEND

    def __init__(self, msg: str, code: int, is_recoverable: bool = False):
        super().__init__(msg, code, is_recoverable, code_space="BACKEND")


class BackendNotFoundError(BackendError):
    """Raised by backends when the source path does not exist."""

    def __init__(self, msg: str, code: int = 1002):
        super().__init__(msg, code)


class BackendAlreadyExistsError(BackendError):
    """Raised by backends when the target path already exists."""

    def __init__(self, msg: str, code: int = 1006):
        super().__init__(msg, code)
