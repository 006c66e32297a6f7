from __future__ import annotations
import datetime
import enum
import functools
import typing as t

from scoped_storage.errors import BackendError, BackendNotFoundError, BackendAlreadyExistsError
from scoped_storage.util import HaltFlag


DEFAULT_CHUNK_SIZE = 4194304


class Visibility(enum.Enum):
    """Visibility of a stored file."""

    PRIVATE = "private"
    PUBLIC = "public"

    @staticmethod
    def coerce(value: t.Union[Visibility, str, None]) -> Visibility:
        if value is None:
            return Visibility.PRIVATE
        if isinstance(value, Visibility):
            return value
        try:
            return Visibility(str(value).lower())
        except ValueError as ex:
            raise BackendError(f"Unknown visibility [{value}]", 1011) from ex


def local_file_error_wrap(cb):
    """Converts typical local file-system errors into backend errors with recoverable set properly."""

    @functools.wraps(cb)
    def _inner(*args, **kwargs):
        try:
            return cb(*args, **kwargs)
        except BackendError:
            raise
        except FileNotFoundError as ex:
            raise BackendNotFoundError(f"Local file not found: {ex.filename}", 1002) from ex
        except FileExistsError as ex:
            raise BackendAlreadyExistsError(f"Local file already exists: {ex.filename}", 1006) from ex
        except PermissionError as ex:
            raise BackendError(f"Access to local file denied", 1003, True) from ex
        except IsADirectoryError as ex:
            raise BackendError(f"Local file is a directory", 1004) from ex
        except NotADirectoryError as ex:
            raise BackendError(f"Local directory is not a directory", 1005) from ex
        except OSError as ex:
            raise BackendError(f"Exception processing local file: {ex.__class__.__name__}: {str(ex)}", 1000) from ex

    return _inner


def read_in_chunks(source, buffer_size: t.Optional[int] = None, halt_flag: t.Optional[HaltFlag] = None) -> t.Iterable[bytes]:
    """Turn bytes, a readable object or an iterable of bytes into chunks."""
    if buffer_size is None:
        buffer_size = DEFAULT_CHUNK_SIZE
    if isinstance(source, str):
        source = source.encode("utf-8")
    if isinstance(source, (bytes, bytearray, memoryview)):
        yield bytes(source)
    elif hasattr(source, 'read'):
        if halt_flag:
            halt_flag.check_continue(True)
        x = source.read(buffer_size)
        while x:
            yield x
            if halt_flag:
                halt_flag.check_continue(True)
            x = source.read(buffer_size)
    elif hasattr(source, '__iter__'):
        yield from HaltFlag.iterate(source, halt_flag, True)
    else:
        raise BackendError(f"Cannot read content from [{source.__class__.__name__}]", 1007)


class StorageBackend:
    """Interface between a scoped storage handle and the actual storage system.

        All paths are backend paths: forward-slash separated and relative to
        whatever the backend considers its root (a directory, a container or
        a file share). Listing methods return backend paths as well.

        Implementations raise BackendNotFoundError when a source is missing and
        BackendAlreadyExistsError when a target is already present; any other
        failure is a BackendError.
    """

    @staticmethod
    def normalize(path: str) -> str:
        """Remove leading and trailing slashes from a backend path."""
        return (path or "").strip("/")

    def list_files(self, path: str) -> list[str]:
        """List the files directly inside a directory."""
        raise NotImplementedError

    def list_all_files(self, path: str) -> list[str]:
        """List the files inside a directory and all of its sub-directories."""
        raise NotImplementedError

    def list_directories(self, path: str) -> list[str]:
        """List the directories directly inside a directory."""
        raise NotImplementedError

    def list_all_directories(self, path: str) -> list[str]:
        """List all the directories below a directory."""
        raise NotImplementedError

    def read(self, path: str) -> bytes:
        raise NotImplementedError

    def write(self, path: str, content: t.Union[bytes, str], visibility: Visibility = Visibility.PRIVATE):
        """Write the content to the path, replacing any existing file."""
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def delete(self, path: str):
        """Remove a file, if it exists."""
        raise NotImplementedError

    def make_directory(self, path: str):
        raise NotImplementedError

    def delete_directory(self, path: str):
        """Remove a directory and everything below it, if it exists."""
        raise NotImplementedError

    def move(self, source: str, target: str):
        raise NotImplementedError

    def copy(self, source: str, target: str):
        raise NotImplementedError

    def size(self, path: str) -> int:
        raise NotImplementedError

    def visibility(self, path: str) -> Visibility:
        raise NotImplementedError

    def last_modified(self, path: str) -> datetime.datetime:
        raise NotImplementedError

    def write_stream(self, path: str, stream, visibility: Visibility = Visibility.PRIVATE, halt_flag: t.Optional[HaltFlag] = None):
        """Write a stream to a new file; the file must not exist yet."""
        raise NotImplementedError

    def read_stream(self, path: str) -> t.Optional[t.BinaryIO]:
        """Open a readable stream, or return None if one cannot be opened."""
        raise NotImplementedError

    def temporary_url(self, path: str, expiry: datetime.datetime, options: t.Optional[dict] = None) -> str:
        """Build a URL that grants temporary read access to the file."""
        raise BackendError(f"Backend [{self.__class__.__name__}] does not support temporary URLs", 1008)

    def _check_transfer(self, source: str, target: str):
        if not self.exists(source):
            raise BackendNotFoundError(f"File not found at path: {source}")
        if self.exists(target):
            raise BackendAlreadyExistsError(f"File already exists at path: {target}")

    @classmethod
    def build(cls, connection: str, options: dict) -> StorageBackend:
        """Construct a backend from its connection options."""
        return cls()
