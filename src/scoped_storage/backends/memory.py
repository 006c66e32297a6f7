"""In-memory backend.

Behaves like an object store: there is no real directory tree, a directory
exists because a file lives below it or because it was created explicitly
(which leaves a marker, as the S3 and Azure adapters do). Removing the last
file of an implied directory makes the directory disappear.
"""
import datetime
import io
import threading
import typing as t

from .base import StorageBackend, Visibility, read_in_chunks
from scoped_storage.errors import BackendNotFoundError, BackendAlreadyExistsError
from scoped_storage.util import HaltFlag, UTC


class _MemoryFile:

    __slots__ = ('content', 'visibility', 'modified')

    def __init__(self, content: bytes, visibility: Visibility):
        self.content = content
        self.visibility = visibility
        self.modified = datetime.datetime.now(UTC)


class MemoryBackend(StorageBackend):

    def __init__(self):
        self._files: dict[str, _MemoryFile] = {}
        self._directories: set[str] = set()
        self._lock = threading.RLock()

    def _file(self, path: str) -> _MemoryFile:
        path = self.normalize(path)
        if path not in self._files:
            raise BackendNotFoundError(f"File not found at path: {path}")
        return self._files[path]

    @staticmethod
    def _parents(path: str) -> t.Iterable[str]:
        pos = path.rfind("/")
        while pos > 0:
            path = path[:pos]
            yield path
            pos = path.rfind("/")

    def _all_directories(self) -> set[str]:
        dirs = set(self._directories)
        for directory in self._directories:
            dirs.update(self._parents(directory))
        for file in self._files:
            dirs.update(self._parents(file))
        return dirs

    @staticmethod
    def _below(path: str, candidates: t.Iterable[str], recursive: bool) -> list[str]:
        prefix = f"{path}/" if path else ""
        return sorted(
            x for x in candidates
            if x.startswith(prefix) and x != path and (recursive or "/" not in x[len(prefix):])
        )

    def list_files(self, path: str) -> list[str]:
        with self._lock:
            return self._below(self.normalize(path), self._files.keys(), False)

    def list_all_files(self, path: str) -> list[str]:
        with self._lock:
            return self._below(self.normalize(path), self._files.keys(), True)

    def list_directories(self, path: str) -> list[str]:
        with self._lock:
            return self._below(self.normalize(path), self._all_directories(), False)

    def list_all_directories(self, path: str) -> list[str]:
        with self._lock:
            return self._below(self.normalize(path), self._all_directories(), True)

    def read(self, path: str) -> bytes:
        with self._lock:
            return self._file(path).content

    def write(self, path: str, content: t.Union[bytes, str], visibility: Visibility = Visibility.PRIVATE):
        if isinstance(content, str):
            content = content.encode("utf-8")
        with self._lock:
            self._files[self.normalize(path)] = _MemoryFile(bytes(content), Visibility.coerce(visibility))

    def exists(self, path: str) -> bool:
        path = self.normalize(path)
        with self._lock:
            return path in self._files or path in self._all_directories()

    def delete(self, path: str):
        with self._lock:
            self._files.pop(self.normalize(path), None)

    def make_directory(self, path: str):
        path = self.normalize(path)
        if path:
            with self._lock:
                self._directories.add(path)

    def delete_directory(self, path: str):
        path = self.normalize(path)
        prefix = f"{path}/" if path else ""
        with self._lock:
            for file in [x for x in self._files if x.startswith(prefix)]:
                del self._files[file]
            self._directories = set(x for x in self._directories if x != path and not x.startswith(prefix))

    def move(self, source: str, target: str):
        source = self.normalize(source)
        target = self.normalize(target)
        with self._lock:
            self._check_transfer(source, target)
            self._files[target] = self._files.pop(source)

    def copy(self, source: str, target: str):
        source = self.normalize(source)
        target = self.normalize(target)
        with self._lock:
            self._check_transfer(source, target)
            original = self._files[source]
            self._files[target] = _MemoryFile(original.content, original.visibility)

    def _check_transfer(self, source: str, target: str):
        if source not in self._files:
            raise BackendNotFoundError(f"File not found at path: {source}")
        if target in self._files:
            raise BackendAlreadyExistsError(f"File already exists at path: {target}")

    def size(self, path: str) -> int:
        with self._lock:
            return len(self._file(path).content)

    def visibility(self, path: str) -> Visibility:
        with self._lock:
            return self._file(path).visibility

    def last_modified(self, path: str) -> datetime.datetime:
        with self._lock:
            return self._file(path).modified

    def write_stream(self, path: str, stream, visibility: Visibility = Visibility.PRIVATE, halt_flag: t.Optional[HaltFlag] = None):
        path = self.normalize(path)
        if path in self._files:
            raise BackendAlreadyExistsError(f"File already exists at path: {path}")
        content = b''.join(read_in_chunks(stream, halt_flag=halt_flag))
        with self._lock:
            if path in self._files:
                raise BackendAlreadyExistsError(f"File already exists at path: {path}")
            self._files[path] = _MemoryFile(content, Visibility.coerce(visibility))

    def read_stream(self, path: str) -> t.Optional[t.BinaryIO]:
        with self._lock:
            file = self._files.get(self.normalize(path))
            if file is None:
                raise BackendNotFoundError(f"File not found at path: {path}")
            return io.BytesIO(file.content)
