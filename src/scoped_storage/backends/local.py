"""Local file system backend"""
import datetime
import pathlib
import shutil
import typing as t

from .base import StorageBackend, Visibility, local_file_error_wrap, read_in_chunks
from scoped_storage.errors import BackendError, BackendAlreadyExistsError
from scoped_storage.util import HaltFlag, utc_from_timestamp


class LocalBackend(StorageBackend):
    """Backend for a directory on a local disk or accessible network drive.

        Backend paths are resolved below the root directory. Visibility is
        mapped onto POSIX file modes, so it is only meaningful on systems that
        honour them.
    """

    def __init__(self, root: pathlib.Path, public_mode: int = 0o644, private_mode: int = 0o600):
        self._root = pathlib.Path(root).expanduser().absolute()
        self._public_mode = public_mode
        self._private_mode = private_mode

    @property
    def root(self) -> pathlib.Path:
        return self._root

    def _local(self, path: str) -> pathlib.Path:
        path = self.normalize(path)
        local = (self._root / path) if path else self._root
        if not local.resolve().is_relative_to(self._root.resolve()):
            raise BackendError(f"Path [{path}] escapes the backend root", 1009)
        return local

    def _backend_path(self, local: pathlib.Path) -> str:
        return local.relative_to(self._root).as_posix()

    def _entries(self, path: str, recursive: bool, dirs: bool) -> list[str]:
        base = self._local(path)
        if not base.is_dir():
            return []
        entries = base.rglob("*") if recursive else base.iterdir()
        return sorted(
            self._backend_path(x)
            for x in entries
            if x.is_dir() == dirs
        )

    @local_file_error_wrap
    def list_files(self, path: str) -> list[str]:
        return self._entries(path, False, False)

    @local_file_error_wrap
    def list_all_files(self, path: str) -> list[str]:
        return self._entries(path, True, False)

    @local_file_error_wrap
    def list_directories(self, path: str) -> list[str]:
        return self._entries(path, False, True)

    @local_file_error_wrap
    def list_all_directories(self, path: str) -> list[str]:
        return self._entries(path, True, True)

    @local_file_error_wrap
    def read(self, path: str) -> bytes:
        return self._local(path).read_bytes()

    @local_file_error_wrap
    def write(self, path: str, content: t.Union[bytes, str], visibility: Visibility = Visibility.PRIVATE):
        local = self._local(path)
        local.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        local.write_bytes(content)
        self._set_visibility(local, visibility)

    def _set_visibility(self, local: pathlib.Path, visibility: Visibility):
        local.chmod(self._public_mode if Visibility.coerce(visibility) == Visibility.PUBLIC else self._private_mode)

    @local_file_error_wrap
    def exists(self, path: str) -> bool:
        return self._local(path).exists()

    @local_file_error_wrap
    def delete(self, path: str):
        local = self._local(path)
        if local.is_file():
            local.unlink(True)

    @local_file_error_wrap
    def make_directory(self, path: str):
        self._local(path).mkdir(parents=True, exist_ok=True)

    @local_file_error_wrap
    def delete_directory(self, path: str):
        local = self._local(path)
        if local.is_dir():
            shutil.rmtree(local)

    @local_file_error_wrap
    def move(self, source: str, target: str):
        self._check_transfer(source, target)
        target_path = self._local(target)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(self._local(source), target_path)

    @local_file_error_wrap
    def copy(self, source: str, target: str):
        self._check_transfer(source, target)
        target_path = self._local(target)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self._local(source), target_path)

    @local_file_error_wrap
    def size(self, path: str) -> int:
        return self._local(path).stat().st_size

    @local_file_error_wrap
    def visibility(self, path: str) -> Visibility:
        mode = self._local(path).stat().st_mode
        return Visibility.PUBLIC if mode & 0o044 else Visibility.PRIVATE

    @local_file_error_wrap
    def last_modified(self, path: str) -> datetime.datetime:
        return utc_from_timestamp(self._local(path).stat().st_mtime)

    @local_file_error_wrap
    def write_stream(self, path: str, stream, visibility: Visibility = Visibility.PRIVATE, halt_flag: t.Optional[HaltFlag] = None):
        local = self._local(path)
        if local.exists():
            raise BackendAlreadyExistsError(f"File already exists at path: {path}")
        local.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(local, "xb") as dest:
                for chunk in read_in_chunks(stream, halt_flag=halt_flag):
                    dest.write(chunk)
        except FileExistsError:
            raise
        except BaseException as ex:
            local.unlink(True)
            raise ex
        self._set_visibility(local, visibility)

    @local_file_error_wrap
    def read_stream(self, path: str) -> t.Optional[t.BinaryIO]:
        local = self._local(path)
        if local.is_dir():
            return None
        return open(local, "rb")

    @classmethod
    def build(cls, connection: str, options: dict) -> StorageBackend:
        if not options.get('root'):
            raise BackendError(f"Missing root directory for local connection [{connection}]", 1010)
        root = options['root']
        if isinstance(root, str) and root.startswith("file://"):
            root = root[7:]
        kwargs = {}
        for key in ('public_mode', 'private_mode'):
            if key in options:
                kwargs[key] = int(options[key], 8) if isinstance(options[key], str) else int(options[key])
        return cls(pathlib.Path(root), **kwargs)
