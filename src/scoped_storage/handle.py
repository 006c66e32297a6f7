"""Scoped storage handles.

A handle is a StorageRoot, a sub folder below the root's base path and the
backend bound to the root's connection. Every name passed to a handle is
relative to ``base_path/sub_folder`` and is resolved by
:mod:`scoped_storage.paths` before it reaches the backend.
"""
from __future__ import annotations
import datetime
import functools
import typing as t
from urllib.parse import quote_plus

import zrlog
from autoinject import injector

import scoped_storage.paths as paths
from scoped_storage.backends.base import StorageBackend, Visibility
from scoped_storage.backends.core import BackendController
from scoped_storage.config import StorageRoot
from scoped_storage.errors import (
    BackendNotFoundError, BackendAlreadyExistsError,
    StorageFileNotFoundError, StorageFileAlreadyExistsError,
    StorageFolderNotEmptyError, StorageStreamError, StorageConfigurationError
)
from scoped_storage.util import HaltFlag


@injector.inject
def _backend_for(connection: str, controller: BackendController = None) -> StorageBackend:
    return controller.get_backend(connection)


def _relabel_backend_errors(cb):
    """Translate backend not-found and already-exists errors into storage errors."""

    @functools.wraps(cb)
    def _inner(*args, **kwargs):
        try:
            return cb(*args, **kwargs)
        except BackendNotFoundError as ex:
            raise StorageFileNotFoundError(str(ex)) from ex
        except BackendAlreadyExistsError as ex:
            raise StorageFileAlreadyExistsError(str(ex)) from ex

    return _inner


class ScopedStorage:
    """Operate on files and folders below a storage root.

        handle = ScopedStorage.init("invoices", "2024")
        handle.write("jan.pdf", content)
        archive = handle.rename_folder("archive-2024")

        Folder level operations (move_to_folder, copy_to_folder, rename_folder)
        are built from individual file operations and are not atomic. If one
        step fails, the error propagates and whatever was already transferred
        stays where it is.
    """

    def __init__(self,
                 root: StorageRoot,
                 sub_folder: str = "",
                 backend: t.Optional[StorageBackend] = None,
                 halt_flag: t.Optional[HaltFlag] = None):
        self._root = root
        self._backend = backend if backend is not None else _backend_for(root.connection)
        self._halt_flag = halt_flag
        self._sub_folder = ""
        self._log = zrlog.get_logger("scoped_storage.handle")
        self.set_sub_folder(sub_folder)

    @classmethod
    def init(cls,
             root: t.Union[StorageRoot, str],
             sub_folder: str = "",
             halt_flag: t.Optional[HaltFlag] = None) -> ScopedStorage:
        """Create a handle from a root or the name of a configured root."""
        if not isinstance(root, StorageRoot):
            root = StorageRoot.from_config(root)
        return cls(root, sub_folder, halt_flag=halt_flag)

    def __str__(self):
        return self.get_folder_path()

    def __repr__(self):
        return f"ScopedStorage({self._root!r}, {self._sub_folder!r})"

    @property
    def root(self) -> StorageRoot:
        return self._root

    @property
    def connection(self) -> str:
        return self._root.connection

    @property
    def base_path(self) -> t.Optional[str]:
        return self._root.base_path

    @property
    def sub_folder(self) -> str:
        return self._sub_folder

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def with_sub_folder(self, sub_folder: str) -> ScopedStorage:
        """Create a handle on the same root and backend with a different sub folder."""
        return ScopedStorage(self._root, sub_folder, self._backend, self._halt_flag)

    def set_sub_folder(self, sub_folder: str) -> ScopedStorage:
        self._sub_folder = self._clean(sub_folder) or ""
        return self

    def append_sub_folder(self, sub_folder: str) -> ScopedStorage:
        """Add one or more folders to the end of the current sub folder."""
        sub_folder = self._clean(sub_folder) or ""
        if self._sub_folder == "":
            self._sub_folder = sub_folder
        elif sub_folder != "":
            self._sub_folder += f"/{sub_folder}"
        return self

    def _clean(self, path: t.Optional[str]) -> t.Optional[str]:
        return paths.sanitize(path, self._root.allow_folder_up)

    def get_folder_path(self, folder: str = "") -> str:
        """Get the backend path of a folder relative to this handle."""
        return paths.resolve_folder(
            self._root.base_path,
            self._sub_folder,
            folder,
            self._root.allow_working_in_root,
            self._root.allow_folder_up
        )

    def get_full_path(self, file: str = "") -> str:
        """Get the backend path of a file relative to this handle."""
        return paths.resolve_file(
            self._root.base_path,
            self._sub_folder,
            file,
            self._root.allow_working_in_root,
            self._root.allow_folder_up
        )

    def list_files(self, folder: str = "") -> list[str]:
        return self._backend.list_files(self.get_folder_path(folder))

    def list_all_files(self, folder: str = "") -> list[str]:
        return self._backend.list_all_files(self.get_folder_path(folder))

    def list_folders(self, folder: str = "") -> list[str]:
        return self._backend.list_directories(self.get_folder_path(folder))

    def list_all_folders(self, folder: str = "") -> list[str]:
        return self._backend.list_all_directories(self.get_folder_path(folder))

    def read(self, file: str) -> bytes:
        full_path = self.get_full_path(file)
        try:
            return self._backend.read(full_path)
        except BackendNotFoundError as ex:
            raise StorageFileNotFoundError(f"{full_path} does not exist") from ex

    def write(self, file: str, content: t.Union[bytes, str], visibility: t.Union[Visibility, str, None] = None):
        """Write the content to the file, replacing it if it exists."""
        full_path = self.get_full_path(file)
        self._backend.write(full_path, content, Visibility.coerce(visibility))

    def exists(self, file: str) -> bool:
        return self._backend.exists(self.get_full_path(file))

    def delete(self, file: str):
        self._backend.delete(self.get_full_path(file))

    def make_folder(self, folder: str):
        self._backend.make_directory(self.get_full_path(folder))

    def is_folder_empty(self, folder: str = "") -> bool:
        """Check that the folder has neither files nor sub folders."""
        return not self.list_files(folder) and not self.list_folders(folder)

    def delete_folder(self, force: bool = False, folder: str = ""):
        """Delete a folder, refusing to do so if it has content unless forced."""
        if not force and not self.is_folder_empty(folder):
            raise StorageFolderNotEmptyError(f"Folder {self.get_folder_path(folder)} is not empty")
        self._backend.delete_directory(self.get_folder_path(folder))

    def rename(self, file: str, new_file: str):
        self.move(self, file, new_file)

    def move(self, destination: ScopedStorage, file: str, new_file: t.Optional[str] = None):
        """Move a file into the folder of another handle (or this one)."""
        target = file if new_file is None else new_file
        self._transfer(destination, self.get_full_path(file), destination.get_full_path(target), True)

    def copy(self, destination: ScopedStorage, file: str, new_file: t.Optional[str] = None):
        """Copy a file into the folder of another handle (or this one)."""
        target = file if new_file is None else new_file
        self._transfer(destination, self.get_full_path(file), destination.get_full_path(target), False)

    @_relabel_backend_errors
    def _transfer(self, destination: ScopedStorage, source_path: str, target_path: str, remove_source: bool):
        if destination.backend.exists(target_path):
            raise StorageFileAlreadyExistsError(f"{target_path} already exists")
        if remove_source:
            self._log.debug(f"Moving [{source_path}] to [{target_path}]")
        else:
            self._log.debug(f"Copying [{source_path}] to [{target_path}]")
        if destination.backend is self._backend:
            if remove_source:
                self._backend.move(source_path, target_path)
            else:
                self._backend.copy(source_path, target_path)
        else:
            self._transfer_between_backends(destination.backend, source_path, target_path, remove_source)

    def _transfer_between_backends(self, target_backend: StorageBackend, source_path: str, target_path: str, remove_source: bool):
        visibility = self._backend.visibility(source_path)
        stream = self._backend.read_stream(source_path)
        if stream is None:
            raise StorageStreamError(f"Unable to open stream: {source_path}")
        try:
            target_backend.write_stream(target_path, stream, visibility, halt_flag=self._halt_flag)
        finally:
            if hasattr(stream, 'close'):
                stream.close()
        if remove_source:
            self._backend.delete(source_path)

    def move_to_folder(self, destination: ScopedStorage):
        """Move every file and folder of this handle's folder into the destination's folder.

            The destination folder must be empty and must not lie inside this
            handle's folder. Files are moved first, then the folder structure is
            recreated at the destination and removed from the source, so that
            empty folders survive on backends that only know about files.
            Finally the source folder itself is removed.
        """
        source_root = self.get_folder_path()
        target_root = destination.get_folder_path()
        if destination.backend is self._backend and paths.is_within(source_root, target_root):
            raise StorageConfigurationError(f"Cannot move {source_root} into itself at {target_root}", 1030)
        if not destination.is_folder_empty():
            raise StorageFolderNotEmptyError(f"Cannot move because destination {target_root} is not empty")
        files = self.list_all_files()
        folders = self.list_all_folders()
        self._log.info(f"Moving folder [{source_root}] to [{target_root}]: {len(files)} files, {len(folders)} folders")
        for file_path in HaltFlag.iterate(files, self._halt_flag, True):
            relative = paths.relative_to(source_root, file_path)
            self._transfer(destination, file_path, paths.join_path(target_root, relative), True)
        for folder_path in HaltFlag.iterate(folders, self._halt_flag, True):
            relative = paths.relative_to(source_root, folder_path)
            destination.backend.make_directory(paths.join_path(target_root, relative))
            self._backend.delete_directory(folder_path)
        destination.backend.make_directory(target_root)
        self.delete_folder(True)

    def copy_to_folder(self, destination: ScopedStorage):
        """Copy every file and folder of this handle's folder into the destination's folder."""
        source_root = self.get_folder_path()
        target_root = destination.get_folder_path()
        files = self.list_all_files()
        folders = self.list_all_folders()
        self._log.info(f"Copying folder [{source_root}] to [{target_root}]: {len(files)} files, {len(folders)} folders")
        for file_path in HaltFlag.iterate(files, self._halt_flag, True):
            relative = paths.relative_to(source_root, file_path)
            self._transfer(destination, file_path, paths.join_path(target_root, relative), False)
        for folder_path in HaltFlag.iterate(folders, self._halt_flag, True):
            relative = paths.relative_to(source_root, folder_path)
            destination.backend.make_directory(paths.join_path(target_root, relative))
        destination.backend.make_directory(target_root)

    def rename_folder(self, new_sub_folder: str) -> ScopedStorage:
        """Move the content of this handle's folder to a new sub folder on the same root.

            Returns the handle for the new location.
        """
        destination = self.with_sub_folder(new_sub_folder)
        self.move_to_folder(destination)
        return destination

    def get_visibility(self, file: str) -> Visibility:
        return self._backend.visibility(self.get_full_path(file))

    def _metadata_path(self, file: str, prepend_full_path: bool) -> str:
        file = self._clean(file)
        return self.get_full_path(file) if prepend_full_path else file

    def get_size(self, file: str, prepend_full_path: bool = False) -> int:
        """Size of the file in bytes.

            Unless prepend_full_path is set, the file is taken to be a backend
            path already (e.g. an entry from list_files()).
        """
        return self._backend.size(self._metadata_path(file, prepend_full_path))

    def last_modified(self, file: str, prepend_full_path: bool = False) -> datetime.datetime:
        return self._backend.last_modified(self._metadata_path(file, prepend_full_path))

    def get_metadata(self, file: str, prepend_full_path: bool = False) -> dict:
        file = self._clean(file)
        return {
            'name': file if prepend_full_path else paths.filename_from_path(file),
            'path': self.get_full_path(file) if prepend_full_path else file,
            'size': self.get_size(file, prepend_full_path),
            'modified': self.last_modified(file, prepend_full_path),
        }

    def get_folder_metadata(self, folder: str, prepend_full_path: bool = False) -> dict:
        folder = self._clean(folder)
        return {
            'name': folder if prepend_full_path else paths.filename_from_path(folder),
            'path': self.get_full_path(folder) if prepend_full_path else folder,
        }

    def write_stream(self, file: str, stream, visibility: t.Union[Visibility, str, None] = None):
        """Write a readable object or an iterable of bytes to a new file."""
        full_path = self.get_full_path(file)
        try:
            self._backend.write_stream(full_path, stream, Visibility.coerce(visibility), halt_flag=self._halt_flag)
        except BackendAlreadyExistsError as ex:
            raise StorageFileAlreadyExistsError(f"{full_path} already exists") from ex

    def read_stream(self, file: str) -> t.BinaryIO:
        full_path = self.get_full_path(file)
        try:
            stream = self._backend.read_stream(full_path)
        except BackendNotFoundError as ex:
            raise StorageFileNotFoundError(f"{full_path} does not exist") from ex
        if stream is None:
            raise StorageStreamError(f"Unable to open stream: {full_path}")
        return stream

    def get_temporary_url(self,
                          file: str,
                          expiry: datetime.datetime,
                          options: t.Optional[dict] = None,
                          display_name: t.Optional[str] = None) -> str:
        """Build a signed URL for the file.

            When a display name is given, the URL forces a download under that
            name regardless of the file's own name and type.
        """
        full_path = self.get_full_path(file)
        options = dict(options or {})
        if display_name:
            options['content_type'] = 'application/octet-stream'
            options['content_disposition'] = f'attachment; filename="{quote_plus(display_name)}"'
        return self._backend.temporary_url(full_path, expiry, options)
