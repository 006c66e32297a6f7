import datetime
import time
import typing as t
from urllib.parse import urlparse

import azure.core.exceptions as ace
import zirconium as zr
from autoinject import injector
from azure.identity import DefaultAzureCredential
from azure.storage.fileshare import (
    ShareClient, ShareFileClient, ShareDirectoryClient, FileProperties, DirectoryProperties,
    FileSasPermissions, generate_file_sas
)

from .base import StorageBackend, Visibility, read_in_chunks
from .azure_blob import wrap_azure_errors, parse_connection_string, VISIBILITY_METADATA_KEY
from scoped_storage.errors import BackendError, BackendNotFoundError, BackendAlreadyExistsError
from scoped_storage.util import HaltFlag


class AzureFileBackend(StorageBackend):
    """Backend for an Azure file share, which has real directories."""

    config: zr.ApplicationConfig = None

    @injector.construct
    def __init__(self, share_url: str, connection_string: t.Optional[str] = None, copy_poll_interval: float = 0.5):
        self._share_url = share_url.rstrip("/")
        self._connection_string = connection_string
        self._copy_poll_interval = copy_poll_interval
        self._connection_details = None
        self._share_client = None

    def get_connection_details(self) -> dict:
        if self._connection_details is None:
            self._connection_details = self._get_connection_details()
        return self._connection_details

    def _get_connection_details(self) -> dict:
        url_parts = urlparse(self._share_url)
        domain = url_parts.hostname or ""
        if not domain.endswith(".file.core.windows.net"):
            raise BackendError(f"Invalid hostname [{domain}]", 3010)
        path_parts = [x for x in url_parts.path.strip('/').split('/') if x]
        if len(path_parts) != 1:
            raise BackendError(f"Share URL must name exactly one share", 3011)
        storage_account = domain[:-22]
        connection_string = self._connection_string
        if not connection_string:
            connection_string = self.config.as_str(("azure", "storage", storage_account, "connection_string"), default=None)
        return {
            "storage_account": storage_account,
            "storage_url": f"{url_parts.scheme}://{domain}",
            "share_name": path_parts[0],
            "connection_string": connection_string,
        }

    def share_client(self) -> ShareClient:
        if self._share_client is None:
            try:
                connection_info = self.get_connection_details()
                if connection_info["connection_string"]:
                    self._share_client = ShareClient.from_connection_string(
                        conn_str=connection_info["connection_string"],
                        share_name=connection_info["share_name"]
                    )
                else:
                    self._share_client = ShareClient(
                        account_url=connection_info["storage_url"],
                        share_name=connection_info["share_name"],
                        credential=DefaultAzureCredential(),
                        token_intent='backup'
                    )
            except ValueError as ex:
                raise BackendError(f"Could not create share client", 3012) from ex
        return self._share_client

    def file_client(self, path: str) -> ShareFileClient:
        return self.share_client().get_file_client(self.normalize(path))

    def directory_client(self, path: str) -> ShareDirectoryClient:
        return self.share_client().get_directory_client(self.normalize(path))

    def _walk(self, path: str, recursive: bool, dirs: bool) -> list[str]:
        path = self.normalize(path)
        results = []
        work = [path]
        while work:
            current = work.pop()
            client = self.directory_client(current)
            if not client.exists():
                continue
            for item in client.list_directories_and_files():
                full_path = f"{current}/{item.name}" if current else item.name
                if isinstance(item, DirectoryProperties):
                    if dirs:
                        results.append(full_path)
                    if recursive:
                        work.append(full_path)
                elif isinstance(item, FileProperties):
                    if not dirs:
                        results.append(full_path)
                else:
                    raise BackendError(f"Unknown type of file listing results [{item.__class__.__name__}]", 3005)
        return sorted(results)

    @wrap_azure_errors
    def list_files(self, path: str) -> list[str]:
        return self._walk(path, False, False)

    @wrap_azure_errors
    def list_all_files(self, path: str) -> list[str]:
        return self._walk(path, True, False)

    @wrap_azure_errors
    def list_directories(self, path: str) -> list[str]:
        return self._walk(path, False, True)

    @wrap_azure_errors
    def list_all_directories(self, path: str) -> list[str]:
        return self._walk(path, True, True)

    @wrap_azure_errors
    def read(self, path: str) -> bytes:
        return self.file_client(path).download_file().readall()

    def _ensure_parent(self, path: str):
        path = self.normalize(path)
        if "/" in path:
            self.make_directory(path[:path.rfind("/")])

    @wrap_azure_errors
    def write(self, path: str, content: t.Union[bytes, str], visibility: Visibility = Visibility.PRIVATE):
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._ensure_parent(path)
        self.file_client(path).upload_file(
            content,
            metadata={VISIBILITY_METADATA_KEY: Visibility.coerce(visibility).value}
        )

    def _file_exists(self, path: str) -> bool:
        try:
            self.file_client(path).get_file_properties()
            return True
        except ace.ResourceNotFoundError:
            return False

    @wrap_azure_errors
    def exists(self, path: str) -> bool:
        if self._file_exists(path):
            return True
        return self.directory_client(path).exists()

    @wrap_azure_errors
    def delete(self, path: str):
        try:
            self.file_client(path).delete_file()
        except ace.ResourceNotFoundError:
            pass

    @wrap_azure_errors
    def make_directory(self, path: str):
        pieces = [x for x in self.normalize(path).split("/") if x]
        for i in range(1, len(pieces) + 1):
            client = self.directory_client("/".join(pieces[:i]))
            if not client.exists():
                try:
                    client.create_directory()
                except ace.ResourceExistsError:
                    pass

    @wrap_azure_errors
    def delete_directory(self, path: str):
        path = self.normalize(path)
        if not self.directory_client(path).exists():
            return
        for file in self._walk(path, True, False):
            self.file_client(file).delete_file()
        for directory in sorted(self._walk(path, True, True), key=lambda x: x.count("/"), reverse=True):
            self.directory_client(directory).delete_directory()
        if path:
            self.directory_client(path).delete_directory()

    def _check_transfer(self, source: str, target: str):
        if not self._file_exists(source):
            raise BackendNotFoundError(f"File not found at path: {source}")
        if self._file_exists(target):
            raise BackendAlreadyExistsError(f"File already exists at path: {target}")
        self._ensure_parent(target)

    @wrap_azure_errors
    def move(self, source: str, target: str):
        self._check_transfer(source, target)
        self.file_client(source).rename_file(self.normalize(target))

    @wrap_azure_errors
    def copy(self, source: str, target: str):
        self._check_transfer(source, target)
        target_client = self.file_client(target)
        copy_info = target_client.start_copy_from_url(self.file_client(source).url)
        status = copy_info.get('copy_status')
        while status == 'pending':
            time.sleep(self._copy_poll_interval)
            status = target_client.get_file_properties().copy.status
        if status != 'success':
            raise BackendError(f"Copy from [{source}] to [{target}] ended with status [{status}]", 3015, True)

    @wrap_azure_errors
    def size(self, path: str) -> int:
        return self.file_client(path).get_file_properties().size

    @wrap_azure_errors
    def visibility(self, path: str) -> Visibility:
        metadata = self.file_client(path).get_file_properties().metadata or {}
        return Visibility.coerce(metadata.get(VISIBILITY_METADATA_KEY))

    @wrap_azure_errors
    def last_modified(self, path: str) -> datetime.datetime:
        return self.file_client(path).get_file_properties().last_modified

    @wrap_azure_errors
    def write_stream(self, path: str, stream, visibility: Visibility = Visibility.PRIVATE, halt_flag: t.Optional[HaltFlag] = None):
        if self._file_exists(path):
            raise BackendAlreadyExistsError(f"File already exists at path: {path}")
        self._ensure_parent(path)
        self.file_client(path).upload_file(
            b''.join(read_in_chunks(stream, halt_flag=halt_flag)),
            metadata={VISIBILITY_METADATA_KEY: Visibility.coerce(visibility).value}
        )

    @wrap_azure_errors
    def read_stream(self, path: str) -> t.Optional[t.BinaryIO]:
        return self.file_client(path).download_file()

    @wrap_azure_errors
    def temporary_url(self, path: str, expiry: datetime.datetime, options: t.Optional[dict] = None) -> str:
        connection_info = self.get_connection_details()
        account_key = None
        if connection_info['connection_string']:
            account_key = parse_connection_string(connection_info['connection_string']).get('AccountKey')
        if not account_key:
            raise BackendError(f"An account key is required to sign Azure file URLs", 3013)
        client = self.file_client(path)
        sas_args = {
            'account_name': connection_info['storage_account'],
            'share_name': connection_info['share_name'],
            'file_path': self.normalize(path).split("/"),
            'account_key': account_key,
            'permission': FileSasPermissions(read=True),
            'expiry': expiry,
        }
        sas_args.update(options or {})
        return f"{client.url}?{generate_file_sas(**sas_args)}"

    @classmethod
    def build(cls, connection: str, options: dict) -> StorageBackend:
        if not options.get('share_url'):
            raise BackendError(f"Missing share_url for Azure file connection [{connection}]", 3014)
        kwargs = {}
        if 'copy_poll_interval' in options:
            kwargs['copy_poll_interval'] = float(options['copy_poll_interval'])
        return cls(options['share_url'], options.get('connection_string'), **kwargs)
