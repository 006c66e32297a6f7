import datetime
import functools
import time
import typing as t
from urllib.parse import urlparse

import azure.core.exceptions as ace
import requests
import urllib3.exceptions
import zirconium as zr
import zrlog
from autoinject import injector
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobClient, BlobServiceClient, BlobSasPermissions, ContainerClient, BlobPrefix, generate_blob_sas

from .base import StorageBackend, Visibility, read_in_chunks
from scoped_storage.errors import BackendError, BackendNotFoundError, BackendAlreadyExistsError
from scoped_storage.util import HaltFlag


VISIBILITY_METADATA_KEY = 'Visibility'


def wrap_azure_errors(cb):

    @functools.wraps(cb)
    def _inner(*args, **kwargs):
        try:
            return cb(*args, **kwargs)
        except ace.ResourceNotFoundError as ex:
            raise BackendNotFoundError(f"Azure: Resource not found error: {ex.__class__.__name__}: {str(ex)}", 2004) from ex
        except ace.ResourceExistsError as ex:
            raise BackendAlreadyExistsError(f"Azure: Resource already exists error: {ex.__class__.__name__}: {str(ex)}", 2005) from ex
        except ace.ClientAuthenticationError as ex:
            raise BackendError(f"Azure: Client authentication error: {ex.__class__.__name__}: {str(ex)}", 2003, True) from ex
        except ace.AzureError as ex:
            if ex.inner_exception is not None:
                if isinstance(ex.inner_exception, urllib3.exceptions.ConnectTimeoutError):
                    raise BackendError(f"Azure: Connection timeout error: {ex.__class__.__name__}: {str(ex)}", 2001, True) from ex
                elif isinstance(ex.inner_exception, requests.ConnectionError):
                    raise BackendError(f"Azure: Connection error: {ex.__class__.__name__}: {str(ex)}", 2002, True) from ex
            raise BackendError(f"Azure: {ex.__class__.__name__}: {str(ex)}", 2000) from ex

    return _inner


def parse_connection_string(connection_string: str) -> dict[str, str]:
    """Split an Azure storage connection string into its key-value pairs."""
    parts = {}
    for piece in connection_string.split(";"):
        if "=" in piece:
            key, value = piece.split("=", 1)
            parts[key.strip()] = value.strip()
    return parts


class AzureBlobBackend(StorageBackend):
    """Backend for a container in Azure Blob Storage.

        Blob storage has no directories. A directory is emulated by a zero
        length marker blob whose name ends with a slash, and every prefix of
        a blob name is reported as a directory as well. Visibility is kept in
        the blob metadata since blobs have no individual access level.
    """

    config: zr.ApplicationConfig = None

    @injector.construct
    def __init__(self, container_url: str, connection_string: t.Optional[str] = None, copy_poll_interval: float = 0.5):
        self._container_url = container_url.rstrip("/")
        self._connection_string = connection_string
        self._copy_poll_interval = copy_poll_interval
        self._connection_details = None
        self._container_client = None
        self._log = zrlog.get_logger("scoped_storage.backends.azure_blob")

    def get_connection_details(self) -> dict:
        if self._connection_details is None:
            self._connection_details = self._get_connection_details()
        return self._connection_details

    def _get_connection_details(self) -> dict:
        url_parts = urlparse(self._container_url)
        domain = url_parts.hostname or ""
        if not domain.endswith(".blob.core.windows.net"):
            raise BackendError(f"Invalid hostname [{domain}]", 2010)
        path_parts = [x for x in url_parts.path.strip('/').split('/') if x]
        if len(path_parts) != 1:
            raise BackendError(f"Container URL must name exactly one container", 2011)
        storage_account = domain[:-22]
        connection_string = self._connection_string
        if not connection_string:
            connection_string = self.config.as_str(("azure", "storage", storage_account, "connection_string"), default=None)
        return {
            "storage_account": storage_account,
            "storage_url": f"{url_parts.scheme}://{domain}",
            "container_name": path_parts[0],
            "connection_string": connection_string,
        }

    def container_client(self) -> ContainerClient:
        if self._container_client is None:
            try:
                connection_info = self.get_connection_details()
                if connection_info["connection_string"]:
                    self._container_client = ContainerClient.from_connection_string(
                        conn_str=connection_info["connection_string"],
                        container_name=connection_info["container_name"]
                    )
                else:
                    self._container_client = ContainerClient.from_container_url(
                        container_url=self._container_url,
                        credential=DefaultAzureCredential()
                    )
            except ValueError as ex:
                raise BackendError(f"Could not create container client", 2012) from ex
        return self._container_client

    def client(self, path: str) -> BlobClient:
        return self.container_client().get_blob_client(self.normalize(path))

    @staticmethod
    def _prefix(path: str) -> str:
        path = StorageBackend.normalize(path)
        return f"{path}/" if path else ""

    @wrap_azure_errors
    def _blob_names(self, path: str) -> list[str]:
        return [blob.name for blob in self.container_client().list_blobs(name_starts_with=self._prefix(path))]

    @wrap_azure_errors
    def list_files(self, path: str) -> list[str]:
        results = []
        for item in self.container_client().walk_blobs(name_starts_with=self._prefix(path), delimiter='/'):
            if not isinstance(item, BlobPrefix) and not item.name.endswith('/'):
                results.append(item.name)
        return sorted(results)

    def list_all_files(self, path: str) -> list[str]:
        return sorted(x for x in self._blob_names(path) if not x.endswith('/'))

    @wrap_azure_errors
    def list_directories(self, path: str) -> list[str]:
        results = []
        for item in self.container_client().walk_blobs(name_starts_with=self._prefix(path), delimiter='/'):
            if isinstance(item, BlobPrefix):
                results.append(item.name.rstrip('/'))
        return sorted(results)

    def list_all_directories(self, path: str) -> list[str]:
        prefix = self._prefix(path)
        directories = set()
        for name in self._blob_names(path):
            relative = name[len(prefix):].rstrip('/')
            if not relative:
                continue
            pieces = relative.split('/')
            if not name.endswith('/'):
                pieces = pieces[:-1]
            for i in range(1, len(pieces) + 1):
                directories.add(prefix + '/'.join(pieces[:i]))
        return sorted(directories)

    @wrap_azure_errors
    def read(self, path: str) -> bytes:
        return self.client(path).download_blob().readall()

    @wrap_azure_errors
    def write(self, path: str, content: t.Union[bytes, str], visibility: Visibility = Visibility.PRIVATE):
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.client(path).upload_blob(
            content,
            overwrite=True,
            metadata={VISIBILITY_METADATA_KEY: Visibility.coerce(visibility).value}
        )

    @wrap_azure_errors
    def exists(self, path: str) -> bool:
        if self.client(path).exists():
            return True
        prefix = self._prefix(path)
        if not prefix:
            return True
        for _ in self.container_client().list_blobs(name_starts_with=prefix, results_per_page=1):
            return True
        return False

    @wrap_azure_errors
    def delete(self, path: str):
        try:
            self.client(path).delete_blob()
        except ace.ResourceNotFoundError:
            pass

    @wrap_azure_errors
    def make_directory(self, path: str):
        prefix = self._prefix(path)
        if prefix:
            self.container_client().get_blob_client(prefix).upload_blob(b'', overwrite=True)

    @wrap_azure_errors
    def delete_directory(self, path: str):
        container = self.container_client()
        for name in self._blob_names(path):
            try:
                container.delete_blob(name)
            except ace.ResourceNotFoundError:
                pass

    def _transfer(self, source: str, target: str):
        source_client = self.client(source)
        if not source_client.exists():
            raise BackendNotFoundError(f"File not found at path: {source}")
        target_client = self.client(target)
        if target_client.exists():
            raise BackendAlreadyExistsError(f"File already exists at path: {target}")
        copy_info = target_client.start_copy_from_url(source_client.url)
        status = copy_info.get('copy_status')
        while status == 'pending':
            time.sleep(self._copy_poll_interval)
            status = target_client.get_blob_properties().copy.status
        if status != 'success':
            raise BackendError(f"Copy from [{source}] to [{target}] ended with status [{status}]", 2013, True)

    @wrap_azure_errors
    def move(self, source: str, target: str):
        self._transfer(source, target)
        self.client(source).delete_blob()

    @wrap_azure_errors
    def copy(self, source: str, target: str):
        self._transfer(source, target)

    @wrap_azure_errors
    def size(self, path: str) -> int:
        return self.client(path).get_blob_properties().size

    @wrap_azure_errors
    def visibility(self, path: str) -> Visibility:
        metadata = self.client(path).get_blob_properties().metadata or {}
        return Visibility.coerce(metadata.get(VISIBILITY_METADATA_KEY))

    @wrap_azure_errors
    def last_modified(self, path: str) -> datetime.datetime:
        return self.client(path).get_blob_properties().last_modified

    @wrap_azure_errors
    def write_stream(self, path: str, stream, visibility: Visibility = Visibility.PRIVATE, halt_flag: t.Optional[HaltFlag] = None):
        self.client(path).upload_blob(
            read_in_chunks(stream, halt_flag=halt_flag),
            overwrite=False,
            metadata={VISIBILITY_METADATA_KEY: Visibility.coerce(visibility).value}
        )

    @wrap_azure_errors
    def read_stream(self, path: str) -> t.Optional[t.BinaryIO]:
        return self.client(path).download_blob()

    @wrap_azure_errors
    def temporary_url(self, path: str, expiry: datetime.datetime, options: t.Optional[dict] = None) -> str:
        connection_info = self.get_connection_details()
        client = self.client(path)
        sas_args = {
            'account_name': client.account_name,
            'container_name': connection_info['container_name'],
            'blob_name': client.blob_name,
            'permission': BlobSasPermissions(read=True),
            'expiry': expiry,
        }
        sas_args.update(options or {})
        account_key = None
        if connection_info['connection_string']:
            account_key = parse_connection_string(connection_info['connection_string']).get('AccountKey')
        if account_key:
            sas_args['account_key'] = account_key
        else:
            self._log.debug(f"Requesting user delegation key for [{connection_info['storage_account']}]")
            service = BlobServiceClient(connection_info['storage_url'], credential=DefaultAzureCredential())
            sas_args['user_delegation_key'] = service.get_user_delegation_key(
                datetime.datetime.now(datetime.timezone.utc),
                expiry
            )
        return f"{client.url}?{generate_blob_sas(**sas_args)}"

    @classmethod
    def build(cls, connection: str, options: dict) -> StorageBackend:
        if not options.get('container_url'):
            raise BackendError(f"Missing container_url for Azure blob connection [{connection}]", 2014)
        kwargs = {}
        if 'copy_poll_interval' in options:
            kwargs['copy_poll_interval'] = float(options['copy_poll_interval'])
        return cls(options['container_url'], options.get('connection_string'), **kwargs)
