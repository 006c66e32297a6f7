import threading
import typing as t

import zirconium as zr
import zrlog
from autoinject import injector

from scoped_storage.errors import StorageConfigurationError
from scoped_storage.util import dynamic_object, DynamicObjectLoadError
from .base import StorageBackend
from .local import LocalBackend
from .memory import MemoryBackend


@injector.injectable_global
class BackendController:
    """Builds and caches one backend per connection.

        Connections are read from the configuration:

        [storage.connections.documents]
        driver = "local"
        root = "/srv/storage"

        The driver is either one of the built-in names (local, memory, azure_blob,
        azure_files) or the dotted name of a StorageBackend subclass.
    """

    config: zr.ApplicationConfig = None

    @injector.construct
    def __init__(self):
        self.drivers: dict[str, t.Union[str, type]] = {
            'local': LocalBackend,
            'memory': MemoryBackend,
            'azure_blob': 'scoped_storage.backends.azure_blob.AzureBlobBackend',
            'azure_files': 'scoped_storage.backends.azure_files.AzureFileBackend',
        }
        self._backends: dict[str, StorageBackend] = {}
        self._lock = threading.Lock()
        self._log = zrlog.get_logger("scoped_storage.backends")

    def register_backend(self, connection: str, backend: StorageBackend):
        """Bind an already constructed backend to a connection name."""
        with self._lock:
            self._backends[connection] = backend

    def get_backend(self, connection: str) -> StorageBackend:
        """Retrieve the backend bound to the connection, building it if necessary."""
        if connection is None or connection == "":
            raise StorageConfigurationError("No connection specified", 1010)
        with self._lock:
            if connection not in self._backends:
                options = self.config.as_dict(("storage", "connections", connection), default={})
                if not options:
                    raise StorageConfigurationError(f"No configuration for connection [{connection}]", 1011)
                self._backends[connection] = self.build_backend(connection, options)
            return self._backends[connection]

    def build_backend(self, connection: str, options: dict) -> StorageBackend:
        """Construct a new backend from its connection options."""
        driver = options.get('driver')
        if not driver:
            raise StorageConfigurationError(f"Missing driver for connection [{connection}]", 1012)
        cls = self._driver_class(driver)
        self._log.info(f"Building [{driver}] backend for connection [{connection}]")
        return cls.build(connection, options)

    def _driver_class(self, driver: str) -> type:
        cls = self.drivers.get(driver, driver)
        if isinstance(cls, str):
            if "." not in cls:
                raise StorageConfigurationError(f"Unknown storage driver [{driver}]", 1013)
            try:
                cls = dynamic_object(cls)
            except DynamicObjectLoadError as ex:
                raise StorageConfigurationError(f"Could not load storage driver [{driver}]", 1015) from ex
        if not (isinstance(cls, type) and issubclass(cls, StorageBackend)):
            raise StorageConfigurationError(f"Driver [{driver}] is not a storage backend", 1014)
        return cls
