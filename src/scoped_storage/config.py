from __future__ import annotations
import typing as t

import zirconium as zr
from autoinject import injector

from scoped_storage.errors import StorageConfigurationError
from scoped_storage.util import parse_bool


class StorageRoot:
    """The fixed part of a scoped storage location.

        A root binds a base path to a backend connection, together with the
        two flags that control path resolution. Roots are immutable; the only
        thing that varies between handles on the same root is the sub folder.
    """

    __slots__ = ('_connection', '_base_path', '_allow_working_in_root', '_allow_folder_up')

    def __init__(self,
                 connection: str,
                 base_path: t.Optional[str],
                 allow_working_in_root: bool = False,
                 allow_folder_up: bool = False):
        self._connection = connection
        self._base_path = base_path
        self._allow_working_in_root = bool(allow_working_in_root)
        self._allow_folder_up = bool(allow_folder_up)

    @property
    def connection(self) -> str:
        return self._connection

    @property
    def base_path(self) -> t.Optional[str]:
        return self._base_path

    @property
    def allow_working_in_root(self) -> bool:
        return self._allow_working_in_root

    @property
    def allow_folder_up(self) -> bool:
        return self._allow_folder_up

    def __eq__(self, other):
        if not isinstance(other, StorageRoot):
            return NotImplemented
        return (
            self._connection == other._connection
            and self._base_path == other._base_path
            and self._allow_working_in_root == other._allow_working_in_root
            and self._allow_folder_up == other._allow_folder_up
        )

    def __hash__(self):
        return hash((self._connection, self._base_path, self._allow_working_in_root, self._allow_folder_up))

    def __repr__(self):
        return f"StorageRoot({self._connection!r}, {self._base_path!r}, allow_working_in_root={self._allow_working_in_root}, allow_folder_up={self._allow_folder_up})"

    @staticmethod
    def from_map(map_: dict) -> StorageRoot:
        """Build the root from a map."""
        if not map_.get('connection'):
            raise StorageConfigurationError("Missing connection for storage root", 1020)
        return StorageRoot(
            map_['connection'],
            map_['base_path'] if 'base_path' in map_ else None,
            parse_bool(map_.get('allow_working_in_root'), False),
            parse_bool(map_.get('allow_folder_up'), False),
        )

    @staticmethod
    @injector.inject
    def from_config(name: str, config: zr.ApplicationConfig = None) -> StorageRoot:
        """Build the root defined in [storage.roots.NAME] of the configuration."""
        map_ = config.as_dict(("storage", "roots", name), default={})
        if not map_:
            raise StorageConfigurationError(f"No configuration for storage root [{name}]", 1021)
        return StorageRoot.from_map(map_)
