import os
import pathlib
import typing as t

import zirconium as zr
import zrlog

from scoped_storage import __VERSION__


CONFIG_SEARCH_PATHS_VAR = "SCOPED_STORAGE_CONFIG_SEARCH_PATHS"


def config_directories() -> t.Iterable[pathlib.Path]:
    """Directories searched for configuration files, in registration order."""
    yield pathlib.Path(".").absolute()
    yield pathlib.Path("~").expanduser().absolute()
    for path in os.environ.get(CONFIG_SEARCH_PATHS_VAR, "./config").split(";"):
        if not path:
            continue
        directory = pathlib.Path(path).absolute()
        if directory.exists():
            yield directory


def config_files(directory: pathlib.Path, app_type: str) -> tuple[list[pathlib.Path], list[pathlib.Path]]:
    """Default files and regular files looked for in one directory."""
    return (
        [directory / ".scoped_storage.defaults.toml", directory / f".scoped_storage.{app_type}.defaults.toml"],
        [directory / ".scoped_storage.toml", directory / f".scoped_storage.{app_type}.toml"],
    )


def init_scoped_storage(app_type: str):
    """Register the configuration files for the application and set up logging."""

    @zr.configure
    def set_config(app_config: zr.ApplicationConfig):
        directories = list(config_directories())
        zrlog.get_logger("scoped_storage.boot").info(f"Config search paths: {';'.join(str(x) for x in directories)}")
        for directory in directories:
            defaults, files = config_files(directory, app_type)
            for file in defaults:
                app_config.register_default_file(file)
            for file in files:
                app_config.register_file(file)

    zrlog.set_default_extra("app_type", app_type)
    zrlog.set_default_extra("version", __VERSION__)
    zrlog.init_logging()
