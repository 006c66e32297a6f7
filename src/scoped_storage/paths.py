"""Path composition and sanitization for scoped storage.

Paths handed to a backend are always built as

    base_path [/ sub_folder] [/ name]

with empty segments dropped. User supplied segments are stripped of
traversal sequences (``../``, ``/..`` and a bare ``..``) unless the
root explicitly allows moving up a folder.
"""
import typing as t

from scoped_storage.errors import StorageConfigurationError


TRAVERSAL_SEQUENCES = ("../", "/..")


def sanitize(path: t.Optional[str], allow_folder_up: bool = False) -> t.Optional[str]:
    """Remove directory traversal sequences from a relative path."""
    if path is None or allow_folder_up:
        return path
    previous = None
    while previous != path:
        previous = path
        if path == "..":
            path = ""
        for seq in TRAVERSAL_SEQUENCES:
            path = path.replace(seq, "")
    return path


def validate_base_path(base_path: t.Optional[str], allow_working_in_root: bool = False):
    """Ensure the base path does not point at the root of the backend."""
    if allow_working_in_root:
        return
    if base_path is None or base_path == "" or base_path == "/":
        raise StorageConfigurationError("Working in root is prohibited, set a base path")


def join_path(*segments: t.Optional[str]) -> str:
    """Join the non-empty segments with a forward slash."""
    return "/".join(s for s in segments if s)


def resolve_folder(base_path: t.Optional[str],
                   sub_folder: t.Optional[str] = "",
                   folder: t.Optional[str] = "",
                   allow_working_in_root: bool = False,
                   allow_folder_up: bool = False) -> str:
    """Build the backend path of a folder below the base path and sub folder."""
    validate_base_path(base_path, allow_working_in_root)
    root = "" if base_path == "/" else base_path
    return join_path(root, sub_folder, sanitize(folder, allow_folder_up))


def resolve_file(base_path: t.Optional[str],
                 sub_folder: t.Optional[str] = "",
                 file: t.Optional[str] = "",
                 allow_working_in_root: bool = False,
                 allow_folder_up: bool = False) -> str:
    """Build the backend path of a file below the base path and sub folder."""
    folder_path = resolve_folder(base_path, sub_folder, "", allow_working_in_root, allow_folder_up)
    return join_path(folder_path, sanitize(file, allow_folder_up))


def relative_to(folder_path: str, full_path: str) -> str:
    """Strip a resolved folder path from the front of a backend path."""
    folder_path = folder_path.strip("/")
    full_path = full_path.strip("/")
    if folder_path == "":
        return full_path
    if full_path == folder_path:
        return ""
    if full_path.startswith(f"{folder_path}/"):
        return full_path[len(folder_path) + 1:]
    return full_path


def is_within(folder_path: str, path: str) -> bool:
    """Check whether a backend path is the folder itself or lies below it."""
    folder_path = folder_path.strip("/")
    path = path.strip("/")
    return folder_path == "" or path == folder_path or path.startswith(f"{folder_path}/")


def filename_from_path(path: str) -> str:
    """Get the last segment of a path."""
    if "/" in path:
        return path[path.rfind("/") + 1:]
    return path
