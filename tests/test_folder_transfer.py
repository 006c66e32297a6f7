import pathlib
import tempfile
import unittest as ut

from scoped_storage import (
    ScopedStorage, StorageRoot, BackendError, StorageFolderNotEmptyError, StorageFileAlreadyExistsError,
    StorageConfigurationError
)
from scoped_storage.backends import MemoryBackend, LocalBackend
from scoped_storage.util import HaltFlag, HaltInterrupt


class _CountdownHaltFlag(HaltFlag):

    def __init__(self, allowed: int):
        self.allowed = allowed

    def _should_continue(self) -> bool:
        self.allowed -= 1
        return self.allowed >= 0


class _FailingMemoryBackend(MemoryBackend):

    def __init__(self, fail_on: str):
        super().__init__()
        self.fail_on = fail_on

    def move(self, source: str, target: str):
        if source.endswith(self.fail_on):
            raise BackendError(f"Simulated failure moving {source}", 9999)
        super().move(source, target)


class _FolderTransferTests:
    """Scenarios shared by every backend."""

    def make_backend(self):
        raise NotImplementedError

    def setUp(self):
        self.backend = self.make_backend()
        self.root = StorageRoot("test", "documents")
        self.source = ScopedStorage(self.root, "invoices/2024", backend=self.backend)
        self.target = ScopedStorage(self.root, "invoices/archive", backend=self.backend)

    def _populate(self):
        self.source.write("jan.pdf", b"january")
        self.source.write("feb.pdf", b"february")
        self.source.make_folder("drafts")

    def test_move_to_folder(self):
        self._populate()
        self.source.move_to_folder(self.target)
        self.assertEqual(self.target.read("jan.pdf"), b"january")
        self.assertEqual(self.target.read("feb.pdf"), b"february")
        self.assertEqual(self.target.list_folders(), ["documents/invoices/archive/drafts"])
        self.assertTrue(self.target.is_folder_empty("drafts"))
        self.assertFalse(self.source.exists("jan.pdf"))
        self.assertFalse(self.source.exists("feb.pdf"))
        self.assertFalse(self.backend.exists("documents/invoices/2024"))
        self.assertEqual(self.backend.list_directories("documents/invoices"), ["documents/invoices/archive"])

    def test_move_nested_folders(self):
        self.source.write("a.txt", b"a")
        self.source.write("one/b.txt", b"b")
        self.source.write("one/two/c.txt", b"c")
        self.source.make_folder("one/empty")
        self.source.move_to_folder(self.target)
        self.assertEqual(self.target.list_all_files(), [
            "documents/invoices/archive/a.txt",
            "documents/invoices/archive/one/b.txt",
            "documents/invoices/archive/one/two/c.txt",
        ])
        self.assertEqual(self.target.list_all_folders(), [
            "documents/invoices/archive/one",
            "documents/invoices/archive/one/empty",
            "documents/invoices/archive/one/two",
        ])
        self.assertEqual(self.target.read("one/two/c.txt"), b"c")
        self.assertEqual(self.source.list_all_files(), [])
        self.assertEqual(self.source.list_all_folders(), [])

    def test_move_empty_folder(self):
        self.source.make_folder("")
        self.source.move_to_folder(self.target)
        self.assertTrue(self.backend.exists("documents/invoices/archive"))
        self.assertFalse(self.backend.exists("documents/invoices/2024"))

    def test_move_to_folder_not_empty(self):
        self._populate()
        self.target.write("existing.pdf", b"x")
        with self.assertRaises(StorageFolderNotEmptyError):
            self.source.move_to_folder(self.target)
        self.assertTrue(self.source.exists("jan.pdf"))
        self.assertFalse(self.target.exists("jan.pdf"))

    def test_move_to_folder_with_only_sub_folder(self):
        self._populate()
        self.target.make_folder("taken")
        with self.assertRaises(StorageFolderNotEmptyError):
            self.source.move_to_folder(self.target)

    def test_rename_folder(self):
        storage = ScopedStorage(self.root, "2024", backend=self.backend)
        storage.write("jan.pdf", b"january")
        storage.write("q1/report.txt", b"report")
        renamed = storage.rename_folder("archive-2024")
        self.assertEqual(renamed.sub_folder, "archive-2024")
        self.assertEqual(storage.sub_folder, "2024")
        self.assertIs(renamed.backend, storage.backend)
        self.assertEqual(renamed.read("jan.pdf"), b"january")
        self.assertEqual(renamed.read("q1/report.txt"), b"report")
        self.assertFalse(storage.exists("jan.pdf"))
        self.assertFalse(storage.exists("q1/report.txt"))

    def test_rename_folder_onto_existing(self):
        storage = ScopedStorage(self.root, "2024", backend=self.backend)
        storage.write("jan.pdf", b"january")
        storage.with_sub_folder("2025").write("feb.pdf", b"february")
        with self.assertRaises(StorageFolderNotEmptyError):
            storage.rename_folder("2025")

    def test_rename_folder_below_slash_base_path(self):
        storage = ScopedStorage(StorageRoot("test", "/documents"), "2024", backend=self.backend)
        storage.write("jan.pdf", b"january")
        storage.write("q1/report.txt", b"report")
        renamed = storage.rename_folder("archive")
        self.assertEqual(renamed.read("jan.pdf"), b"january")
        self.assertEqual(renamed.read("q1/report.txt"), b"report")
        self.assertEqual(self.backend.list_all_files("documents"), [
            "documents/archive/jan.pdf",
            "documents/archive/q1/report.txt",
        ])

    def test_copy_folder_below_slash_base_path(self):
        root = StorageRoot("test", "/documents")
        storage = ScopedStorage(root, "2024", backend=self.backend)
        storage.write("q1/report.txt", b"report")
        storage.copy_to_folder(ScopedStorage(root, "copy", backend=self.backend))
        self.assertEqual(self.backend.read("documents/copy/q1/report.txt"), b"report")
        self.assertFalse(self.backend.exists("documents/copy/documents"))

    def test_move_into_own_sub_folder(self):
        storage = ScopedStorage(self.root, "2024", backend=self.backend)
        storage.write("jan.pdf", b"january")
        storage.make_folder("old")
        with self.assertRaises(StorageConfigurationError):
            storage.rename_folder("2024/old")
        with self.assertRaises(StorageConfigurationError):
            storage.rename_folder("2024")
        self.assertEqual(storage.read("jan.pdf"), b"january")
        self.assertTrue(storage.is_folder_empty("old"))

    def test_move_into_sibling_with_shared_prefix(self):
        storage = ScopedStorage(self.root, "2024", backend=self.backend)
        storage.write("jan.pdf", b"january")
        renamed = storage.rename_folder("2024-old")
        self.assertEqual(renamed.read("jan.pdf"), b"january")

    def test_copy_to_folder(self):
        self._populate()
        self.source.write("q1/summary.txt", b"summary")
        self.source.copy_to_folder(self.target)
        self.assertEqual(self.target.read("jan.pdf"), b"january")
        self.assertEqual(self.target.read("q1/summary.txt"), b"summary")
        self.assertTrue(self.target.is_folder_empty("drafts"))
        self.assertIn("documents/invoices/archive/drafts", self.target.list_folders())
        self.assertEqual(self.source.read("jan.pdf"), b"january")
        self.assertEqual(self.source.read("q1/summary.txt"), b"summary")
        self.assertIn("documents/invoices/2024/drafts", self.source.list_folders())

    def test_copy_to_folder_conflict(self):
        self._populate()
        self.target.write("jan.pdf", b"old")
        with self.assertRaises(StorageFileAlreadyExistsError):
            self.source.copy_to_folder(self.target)
        self.assertEqual(self.target.read("jan.pdf"), b"old")

    def test_copy_empty_folder(self):
        self.source.make_folder("")
        self.source.copy_to_folder(self.target)
        self.assertTrue(self.backend.exists("documents/invoices/archive"))
        self.assertTrue(self.backend.exists("documents/invoices/2024"))

    def test_move_to_other_root(self):
        other_root = StorageRoot("test", "archive")
        destination = ScopedStorage(other_root, "2024", backend=self.backend)
        self._populate()
        self.source.move_to_folder(destination)
        self.assertEqual(destination.read("jan.pdf"), b"january")
        self.assertTrue(self.backend.exists("archive/2024/drafts"))
        self.assertFalse(self.backend.exists("documents/invoices/2024"))

    def test_move_to_other_backend(self):
        destination = ScopedStorage(StorageRoot("other", "elsewhere"), backend=MemoryBackend())
        self._populate()
        self.source.move_to_folder(destination)
        self.assertEqual(destination.read("jan.pdf"), b"january")
        self.assertEqual(destination.list_folders(), ["elsewhere/drafts"])
        self.assertFalse(self.backend.exists("documents/invoices/2024"))

    def test_halt_during_move(self):
        self._populate()
        source = ScopedStorage(self.root, "invoices/2024", backend=self.backend, halt_flag=_CountdownHaltFlag(1))
        with self.assertRaises(HaltInterrupt):
            source.move_to_folder(self.target)
        self.assertEqual(len(self.target.list_files()), 1)
        self.assertEqual(len(self.source.list_files()), 1)


class TestMemoryFolderTransfer(_FolderTransferTests, ut.TestCase):

    def make_backend(self):
        return MemoryBackend()

    def test_partial_failure_is_not_rolled_back(self):
        backend = _FailingMemoryBackend("jan.pdf")
        source = ScopedStorage(self.root, "invoices/2024", backend=backend)
        target = source.with_sub_folder("invoices/archive")
        source.write("feb.pdf", b"february")
        source.write("jan.pdf", b"january")
        source.write("mar.pdf", b"march")
        with self.assertRaises(BackendError):
            source.move_to_folder(target)
        # feb.pdf is listed first and was moved before the failure
        self.assertTrue(target.exists("feb.pdf"))
        self.assertFalse(source.exists("feb.pdf"))
        self.assertTrue(source.exists("jan.pdf"))
        self.assertTrue(source.exists("mar.pdf"))
        self.assertFalse(target.exists("mar.pdf"))

    def test_folder_vanishes_with_last_file(self):
        self.source.write("only.txt", b"x")
        self.assertTrue(self.backend.exists("documents/invoices/2024"))
        self.source.delete("only.txt")
        self.assertFalse(self.backend.exists("documents/invoices/2024"))


class TestLocalFolderTransfer(_FolderTransferTests, ut.TestCase):

    def make_backend(self):
        self._temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp_dir.cleanup)
        return LocalBackend(pathlib.Path(self._temp_dir.name))

    def test_files_on_disk(self):
        self._populate()
        self.source.move_to_folder(self.target)
        root = pathlib.Path(self._temp_dir.name)
        self.assertTrue((root / "documents" / "invoices" / "archive" / "jan.pdf").is_file())
        self.assertTrue((root / "documents" / "invoices" / "archive" / "drafts").is_dir())
        self.assertFalse((root / "documents" / "invoices" / "2024").exists())
