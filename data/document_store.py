import fcntl
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

from config.constants import DocumentFiles
from core.exceptions import PartialWrite, PersistenceError
from core.logging_config import LoggerMixin
from core.protocol import LocalDocuments
from core.types import JSONDocument

class DocumentPair(LoggerMixin):
    """
    Reads and rewrites a configuration document together with its roster
    document.

    Mutations are serialized per document pair: an in-process lock keeps
    threads apart and an advisory ``flock`` on ``<config>.lock`` keeps other
    processes out. Readers take the file lock shared, so they run alongside
    each other but never alongside a mutation.
    """

    # One mutex per configuration document, shared by every instance
    _locks: Dict[str, threading.Lock] = {}
    _registry_lock = threading.Lock()

    def __init__(self, documents: LocalDocuments) -> None:
        self.config_path = documents.config_path
        self.users_path = documents.users_path
        self.lock_path = documents.config_path + ".lock"

        key = os.path.abspath(self.config_path)
        with DocumentPair._registry_lock:
            if key not in DocumentPair._locks:
                DocumentPair._locks[key] = threading.Lock()
            self._mutex = DocumentPair._locks[key]

    # Locking ----------------------------------------------------------

    @contextmanager
    def _file_lock(self, mode: int) -> Iterator[None]:
        try:
            handle = open(self.lock_path, "a")
        except OSError as e:
            raise PersistenceError(self.lock_path, f"cannot open lock file: {e}")
        try:
            fcntl.flock(handle.fileno(), mode)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the pair for a read-modify-write cycle."""
        with self._mutex:
            with self._file_lock(fcntl.LOCK_EX):
                yield

    @contextmanager
    def shared(self) -> Iterator[None]:
        """Hold the pair for reading."""
        with self._file_lock(fcntl.LOCK_SH):
            yield

    # Reading ----------------------------------------------------------

    @staticmethod
    def _read(path: str) -> JSONDocument:
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            raise PersistenceError(path, "file does not exist")
        except OSError as e:
            raise PersistenceError(path, f"cannot read file: {e}")
        except ValueError as e:
            raise PersistenceError(path, f"malformed JSON: {e}")
        if not isinstance(document, dict):
            raise PersistenceError(path, "top-level value must be a JSON object")
        return document

    def load(self) -> Tuple[JSONDocument, JSONDocument]:
        """Return (configuration document, roster document)."""
        return self._read(self.config_path), self._read(self.users_path)

    @staticmethod
    def list_field(document: JSONDocument, key: str, path: str) -> List:
        """Return ``document[key]`` as a list, creating it when absent."""
        value = document.get(key)
        if value is None:
            value = []
            document[key] = value
        if not isinstance(value, list):
            raise PersistenceError(path, f"'{key}' must be a JSON array")
        return value

    # Writing ----------------------------------------------------------

    @staticmethod
    def _encode(document: JSONDocument, path: str, indent: int) -> bytes:
        try:
            return json.dumps(document, indent=indent, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise PersistenceError(path, f"cannot encode document: {e}")

    @staticmethod
    def _stage(path: str, payload: bytes) -> str:
        """Write ``payload`` to a temporary file next to ``path`` and return its name."""
        directory = os.path.dirname(os.path.abspath(path))
        try:
            mode = os.stat(path).st_mode & 0o777
        except OSError:
            mode = 0o644
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(path)}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, mode)
        except OSError:
            os.unlink(tmp_path)
            raise
        return tmp_path

    def save(self, config_document: JSONDocument, users_document: JSONDocument) -> None:
        """
        Replace both documents.

        Both are encoded and staged to temporary files first; only when both
        stages succeed are they renamed into place, configuration first. A
        failure before the first rename raises PersistenceError with nothing
        changed on disk. A failure between the two renames raises PartialWrite:
        the configuration document is new, the roster is old, and
        ``check_consistency`` on the record store reports the mismatch.
        """
        config_payload = self._encode(config_document, self.config_path, DocumentFiles.CONFIG_INDENT)
        users_payload = self._encode(users_document, self.users_path, DocumentFiles.USERS_INDENT)

        staged: List[Tuple[str, str]] = []
        try:
            for path, payload in ((self.config_path, config_payload), (self.users_path, users_payload)):
                try:
                    staged.append((self._stage(path, payload), path))
                except OSError as e:
                    raise PersistenceError(path, f"cannot write temporary file: {e}")

            committed: List[str] = []
            for tmp_path, path in list(staged):
                try:
                    os.replace(tmp_path, path)
                except OSError as e:
                    if committed:
                        self.logger.error("Document pair left inconsistent", committed=committed[0], failed=path)
                        raise PartialWrite(path, committed[0], f"cannot replace document: {e}")
                    raise PersistenceError(path, f"cannot replace document: {e}")
                staged.remove((tmp_path, path))
                committed.append(path)
        finally:
            for tmp_path, _ in staged:
                try:
                    os.unlink(tmp_path)
                except OSError as e:
                    self.logger.warning("Failed to remove temporary document", path=tmp_path, error=str(e))
