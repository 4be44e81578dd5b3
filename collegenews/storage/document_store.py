import os
import json
import logging
import tempfile
from threading import Lock
from typing import Dict, Iterable, List, Optional

from collegenews.errors import DuplicateKeyError, PersistenceError
from collegenews.utils.tz_utils import utc_now

logger = logging.getLogger(__name__)

Document = Dict[str, object]


def _matches(doc: Document, filter: Optional[Document]) -> bool:
    if not filter:
        return True
    return all(doc.get(k) == v for k, v in filter.items())


def _project(doc: Document, projection: Optional[Iterable[str]]) -> Document:
    if projection is None:
        return dict(doc)
    return {k: doc[k] for k in projection if k in doc}


class Collection:
    """
    Coleção de documentos guardada num único arquivo JSON (lista de objetos).

    Toda leitura-modificação-escrita acontece sob o lock da coleção e a
    gravação troca o arquivo inteiro com os.replace, então um leitor nunca
    enxerga um snapshot pela metade.
    """

    def __init__(self, path: str, unique: Iterable[str] = (), recover_corrupt: bool = True):
        self.path = path
        self.unique = tuple(unique)
        # False: arquivo ilegível vira PersistenceError e fica intocado
        self.recover_corrupt = recover_corrupt
        self._lock = Lock()

    # ---------- I/O ----------
    def _load(self) -> List[Document]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError:
            return self._corrupted("está vazio ou corrompido")
        except OSError as e:
            raise PersistenceError(f"could not read {self.path}: {e}") from e
        if not isinstance(raw, list):
            return self._corrupted("não contém uma lista")
        return raw

    def _corrupted(self, reason: str) -> List[Document]:
        if not self.recover_corrupt:
            logger.error("%s %s; recusando sobrescrever.", self.path, reason)
            raise PersistenceError(f"{self.path} is unreadable ({reason}); refusing to overwrite it")
        # guarda o original ao lado antes de recomeçar do zero
        aside = f"{self.path}.corrupt-{utc_now().strftime('%Y%m%dT%H%M%S%f')}"
        try:
            os.replace(self.path, aside)
        except OSError as e:
            raise PersistenceError(f"could not move aside {self.path}: {e}") from e
        logger.warning("%s %s. Movido para %s; recriando do zero.", self.path, reason, aside)
        return []

    def _save(self, docs: List[Document]) -> None:
        directory = os.path.dirname(self.path)
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(docs, f, ensure_ascii=False, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"could not write {self.path}: {e}") from e

    def _check_unique(self, existing: List[Document], new_docs: List[Document]) -> None:
        for field in self.unique:
            seen = {d.get(field) for d in existing}
            for doc in new_docs:
                value = doc.get(field)
                if value in seen:
                    raise DuplicateKeyError(field, value)
                seen.add(value)

    # ---------- Consultas ----------
    def find(self, filter: Optional[Document] = None, projection: Optional[Iterable[str]] = None) -> List[Document]:
        with self._lock:
            docs = self._load()
        return [_project(d, projection) for d in docs if _matches(d, filter)]

    def find_one(self, filter: Optional[Document] = None) -> Optional[Document]:
        with self._lock:
            docs = self._load()
        return next((dict(d) for d in docs if _matches(d, filter)), None)

    # ---------- Escritas ----------
    def insert_one(self, doc: Document) -> None:
        self.insert_many([doc])

    def insert_many(self, docs: Iterable[Document]) -> None:
        new_docs = [dict(d) for d in docs]
        if not new_docs:
            return
        with self._lock:
            current = self._load()
            self._check_unique(current, new_docs)
            self._save(current + new_docs)

    def delete_many(self, filter: Optional[Document] = None) -> int:
        with self._lock:
            current = self._load()
            kept = [d for d in current if not _matches(d, filter)]
            removed = len(current) - len(kept)
            if removed:
                self._save(kept)
        return removed

    def replace_all(self, docs: Iterable[Document]) -> None:
        """Descarta o conteúdo anterior e grava `docs` numa única troca."""
        new_docs = [dict(d) for d in docs]
        with self._lock:
            self._check_unique([], new_docs)
            self._save(new_docs)


class DocumentStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._collections: Dict[str, Collection] = {}
        self._lock = Lock()

    def collection(self, name: str, unique: Iterable[str] = (), recover_corrupt: bool = True) -> Collection:
        with self._lock:
            if name not in self._collections:
                path = os.path.join(self.data_dir, f"{name}.json")
                self._collections[name] = Collection(path, unique=unique, recover_corrupt=recover_corrupt)
            return self._collections[name]
