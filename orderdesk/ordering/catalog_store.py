from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .catalog import AddressEntry, CatalogItem
from .errors import CatalogLoadError

logger = logging.getLogger(__name__)

# Resolve the data directory robustly:
# 1) an explicit directory passed in (CATALOG_DIR via settings)
# 2) otherwise "<repo_root>/data"
_THIS_FILE = Path(__file__).resolve()
PACKAGE_DIR = _THIS_FILE.parents[1]
PROJECT_ROOT = PACKAGE_DIR.parent
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"

CATALOG_FILE = "catalog.json"
ADDRESSES_FILE = "addresses.json"

T = TypeVar("T", bound=BaseModel)


def _read_rows(path: Path) -> List[Any]:
    if not path.exists():
        raise CatalogLoadError(f"Missing data file: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CatalogLoadError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(data, list):
        raise CatalogLoadError(f"Expected a JSON list in {path}")
    return data


def _parse_rows(rows: List[Any], model: Type[T], path: Path) -> List[T]:
    out: List[T] = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            logger.warning("%s row %d is not an object, skipped", path.name, i)
            continue
        try:
            out.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning("%s row %d skipped: %s", path.name, i, e.errors()[0].get("msg"))
    return out


class _JsonFileSource:
    """Reads a JSON list once and serves it from memory until reload()."""

    model: Type[BaseModel]
    filename: str

    def __init__(self, data_dir: Optional[Path] = None) -> None:
        self.path = (data_dir or DEFAULT_DATA_DIR).resolve() / self.filename
        self._cache: Optional[List[Any]] = None
        self._lock = threading.Lock()

    def list(self):
        with self._lock:
            if self._cache is None:
                self._cache = self._load()
            return list(self._cache)

    def reload(self) -> int:
        with self._lock:
            self._cache = self._load()
            return len(self._cache)

    def _keep(self, row: Any) -> bool:
        return True

    def _load(self) -> List[Any]:
        rows = _parse_rows(_read_rows(self.path), self.model, self.path)
        kept = [r for r in rows if self._keep(r)]
        logger.info("Loaded %d rows from %s", len(kept), self.path)
        return kept


class JsonCatalogSource(_JsonFileSource):
    model = CatalogItem
    filename = CATALOG_FILE

    def _keep(self, row: CatalogItem) -> bool:
        # items without a primary description cannot be shown to the user
        return bool(row.memo.strip())


class JsonAddressSource(_JsonFileSource):
    model = AddressEntry
    filename = ADDRESSES_FILE

    def _keep(self, row: AddressEntry) -> bool:
        return bool(row.customer_name.strip() and row.address.strip())
