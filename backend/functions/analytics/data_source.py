"""
Dataset lookup and paginated reading for ``AnalyticalEngine.analyze_source``.

Resolves a data-source id to a file under ``data_dir`` and reads it page by
page, so large files never have to be loaded in one piece.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pandas as pd
import pyarrow.parquet as pq  # type: ignore
import yaml

import config

logger = logging.getLogger(__name__)

CATALOG_FILE = "catalog.yaml"
CLEANED_FILE = "cleaned.parquet"
SUPPORTED_EXTENSIONS = (".parquet", ".csv", ".xlsx", ".xls")


class DataSourceError(RuntimeError):
    """User-facing data-source failure (unknown id, unreadable file)."""
    pass


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    # NaN/NaT become None so blank detection sees one value
    return df.astype(object).where(df.notna(), None).to_dict(orient="records")


class DataSourceResolver:
    """Maps ids to files in ``data_dir`` and reads them in pages of ``page_size``.

    Args:
        data_dir: Directory holding the datasets (and an optional ``catalog.yaml``)
        page_size: Rows per page when reading
        max_rows: Reading stops once this many rows were collected

    Example:
        >>> rows, file_id = DataSourceResolver("./data").fetch("sales")
    """

    def __init__(self, data_dir: str, page_size: int = 1000, max_rows: int = 50000):
        self.data_dir = data_dir
        self.page_size = max(1, int(page_size))
        self.max_rows = max(0, int(max_rows))

    # ----------------------------
    # Lookup
    # ----------------------------
    def _catalog(self) -> Dict[str, Any]:
        path = os.path.join(self.data_dir, CATALOG_FILE)
        if not os.path.exists(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise DataSourceError(f"Could not read {CATALOG_FILE}: {e}") from e
        return data if isinstance(data, dict) else {}

    def _candidates(self, source_id: str, name: str) -> List[str]:
        names = [name, f"{name}.csv"]
        underscored = name.replace(" ", "_")
        dashed = name.replace(" ", "-")
        names += [underscored, f"{underscored}.csv", dashed, f"{dashed}.csv"]
        names += [f"{n}.parquet" for n in (name, underscored, dashed)]
        out = [os.path.join(self.data_dir, source_id, CLEANED_FILE)]
        out += [os.path.join(self.data_dir, n) for n in names]
        return out

    def resolve(self, source_id: str) -> str:
        """Return the path of the file backing ``source_id``.

        Order: catalog ``file`` entry, ``<id>/cleaned.parquet``, name variants
        (as-is, ``.csv``, spaces to ``_`` or ``-``, ``.parquet``), then a
        case-insensitive match over the directory listing.
        """
        if not source_id or not str(source_id).strip():
            raise DataSourceError("Missing data source id")
        source_id = str(source_id).strip()
        if not os.path.isdir(self.data_dir):
            raise DataSourceError(f"Data directory not found: {self.data_dir}")

        entry = self._catalog().get(source_id)
        name = source_id
        if isinstance(entry, dict):
            if entry.get("file"):
                path = os.path.join(self.data_dir, str(entry["file"]))
                if os.path.isfile(path):
                    return path
                raise DataSourceError(f"Catalog file for '{source_id}' not found: {entry['file']}")
            name = str(entry.get("name") or source_id)

        for path in self._candidates(source_id, name):
            if os.path.isfile(path):
                return path

        wanted = {name.lower(), name.lower().replace(" ", "_"), name.lower().replace(" ", "-")}
        for fname in sorted(os.listdir(self.data_dir)):
            stem, ext = os.path.splitext(fname)
            if ext.lower() in SUPPORTED_EXTENSIONS and (stem.lower() in wanted or fname.lower() in wanted):
                return os.path.join(self.data_dir, fname)

        raise DataSourceError(f"Data source not found: {source_id}")

    # ----------------------------
    # Reading
    # ----------------------------
    def iter_pages(self, path: str) -> Iterator[List[Dict[str, Any]]]:
        """Yield lists of row dicts, ``page_size`` rows at a time."""
        ext = os.path.splitext(path)[1].lower()
        try:
            if ext == ".parquet":
                for batch in pq.ParquetFile(path).iter_batches(batch_size=self.page_size):
                    yield batch.to_pylist()
            elif ext in (".xlsx", ".xls"):
                df = pd.read_excel(path, sheet_name=0)
                for start in range(0, len(df), self.page_size):
                    yield _records(df.iloc[start:start + self.page_size])
            else:
                with pd.read_csv(path, chunksize=self.page_size) as reader:
                    for chunk in reader:
                        yield _records(chunk)
        except (OSError, ValueError) as e:
            raise DataSourceError(f"Could not read {os.path.basename(path)}: {e}") from e

    def fetch(self, source_id: str) -> Tuple[List[Dict[str, Any]], str]:
        """Resolve and read a dataset, capped at ``max_rows``.

        Returns:
            (rows, file_id) where file_id is the resolved file name
        """
        path = self.resolve(source_id)
        rows: List[Dict[str, Any]] = []
        for page in self.iter_pages(path):
            remaining = self.max_rows - len(rows)
            if remaining <= 0:
                break
            rows.extend(page[:remaining])
        logger.debug("read %d rows from %s", len(rows), path)
        return rows, os.path.basename(path)


def resolver_from_config(data_dir: Optional[str] = None) -> DataSourceResolver:
    return DataSourceResolver(data_dir or config.DATA_DIR, config.PAGE_SIZE, config.MAX_ROWS)
