"""Patient data source backed by a directory of JSON chart files."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from clinical_memory.sources.base import ChartLayoutSource, SourceFormatError, SourceNotFoundError

logger = logging.getLogger(__name__)


class JsonDirectorySource(ChartLayoutSource):
    """Reads ``<root>/<patient_id>/...`` chart files from disk."""

    def __init__(self, root: Path):
        self.root = Path(root)

    @classmethod
    def from_settings(cls, root: Optional[Path] = None) -> "JsonDirectorySource":
        from clinical_memory.config import get_settings

        return cls(root or get_settings().data_dir)

    async def fetch_json(self, path: str) -> Any:
        file_path = self.root / path
        if not file_path.is_file():
            raise SourceNotFoundError(f"{file_path} not found")
        try:
            with open(file_path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise SourceFormatError(f"{file_path}: {e}") from e
