"""Bundled reference datasets used when the content service is unreachable."""

import copy
import json
from importlib import resources
from typing import Any, Dict, Optional

from loguru import logger

from .models import CategoryId, CategoryPayload


DATA_PACKAGE = "knowledge_radar"


class FallbackStore:
    """Immutable, build-time reference data for every category except maps.

    Map assets are deliberately not bundled; there is no fallback for
    ``CategoryId.MAPS``.
    """

    def __init__(self, datasets: Optional[Dict[CategoryId, Any]] = None):
        self._datasets = datasets
        if datasets is not None and CategoryId.MAPS in datasets:
            raise ValueError("maps has no fallback dataset")

    def _load(self) -> Dict[CategoryId, Any]:
        if self._datasets is None:
            data_dir = resources.files(DATA_PACKAGE).joinpath("data")
            datasets = {}
            for category in CategoryId:
                if category == CategoryId.MAPS:
                    continue
                raw = data_dir.joinpath(f"{category.value}.json").read_text(encoding="utf-8")
                datasets[category] = json.loads(raw)
            self._datasets = datasets
            logger.debug(f"Loaded {len(datasets)} bundled reference datasets")
        return self._datasets

    def has_fallback(self, category: CategoryId) -> bool:
        return CategoryId(category) in self._load()

    def get(self, category: CategoryId) -> CategoryPayload:
        """Return a copy of the bundled payload for ``category``."""
        return copy.deepcopy(self._load()[CategoryId(category)])
