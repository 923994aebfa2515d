#!/usr/bin/env python3
"""
Face image pool.

Indexes image files under a root directory by ethnic category (the nearest
ancestor folder named exactly like a category) and hands them out at random,
optionally never handing out the same file twice.
"""

import logging
import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from nation_ethnicity import EthnicCategory

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".bmp"})

_CATEGORY_BY_FOLDER = {category.value: category for category in EthnicCategory}


class CategoryExhaustedError(Exception):
    """No eligible image is left in a category bucket."""

    def __init__(self, category: EthnicCategory):
        self.category = category
        super().__init__(f"no images available for ethnic category {category.value!r}")


@dataclass
class ImageRecord:
    path: Path
    ethnic: EthnicCategory
    # Path relative to the category folder, "/" separated
    name: str
    used: bool = False


def category_for(path: Path, root: Path) -> Optional[EthnicCategory]:
    """Nearest ancestor directory of path (below root) named after a category."""
    relative_parts = path.relative_to(root).parts[:-1]
    for part in reversed(relative_parts):
        category = _CATEGORY_BY_FOLDER.get(part)
        if category is not None:
            return category
    return None


def is_image(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


class ImagePool:
    """Per-category image buckets with a private random source."""

    def __init__(self, root: Path, rng: Optional[random.Random] = None):
        self.root = Path(root)
        self.rng = rng if rng is not None else random.Random()
        self._buckets: Dict[EthnicCategory, List[ImageRecord]] = {
            category: [] for category in EthnicCategory
        }

    @classmethod
    def build(cls, root, rng: Optional[random.Random] = None) -> "ImagePool":
        """
        Walk root recursively and bucket qualifying image files.

        Raises OSError if root itself cannot be read. Unreadable
        subdirectories are logged and skipped.
        """
        pool = cls(root, rng)
        root_path = pool.root
        # Fail early and loudly on the root only
        os.listdir(root_path)

        def _on_error(err: OSError):
            logger.warning(f"Skipping unreadable directory: {err}")

        for dirpath, dirnames, filenames in os.walk(root_path, onerror=_on_error):
            dirnames.sort()
            for filename in sorted(filenames):
                file_path = Path(dirpath) / filename
                if not is_image(file_path):
                    continue
                category = category_for(file_path, root_path)
                if category is None:
                    continue
                pool.add(file_path, category)

        counts = pool.counts()
        logger.info(f"Indexed {len(pool)} images under {root_path}")
        empty = [category.value for category, count in counts.items() if count == 0]
        if empty:
            logger.warning(f"Empty categories: {', '.join(empty)}")
        return pool

    def add(self, path: Path, category: EthnicCategory) -> ImageRecord:
        path = Path(path)
        folder = self._category_folder(path, category)
        name = path.relative_to(folder).as_posix() if folder is not None else path.name
        record = ImageRecord(path=path, ethnic=category, name=name)
        self._buckets[category].append(record)
        return record

    def _category_folder(self, path: Path, category: EthnicCategory) -> Optional[Path]:
        for parent in path.parents:
            if parent.name == category.value:
                return parent
            if parent == self.root:
                break
        return None

    def draw(self, category: EthnicCategory, avoid_duplicates: bool) -> ImageRecord:
        """
        Pick a uniformly random image from the category bucket.

        With avoid_duplicates only unused images are eligible and the drawn
        one is marked used; once all are used CategoryExhaustedError is raised.
        Without it every image stays eligible.
        """
        bucket = self._buckets.get(category, [])
        if avoid_duplicates:
            eligible = [record for record in bucket if not record.used]
        else:
            eligible = bucket
        if not eligible:
            raise CategoryExhaustedError(category)

        record = self.rng.choice(eligible)
        if avoid_duplicates:
            record.used = True
        return record

    def counts(self) -> Dict[EthnicCategory, int]:
        return {category: len(bucket) for category, bucket in self._buckets.items()}

    def remaining(self, category: EthnicCategory) -> int:
        return sum(1 for record in self._buckets.get(category, []) if not record.used)

    def records(self, category: EthnicCategory) -> List[ImageRecord]:
        return list(self._buckets.get(category, []))

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())
