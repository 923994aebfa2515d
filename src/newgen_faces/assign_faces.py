#!/usr/bin/env python3
"""
Assign face images to newgen players.

Reads the players from a Football Manager RTF export, picks a random face
from the matching ethnic folder of the image directory for each of them and
writes the result into the game's graphics config.xml.

One run goes Init -> ResolvePlayers -> AllocateImages -> Persist -> Done.
Configuration problems (unknown nations, invalid overrides) abort before any
image is drawn; a category running out of images only skips the affected
players; failing to persist always aborts.
"""

import argparse
import logging
import os
import random
import sys
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from tqdm import tqdm

from image_pool import CategoryExhaustedError, ImagePool, ImageRecord
from mapping_store import MappingIOError, MappingStore
from nation_ethnicity import (
    EthnicCategory,
    InvalidEthnicCategoryError,
    NationEthnicTable,
    UnknownNationError,
)
from rtf_players import Player, get_players
from settings import (
    RunSettings,
    SettingsError,
    expand_path,
    load_settings,
    parse_override,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2


class RunPhase(Enum):
    INIT = "init"
    RESOLVE_PLAYERS = "resolve_players"
    ALLOCATE_IMAGES = "allocate_images"
    PERSIST = "persist"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class AssignmentPolicy:
    """preserve: keep existing mappings. allow_duplicates: faces may repeat."""

    preserve: bool = False
    allow_duplicates: bool = False


@dataclass
class RunResult:
    total_players: int = 0
    assigned: List[Tuple[str, str]] = field(default_factory=list)
    preserved: List[str] = field(default_factory=list)
    exhausted: List[Tuple[str, CategoryExhaustedError]] = field(default_factory=list)
    phase: RunPhase = RunPhase.INIT
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.phase is RunPhase.DONE and not self.exhausted

    @property
    def partial(self) -> bool:
        """Run completed but some players got no image."""
        return self.phase is RunPhase.DONE and bool(self.exhausted)

    def exhausted_categories(self) -> Dict[EthnicCategory, int]:
        counts: Dict[EthnicCategory, int] = {}
        for _, error in self.exhausted:
            counts[error.category] = counts.get(error.category, 0) + 1
        return counts


def format_duration(seconds: float) -> str:
    """Format duration in a human-readable way."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def relative_image_path(image: Path, mapping_path) -> str:
    """Path of image relative to the mapping file's directory, "/" separated."""
    # Symlinks are not followed
    mapping_dir = os.path.dirname(os.path.abspath(mapping_path))
    rel = os.path.relpath(os.path.abspath(image), mapping_dir)
    return Path(rel).as_posix()


class FaceAssigner:
    """
    Runs one assignment. Owns its MappingStore and ImagePool; instances are
    not meant to be run concurrently or reused.
    """

    def __init__(
        self,
        xml_path,
        rtf_path,
        img_path,
        policy: AssignmentPolicy = AssignmentPolicy(),
        table: Optional[NationEthnicTable] = None,
        fm_version: Optional[str] = None,
        rng: Optional[random.Random] = None,
        progress: Optional[ProgressCallback] = None,
        history_path=None,
    ):
        self.xml_path = Path(xml_path)
        self.rtf_path = Path(rtf_path)
        self.img_path = Path(img_path)
        self.policy = policy
        self.table = table if table is not None else NationEthnicTable()
        self.fm_version = fm_version
        self.rng = rng
        self.history_path = history_path
        self._progress_cb = progress
        self._progress = 0.0

        self.phase = RunPhase.INIT
        self.mapping: Optional[MappingStore] = None
        self.pool: Optional[ImagePool] = None
        self.players: List[Player] = []

    @classmethod
    def from_settings(
        cls,
        settings: RunSettings,
        rng: Optional[random.Random] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> "FaceAssigner":
        """Build an assigner; invalid overrides raise InvalidEthnicCategoryError here."""
        table = NationEthnicTable(overrides=settings.mapping_override)
        return cls(
            xml_path=expand_path(settings.xml_path),
            rtf_path=expand_path(settings.rtf_path),
            img_path=expand_path(settings.img_path),
            policy=AssignmentPolicy(
                preserve=settings.preserve,
                allow_duplicates=settings.allow_duplicates,
            ),
            table=table,
            fm_version=settings.resolved_fm_version(),
            rng=rng,
            progress=progress,
        )

    def _report(self, fraction: float, message: str):
        # Progress never goes backwards
        self._progress = max(self._progress, min(fraction, 1.0))
        if self._progress_cb is not None:
            self._progress_cb(self._progress, message)

    def run(self) -> RunResult:
        """
        Execute the run. Returns a RunResult when the run reaches Done (check
        .partial for skipped players); raises the originating error otherwise.
        """
        result = RunResult()
        start = time.time()
        logger.info("Starting face mapping process")
        logger.info(f"XML Path: {self.xml_path}")
        logger.info(f"RTF Path: {self.rtf_path}")
        logger.info(f"Image Directory: {self.img_path}")
        logger.info(f"FM Version: {self.fm_version or 'default'}")

        try:
            self._init()
            self._resolve_players()
            result.total_players = len(self.players)
            self._allocate(result)
            self._persist()
        except Exception:
            self.phase = RunPhase.FAILED
            result.phase = RunPhase.FAILED
            logger.error(f"Face mapping aborted ({len(result.assigned)} assigned in memory, nothing rolled back)")
            raise

        self.phase = RunPhase.DONE
        result.phase = RunPhase.DONE
        result.elapsed = time.time() - start
        self._report(1.0, "Processing completed")
        self._log_summary(result)
        return result

    def _init(self):
        self.phase = RunPhase.INIT
        self._report(0.1, "Reading configuration...")
        self._report(0.2, "Creating mapping...")
        self.mapping = MappingStore.open(
            self.xml_path, self.fm_version, history_path=self.history_path
        )
        self._report(0.3, "Loading image pool...")
        self.pool = ImagePool.build(self.img_path, rng=self.rng)

    def _resolve_players(self):
        self.phase = RunPhase.RESOLVE_PLAYERS
        self._report(0.4, "Processing players...")
        self.players = get_players(self.rtf_path, self.table)

    def _allocate(self, result: RunResult):
        self.phase = RunPhase.ALLOCATE_IMAGES
        self._report(0.5, "Assigning faces...")
        total = len(self.players)
        avoid_duplicates = not self.policy.allow_duplicates

        for i, player in enumerate(self.players):
            if self.policy.preserve and self.mapping.exist(player.player_id):
                result.preserved.append(player.player_id)
            else:
                try:
                    record = self.pool.draw(player.ethnic, avoid_duplicates)
                except CategoryExhaustedError as e:
                    logger.warning(f"Error getting image for player {player.player_id}: {e}")
                    result.exhausted.append((player.player_id, e))
                else:
                    self._assign(player, record, result)
            self._report(
                0.5 + (i + 1) / total * 0.4,
                f"Processing player {i + 1} of {total}...",
            )

    def _assign(self, player: Player, record: ImageRecord, result: RunResult):
        image = relative_image_path(record.path, self.xml_path)
        self.mapping.map_to_image(player.player_id, image)
        result.assigned.append((player.player_id, image))

    def _persist(self):
        self.phase = RunPhase.PERSIST
        self._report(0.9, "Saving files...")
        self.mapping.save()
        self.mapping.write(self.xml_path)

    def _log_summary(self, result: RunResult):
        logger.info("Final Summary:")
        logger.info(f"  Players: {result.total_players}")
        logger.info(f"  Assigned: {len(result.assigned)}")
        logger.info(f"  Preserved: {len(result.preserved)}")
        logger.info(f"  Skipped: {len(result.exhausted)}")
        for category, count in result.exhausted_categories().items():
            logger.warning(f"  Out of images for {category.value}: {count} player(s)")
        logger.info(f"  Time: {format_duration(result.elapsed)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Assign face images to Football Manager newgen players"
    )
    parser.add_argument(
        "--settings",
        "-s",
        type=str,
        default="",
        help="JSON settings file (keys: xml_path, rtf_path, img_path, fm_version, "
        "preserve, allow_duplicate, mapping_override)",
    )
    parser.add_argument("--xml", type=str, default=None, help="Path to config.xml")
    parser.add_argument("--rtf", type=str, default=None, help="Path to the RTF export")
    parser.add_argument(
        "--images", type=str, default=None, help="Image directory with one folder per ethnicity"
    )
    parser.add_argument(
        "--fm-version",
        type=str,
        default=None,
        help="Football Manager version, e.g. 2024 (default: guessed from the image path)",
    )
    parser.add_argument(
        "--preserve",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep faces already assigned to players",
    )
    parser.add_argument(
        "--allow-duplicates",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Allow the same face to be assigned to several players",
    )
    parser.add_argument(
        "--override",
        action="append",
        default=[],
        metavar="CODE=Category",
        help="Nation override, e.g. --override KVX=YugoGreek (repeatable)",
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Seed the image picker (for repeatable runs)"
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Only log warnings and errors, no progress bar",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> RunSettings:
    settings = load_settings(args.settings) if args.settings else RunSettings()
    overrides = dict(settings.mapping_override)
    for text in args.override:
        code, category = parse_override(text)
        overrides[code] = category

    updates = {
        "xml_path": args.xml,
        "rtf_path": args.rtf,
        "img_path": args.images,
        "fm_version": args.fm_version,
        "preserve": args.preserve,
        "allow_duplicates": args.allow_duplicates,
    }
    values = {k: v for k, v in updates.items() if v is not None}
    values["mapping_override"] = overrides
    return replace(settings, **values)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    pbar = None
    if not args.quiet:
        pbar = tqdm(total=100, desc="Assigning", unit="%", bar_format="{l_bar}{bar}| {n:.0f}%")

    def on_progress(fraction: float, message: str):
        if pbar is not None:
            pbar.update(fraction * 100 - pbar.n)
            pbar.set_postfix_str(message)

    rng = random.Random(args.seed) if args.seed is not None else None

    try:
        settings = settings_from_args(args)
        assigner = FaceAssigner.from_settings(settings, rng=rng, progress=on_progress)
        result = assigner.run()
    except UnknownNationError as e:
        logger.error(f"Ethnicity detection error: {e}")
        logger.error("Add a mapping override for these nations (e.g. --override CODE=Category)")
        return EXIT_FAILED
    except InvalidEthnicCategoryError as e:
        logger.error(f"Error applying mapping overrides: {e}")
        return EXIT_FAILED
    except (SettingsError, MappingIOError, OSError) as e:
        logger.error(f"Error: {e}")
        return EXIT_FAILED
    finally:
        if pbar is not None:
            pbar.close()

    if result.partial:
        logger.warning(
            f"Completed with {len(result.exhausted)} player(s) left without a face"
        )
        return EXIT_PARTIAL
    logger.info("Face mapping completed successfully!")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
