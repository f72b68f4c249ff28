"""
Folder watcher that routes each incoming image by detection result.

- detections: original -> output_directory, annotated copy -> output_annotated_directory
- no detections: original moved to no_detection_directory, unannotated
- class table / model mismatch: ConfigurationError propagates, file left in place
- failure: moved to failed_directory if configured, else left in place and skipped

Input files are consumed once routed. Nothing is retried.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set, Tuple

import numpy as np

from squirrel_kit.errors import ConfigurationError
from squirrel_kit.types import Detection
from squirrel_kit.visualize import AnnotationStyle, annotate_image, decode_image, summarize

from .config import RouteSettings

logger = logging.getLogger(__name__)

DetectFn = Callable[[np.ndarray], Sequence[Detection]]


class RouteStatus(str, Enum):
    DETECTED = "detected"
    NO_DETECTION = "no_detection"
    FAILED = "failed"


@dataclass(frozen=True)
class RouteOutcome:
    source: Path
    status: RouteStatus
    detection_count: int = 0
    detections: Tuple[Detection, ...] = ()
    destinations: Tuple[Path, ...] = ()
    error: Optional[str] = None


class DirectoryRouter:
    def __init__(
        self,
        settings: RouteSettings,
        detect_fn: DetectFn,
        *,
        style: AnnotationStyle = AnnotationStyle(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self._detect = detect_fn
        self.style = style
        self._sleep = sleep
        self._skipped: Set[Path] = set()

    def pending_files(self) -> List[Path]:
        src = Path(self.settings.input_directory)
        if not src.is_dir():
            return []
        return sorted(
            p for p in src.glob(self.settings.file_pattern) if p.is_file() and p not in self._skipped
        )

    def poll_once(self) -> List[RouteOutcome]:
        return [self.process_file(path) for path in self.pending_files()]

    def run(self, max_polls: Optional[int] = None) -> int:
        """
        Poll until interrupted (or `max_polls` polls). Returns the number of files handled.
        """

        delay_s = self.settings.polling_delay_ms / 1000.0
        logger.info(
            "Watching %s for %s (poll every %.3fs)",
            self.settings.input_directory,
            self.settings.file_pattern,
            delay_s,
        )
        handled = 0
        polls = 0
        try:
            while max_polls is None or polls < max_polls:
                handled += len(self.poll_once())
                polls += 1
                if max_polls is not None and polls >= max_polls:
                    break
                self._sleep(delay_s)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping watcher.")
        return handled

    def process_file(self, path: Path) -> RouteOutcome:
        logger.info("Processing: %s", path.name)
        try:
            original = path.read_bytes()
            detections = list(self._detect(decode_image(original)))

            logger.info("Found %d detection(s)", len(detections))
            for line in summarize(detections):
                logger.info(line)

            if not detections:
                dest = self._move(path, self.settings.no_detection_directory)
                logger.info("No detections in %s, moved to %s", path.name, dest.parent)
                return RouteOutcome(source=path, status=RouteStatus.NO_DETECTION, destinations=(dest,))

            logger.info("Detection in %s!", path.name)
            result = annotate_image(original, detections, self.style)
            annotated_dest = self._write(self.settings.output_annotated_directory, path.name, result.image_bytes)
            try:
                original_dest = self._write(self.settings.output_directory, path.name, original)
            except Exception:
                annotated_dest.unlink(missing_ok=True)
                raise
            path.unlink()
            logger.info(
                "%s %d detection(s), bounding boxes drawn -> %s",
                result.glyphs,
                result.detection_count,
                annotated_dest,
            )
            return RouteOutcome(
                source=path,
                status=RouteStatus.DETECTED,
                detection_count=result.detection_count,
                detections=result.detections,
                destinations=(original_dest, annotated_dest),
            )
        except ConfigurationError:
            logger.error("Model output does not match the configured class names; stopping.")
            raise
        except Exception as exc:
            logger.exception("Failed to process %s", path.name)
            return self._fail(path, exc)

    def _fail(self, path: Path, exc: Exception) -> RouteOutcome:
        failed_dir = self.settings.failed_directory
        if failed_dir is None or not path.exists():
            self._skipped.add(path)
            logger.warning("Leaving %s in place; it will be skipped until restart.", path.name)
            return RouteOutcome(source=path, status=RouteStatus.FAILED, error=str(exc))

        dest = self._move(path, failed_dir)
        logger.warning("Moved %s to %s", path.name, dest.parent)
        return RouteOutcome(source=path, status=RouteStatus.FAILED, destinations=(dest,), error=str(exc))

    @staticmethod
    def _write(directory: Path, name: str, data: bytes) -> Path:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        dest = directory / name
        dest.write_bytes(data)
        return dest

    @staticmethod
    def _move(path: Path, directory: Path) -> Path:
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        dest = directory / path.name
        shutil.move(str(path), str(dest))
        return dest
