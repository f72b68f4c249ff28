import tempfile
import unittest
from pathlib import Path
from typing import List

import cv2
import numpy as np

from squirrel_detector.config import RouteSettings
from squirrel_detector.router import DirectoryRouter, RouteStatus
from squirrel_kit.errors import ConfigurationError
from squirrel_kit.geometry import NormalizedBox
from squirrel_kit.postprocess import PostprocessConfig, Postprocessor
from squirrel_kit.runtime import DetectionPipeline
from squirrel_kit.types import Detection


def _png(value: int) -> bytes:
    ok, buf = cv2.imencode(".png", np.full((60, 80, 3), value, dtype=np.uint8))
    assert ok
    return buf.tobytes()


def _bright_images_have_a_squirrel(image: np.ndarray) -> List[Detection]:
    if image.mean() > 100:
        return [Detection(class_id=0, class_name="squirrel", score=0.9, box=NormalizedBox(0.1, 0.2, 0.5, 0.5))]
    return []


class TestDirectoryRouter(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.root = Path(tmpdir.name)
        self.inbox = self.root / "in"
        self.inbox.mkdir()

    def _settings(self, **overrides) -> RouteSettings:
        values = dict(
            input_directory=self.inbox,
            output_directory=self.root / "out",
            output_annotated_directory=self.root / "out_annotated",
            no_detection_directory=self.root / "no_squirrels",
            file_pattern="*.png",
            polling_delay_ms=1000,
        )
        values.update(overrides)
        return RouteSettings(**values)

    def test_detection_writes_original_and_annotated(self) -> None:
        original = _png(200)
        (self.inbox / "yard.png").write_bytes(original)
        router = DirectoryRouter(self._settings(), _bright_images_have_a_squirrel)

        with self.assertLogs("squirrel_detector.router", level="INFO") as logs:
            outcomes = router.poll_once()

        self.assertEqual(len(outcomes), 1)
        outcome = outcomes[0]
        self.assertEqual(outcome.status, RouteStatus.DETECTED)
        self.assertEqual(outcome.detection_count, 1)
        self.assertFalse((self.inbox / "yard.png").exists())
        self.assertEqual((self.root / "out" / "yard.png").read_bytes(), original)
        annotated = (self.root / "out_annotated" / "yard.png").read_bytes()
        self.assertTrue(annotated.startswith(b"\x89PNG"))
        self.assertNotEqual(annotated, original)
        self.assertTrue(any("Found 1 detection(s)" in line for line in logs.output))
        self.assertTrue(any("squirrel: 90.00%" in line for line in logs.output))

    def test_no_detection_moves_original_unannotated(self) -> None:
        original = _png(10)
        (self.inbox / "empty.png").write_bytes(original)
        router = DirectoryRouter(self._settings(), _bright_images_have_a_squirrel)

        outcomes = router.poll_once()

        self.assertEqual(outcomes[0].status, RouteStatus.NO_DETECTION)
        self.assertEqual(outcomes[0].detection_count, 0)
        self.assertEqual((self.root / "no_squirrels" / "empty.png").read_bytes(), original)
        self.assertFalse((self.root / "out_annotated").exists())
        self.assertEqual(list(self.inbox.iterdir()), [])

    def test_only_matching_files_in_name_order(self) -> None:
        for name in ("b.png", "a.png", "notes.txt"):
            (self.inbox / name).write_bytes(_png(10))
        router = DirectoryRouter(self._settings(), _bright_images_have_a_squirrel)

        outcomes = router.poll_once()

        self.assertEqual([o.source.name for o in outcomes], ["a.png", "b.png"])
        self.assertTrue((self.inbox / "notes.txt").exists())

    def test_unreadable_file_moved_to_failed_directory(self) -> None:
        (self.inbox / "broken.png").write_bytes(b"not an image")
        router = DirectoryRouter(self._settings(failed_directory=self.root / "failed"), _bright_images_have_a_squirrel)

        with self.assertLogs("squirrel_detector.router", level="ERROR"):
            outcomes = router.poll_once()

        self.assertEqual(outcomes[0].status, RouteStatus.FAILED)
        self.assertIsNotNone(outcomes[0].error)
        self.assertTrue((self.root / "failed" / "broken.png").exists())
        self.assertFalse((self.root / "out").exists())

    def test_failed_file_without_failed_directory_is_skipped_afterwards(self) -> None:
        (self.inbox / "broken.png").write_bytes(b"not an image")
        router = DirectoryRouter(self._settings(), _bright_images_have_a_squirrel)

        with self.assertLogs("squirrel_detector.router", level="ERROR"):
            first = router.poll_once()
        second = router.poll_once()

        self.assertEqual(first[0].status, RouteStatus.FAILED)
        self.assertEqual(second, [])
        self.assertTrue((self.inbox / "broken.png").exists())

    def test_detector_errors_are_not_retried(self) -> None:
        calls = []

        def explode(image: np.ndarray) -> List[Detection]:
            calls.append(image.shape)
            raise RuntimeError("inference failed")

        (self.inbox / "yard.png").write_bytes(_png(200))
        router = DirectoryRouter(self._settings(failed_directory=self.root / "failed"), explode)

        with self.assertLogs("squirrel_detector.router", level="ERROR"):
            outcomes = router.poll_once()

        self.assertEqual(len(calls), 1)
        self.assertEqual(outcomes[0].error, "inference failed")

    def test_class_table_mismatch_stops_and_leaves_inbox_untouched(self) -> None:
        # single-class model output, two configured class names
        post = Postprocessor(PostprocessConfig(input_size=32), ["squirrel", "bird"])
        pipeline = DetectionPipeline(lambda blob: np.zeros((1, 5, 10), dtype=np.float32), post)
        for name in ("a.png", "b.png"):
            (self.inbox / name).write_bytes(_png(200))
        router = DirectoryRouter(self._settings(failed_directory=self.root / "failed"), pipeline.detect)

        with self.assertLogs("squirrel_detector.router", level="ERROR"):
            with self.assertRaises(ConfigurationError):
                router.run(max_polls=1)

        self.assertEqual(sorted(p.name for p in self.inbox.iterdir()), ["a.png", "b.png"])
        self.assertFalse((self.root / "failed").exists())
        self.assertFalse((self.root / "out").exists())

    def test_failed_original_write_leaves_no_annotated_copy(self) -> None:
        blocker = self.root / "out"
        blocker.write_bytes(b"")  # a file where the output directory should be
        (self.inbox / "yard.png").write_bytes(_png(200))
        router = DirectoryRouter(
            self._settings(failed_directory=self.root / "failed"), _bright_images_have_a_squirrel
        )

        with self.assertLogs("squirrel_detector.router", level="ERROR"):
            outcomes = router.poll_once()

        self.assertEqual(outcomes[0].status, RouteStatus.FAILED)
        self.assertFalse((self.root / "out_annotated" / "yard.png").exists())
        self.assertTrue((self.root / "failed" / "yard.png").exists())
        self.assertFalse((self.inbox / "yard.png").exists())

    def test_run_sleeps_between_polls(self) -> None:
        sleeps = []
        (self.inbox / "yard.png").write_bytes(_png(200))
        router = DirectoryRouter(self._settings(), _bright_images_have_a_squirrel, sleep=sleeps.append)

        handled = router.run(max_polls=3)

        self.assertEqual(handled, 1)
        self.assertEqual(sleeps, [1.0, 1.0])

    def test_missing_input_directory_is_empty(self) -> None:
        router = DirectoryRouter(self._settings(input_directory=self.root / "missing"), _bright_images_have_a_squirrel)
        self.assertEqual(router.poll_once(), [])


if __name__ == "__main__":
    unittest.main()
