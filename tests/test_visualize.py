import unittest

import cv2
import numpy as np

from squirrel_kit.errors import ImageDecodeError
from squirrel_kit.geometry import NormalizedBox
from squirrel_kit.types import Detection
from squirrel_kit.visualize import AnnotationStyle, annotate_image, decode_image, draw_detections, sniff_image_format


def _png(image: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", image)
    assert ok
    return buf.tobytes()


def _det(score: float = 0.9, box: NormalizedBox = NormalizedBox(0.25, 0.5, 0.5, 0.25)) -> Detection:
    return Detection(class_id=0, class_name="squirrel", score=score, box=box)


class TestAnnotateImage(unittest.TestCase):
    def setUp(self) -> None:
        self.image = np.zeros((100, 200, 3), dtype=np.uint8)
        self.png = _png(self.image)

    def test_draws_box_outline_and_reports_count(self) -> None:
        result = annotate_image(self.png, [_det()])
        self.assertEqual(result.detection_count, 1)
        self.assertEqual(result.glyphs, AnnotationStyle().glyph)
        self.assertEqual(len(result.detections), 1)

        out = decode_image(result.image_bytes)
        self.assertEqual(out.shape, self.image.shape)
        # Box spans x 50..150, y 50..75; left edge is green, interior untouched.
        self.assertEqual(tuple(int(v) for v in out[62, 50]), (0, 255, 0))
        self.assertEqual(tuple(int(v) for v in out[62, 100]), (0, 0, 0))
        # Label background sits directly above the top edge.
        self.assertTrue(np.any(out[30:48, 50:150] != 0))

    def test_no_detections_leaves_pixels_untouched(self) -> None:
        result = annotate_image(self.png, [])
        self.assertEqual(result.detection_count, 0)
        self.assertEqual(result.glyphs, "")
        self.assertTrue(np.array_equal(decode_image(result.image_bytes), self.image))

    def test_keeps_input_format(self) -> None:
        ok, jpg = cv2.imencode(".jpg", self.image)
        self.assertTrue(ok)
        result = annotate_image(jpg.tobytes(), [_det()])
        self.assertTrue(result.image_bytes.startswith(b"\xff\xd8\xff"))

        result = annotate_image(self.png, [_det()])
        self.assertTrue(result.image_bytes.startswith(b"\x89PNG"))

    def test_same_input_gives_identical_bytes(self) -> None:
        dets = [_det(0.9), _det(0.7, NormalizedBox(0.0, 0.0, 0.3, 0.3))]
        self.assertEqual(annotate_image(self.png, dets).image_bytes, annotate_image(self.png, dets).image_bytes)

    def test_box_on_top_edge_draws_label_off_canvas(self) -> None:
        result = annotate_image(self.png, [_det(box=NormalizedBox(0.1, 0.0, 0.5, 0.5))])
        self.assertEqual(result.detection_count, 1)

    def test_unreadable_image_rejected(self) -> None:
        with self.assertRaises(ImageDecodeError):
            annotate_image(b"definitely not an image", [_det()])
        with self.assertRaises(ImageDecodeError):
            annotate_image(b"", [_det()])


class TestDrawDetections(unittest.TestCase):
    def test_draws_in_place(self) -> None:
        image = np.zeros((100, 200, 3), dtype=np.uint8)
        out = draw_detections(image, [_det()])
        self.assertIs(out, image)
        self.assertTrue(np.any(image != 0))

    def test_rejects_non_bgr(self) -> None:
        with self.assertRaises(ValueError):
            draw_detections(np.zeros((10, 10), dtype=np.uint8), [_det()])

    def test_label_text(self) -> None:
        self.assertEqual(_det(0.9).label(), "squirrel 90%")
        self.assertEqual(_det(0.876).label(), "squirrel 88%")
        self.assertEqual(_det(0.125).label(), "squirrel 13%")
        self.assertEqual(_det(0.0).label(), "squirrel 0%")


class TestSniffImageFormat(unittest.TestCase):
    def test_known_and_unknown(self) -> None:
        self.assertEqual(sniff_image_format(b"\x89PNG\r\n\x1a\n...."), ".png")
        self.assertEqual(sniff_image_format(b"\xff\xd8\xff\xe0...."), ".jpg")
        self.assertEqual(sniff_image_format(b"BM......"), ".bmp")
        self.assertEqual(sniff_image_format(b"RIFF\x00\x00\x00\x00WEBP"), ".webp")
        self.assertEqual(sniff_image_format(b"????"), ".jpg")


if __name__ == "__main__":
    unittest.main()
