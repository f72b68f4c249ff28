import unittest

import numpy as np

from squirrel_kit.geometry import NormalizedBox, iou, iou_one_to_many


class TestIou(unittest.TestCase):
    def test_disjoint_boxes_is_exactly_zero(self) -> None:
        a = NormalizedBox(0.0, 0.0, 0.2, 0.2)
        b = NormalizedBox(0.5, 0.5, 0.2, 0.2)
        self.assertEqual(iou(a, b), 0.0)

    def test_touching_edges_is_zero(self) -> None:
        a = NormalizedBox(0.0, 0.0, 0.5, 0.5)
        b = NormalizedBox(0.5, 0.0, 0.5, 0.5)
        self.assertEqual(iou(a, b), 0.0)

    def test_identical_boxes_is_one(self) -> None:
        a = NormalizedBox(0.1, 0.2, 0.3, 0.4)
        self.assertAlmostEqual(iou(a, a), 1.0)

    def test_partial_overlap(self) -> None:
        a = NormalizedBox(0.0, 0.0, 0.5, 0.5)
        b = NormalizedBox(0.25, 0.0, 0.5, 0.5)
        # inter = 0.125, union = 0.375
        self.assertAlmostEqual(iou(a, b), 1.0 / 3.0)

    def test_contained_box(self) -> None:
        outer = NormalizedBox(0.0, 0.0, 0.5, 0.5)
        inner = NormalizedBox(0.0, 0.0, 0.5, 0.25)
        self.assertEqual(iou(outer, inner), 0.5)

    def test_zero_area_boxes_do_not_divide_by_zero(self) -> None:
        a = NormalizedBox(0.3, 0.3, 0.0, 0.0)
        b = NormalizedBox(0.3, 0.3, 0.0, 0.0)
        self.assertEqual(iou(a, b), 0.0)

    def test_vectorised_matches_scalar(self) -> None:
        ref = NormalizedBox(0.1, 0.1, 0.4, 0.3)
        others = [
            NormalizedBox(0.1, 0.1, 0.4, 0.3),
            NormalizedBox(0.3, 0.2, 0.4, 0.4),
            NormalizedBox(0.8, 0.8, 0.1, 0.1),
            NormalizedBox(0.5, 0.5, 0.0, 0.0),
        ]
        got = iou_one_to_many(np.array(ref.as_xywh()), np.array([o.as_xywh() for o in others]))
        expected = [iou(ref, o) for o in others]
        self.assertTrue(np.allclose(got, expected))

    def test_vectorised_zero_union(self) -> None:
        got = iou_one_to_many(np.zeros(4), np.zeros((2, 4)))
        self.assertTrue(np.array_equal(got, np.zeros(2)))

    def test_vectorised_empty(self) -> None:
        got = iou_one_to_many(np.array([0.0, 0.0, 0.5, 0.5]), np.empty((0, 4)))
        self.assertEqual(got.shape, (0,))


class TestNormalizedBox(unittest.TestCase):
    def test_to_pixels_scales_axes_independently(self) -> None:
        box = NormalizedBox(0.25, 0.5, 0.5, 0.25)
        self.assertEqual(box.to_pixels(200, 100), (50, 50, 100, 25))

    def test_corners_and_area(self) -> None:
        box = NormalizedBox(0.25, 0.5, 0.5, 0.25)
        self.assertEqual(box.x2, 0.75)
        self.assertEqual(box.y2, 0.75)
        self.assertEqual(box.area, 0.125)


if __name__ == "__main__":
    unittest.main()
