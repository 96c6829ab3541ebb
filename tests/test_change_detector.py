from __future__ import annotations

import pytest
from PIL import Image

from packages.core.capture.change_detector import ChangeDetector, difference_percent


def test_first_comparison_is_always_different(make_frame):
    detector = ChangeDetector()
    assert detector.last_frame is None
    assert detector.is_different(make_frame())
    assert detector.is_different(None)


def test_identical_frame_is_not_different(make_frame):
    detector = ChangeDetector()
    detector.accept(make_frame())
    assert not detector.is_different(make_frame())


def test_single_pixel_perturbation_is_different(make_frame):
    detector = ChangeDetector()
    detector.accept(make_frame((100, 50)))

    changed = make_frame((100, 50))
    changed.putpixel((10, 10), (254, 255, 255))

    assert detector.is_different(changed)
    assert difference_percent(changed, detector.last_frame) == pytest.approx(100.0 / 5000)


def test_zero_tolerance_sees_differences_in_one_channel():
    a = Image.new("RGB", (2, 2), (0, 0, 0))
    b = a.copy()
    b.putpixel((1, 1), (0, 0, 1))
    assert difference_percent(a, b) == pytest.approx(25.0)
    assert difference_percent(a, b, threshold=1) == 0.0


def test_size_change_counts_as_fully_different(make_frame):
    assert difference_percent(make_frame((10, 10)), make_frame((10, 11))) == 100.0


def test_empty_frames_of_equal_size_are_identical():
    assert difference_percent(Image.new("RGB", (0, 10)), Image.new("RGB", (0, 10))) == 0.0


def test_is_different_never_replaces_retained_frame(make_frame):
    detector = ChangeDetector()
    first = make_frame(color=(0, 0, 0))
    detector.accept(first)

    assert detector.is_different(make_frame(color=(255, 255, 255)))
    assert detector.last_frame is first

    detector.reset()
    assert detector.last_frame is None
