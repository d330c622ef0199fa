import pytest

from flightpipe.distance import calculate_distance_from


def test_same_point_is_zero():
    assert calculate_distance_from((12.5, -40.0), (12.5, -40.0)) == 0.0


def test_distance_is_symmetric():
    a, b = (40.6, -73.8), (51.5, -0.45)
    assert calculate_distance_from(a, b) == pytest.approx(calculate_distance_from(b, a))


def test_distance_is_positive_for_distinct_points():
    assert calculate_distance_from((0.0, 0.0), (1.0, 1.0)) > 0


def test_triangle_inequality():
    a, b, c = (0.0, 0.0), (1.0, 0.0), (0.0, 1.0)
    direct = calculate_distance_from(a, c)
    via_b = calculate_distance_from(a, b) + calculate_distance_from(b, c)
    assert direct < via_b


def test_points_along_equator_add_up():
    a, b, c = (0.0, 0.0), (0.0, 1.0), (0.0, 3.0)
    total = calculate_distance_from(a, b) + calculate_distance_from(b, c)
    assert total == pytest.approx(calculate_distance_from(a, c))


def test_distance_along_equator_scales_with_angle():
    one = calculate_distance_from((0.0, 0.0), (0.0, 1.0))
    three = calculate_distance_from((0.0, 0.0), (0.0, 3.0))
    assert three == pytest.approx(3 * one)


def test_antipodal_distances_match():
    along_equator = calculate_distance_from((0.0, 0.0), (0.0, 180.0))
    pole_to_pole = calculate_distance_from((90.0, 0.0), (-90.0, 0.0))
    assert along_equator == pytest.approx(pole_to_pole)
    assert calculate_distance_from((0.0, 0.0), (0.0, 90.0)) == pytest.approx(
        along_equator / 2
    )