"""Unit tests for anisotropic centroidal relaxation."""

import pytest
import numpy as np

from mosaic_this.core.errors import DegenerateImage
from mosaic_this.core.gradient_field import GradientField
from mosaic_this.core.relaxation import (
    AnisotropicRelaxer,
    RelaxationConfig,
    RelaxationReport,
    relax,
)
from mosaic_this.core.sites import Site


def flat_field(width: int, height: int, direction: float = 0.0) -> GradientField:
    """Field with no edges and a constant interior direction."""
    direction_grid = np.zeros((height, width))
    direction_grid[1:-1, 1:-1] = direction
    return GradientField(magnitude=np.zeros((height, width)), direction=direction_grid)


class TestRelaxationConfig:
    """Test RelaxationConfig validation."""

    def test_defaults(self):
        config = RelaxationConfig()
        assert config.iterations == 5
        assert config.edge_fraction == 0.25
        assert config.max_workers is None
        assert config.search_radius is None

    @pytest.mark.parametrize("kwargs,message", [
        ({"iterations": -1}, "iterations"),
        ({"edge_fraction": 1.5}, "edge_fraction"),
        ({"max_workers": 0}, "max_workers"),
        ({"rows_per_block": 0}, "rows_per_block"),
        ({"search_radius": 0.0}, "search_radius"),
        ({"deadline_seconds": -1.0}, "deadline_seconds"),
    ])
    def test_invalid_values(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            RelaxationConfig(**kwargs)


class TestAnisotropicRelaxer:
    """Test AnisotropicRelaxer behaviour."""

    def test_zero_sites_returns_empty_list(self):
        assert relax([], flat_field(10, 10), 10, 10) == []

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (0, 0)])
    def test_degenerate_image(self, width, height):
        field = GradientField(magnitude=np.zeros((height, width)), direction=np.zeros((height, width)))
        with pytest.raises(DegenerateImage):
            relax([Site(1, 1)], field, width, height)
        with pytest.raises(DegenerateImage):
            relax([], field, width, height)

    def test_field_shape_mismatch(self):
        with pytest.raises(ValueError, match="does not match"):
            relax([Site(1, 1)], flat_field(10, 10), 12, 10)

    def test_returns_new_list_and_keeps_input(self):
        sites = [Site(2.0, 2.0), Site(7.0, 7.0)]
        result = relax(sites, flat_field(10, 10), 10, 10, iterations=3)

        assert result is not sites
        assert len(result) == 2
        assert (sites[0].x, sites[0].y) == (2.0, 2.0)
        assert all(a is not b for a, b in zip(result, sites))

    def test_single_site_moves_to_image_centroid(self):
        result = relax([Site(1.0, 1.0)], flat_field(10, 6), 10, 6, iterations=1)
        assert result[0].x == pytest.approx(4.5)
        assert result[0].y == pytest.approx(2.5)

    def test_zero_iterations_leaves_sites(self):
        result = relax([Site(3.3, 4.4, 0.2)], flat_field(10, 10), 10, 10, iterations=0)
        assert (result[0].x, result[0].y, result[0].theta) == (3.3, 4.4, 0.2)

    def test_site_count_preserved(self):
        rng = np.random.default_rng(4)
        sites = [Site(float(x), float(y)) for x, y in rng.uniform(0, 30, size=(25, 2))]
        result = relax(sites, flat_field(30, 30), 30, 30)
        assert len(result) == 25

    def test_sites_stay_inside_image(self):
        rng = np.random.default_rng(6)
        sites = [Site(float(x), float(y)) for x, y in rng.uniform(0, 20, size=(12, 2))]
        for site in relax(sites, flat_field(20, 20), 20, 20):
            assert 0 <= site.x < 20
            assert 0 <= site.y < 20

    def test_empty_cell_keeps_position(self):
        """A site whose pixels are all on a strong edge does not move."""
        magnitude = np.zeros((20, 20))
        magnitude[:, 10:] = 10.0
        field = GradientField(magnitude=magnitude, direction=np.zeros((20, 20)))

        result = relax([Site(5.0, 10.0), Site(18.0, 10.0)], field, 20, 20, iterations=2)

        assert (result[1].x, result[1].y) == (18.0, 10.0)
        assert result[0].x == pytest.approx(4.5)
        assert result[0].y == pytest.approx(9.5)

    def test_report_counts_empty_cells(self):
        magnitude = np.zeros((20, 20))
        magnitude[:, 10:] = 10.0
        field = GradientField(magnitude=magnitude, direction=np.zeros((20, 20)))

        report = AnisotropicRelaxer(RelaxationConfig(iterations=2)).run(
            [Site(5.0, 10.0), Site(18.0, 10.0)], field, 20, 20
        )

        assert isinstance(report, RelaxationReport)
        assert report.iterations_completed == 2
        assert report.empty_cells == [1, 1]
        assert not report.stopped_early

    def test_coincident_sites_tie_to_lowest_index(self):
        relaxer = AnisotropicRelaxer()
        labels = relaxer.assign_pixels([Site(4.0, 4.0), Site(4.0, 4.0)], 9, 9)
        assert np.all(labels == 0)

    def test_rotation_changes_assignment(self):
        """Rotating a site's metric along the diagonal pulls diagonal pixels in."""
        relaxer = AnisotropicRelaxer()
        other = Site(3.5, 0.5, 0.0)

        labels = relaxer.assign_pixels([Site(0.0, 0.0, 0.0), other], 5, 5)
        assert labels[2, 2] == 1  # taxicab 4.0 vs 3.0

        labels = relaxer.assign_pixels([Site(0.0, 0.0, np.pi / 4), other], 5, 5)
        assert labels[2, 2] == 0  # rotated distance 2.83 vs 3.0

    def test_orientation_update(self):
        """Interior sites take the field direction; border sites keep theirs."""
        relaxer = AnisotropicRelaxer()
        field = flat_field(10, 10, direction=1.0)
        sites = [Site(5.0, 5.0, 0.1), Site(0.0, 0.0, 0.3), Site(9.6, 5.0, 0.4), Site(8.4, 8.4, 0.5)]

        relaxer.update_orientations(sites, field)

        assert sites[0].theta == 1.0
        assert sites[1].theta == 0.3
        assert sites[2].theta == 0.4  # rounds to x=10, clamped onto the border
        assert sites[3].theta == 1.0

    def test_orientation_sampled_before_move(self):
        """The final theta comes from the position before the last centroid step."""
        direction = np.zeros((10, 10))
        direction[1:-1, 1:-1] = np.arange(1, 9)[np.newaxis, :] * 0.1
        field = GradientField(magnitude=np.zeros((10, 10)), direction=direction)

        result = relax([Site(3.0, 3.0)], field, 10, 10, iterations=1)

        assert result[0].x == pytest.approx(4.5)
        assert result[0].theta == pytest.approx(0.3)

    def test_edge_pixels_excluded_from_centroid(self):
        magnitude = np.zeros((10, 10))
        magnitude[:, 8:] = 4.0
        field = GradientField(magnitude=magnitude, direction=np.zeros((10, 10)))

        result = relax([Site(5.0, 5.0)], field, 10, 10, iterations=1)

        assert result[0].x == pytest.approx(3.5)  # mean of columns 0..7

    def test_centroid_inside_edge_band_is_projected(self):
        """A cell spanning both sides of an edge settles on its nearest valid pixel."""
        magnitude = np.zeros((10, 20))
        magnitude[:, 9:11] = 4.0
        field = GradientField(magnitude=magnitude, direction=np.zeros((10, 20)))

        # Plain centroid of columns 0..8 and 11..19 is (9.5, 4.5), inside the band;
        # (8, 4), (11, 4), (8, 5) and (11, 5) are equally close, row-major wins.
        once = relax([Site(3.0, 5.0)], field, 20, 10, iterations=1)
        assert (once[0].x, once[0].y) == (8.0, 4.0)

        repeated = relax([Site(3.0, 5.0)], field, 20, 10, iterations=3)
        assert (repeated[0].x, repeated[0].y) == (8.0, 4.0)

    def test_valid_pixel_mask_flat_field(self):
        assert AnisotropicRelaxer().valid_pixel_mask(flat_field(5, 5)).all()

    def test_search_radius_matches_full_scan(self):
        rng = np.random.default_rng(11)
        sites = [Site(float(x), float(y), float(t))
                 for x, y, t in zip(rng.uniform(0, 40, 30), rng.uniform(0, 30, 30), rng.uniform(-np.pi, np.pi, 30))]

        full = AnisotropicRelaxer().assign_pixels(sites, 40, 30)
        for radius in (1.0, 4.0, 12.0):
            banded = AnisotropicRelaxer(RelaxationConfig(search_radius=radius)).assign_pixels(sites, 40, 30)
            assert np.array_equal(full, banded)

    def test_search_radius_keeps_tie_break(self):
        sites = [Site(4.0, 4.0), Site(4.0, 4.0)]
        labels = AnisotropicRelaxer(RelaxationConfig(search_radius=2.0)).assign_pixels(sites, 9, 9)
        assert np.all(labels == 0)

    def test_threaded_assignment_matches_serial(self):
        rng = np.random.default_rng(12)
        sites = [Site(float(x), float(y), float(t))
                 for x, y, t in zip(rng.uniform(0, 25, 15), rng.uniform(0, 25, 15), rng.uniform(-1, 1, 15))]

        serial = AnisotropicRelaxer().assign_pixels(sites, 25, 25)
        threaded = AnisotropicRelaxer(RelaxationConfig(max_workers=4, rows_per_block=3)).assign_pixels(sites, 25, 25)

        assert threaded.shape == (25, 25)
        assert np.array_equal(serial, threaded)


class TestCancellation:
    """Test the between-iteration stop hooks."""

    def test_should_stop_before_first_iteration(self):
        report = AnisotropicRelaxer().run(
            [Site(2.0, 2.0, 0.7)], flat_field(10, 10), 10, 10, should_stop=lambda: True
        )

        assert report.stopped_early
        assert report.stop_reason == "cancelled"
        assert report.iterations_completed == 0
        assert (report.sites[0].x, report.sites[0].y, report.sites[0].theta) == (2.0, 2.0, 0.7)

    def test_should_stop_after_two_iterations(self):
        calls = []

        def stop():
            calls.append(1)
            return len(calls) > 2

        report = AnisotropicRelaxer(RelaxationConfig(iterations=5)).run(
            [Site(2.0, 2.0)], flat_field(10, 10), 10, 10, should_stop=stop
        )

        assert report.iterations_completed == 2
        assert report.stopped_early

    def test_zero_deadline_stops_immediately(self):
        report = AnisotropicRelaxer(RelaxationConfig(deadline_seconds=0.0)).run(
            [Site(2.0, 2.0)], flat_field(10, 10), 10, 10
        )

        assert report.stopped_early
        assert report.stop_reason == "deadline exceeded"
        assert report.iterations_completed == 0

    def test_completed_run_not_marked_stopped(self):
        report = AnisotropicRelaxer(RelaxationConfig(iterations=3)).run(
            [Site(2.0, 2.0)], flat_field(10, 10), 10, 10, should_stop=lambda: False
        )
        assert report.iterations_completed == 3
        assert not report.stopped_early
        assert report.stop_reason is None
