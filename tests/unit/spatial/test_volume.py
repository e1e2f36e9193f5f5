"""
Unit tests for the light volume.

These tests verify cell addressing, the density/flux pyramid and the
defaults outside the volume.
"""

import pytest
import numpy as np

from plant_policies import VolumePolicy
from plantgen.spatial.volume import Volume


class TestVolumeCells:
    """Tests for cell sizes and addressing."""

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            Volume(np.zeros(3), 0.0, 2)
        with pytest.raises(ValueError):
            Volume(np.zeros(3), 1.0, -1)

    def test_cell_size_per_level(self):
        """Each level halves the cell size."""
        volume = Volume(np.zeros(3), 2.0, 2)

        assert volume.cell_size() == pytest.approx(0.5)
        assert volume.cell_size(0) == pytest.approx(2.0)
        assert volume.cell_volume(1) == pytest.approx(1.0)
        assert [grid.shape[0] for grid in volume.density] == [1, 2, 4]

    def test_level_for_size(self):
        """The finest level still wide enough is chosen."""
        volume = Volume(np.zeros(3), 2.0, 2)

        assert volume.level_for_size(0.4) == 2
        assert volume.level_for_size(0.6) == 1
        assert volume.level_for_size(5.0) == 0

    def test_point_to_cell(self):
        """Corners map to the first and last cells."""
        volume = Volume(np.zeros(3), 2.0, 2)

        assert volume.point_to_cell([-1.0, -1.0, -1.0]) == (0, 0, 0)
        assert volume.point_to_cell([1.0, 1.0, 1.0]) == (3, 3, 3)
        assert volume.point_to_cell([0.1, -0.1, 0.6]) == (2, 1, 3)
        assert volume.point_to_cell([0.0, 0.0, 1.5]) is None
        assert volume.point_to_cell([np.inf, 0.0, 0.0]) is None

    def test_points_to_cells(self):
        """The vectorized lookup agrees with the scalar one."""
        volume = Volume(np.zeros(3), 2.0, 2)
        points = np.array([[0.1, -0.1, 0.6], [3.0, 0.0, 0.0], [np.inf, 0.0, 0.0]])
        cells, inside = volume.points_to_cells(points)

        np.testing.assert_array_equal(inside, [True, False, False])
        np.testing.assert_array_equal(cells[0], [2, 1, 3])

    def test_from_bounds(self):
        """The cube encloses the padded box and respects the minimum size."""
        volume = Volume.from_bounds([0, 0, 0], [0, 4, 0], VolumePolicy(depth=3, padding=0.25))
        tiny = Volume.from_bounds([0, 0, 0], [0, 0.1, 0], VolumePolicy(min_size=1.0))

        assert volume.size == pytest.approx(6.0)
        np.testing.assert_allclose(volume.center, [0, 2, 0])
        assert volume.depth == 3
        assert tiny.size == pytest.approx(1.0)


class TestVolumeFields:
    """Tests for density and flux."""

    def test_density_outside_is_zero(self):
        volume = Volume(np.zeros(3), 2.0, 2)

        assert not volume.add_density([5.0, 0.0, 0.0], 1.0)
        assert volume.density_at([5.0, 0.0, 0.0]) == 0.0
        assert volume.total_density() == 0.0

    def test_flux_defaults_to_full(self):
        """Unlit cells and points outside report full light."""
        volume = Volume(np.zeros(3), 2.0, 2)
        volume.resolve_flux()
        volume.generalize_flux()

        assert volume.flux_at([0.0, 0.0, 0.0]) == 1.0
        assert volume.flux_at([5.0, 0.0, 0.0]) == 1.0
        assert volume.flux_at([0.0, 0.0, 0.0], level=0) == 1.0

    def test_generalize_density_averages(self):
        """Coarser levels hold the mean of their eight children."""
        volume = Volume(np.zeros(3), 2.0, 2)
        volume.add_density([-0.9, -0.9, -0.9], 8.0)
        volume.generalize_density()

        assert volume.density_at([-0.9, -0.9, -0.9]) == pytest.approx(8.0)
        assert volume.density_at([-0.9, -0.9, -0.9], level=1) == pytest.approx(1.0)
        assert volume.density_at([0.0, 0.0, 0.0], level=0) == pytest.approx(0.125)
        assert volume.total_density() == pytest.approx(8.0)

    def test_deposited_flux_is_averaged(self):
        """Flux is the mean energy of the rays sampling a cell."""
        volume = Volume(np.zeros(3), 2.0, 2)
        cells = np.array([[0, 0, 0], [0, 0, 0], [3, 3, 3]])
        volume.deposit_flux(cells, np.array([0.2, 0.4, 1.0]))
        volume.resolve_flux()
        volume.generalize_flux()

        assert volume.flux[2][0, 0, 0] == pytest.approx(0.3)
        assert volume.flux[2][3, 3, 3] == pytest.approx(1.0)
        assert volume.flux[1][0, 0, 0] == pytest.approx((0.3 + 7.0) / 8.0)

    def test_clear_resets(self):
        volume = Volume(np.zeros(3), 2.0, 2)
        volume.add_density([0.0, 0.0, 0.0], 3.0)
        volume.deposit_flux(np.array([[1, 1, 1]]), np.array([0.0]))
        volume.resolve_flux()
        volume.clear()

        assert volume.total_density() == 0.0
        assert volume.flux_at([0.0, 0.0, 0.0]) == 1.0
