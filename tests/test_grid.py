"""Tests for LocalGrid storage, packing and boundary conditions."""

import numpy as np
import pytest
from Wavetoy import GlobalDomain, LocalGrid, apply_dirichlet, partition, create_grid_2d

SIDES = ["x_lower", "x_upper", "y_lower", "y_upper"]


def numbered_grid(nprocs=4, nx=8, ny=6, rank=0):
    """Grid whose current array holds distinct values everywhere."""
    domain = GlobalDomain(nx=nx, ny=ny)
    grid = LocalGrid(partition(nprocs, nx, ny).get_rank_info(rank), domain)
    grid.current[:] = np.arange(grid.current.size, dtype=float).reshape(grid.halo_shape)
    return grid


class TestAllocation:
    """Array shapes and buffer rotation."""

    def test_shapes(self):
        grid = numbered_grid()
        assert grid.local_shape == (4, 3)
        for arr in (grid.previous, grid.current, grid.next):
            assert arr.shape == (6, 5)
            assert arr.dtype == np.float64
            assert arr.flags["C_CONTIGUOUS"]

    def test_rotate_relabels_without_copy(self):
        grid = numbered_grid()
        prev, cur, nxt = grid.previous, grid.current, grid.next
        grid.rotate()
        assert grid.previous is cur
        assert grid.current is nxt
        assert grid.next is prev


class TestIndexedAccess:
    def test_get_set(self):
        grid = numbered_grid()
        grid.set(grid.next, 2, 3, 4.5)
        assert grid.get(grid.next, 2, 3) == 4.5
        assert grid.next[2, 3] == 4.5

    def test_out_of_bounds(self):
        grid = numbered_grid()
        with pytest.raises(IndexError):
            grid.get(grid.current, 6, 0)
        with pytest.raises(IndexError):
            grid.set(grid.current, 0, -1, 1.0)


class TestPacking:
    """pack() reads owned boundary lines, unpack() writes only ghosts."""

    def test_pack_lines(self):
        grid = numbered_grid()
        u = grid.current
        np.testing.assert_array_equal(grid.pack(u, "x_lower"), u[1, 1:-1])
        np.testing.assert_array_equal(grid.pack(u, "x_upper"), u[-2, 1:-1])
        np.testing.assert_array_equal(grid.pack(u, "y_lower"), u[1:-1, 1])
        np.testing.assert_array_equal(grid.pack(u, "y_upper"), u[1:-1, -2])

    def test_pack_lengths(self):
        grid = numbered_grid()
        nxnom, nynom = grid.local_shape
        assert len(grid.pack(grid.current, "x_lower")) == nynom
        assert len(grid.pack(grid.current, "y_upper")) == nxnom

    def test_pack_into_buffer(self):
        grid = numbered_grid()
        buf = np.empty(grid.line_length("y_lower"))
        out = grid.pack(grid.current, "y_lower", out=buf)
        assert out is buf
        assert buf.flags["C_CONTIGUOUS"]

    def test_pack_is_a_copy(self):
        grid = numbered_grid()
        buf = grid.pack(grid.current, "x_upper")
        buf[:] = -1.0
        assert np.all(grid.current[-2, 1:-1] >= 0.0)

    @pytest.mark.parametrize("side", SIDES)
    def test_unpack_touches_only_ghost_line(self, side):
        grid = numbered_grid()
        before = grid.current.copy()
        buf = np.full(grid.line_length(side), -7.0)

        grid.unpack(grid.current, side, buf)

        np.testing.assert_array_equal(grid.ghost(grid.current, side), buf)
        np.testing.assert_array_equal(grid.interior(grid.current), grid.interior(before))
        changed = grid.current != before
        assert changed.sum() == len(buf)


class TestInterior:
    def test_interior_sum_excludes_ghosts(self):
        grid = numbered_grid()
        grid.current[0, :] = 1e6
        grid.current[:, -1] = 1e6
        assert grid.interior_sum(grid.current) == float(np.sum(grid.current[1:-1, 1:-1]))

    def test_coordinates_match_global_grid(self):
        """Local coordinates are the matching slice of the global meshgrid."""
        domain = GlobalDomain(nx=8, ny=6)
        X, Y = create_grid_2d(domain)
        topo = partition(4, 8, 6)
        for rank in range(4):
            grid = LocalGrid(topo.get_rank_info(rank), domain)
            (x0, y0), (x1, y1) = grid.region.global_start, grid.region.global_end
            Xl, Yl = grid.coordinates()
            np.testing.assert_array_equal(Xl, X[x0:x1 + 1, y0:y1 + 1])
            np.testing.assert_array_equal(Yl, Y[x0:x1 + 1, y0:y1 + 1])

    def test_coordinates_require_domain(self):
        grid = LocalGrid(partition(1, 4, 4).get_rank_info(0))
        with pytest.raises(RuntimeError):
            grid.coordinates()


class TestDirichlet:
    """Boundary conditions on physical edges."""

    def test_zeroes_owned_edges_in_previous_and_current(self):
        grid = LocalGrid(partition(1, 4, 4).get_rank_info(0))
        grid.previous[:] = 1.0
        grid.current[:] = 2.0
        apply_dirichlet(grid)

        for arr, val in ((grid.previous, 1.0), (grid.current, 2.0)):
            assert np.all(arr[0, :] == 0.0) and np.all(arr[-1, :] == 0.0)
            assert np.all(arr[:, 0] == 0.0) and np.all(arr[:, -1] == 0.0)
            assert np.all(arr[1:-1, 1:-1] == val)

    def test_only_physical_sides(self):
        """Rank 0 of a 2x2 grid owns the x_lower and y_lower edges only."""
        topo = partition(4, 8, 8)
        grid = LocalGrid(topo.get_rank_info(0))
        grid.current[:] = 3.0
        apply_dirichlet(grid, arrays=[grid.current])

        u = grid.current
        assert np.all(u[0, :] == 0.0)
        assert np.all(u[:, 0] == 0.0)
        assert np.all(u[-1, 1:] == 3.0)   # x_upper ghost is a halo, not a boundary
        assert np.all(u[1:, -1] == 3.0)   # y_upper ghost is a halo

    def test_does_not_touch_next(self):
        grid = LocalGrid(partition(1, 4, 4).get_rank_info(0))
        grid.next[:] = 5.0
        apply_dirichlet(grid)
        assert np.all(grid.next == 5.0)

    def test_idempotent(self):
        """Applying twice leaves every cell unchanged (zero is a fixed point)."""
        grid = numbered_grid(nprocs=4, rank=3)
        grid.previous[:] = grid.current + 1.0
        apply_dirichlet(grid)
        once = (grid.previous.copy(), grid.current.copy())
        apply_dirichlet(grid)
        np.testing.assert_array_equal(grid.previous, once[0])
        np.testing.assert_array_equal(grid.current, once[1])

    def test_custom_value(self):
        grid = LocalGrid(partition(1, 3, 3).get_rank_info(0))
        apply_dirichlet(grid, value=1.5)
        assert np.all(grid.current[0, :] == 1.5)
        assert np.all(grid.current[1:-1, 1:-1] == 0.0)
