"""Tests for domain decomposition logic."""

import numpy as np
import pytest
from Wavetoy import partition, PartitionError

OPPOSITES = {"x_lower": "x_upper", "x_upper": "x_lower",
             "y_lower": "y_upper", "y_upper": "y_lower"}


class TestWorkerGrid:
    """Tests for the choice of nxprocs x nyprocs."""

    @pytest.mark.parametrize("nprocs,nx,ny,dims", [
        (1, 4, 4, (1, 1)),
        (2, 100, 100, (2, 1)),   # tie goes to splitting along x
        (4, 100, 100, (2, 2)),
        (8, 64, 64, (4, 2)),
        (4, 200, 100, (4, 1)),
        (3, 60, 120, (1, 3)),
        (6, 120, 60, (3, 2)),
        (9, 90, 90, (3, 3)),
    ])
    def test_dims(self, nprocs, nx, ny, dims):
        """Worker grid follows the aspect ratio of the global grid."""
        topo = partition(nprocs, nx, ny)
        assert topo.dims == dims
        assert topo.nxprocs * topo.nyprocs == nprocs

    def test_sliced_strategy(self):
        """Sliced splits along x only."""
        topo = partition(4, 100, 100, strategy="sliced")
        assert topo.dims == (4, 1)
        assert topo.nxnom == 25
        assert topo.nynom == 100

    def test_deterministic(self):
        """Same inputs give the same topology."""
        a = partition(8, 64, 32)
        b = partition(8, 64, 32)
        assert a.dims == b.dims
        assert a.neighbor_table == b.neighbor_table


class TestCoverage:
    """Regions must tile the global interior."""

    @pytest.mark.parametrize("nprocs,nx,ny", [(1, 7, 5), (2, 100, 100), (4, 16, 16), (6, 30, 20), (8, 64, 32)])
    def test_full_coverage_no_overlaps(self, nprocs, nx, ny):
        """Each interior point owned by exactly one rank."""
        topo = partition(nprocs, nx, ny)

        owner = np.zeros((nx + 1, ny + 1), dtype=int)
        for rank in range(nprocs):
            info = topo.get_rank_info(rank)
            (x0, y0), (x1, y1) = info.global_start, info.global_end
            assert (x1 - x0 + 1, y1 - y0 + 1) == info.local_shape
            owner[x0:x1 + 1, y0:y1 + 1] += 1

        # 1-based interior; row/column 0 unused
        assert np.all(owner[1:, 1:] == 1)
        assert np.all(owner[0, :] == 0) and np.all(owner[:, 0] == 0)

    def test_halo_shape(self):
        """Halo shape adds one ghost cell on each side."""
        info = partition(4, 16, 16).get_rank_info(3)
        assert info.local_shape == (8, 8)
        assert info.halo_shape == (10, 10)


class TestNeighbors:
    """Tests for the neighbour table."""

    def test_sliced_chain(self):
        """1D split: ranks form a chain along x."""
        topo = partition(4, 40, 10, strategy="sliced")

        assert topo.get_rank_info(0).neighbors == {
            "x_lower": None, "x_upper": 1, "y_lower": None, "y_upper": None}
        assert topo.get_rank_info(2).neighbors["x_lower"] == 1
        assert topo.get_rank_info(2).neighbors["x_upper"] == 3
        assert topo.get_rank_info(3).neighbors["x_upper"] is None

    def test_row_major_ranks(self):
        """rank = px * nyprocs + py; y neighbours differ by 1, x by nyprocs."""
        topo = partition(6, 30, 20)  # 3 x 2
        assert topo.dims == (3, 2)

        info = topo.get_rank_info(3)
        assert info.coords == (1, 1)
        assert info.neighbors == {"x_lower": 1, "x_upper": 5, "y_lower": 2, "y_upper": None}
        assert topo.rank_of(*info.coords) == 3

    def test_neighbor_reciprocity(self):
        """If A neighbors B, then B neighbors A."""
        topo = partition(9, 90, 90)
        for rank in range(9):
            for side, neighbor in topo.get_rank_info(rank).neighbors.items():
                if neighbor is not None:
                    assert topo.get_rank_info(neighbor).neighbors[OPPOSITES[side]] == rank

    def test_interior_has_4_neighbors(self):
        """Centre of a 3x3 worker grid touches no physical edge."""
        info = partition(9, 90, 90).get_rank_info(4)
        assert info.n_neighbors == 4
        assert not any(info.is_boundary.values())

    def test_boundary_flags_match_missing_neighbors(self):
        """A side is a physical boundary exactly when it has no neighbour."""
        topo = partition(6, 30, 20)
        for rank in range(6):
            info = topo.get_rank_info(rank)
            for side in OPPOSITES:
                assert info.is_boundary[side] == (info.neighbors[side] is None)

    def test_single_rank_owns_all_edges(self):
        info = partition(1, 5, 5).get_rank_info(0)
        assert info.n_neighbors == 0
        assert all(info.is_boundary.values())


class TestPartitionErrors:
    """Configuration errors are rejected at partition time."""

    @pytest.mark.parametrize("strategy", ["auto", "sliced"])
    @pytest.mark.parametrize("nx,ny", [(1, 100), (100, 1), (1, 1)])
    def test_degenerate_axis_rejected(self, nx, ny, strategy):
        """nprocs=4 with a single point along an axis must not run."""
        with pytest.raises(PartitionError):
            partition(4, nx, ny, strategy=strategy)

    def test_single_point_axis_allowed_on_one_rank(self):
        assert partition(1, 100, 1, strategy="sliced").dims == (1, 1)

    def test_uneven_split_rejected(self):
        """No silent padding or truncation."""
        with pytest.raises(PartitionError, match="divide"):
            partition(2, 101, 100)

    def test_sliced_uneven_rejected(self):
        with pytest.raises(PartitionError):
            partition(3, 100, 100, strategy="sliced")

    def test_zero_processes_rejected(self):
        with pytest.raises(PartitionError):
            partition(0, 10, 10)

    def test_partition_error_is_value_error(self):
        with pytest.raises(ValueError):
            partition(4, 1, 100)

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown strategy"):
            partition(2, 10, 10, strategy="cubic")

    def test_rank_out_of_range(self):
        with pytest.raises(ValueError):
            partition(2, 10, 10).get_rank_info(2)
