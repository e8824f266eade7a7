"""Tests for communication contexts."""

from smc2.distributed.comm import SerialCommunicator, ThreadCommunicator


class TestSerialCommunicator:
    """Tests for the one-rank context."""

    def test_trivial_collectives(self):
        """Collectives over one rank return the local value."""
        comm = SerialCommunicator()

        assert comm.rank == 0
        assert comm.size == 1
        assert comm.is_root
        assert comm.all_gather(3) == [3]
        assert comm.all_reduce_sum(5) == 5


class TestThreadCommunicator:
    """Tests for the in-process group."""

    def test_all_gather_ordered_by_rank(self, run_ranks):
        """all_gather returns one value per rank, in rank order."""
        comms = ThreadCommunicator.create_group(3)

        results = run_ranks(comms, lambda c: c.all_gather(c.rank * 10))

        assert results == [[0, 10, 20]] * 3

    def test_all_reduce_sum(self, run_ranks):
        """all_reduce_sum adds every rank's value."""
        comms = ThreadCommunicator.create_group(4)

        results = run_ranks(comms, lambda c: c.all_reduce_sum(c.rank + 1))

        assert results == [10, 10, 10, 10]

    def test_repeated_collectives(self, run_ranks):
        """Back-to-back collectives do not mix up their values."""
        comms = ThreadCommunicator.create_group(3)

        def fn(c):
            return [c.all_reduce_sum(i * (c.rank + 1)) for i in range(20)]

        results = run_ranks(comms, fn)

        expected = [6 * i for i in range(20)]
        assert results == [expected] * 3

    def test_only_rank_zero_is_root(self):
        """Exactly one rank is the root."""
        comms = ThreadCommunicator.create_group(3)

        assert [c.is_root for c in comms] == [True, False, False]
        assert all(c.size == 3 for c in comms)

    def test_barrier(self, run_ranks):
        """No rank leaves the barrier before every rank has reached it."""
        comms = ThreadCommunicator.create_group(3)
        arrived = []

        def fn(c):
            arrived.append(c.rank)
            c.barrier()
            return len(arrived)

        results = run_ranks(comms, fn)

        assert results == [3, 3, 3]
