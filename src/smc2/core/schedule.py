"""Time schedules for filtering and SMC^2.

A schedule is the ordered, immutable sequence of time points a run moves
through. Each element records whether an observation arrives at that time,
the output index it is written under, and the index of the observation it
corresponds to.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

__all__ = [
    "ScheduleElement",
    "Schedule",
    "ScheduleIterator",
]


@dataclass(frozen=True)
class ScheduleElement:
    """One time point of a schedule.

    Attributes
    ----------
    time : float
        Time of the element.
    is_observed : bool
        Whether an observation arrives at this time.
    index_output : int
        Output index of the element (its position in the schedule).
    index_obs : int
        For an observed element, the row of the observation array it reads.
        For an unobserved element, the number of observations strictly
        before it, i.e. the row of the next observation.
    """

    time: float
    is_observed: bool
    index_output: int
    index_obs: int


class Schedule(Sequence[ScheduleElement]):
    """Immutable sequence of :class:`ScheduleElement`."""

    def __init__(self, elements: Sequence[ScheduleElement]):
        if len(elements) == 0:
            raise ValueError("A schedule needs at least one element")
        times = [e.time for e in elements]
        if any(b < a for a, b in zip(times, times[1:])):
            raise ValueError("Schedule times must be non-decreasing")
        self._elements = tuple(elements)

    @classmethod
    def from_times(
        cls,
        obs_times: Sequence[float],
        start_time: float | None = None,
        output_times: Sequence[float] = (),
    ) -> Schedule:
        """Build a schedule from observation times.

        Parameters
        ----------
        obs_times : sequence of float
            Times at which observations arrive, one per observation row.
        start_time : float, optional
            Initial time. Defaults to the first observation time, in which
            case the first element is observed.
        output_times : sequence of float
            Additional unobserved times to visit, e.g. for prediction.
        """
        obs_times = [float(t) for t in obs_times]
        if any(b <= a for a, b in zip(obs_times, obs_times[1:])):
            raise ValueError("Observation times must be strictly increasing")
        if start_time is None:
            if not obs_times:
                raise ValueError("start_time is required without observations")
            start_time = obs_times[0]

        observed = set(obs_times)
        times = sorted({float(start_time), *obs_times, *(float(t) for t in output_times)})
        times = [t for t in times if t >= start_time]

        elements = []
        n_obs = 0
        for index, t in enumerate(times):
            if t in observed:
                elements.append(ScheduleElement(t, True, index, n_obs))
                n_obs += 1
            else:
                elements.append(ScheduleElement(t, False, index, n_obs))
        return cls(elements)

    def __getitem__(self, index):
        return self._elements[index]

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self) -> Iterator[ScheduleElement]:
        return iter(self._elements)

    def __repr__(self) -> str:
        return f"Schedule({len(self)} elements, {self.n_obs} observed)"

    @property
    def n_obs(self) -> int:
        """Number of observed elements."""
        return sum(1 for e in self._elements if e.is_observed)

    def begin(self) -> ScheduleIterator:
        """Iterator positioned at the first element."""
        return ScheduleIterator(self, 0)

    def end(self) -> ScheduleIterator:
        """Terminal iterator, one past the last element."""
        return ScheduleIterator(self, len(self))


@dataclass(frozen=True)
class ScheduleIterator:
    """Forward cursor over a :class:`Schedule`.

    Supports ``it + n`` lookahead and equality against other iterators of
    the same schedule; ``it.element`` dereferences the cursor.
    """

    schedule: Schedule
    position: int

    def __add__(self, n: int) -> ScheduleIterator:
        return ScheduleIterator(self.schedule, self.position + n)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScheduleIterator):
            return NotImplemented
        return self.schedule is other.schedule and self.position == other.position

    def __hash__(self) -> int:
        return hash((id(self.schedule), self.position))

    @property
    def element(self) -> ScheduleElement:
        """Element under the cursor."""
        if not 0 <= self.position < len(self.schedule):
            raise IndexError("Cannot dereference a terminal schedule iterator")
        return self.schedule[self.position]

    @property
    def delta(self) -> float:
        """Time from the element under the cursor to the next one."""
        return self.schedule[self.position + 1].time - self.element.time
