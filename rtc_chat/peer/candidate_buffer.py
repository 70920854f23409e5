"""Holding area for remote ICE candidates that arrive too early.

A candidate can only be added to a peer connection once a remote description
is set. Candidates that beat the SDP through the relay are parked here and
applied, in arrival order, right after the first remote description lands.
"""

from typing import Iterator, List

from rtc_chat.protocol import Candidate


class CandidateBuffer:
    """FIFO of pending candidates, flushed exactly once.

    No deduplication is done; duplicates are passed through verbatim.
    """

    def __init__(self):
        self._pending: List[Candidate] = []
        self._flushed = False

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(list(self._pending))

    @property
    def flushed(self) -> bool:
        return self._flushed

    def push(self, candidate: Candidate) -> None:
        """Queue a candidate.

        Raises:
            RuntimeError: If the buffer was already flushed; after that point
                candidates belong on the peer connection.
        """
        if self._flushed:
            raise RuntimeError("Candidate buffer already flushed")
        self._pending.append(candidate)

    def flush(self) -> List[Candidate]:
        """Drain the buffer.

        Returns:
            The queued candidates in arrival order. Subsequent calls return
            an empty list.
        """
        if self._flushed:
            return []
        drained, self._pending = self._pending, []
        self._flushed = True
        return drained
