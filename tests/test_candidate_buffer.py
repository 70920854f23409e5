"""Tests for CandidateBuffer."""

import pytest

from rtc_chat.peer.candidate_buffer import CandidateBuffer
from rtc_chat.protocol import Candidate


class TestCandidateBuffer:
    def test_starts_empty(self):
        buffer = CandidateBuffer()
        assert len(buffer) == 0
        assert not buffer.flushed

    def test_flush_preserves_arrival_order(self):
        buffer = CandidateBuffer()
        candidates = [Candidate(f"candidate:{i}", "0", 0) for i in (3, 1, 2)]
        for candidate in candidates:
            buffer.push(candidate)
        assert buffer.flush() == candidates

    def test_duplicates_are_kept(self):
        buffer = CandidateBuffer()
        candidate = Candidate("candidate:1", "0", 0)
        buffer.push(candidate)
        buffer.push(candidate)
        assert buffer.flush() == [candidate, candidate]

    def test_flush_happens_once(self):
        buffer = CandidateBuffer()
        buffer.push(Candidate("candidate:1"))
        assert len(buffer.flush()) == 1
        assert buffer.flushed
        assert len(buffer) == 0
        assert buffer.flush() == []

    def test_push_after_flush_raises(self):
        buffer = CandidateBuffer()
        buffer.flush()
        with pytest.raises(RuntimeError, match="already flushed"):
            buffer.push(Candidate("candidate:1"))

    def test_iteration_does_not_drain(self):
        buffer = CandidateBuffer()
        buffer.push(Candidate("candidate:1"))
        assert [c.candidate for c in buffer] == ["candidate:1"]
        assert len(buffer) == 1
