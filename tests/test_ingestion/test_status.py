"""Tests for the record status transition table."""

import pytest

from agent_pulse.ingestion.schemas import RecordStatus
from agent_pulse.ingestion.status import (
    InvalidStatusTransitionError,
    is_allowed,
    sources_for,
    validate_transition,
)

S = RecordStatus


class TestTransitions:
    """Tests for allowed and rejected status edges."""

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (S.PENDING_SENTIMENT, S.PROCESSING),
            (S.PENDING_SUMMARY, S.PROCESSING),
            (S.PROCESSING, S.PROCESSED),
            (S.PROCESSING, S.SUMMARIZED),
            (S.PROCESSING, S.FAILED),
            (S.PROCESSING, S.PENDING_SENTIMENT),
            (S.FAILED, S.PENDING_SUMMARY),
        ],
    )
    def test_allowed(self, from_status, to_status):
        assert is_allowed(from_status, to_status)
        validate_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (S.PROCESSED, S.PENDING_SENTIMENT),
            (S.PENDING_SENTIMENT, S.PROCESSED),
            (S.SUMMARIZED, S.PROCESSING),
            (S.FAILED, S.PROCESSING),
        ],
    )
    def test_rejected(self, from_status, to_status):
        assert not is_allowed(from_status, to_status)
        with pytest.raises(InvalidStatusTransitionError):
            validate_transition(from_status, to_status)

    def test_accepts_plain_strings(self):
        assert is_allowed("processing", "failed")

    def test_sources_for_processing(self):
        assert set(sources_for(S.PROCESSING)) == {S.PENDING_SENTIMENT, S.PENDING_SUMMARY}
