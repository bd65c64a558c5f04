"""Tests for event name classification."""

import pytest

from pyButtonPlatform.enums import PressKind
from pyButtonPlatform.events import ACCEPTED_EVENTS, classify_event


class TestAcceptedEvents:

    def test_six_literals(self):
        assert ACCEPTED_EVENTS == (
            "click",
            "double-click",
            "hold",
            "single-press",
            "double-press",
            "long-press",
        )

    def test_every_accepted_event_classifies(self):
        for event in ACCEPTED_EVENTS:
            assert isinstance(classify_event(event), PressKind)


class TestClassification:

    @pytest.mark.parametrize("event", ["click", "single-press"])
    def test_single(self, event):
        assert classify_event(event) is PressKind.SINGLE_PRESS
        assert classify_event(event) == 0

    @pytest.mark.parametrize("event", ["double-click", "double-press"])
    def test_double(self, event):
        assert classify_event(event) is PressKind.DOUBLE_PRESS
        assert classify_event(event) == 1

    @pytest.mark.parametrize("event", ["hold", "long-press"])
    def test_long(self, event):
        assert classify_event(event) is PressKind.LONG_PRESS
        assert classify_event(event) == 2

    def test_deterministic(self):
        for event in ACCEPTED_EVENTS:
            assert classify_event(event) == classify_event(event)


class TestUnknownEvents:

    @pytest.mark.parametrize(
        "event", ["nonsense", "", "CLICK", "triple-click", None, 0]
    )
    def test_unknown_raises(self, event):
        with pytest.raises(ValueError):
            classify_event(event)

    def test_error_lists_accepted_events(self):
        with pytest.raises(ValueError, match="long-press"):
            classify_event("nonsense")
