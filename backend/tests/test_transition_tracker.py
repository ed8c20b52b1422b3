import pytest
from unittest.mock import Mock

from reelpipe.core.constants import VideoStatus
from reelpipe.services.transition_tracker import Observation, TransitionTracker

pytestmark = pytest.mark.unit


def obs(video_id, status, sequence, **kwargs):
    return Observation(video_id=video_id, status=VideoStatus(status), sequence=sequence, **kwargs)


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def on_ready():
    return Mock()


@pytest.fixture
def tracker(notifier, on_ready):
    return TransitionTracker(notifier, on_ready=on_ready)


class TestTransitionTracker:
    def test_first_batch_only_seeds(self, tracker, notifier):
        tracker.observe_batch([obs("a", "ready", 1), obs("b", "failed", 1), obs("c", "processing", 1)])

        notifier.success.assert_not_called()
        notifier.error.assert_not_called()
        assert tracker.last_status("b") == VideoStatus.FAILED

    def test_uploading_to_processing_is_silent(self, tracker, notifier):
        tracker.observe_batch([obs("a", "uploading", 1)])

        tracker.observe(obs("a", "processing", 2, progress=10))

        notifier.success.assert_not_called()
        notifier.error.assert_not_called()
        assert tracker.last_status("a") == VideoStatus.PROCESSING

    def test_processing_to_ready_notifies_once(self, tracker, notifier, on_ready):
        tracker.observe_batch([obs("a", "processing", 1)])

        tracker.observe(obs("a", "ready", 2, title="Teaser"))
        tracker.observe(obs("a", "ready", 3, title="Teaser"))

        notifier.success.assert_called_once_with("a", "Teaser is ready to watch")
        on_ready.assert_called_once_with("a")

    def test_processing_to_failed_carries_the_message(self, tracker, notifier):
        tracker.observe_batch([obs("a", "processing", 1)])

        tracker.observe(obs("a", "failed", 2, error_message="codec not supported"))
        tracker.observe(obs("a", "failed", 3, error_message="codec not supported"))

        notifier.error.assert_called_once()
        video_id, message = notifier.error.call_args.args
        assert video_id == "a"
        assert "codec not supported" in message

    def test_failed_without_message_uses_fallback(self, tracker, notifier):
        tracker.observe_batch([obs("a", "uploading", 1)])

        tracker.observe(obs("a", "failed", 2))

        notifier.error.assert_called_once_with("a", "Video processing failed")

    def test_ids_first_seen_later_are_seeded(self, tracker, notifier):
        tracker.observe_batch([])

        tracker.observe(obs("late", "ready", 5))

        notifier.success.assert_not_called()
        assert tracker.last_status("late") == VideoStatus.READY

    def test_out_of_order_response_is_ignored(self, tracker, notifier):
        tracker.observe_batch([obs("a", "processing", 1)])

        # request 3 answered before request 2
        assert tracker.observe(obs("a", "ready", 3)) is True
        assert tracker.observe(obs("a", "processing", 2)) is False

        assert tracker.last_status("a") == VideoStatus.READY
        notifier.success.assert_called_once()

    def test_backwards_and_cross_terminal_moves_are_ignored(self, tracker, notifier):
        tracker.observe_batch([obs("a", "processing", 1), obs("b", "failed", 1)])

        assert tracker.observe(obs("a", "uploading", 2)) is False
        assert tracker.observe(obs("b", "ready", 2)) is False

        assert tracker.last_status("a") == VideoStatus.PROCESSING
        assert tracker.last_status("b") == VideoStatus.FAILED
        notifier.success.assert_not_called()

    def test_ordering_is_per_id(self, tracker, notifier):
        tracker.observe_batch([obs("a", "processing", 1), obs("b", "processing", 1)])

        tracker.observe(obs("a", "processing", 10))
        tracker.observe(obs("b", "ready", 4))

        notifier.success.assert_called_once()

    def test_failing_notifier_is_contained(self, on_ready):
        notifier = Mock()
        notifier.success.side_effect = RuntimeError("toast service down")
        tracker = TransitionTracker(notifier, on_ready=on_ready)
        tracker.observe_batch([obs("a", "processing", 1)])

        assert tracker.observe(obs("a", "ready", 2)) is True

        assert tracker.last_status("a") == VideoStatus.READY
        on_ready.assert_called_once_with("a")

    def test_clear_starts_a_fresh_load(self, tracker, notifier):
        tracker.observe_batch([obs("a", "processing", 1)])
        tracker.clear()

        tracker.observe_batch([obs("a", "ready", 2)])

        notifier.success.assert_not_called()
        assert "a" in tracker
