"""Unit tests for RecorderController."""

import asyncio
import re
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock

import pytest
from pubsub import pub

from voicerecorder.services.publisher import RECORDER_STATE_TOPIC, RECORDER_SAVED_TOPIC
from voicerecorder.services.recorder_controller import RecorderController
from voicerecorder.storage.file_manager import FileManager


FROZEN_NOW = datetime(2024, 1, 1, 12, 0, 0)


def make_controller(config, capture_factory, clock, root=None):
    file_manager = FileManager(root=root or config.get_storage_root())
    return RecorderController(
        config,
        file_manager=file_manager,
        capture_factory=capture_factory,
        clock=clock,
        sleep=clock.sleep,
        now=lambda: FROZEN_NOW,
    )


@pytest.mark.unit
class TestRecorderController:
    """Test cases for RecorderController."""

    def test_initial_state(self, test_config, capture_factory, fake_clock):
        """Controller starts idle with a zero timer."""
        controller = make_controller(test_config, capture_factory, fake_clock)

        assert controller.is_recording is False
        assert controller.elapsed_millis == 0
        assert controller.formatted_timer == "00:00"
        assert controller.input_level == 0.0
        assert capture_factory.handles == []

    def test_recording_scenario(self, test_config, capture_factory, fake_clock):
        """Start at t=0, sample at 100ms, stop at 350ms."""
        controller = make_controller(test_config, capture_factory, fake_clock)

        async def scenario():
            assert controller.toggle_recording() is None
            session = controller.session
            assert session.is_active is True
            assert session.output_file_path.endswith("240101_120000.m4a")
            assert session.start_timestamp == FROZEN_NOW

            await fake_clock.advance(0.1)
            assert controller.elapsed_millis == pytest.approx(100, abs=10)

            await fake_clock.advance(0.25)
            completed = controller.toggle_recording()
            return session, completed

        session, completed = asyncio.run(scenario())

        assert controller.is_recording is False
        assert controller.elapsed_millis == 0
        assert completed.is_active is False
        assert completed.output_file_path == session.output_file_path
        assert completed.elapsed_millis == pytest.approx(300, abs=10)
        assert Path(session.output_file_path).exists()

    def test_capture_handle_configuration(self, test_config, capture_factory, fake_clock):
        """Capture handle is configured for microphone, MPEG-4 and AAC."""
        controller = make_controller(test_config, capture_factory, fake_clock)

        async def scenario():
            controller.toggle_recording(context=3)
            controller.toggle_recording()

        asyncio.run(scenario())

        handle = capture_factory.handles[0]
        assert handle.settings["audio_source"] == "mic"
        assert handle.settings["output_format"] == "mpeg4"
        assert handle.settings["audio_encoder"] == "aac"
        assert handle.settings["input_device_index"] == 3
        assert handle.is_released is True

    def test_toggle_alternates_with_single_handle(self, test_config, capture_factory, fake_clock):
        """Toggle sequences alternate and never hold two capture handles."""
        controller = make_controller(test_config, capture_factory, fake_clock)
        flags = []

        async def scenario():
            for _ in range(6):
                controller.toggle_recording()
                flags.append(controller.is_recording)
                assert len(capture_factory.live_handles) <= 1
                await fake_clock.advance(0.1)

        asyncio.run(scenario())

        assert flags == [True, False, True, False, True, False]
        assert len(capture_factory.handles) == 3
        assert capture_factory.live_handles == []

    def test_elapsed_monotonic_then_reset(self, test_config, capture_factory, fake_clock):
        """Published elapsed values never decrease while active and end at 0."""
        controller = make_controller(test_config, capture_factory, fake_clock)
        states = []

        def on_state(state):
            states.append(state)

        pub.subscribe(on_state, RECORDER_STATE_TOPIC)

        async def scenario():
            controller.toggle_recording()
            for _ in range(5):
                await fake_clock.advance(0.1)
            controller.toggle_recording()

        asyncio.run(scenario())

        active = [s.elapsed_millis for s in states if s.is_active]
        assert active == sorted(active)
        assert active[-1] == pytest.approx(500, abs=10)
        assert states[-1].is_active is False
        assert states[-1].elapsed_millis == 0

    def test_timer_restarts_on_next_activation(self, test_config, capture_factory, fake_clock):
        """A second session starts counting from zero."""
        controller = make_controller(test_config, capture_factory, fake_clock)

        async def scenario():
            controller.toggle_recording()
            await fake_clock.advance(0.3)
            controller.toggle_recording()
            await fake_clock.advance(1.0)
            assert controller.elapsed_millis == 0

            controller.toggle_recording()
            await fake_clock.advance(0.2)
            elapsed = controller.elapsed_millis
            controller.toggle_recording()
            return elapsed

        elapsed = asyncio.run(scenario())
        assert elapsed == pytest.approx(200, abs=10)

    def test_no_ticks_after_stop(self, test_config, capture_factory, fake_clock):
        """Once stopped, the timer publishes nothing further."""
        controller = make_controller(test_config, capture_factory, fake_clock)
        states = []

        def on_state(state):
            states.append(state)

        async def scenario():
            controller.toggle_recording()
            await fake_clock.advance(0.2)
            controller.toggle_recording()
            pub.subscribe(on_state, RECORDER_STATE_TOPIC)
            await fake_clock.advance(1.0)

        asyncio.run(scenario())
        assert states == []

    def test_device_failure_keeps_idle(self, test_config, capture_factory, fake_clock, caplog):
        """Preparation failure is logged and the controller stays idle."""
        capture_factory.fail_prepare = True
        controller = make_controller(test_config, capture_factory, fake_clock)

        async def scenario():
            return controller.toggle_recording()

        result = asyncio.run(scenario())

        assert result is None
        assert controller.is_recording is False
        assert capture_factory.handles[0].is_released is True
        assert "can't be prepared" in caplog.text

    def test_directory_failure_refuses_recording(self, test_config, capture_factory, fake_clock, temp_data_dir, caplog):
        """An uncreatable directory refuses the recording and opens no handle."""
        blocker = Path(temp_data_dir) / "not_a_dir"
        blocker.write_text("file in the way")
        controller = make_controller(test_config, capture_factory, fake_clock, root=str(blocker))

        async def scenario():
            controller.toggle_recording()

        asyncio.run(scenario())

        assert controller.is_recording is False
        assert capture_factory.handles == []
        assert "recording refused" in caplog.text

    def test_output_path_from_file_manager(self, test_config, capture_factory, fake_clock):
        """The capture target comes from the file manager's naming for the start time."""
        file_manager = Mock(wraps=FileManager(root=test_config.get_storage_root()))
        controller = RecorderController(
            test_config,
            file_manager=file_manager,
            capture_factory=capture_factory,
            clock=fake_clock,
            sleep=fake_clock.sleep,
            now=lambda: FROZEN_NOW,
        )

        async def scenario():
            controller.toggle_recording()
            path = controller.session.output_file_path
            controller.toggle_recording()
            return path

        path = asyncio.run(scenario())

        file_manager.new_recording_path.assert_called_once_with(FROZEN_NOW)
        assert capture_factory.handles[0].output_file == path
        assert Path(path).name == "240101_120000.m4a"

    def test_completed_recording_published_as_voice(self, test_config, capture_factory, fake_clock):
        """Stopping publishes the finished file on the saved topic."""
        controller = make_controller(test_config, capture_factory, fake_clock)
        voices = []

        def on_saved(voice):
            voices.append(voice)

        pub.subscribe(on_saved, RECORDER_SAVED_TOPIC)

        async def scenario():
            controller.toggle_recording()
            await fake_clock.advance(0.1)
            return controller.toggle_recording()

        completed = asyncio.run(scenario())

        assert len(voices) == 1
        assert voices[0].title == "240101_120000"
        assert voices[0].path == completed.output_file_path
        assert re.fullmatch(r"\d{6}_\d{6}\.m4a", Path(voices[0].path).name)

    def test_input_level_while_recording(self, test_config, capture_factory, fake_clock):
        controller = make_controller(test_config, capture_factory, fake_clock)

        async def scenario():
            controller.toggle_recording()
            level = controller.input_level
            controller.toggle_recording()
            return level

        assert asyncio.run(scenario()) == 0.25
        assert controller.input_level == 0.0

    def test_shutdown_stops_active_session(self, test_config, capture_factory, fake_clock):
        controller = make_controller(test_config, capture_factory, fake_clock)

        async def scenario():
            controller.toggle_recording()
            await fake_clock.advance(0.1)
            controller.shutdown()

        asyncio.run(scenario())

        assert controller.is_recording is False
        assert capture_factory.handles[0].is_released is True
