"""Microphone capture handle that writes AAC audio into an MPEG-4 file."""

import logging
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional, List

import numpy as np
import pyaudio

from ..exceptions import DeviceUnavailableError
from ..models.audio import AudioStats


logger = logging.getLogger(__name__)

AUDIO_SOURCES = ("mic",)
OUTPUT_FORMATS = {"mpeg4": "mp4"}
AUDIO_ENCODERS = {"aac": "aac"}


class AudioCapture:
    """Single capture handle: microphone in, encoded file out.

    The handle follows a prepare/start/stop/release lifecycle. PCM frames
    arrive on the audio driver's callback thread and are piped straight into
    an ffmpeg encoder process, which owns the container and codec.
    """

    def __init__(
        self,
        output_file: str,
        sample_rate: int = 44100,
        chunk_size: int = 1024,
        channels: int = 1,
        input_device_index: Optional[int] = None,
        audio_source: str = "mic",
        output_format: str = "mpeg4",
        audio_encoder: str = "aac",
        format: int = pyaudio.paInt16,
    ):
        """Initialize the capture handle.

        Args:
            output_file: Path of the file the encoder writes
            sample_rate: Capture sample rate in Hz
            chunk_size: Frames delivered per driver callback
            channels: Number of input channels
            input_device_index: PyAudio input device, None for the default
            audio_source: Capture source (only "mic" is supported)
            output_format: Container format (only "mpeg4" is supported)
            audio_encoder: Audio codec (only "aac" is supported)
            format: PyAudio sample format (16-bit signed int)
        """
        self.output_file = str(output_file)
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.input_device_index = input_device_index
        self.audio_source = audio_source
        self.output_format = output_format
        self.audio_encoder = audio_encoder
        self.format = format

        self.is_prepared = False
        self.is_recording = False
        self.is_released = False

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.peak_level = 0.0

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None
        self._encoder: Optional[subprocess.Popen] = None

    def _encoder_command(self) -> List[str]:
        return [
            "ffmpeg",
            "-y",
            "-loglevel",
            "error",
            "-f",
            "s16le",
            "-ar",
            str(self.sample_rate),
            "-ac",
            str(self.channels),
            "-i",
            "-",
            "-c:a",
            AUDIO_ENCODERS[self.audio_encoder],
            "-f",
            OUTPUT_FORMATS[self.output_format],
            self.output_file,
        ]

    def prepare(self) -> None:
        """Acquire the input stream, then the encoder.

        The stream is opened stopped, so no audio reaches the encoder before
        start(). On failure everything is released and no output file is left.

        Raises:
            DeviceUnavailableError: If the configuration is unsupported or
                either resource cannot be acquired
        """
        if self.is_released:
            raise DeviceUnavailableError("Capture handle already released")
        if self.is_prepared:
            return

        if self.audio_source not in AUDIO_SOURCES:
            raise DeviceUnavailableError(f"Unsupported audio source: {self.audio_source}")
        if self.output_format not in OUTPUT_FORMATS:
            raise DeviceUnavailableError(f"Unsupported output format: {self.output_format}")
        if self.audio_encoder not in AUDIO_ENCODERS:
            raise DeviceUnavailableError(f"Unsupported audio encoder: {self.audio_encoder}")

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.input_device_index,
                frames_per_buffer=self.chunk_size,
                stream_callback=self._on_audio,
                start=False,
            )
        except (OSError, ValueError) as exc:
            self._abandon()
            raise DeviceUnavailableError(f"Microphone can't be prepared: {exc}") from exc

        try:
            self._encoder = subprocess.Popen(
                self._encoder_command(),
                stdin=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError as exc:
            self._abandon()
            raise DeviceUnavailableError("ffmpeg is required for recording but was not found") from exc
        except OSError as exc:
            self._abandon()
            raise DeviceUnavailableError(f"Encoder can't be started: {exc}") from exc

        self.is_prepared = True
        logger.info(f"Capture prepared: {self.sample_rate}Hz, {self.channels}ch -> {self.output_file}")

    def _abandon(self) -> None:
        """Release after a failed prepare and drop any partial output."""
        self.release()
        output = Path(self.output_file)
        if output.exists():
            try:
                output.unlink()
                logger.debug(f"Removed partial output: {output}")
            except OSError as e:
                logger.warning(f"Could not remove partial output {output}: {e}")

    def start(self) -> None:
        """Start capturing into the output file."""
        if not self.is_prepared or self.stream is None:
            raise DeviceUnavailableError("Capture handle not prepared")
        if self.is_recording:
            logger.warning("Recording already in progress")
            return

        try:
            self.stream.start_stream()
        except OSError as exc:
            raise DeviceUnavailableError(f"Microphone can't be started: {exc}") from exc

        self.start_time = datetime.now()
        self.total_chunks = 0
        self.is_recording = True
        logger.info("Audio capture started")

    def _on_audio(self, in_data, frame_count, time_info, status):
        """Driver callback: forward PCM to the encoder and track the peak level."""
        self.total_chunks += 1

        samples = np.frombuffer(in_data, dtype=np.int16)
        if samples.size:
            self.peak_level = float(np.abs(samples.astype(np.int32)).max()) / 32768.0

        try:
            self._encoder.stdin.write(in_data)
        except (BrokenPipeError, ValueError, AttributeError) as e:
            logger.error(f"Encoder pipe closed during capture: {e}")
            return (None, pyaudio.paAbort)

        return (None, pyaudio.paContinue)

    def stop(self) -> None:
        """Stop capturing and let the encoder finalize the file."""
        if not self.is_recording:
            logger.warning("No recording in progress")
            return

        try:
            self.stream.stop_stream()
        except OSError as e:
            logger.error(f"Error stopping input stream: {e}")
        self.is_recording = False
        self._finish_encoder()
        logger.info(f"Audio capture stopped. Total chunks: {self.total_chunks}")

    def _finish_encoder(self) -> None:
        if self._encoder is None:
            return
        try:
            if self._encoder.stdin is not None:
                self._encoder.stdin.close()
            self._encoder.wait(timeout=5)
        except (subprocess.TimeoutExpired, BrokenPipeError, OSError) as e:
            logger.warning(f"Encoder did not finish cleanly, terminating: {e}")
            self._encoder.terminate()
        self._encoder = None

    def release(self) -> None:
        """Free the input stream, PortAudio and the encoder. Safe to call twice."""
        if self.is_released:
            return
        if self.is_recording:
            self.stop()

        if self.stream is not None:
            self.stream.close()
            self.stream = None
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
        self._finish_encoder()

        self.is_prepared = False
        self.is_released = True
        logger.debug("Capture handle released")

    @property
    def output_exists(self) -> bool:
        return Path(self.output_file).exists()

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            peak_level=self.peak_level,
        )
