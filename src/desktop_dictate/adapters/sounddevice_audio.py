import asyncio
import concurrent.futures
import logging
import os
import threading

import janus
import numpy as np
import sounddevice as sd

from desktop_dictate.domain.errors import AudioConfigurationError, AudioDeviceError
from desktop_dictate.domain.state import StopSignal
from desktop_dictate.ports.audio import FrameSource

logger = logging.getLogger(__name__)

NEGOTIATION_ORDER = ("int16", "float32")
FULL_QUEUE_POLICIES = ("block", "drop-newest")
QUEUE_PUT_TIMEOUT_SECONDS = 0.1
STOP_POLL_SECONDS = 0.1
INT16_SCALE = 32767
UINT16_MIDPOINT = 32768


def to_pcm16(samples: np.ndarray) -> bytes:
    if samples.ndim > 1:
        samples = samples[:, 0]
    if np.issubdtype(samples.dtype, np.floating):
        scaled = np.clip(samples * INT16_SCALE, -32768, 32767)
        pcm = scaled.astype(np.int16)
    elif samples.dtype == np.uint16:
        pcm = (samples.astype(np.int32) - UINT16_MIDPOINT).astype(np.int16)
    elif samples.dtype == np.int16:
        pcm = samples
    else:
        raise AudioConfigurationError(f"Unsupported sample format: {samples.dtype}")
    return pcm.astype("<i2", copy=False).tobytes()


class SounddeviceAudioSource:
    """Captures one input device into a bounded queue of PCM s16le frames.

    The PortAudio stream is built, started and closed on a dedicated capture
    thread. The stream callback pushes frames into a janus queue whose async
    side the recognition session reads. When the capture thread exits it
    publishes ``None`` so the reader sees the producer as closed.
    """

    def __init__(
        self,
        device: str | int | None = None,
        sample_rate: int = 16000,
        channels: int = 1,
        frame_duration_ms: int = 100,
        queue_size: int = 100,
        full_queue_policy: str = "block",
    ) -> None:
        if full_queue_policy not in FULL_QUEUE_POLICIES:
            raise ValueError(f"Unknown full queue policy: {full_queue_policy}")
        self._device = device
        self._sample_rate = sample_rate
        self._channels = channels
        self._frame_size = int(sample_rate * frame_duration_ms / 1000)
        self._queue_size = queue_size
        self._full_queue_policy = full_queue_policy
        self._queue: janus.Queue[bytes | None] | None = None
        self._thread: threading.Thread | None = None
        self._capture_error: AudioDeviceError | None = None
        self._dtype: str | None = None
        self._dropped_frames = 0

    @property
    def frames(self) -> FrameSource:
        if self._queue is None:
            raise RuntimeError("Audio source is not started")
        return self._queue.async_q

    @property
    def frame_size(self) -> int:
        return self._frame_size

    @property
    def dtype(self) -> str | None:
        return self._dtype

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    async def start(self, stop_signal: StopSignal) -> None:
        device = self._resolve_device()
        self._dtype = self._negotiate_dtype(device)
        self._capture_error = None
        self._dropped_frames = 0
        self._queue = janus.Queue(maxsize=self._queue_size)

        ready: concurrent.futures.Future[None] = concurrent.futures.Future()
        self._thread = threading.Thread(
            target=self._capture_loop,
            args=(device, self._dtype, stop_signal, ready),
            name="audio-capture",
            daemon=True,
        )
        self._thread.start()
        try:
            await asyncio.wrap_future(ready)
        except AudioDeviceError:
            await self._release()
            raise
        logger.info(
            "Audio capture started (device=%s, rate=%d, dtype=%s, frame=%d samples)",
            device, self._sample_rate, self._dtype, self._frame_size,
        )

    async def join(self) -> None:
        await self._release()
        if self._capture_error is not None:
            error, self._capture_error = self._capture_error, None
            raise error

    async def _release(self) -> None:
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join)
            self._thread = None
        if self._queue is not None:
            self._queue.close()
            await self._queue.wait_closed()
            self._queue = None

    def _capture_loop(
        self,
        device: str | int | None,
        dtype: str,
        stop_signal: StopSignal,
        ready: concurrent.futures.Future,
    ) -> None:
        sync_q = self._queue.sync_q
        try:
            stream = sd.InputStream(
                device=device,
                samplerate=self._sample_rate,
                channels=self._channels,
                dtype=dtype,
                blocksize=self._frame_size,
                callback=self._make_callback(sync_q, stop_signal),
            )
        except (sd.PortAudioError, ValueError) as exc:
            ready.set_exception(AudioDeviceError(f"Failed to build audio stream: {exc}"))
            return
        try:
            stream.start()
        except sd.PortAudioError as exc:
            stream.close(ignore_errors=True)
            ready.set_exception(AudioDeviceError(f"Failed to start audio stream: {exc}"))
            return
        ready.set_result(None)

        try:
            while not stop_signal.wait(STOP_POLL_SECONDS):
                if not stream.active:
                    self._capture_error = AudioDeviceError("Audio stream stopped unexpectedly")
                    logger.error("%s", self._capture_error)
                    break
        finally:
            stream.stop(ignore_errors=True)
            stream.close(ignore_errors=True)
            self._publish_end(sync_q, stop_signal)
            if self._dropped_frames:
                logger.warning("Dropped %d frames on a full queue", self._dropped_frames)
            logger.info("Audio capture stopped")

    def _make_callback(self, sync_q: janus.SyncQueue, stop_signal: StopSignal):
        def audio_callback(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.warning("Audio capture status: %s", status)
            if stop_signal.is_set():
                return
            pcm_bytes = to_pcm16(indata)
            if pcm_bytes:
                self._push(sync_q, pcm_bytes, stop_signal)

        return audio_callback

    def _push(self, sync_q: janus.SyncQueue, frame: bytes, stop_signal: StopSignal) -> None:
        if self._full_queue_policy == "drop-newest":
            try:
                sync_q.put_nowait(frame)
            except janus.SyncQueueFull:
                self._dropped_frames += 1
                logger.warning("Frame queue full, dropped newest frame")
            return

        stalled = False
        while not stop_signal.is_set():
            try:
                sync_q.put(frame, timeout=QUEUE_PUT_TIMEOUT_SECONDS)
                return
            except janus.SyncQueueFull:
                if not stalled:
                    stalled = True
                    logger.warning(
                        "Frame queue full, audio callback blocked; hardware buffers may be dropped"
                    )

    def _publish_end(self, sync_q: janus.SyncQueue, stop_signal: StopSignal) -> None:
        while True:
            try:
                sync_q.put(None, timeout=QUEUE_PUT_TIMEOUT_SECONDS)
                return
            except janus.SyncQueueFull:
                if stop_signal.is_set():
                    return

    def _negotiate_dtype(self, device: str | int | None) -> str:
        try:
            info = sd.query_devices(device, kind="input")
        except (sd.PortAudioError, ValueError) as exc:
            raise AudioDeviceError(f"No input device available: {exc}") from exc
        logger.info("Using audio device: %s", info["name"])

        failures = []
        for dtype in NEGOTIATION_ORDER:
            try:
                sd.check_input_settings(
                    device=device,
                    channels=self._channels,
                    dtype=dtype,
                    samplerate=self._sample_rate,
                )
                return dtype
            except (sd.PortAudioError, ValueError) as exc:
                failures.append(f"{dtype}: {exc}")
        raise AudioConfigurationError(
            f"Device '{info['name']}' cannot capture {self._sample_rate} Hz with "
            f"{self._channels} channel(s) ({'; '.join(failures)})"
        )

    def _resolve_device(self) -> str | int | None:
        if self._device is None or self._device == "":
            return None
        if isinstance(self._device, int):
            return self._device
        try:
            return int(self._device)
        except ValueError:
            pass
        try:
            devices = sd.query_devices()
        except sd.PortAudioError as exc:
            raise AudioDeviceError(f"Cannot list audio devices: {exc}") from exc
        for i, dev in enumerate(devices):
            if self._device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                logger.info("Resolved device '%s' -> %d (%s)", self._device, i, dev["name"])
                return i
        os.environ["PIPEWIRE_NODE"] = self._device
        logger.info("Device '%s' not in PortAudio, set PIPEWIRE_NODE for PipeWire routing", self._device)
        return None
