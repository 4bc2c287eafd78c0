"""
FFmpeg Runner

Executes one ffmpeg/ffprobe invocation at a time:
- stdin closed, stdout/stderr drained on reader threads
- per-call timeout with terminate -> grace period -> kill
- structured errors carrying a bounded stderr tail
- read-only probes for duration, dimensions and audio presence
"""

import shlex
import subprocess
import threading
from pathlib import Path
from typing import IO, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from ..utils.logger import LoggerMixin

STDERR_TAIL_LINES = 20

Command = Sequence[Union[str, Path, int, float]]


class FfmpegError(Exception):
    """Base class for every external-tool failure"""


class ExternalToolError(FfmpegError):
    """The tool exited non-zero, timed out or could not be started"""

    def __init__(self, label: str, exit_status: Union[int, str], stderr_tail: str = ""):
        self.label = label
        self.exit_status = exit_status
        self.stderr_tail = stderr_tail
        super().__init__(f"{label} failed (exit {exit_status}):\n{stderr_tail}")


class ToolTimeoutError(ExternalToolError):
    """The tool did not finish within its timeout and was stopped"""

    def __init__(self, label: str, timeout: float, stderr_tail: str = ""):
        self.timeout = timeout
        super().__init__(label, "timeout", stderr_tail)


class ProbeError(FfmpegError):
    """A probe returned nothing usable"""


class ToolOutput(NamedTuple):
    stdout: str
    stderr: str


def stderr_tail(stderr_text: str, max_lines: int = STDERR_TAIL_LINES) -> str:
    lines = (stderr_text or "").strip().splitlines()
    return "\n".join(lines[-max_lines:])


def _drain(stream: IO[bytes], sink: List[bytes]) -> None:
    try:
        for chunk in iter(lambda: stream.read(8192), b""):
            sink.append(chunk)
    finally:
        stream.close()


class FfmpegRunner(LoggerMixin):
    """Runs ffmpeg and ffprobe as child processes"""

    def __init__(self, config=None):
        render = getattr(config, 'render', None)
        self.ffmpeg_bin = getattr(render, 'ffmpeg_bin', 'ffmpeg')
        self.ffprobe_bin = getattr(render, 'ffprobe_bin', 'ffprobe')
        self.transcode_timeout = float(getattr(render, 'transcode_timeout', 300.0))
        self.probe_timeout = float(getattr(render, 'probe_timeout', 30.0))
        self.kill_grace_seconds = float(getattr(render, 'kill_grace_seconds', 2.0))

    def run(self, command: Command, label: str = "ffmpeg",
            timeout: Optional[float] = None) -> ToolOutput:
        """Run one command to completion; raise ExternalToolError on failure"""
        argv = [str(part) for part in command]
        timeout = self.transcode_timeout if timeout is None else timeout
        self.logger.info(f"[FFmpeg] {label}: {' '.join(shlex.quote(a) for a in argv)}")

        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalToolError(label, "not started", str(e)) from e

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        readers = [
            threading.Thread(target=_drain, args=(process.stdout, stdout_chunks), daemon=True),
            threading.Thread(target=_drain, args=(process.stderr, stderr_chunks), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._stop(process)
            for reader in readers:
                reader.join(timeout=self.kill_grace_seconds)
            stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")
            self.logger.error(f"[FFmpeg] {label} timed out after {timeout}s")
            raise ToolTimeoutError(label, timeout, stderr_tail(stderr))

        for reader in readers:
            reader.join()

        stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace")
        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")

        if process.returncode != 0:
            self.logger.error(f"[FFmpeg] {label} exited with {process.returncode}")
            raise ExternalToolError(label, process.returncode, stderr_tail(stderr))

        return ToolOutput(stdout=stdout, stderr=stderr)

    def _stop(self, process: subprocess.Popen) -> None:
        """SIGTERM first, SIGKILL if the process ignores it"""
        process.terminate()
        try:
            process.wait(timeout=self.kill_grace_seconds)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def probe_duration(self, file_path: Union[str, Path]) -> float:
        """Duration of an audio or video file in seconds"""
        cmd = [self.ffprobe_bin, "-v", "quiet", "-show_entries", "format=duration",
               "-of", "csv=p=0", str(file_path)]
        try:
            result = self.run(cmd, label="probe_duration", timeout=self.probe_timeout)
        except ExternalToolError as e:
            raise ProbeError(f"Could not determine duration for {file_path}") from e

        try:
            duration = float(result.stdout.strip().splitlines()[0])
        except (IndexError, ValueError):
            duration = 0.0

        if duration <= 0:
            raise ProbeError(f"Could not determine duration for {file_path}")
        return duration

    def probe_dimensions(self, file_path: Union[str, Path]) -> Tuple[int, int]:
        """(width, height) of the first video stream"""
        cmd = [self.ffprobe_bin, "-v", "quiet", "-select_streams", "v:0",
               "-show_entries", "stream=width,height", "-of", "csv=p=0", str(file_path)]
        try:
            result = self.run(cmd, label="probe_dimensions", timeout=self.probe_timeout)
            width, height = result.stdout.strip().splitlines()[0].split(",")[:2]
            return int(width), int(height)
        except (ExternalToolError, IndexError, ValueError) as e:
            raise ProbeError(f"Could not determine dimensions for {file_path}") from e

    def has_audio_stream(self, file_path: Union[str, Path], label: str = "check_audio") -> bool:
        cmd = [self.ffprobe_bin, "-v", "quiet", "-select_streams", "a",
               "-show_entries", "stream=codec_type", "-of", "csv=p=0", str(file_path)]
        result = self.run(cmd, label=label, timeout=self.probe_timeout)
        return bool(result.stdout.strip())

    def check_available(self) -> Dict[str, bool]:
        """Check that ffmpeg and ffprobe can be executed"""
        status = {}
        for name, binary in (("ffmpeg", self.ffmpeg_bin), ("ffprobe", self.ffprobe_bin)):
            try:
                self.run([binary, "-version"], label=f"{name}_version", timeout=10)
                status[name] = True
            except ExternalToolError as e:
                self.logger.error(f"{name} not available: {e}")
                status[name] = False
        return status
