"""
Receiver for ffmpeg's ``-progress`` output.

ffmpeg is pointed at ``tcp://127.0.0.1:<port>`` and streams blocks of
``key=value`` lines, each block terminated by ``progress=continue`` (or
``progress=end`` for the last one). The listener accepts a single connection
per session and keeps the latest values in a ProgressReport.
"""

import logging
import socket
import time
from dataclasses import asdict, dataclass, replace
from typing import Callable, Optional

from reelpipe.errors import ResourceError

logger = logging.getLogger(__name__)

# How often the accept loop wakes up to check whether close() was called
ACCEPT_POLL_INTERVAL = 0.25


@dataclass
class ProgressReport:
    bitrate: str = ""
    frame: int = 0
    fps: float = 0.0
    out_time: str = ""
    speed: str = ""
    total_size: int = 0

    def update(self, key: str, value: str) -> None:
        """Apply one status record. Unknown keys and bad numbers are ignored."""
        try:
            if key == "bitrate":
                self.bitrate = value
            elif key == "frame":
                self.frame = int(value)
            elif key == "fps":
                self.fps = float(value)
            elif key == "out_time":
                self.out_time = value
            elif key == "speed":
                self.speed = value
            elif key == "total_size":
                self.total_size = int(value)
        except ValueError:
            logger.debug(f"Ignoring unparsable progress value {key}={value!r}")

    def percent(self, total_frames: int) -> Optional[float]:
        if not total_frames or total_frames <= 0:
            return None
        return max(0.0, min(100.0, self.frame / total_frames * 100))

    def to_dict(self):
        return asdict(self)


class ProgressListener:
    """Local TCP endpoint that one ffmpeg process streams its progress to.

    Usage::

        listener = ProgressListener()
        address = listener.begin()       # pass to ffmpeg as -progress <address>
        thread = Thread(target=listener.run, args=(total_frames,))
        ...
        listener.close()
    """

    def __init__(self, on_report: Optional[Callable[[ProgressReport, Optional[float]], None]] = None):
        self.on_report = on_report
        self._sock: Optional[socket.socket] = None
        self._closed = False

    def begin(self) -> str:
        """Start listening on an ephemeral loopback port and return its address."""
        if self._sock is None:
            try:
                sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                sock.bind(("127.0.0.1", 0))
                sock.listen(1)
            except OSError as e:
                raise ResourceError(f"could not open progress listener: {e}") from e
            sock.settimeout(ACCEPT_POLL_INTERVAL)
            self._sock = sock
            self._closed = False
        host, port = self._sock.getsockname()[:2]
        return f"tcp://{host}:{port}"

    def close(self) -> None:
        """Release the listening socket. Safe to call more than once."""
        self._closed = True
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except OSError as e:
                logger.debug(f"Error closing progress listener: {e}")

    def _accept(self) -> Optional[socket.socket]:
        while not self._closed:
            sock = self._sock
            if sock is None:
                return None
            try:
                conn, _ = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._closed:
                    logger.error(f"Error while accepting ffmpeg connection: {e}")
                return None
            conn.settimeout(None)
            return conn
        return None

    def _emit(self, report: ProgressReport, total_frames: int) -> None:
        percent = report.percent(total_frames)
        if percent is not None:
            logger.info(
                f"ffmpeg progress: {percent:.1f}% frame={report.frame} fps={report.fps:.2f} "
                f"out_time={report.out_time} speed={report.speed} "
                f"bitrate={report.bitrate} total_size={report.total_size}"
            )
        else:
            logger.info(
                f"ffmpeg progress: frame={report.frame} fps={report.fps:.2f} "
                f"out_time={report.out_time} speed={report.speed} "
                f"bitrate={report.bitrate} total_size={report.total_size}"
            )
        if self.on_report:
            try:
                self.on_report(replace(report), percent)
            except Exception as e:
                logger.error(f"Progress callback error: {e}")

    def run(self, total_frames: int = 0, report_interval: float = 1.0) -> ProgressReport:
        """
        Accept one connection and consume status lines until the stream ends.

        Args:
            total_frames: Frame count of the input, 0 if unknown
            report_interval: Minimum seconds between emitted reports

        Returns:
            A copy of the last report seen
        """
        report = ProgressReport()
        if self._sock is None:
            if self._closed:
                return report
            raise ResourceError("progress listener not started, call begin() first")

        conn = self._accept()

        # One connection per session; begin() must be called again for the next one
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()

        if conn is None:
            return replace(report)

        last_emit = time.monotonic()
        try:
            with conn, conn.makefile("r", encoding="utf-8", errors="replace") as stream:
                for line in stream:
                    if "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip()

                    if key != "progress":
                        report.update(key, value)
                        continue

                    if value == "end":
                        self._emit(report, total_frames)
                        break

                    now = time.monotonic()
                    if now - last_emit >= report_interval:
                        self._emit(report, total_frames)
                        last_emit = now
        except OSError as e:
            logger.error(f"Error while reading ffmpeg progress: {e}")

        return replace(report)
