"""Live progress display for concurrent provider scans."""

from __future__ import annotations

import logging
import sys
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, TextIO

import click

from squeaky.utils import bytes_to_human

log = logging.getLogger(__name__)

_SPINNER = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class ScanStatus(str, Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETE = "complete"
    ERROR = "error"


_ORDER = {ScanStatus.SCANNING: 0, ScanStatus.COMPLETE: 1, ScanStatus.ERROR: 2, ScanStatus.PENDING: 3}


@dataclass(slots=True)
class ScanState:
    """Status of one provider within a scan."""

    name: str
    status: ScanStatus = ScanStatus.PENDING
    size: int | None = None
    error: str | None = None
    started: float | None = None
    ended: float | None = None

    @property
    def duration_ms(self) -> float | None:
        if self.started is None or self.ended is None:
            return None
        return (self.ended - self.started) * 1000


@dataclass(frozen=True, slots=True)
class TrackerSummary:
    total: int
    complete: int
    errors: int
    total_size: int
    duration: float
    """Seconds between start() and stop() (or now, while running)."""


class ParallelProgressTracker:
    """Thread-safe status board for providers scanning in parallel.

    Scan workers call :meth:`update` (or the ``start_scanner`` /
    ``complete`` / ``fail`` shortcuts) from any thread. Between
    :meth:`start` and :meth:`stop` a ticker thread redraws the board every
    ``interval`` seconds. Redraws only happen when ``live`` is true, which
    defaults to whether the stream is a terminal; the final board is
    always written on stop.

    The tracker only observes: nothing it does feeds back into scan results.
    """

    def __init__(
        self,
        names: Iterable[str],
        *,
        stream: TextIO | None = None,
        interval: float = 0.1,
        live: bool | None = None,
        use_colors: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._states: dict[str, ScanState] = {name: ScanState(name) for name in names}
        self._stream = stream if stream is not None else sys.stdout
        self._interval = interval
        is_tty = bool(getattr(self._stream, "isatty", lambda: False)())
        self._live = is_tty if live is None else live
        self._colors = is_tty if use_colors is None else use_colors
        self._clock = clock
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._ticker: threading.Thread | None = None
        self._started_at: float | None = None
        self._stopped_at: float | None = None
        self._frame = 0
        self._drawn_lines = 0
        self._name_width = max((len(n) for n in self._states), default=0)

    # ── lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin periodic rendering."""
        with self._lock:
            if self._ticker is not None:
                return
            self._started_at = self._clock()
            self._stop_event.clear()
            self._ticker = threading.Thread(target=self._tick, name="squeaky-progress", daemon=True)
        self._draw()
        self._ticker.start()

    def stop(self) -> TrackerSummary:
        """Stop rendering, draw the final board once, and return the summary."""
        with self._lock:
            ticker, self._ticker = self._ticker, None
            if self._started_at is None:
                self._started_at = self._clock()
            if self._stopped_at is None:
                self._stopped_at = self._clock()
        self._stop_event.set()
        if ticker is not None:
            ticker.join()
        self._draw(final=True)
        return self.get_summary()

    @property
    def running(self) -> bool:
        return self._ticker is not None

    def _tick(self) -> None:
        while not self._stop_event.wait(self._interval):
            with self._lock:
                self._frame += 1
            if self._live:
                self._draw()

    # ── updates ──────────────────────────────────────────────────────────

    def update(
        self,
        name: str,
        status: ScanStatus | str,
        *,
        size: int | None = None,
        error: str | None = None,
    ) -> None:
        """Record a status change for *name*. Unknown names are ignored."""
        status = ScanStatus(status)
        now = self._clock()
        with self._lock:
            state = self._states.get(name)
            if state is None:
                log.debug("Progress update for unknown scanner: %s", name)
                return
            state.status = status
            if size is not None:
                state.size = size
            if error:
                state.error = error
            if status is ScanStatus.SCANNING and state.started is None:
                state.started = now
            if status in (ScanStatus.COMPLETE, ScanStatus.ERROR) and state.ended is None:
                state.ended = now
                if state.started is None:
                    state.started = now

    def start_scanner(self, name: str) -> None:
        self.update(name, ScanStatus.SCANNING)

    def complete(self, name: str, size: int | None = None) -> None:
        self.update(name, ScanStatus.COMPLETE, size=size)

    def fail(self, name: str, error: str) -> None:
        self.update(name, ScanStatus.ERROR, error=error)

    # ── queries ──────────────────────────────────────────────────────────

    def snapshot(self) -> list[ScanState]:
        """Copies of every state, in registration order."""
        with self._lock:
            return [replace(s) for s in self._states.values()]

    def get_summary(self) -> TrackerSummary:
        with self._lock:
            states = list(self._states.values())
            start = self._started_at
            end = self._stopped_at if self._stopped_at is not None else self._clock()
            return TrackerSummary(
                total=len(states),
                complete=sum(1 for s in states if s.status is ScanStatus.COMPLETE),
                errors=sum(1 for s in states if s.status is ScanStatus.ERROR),
                total_size=sum(s.size or 0 for s in states),
                duration=(end - start) if start is not None else 0.0,
            )

    # ── rendering ────────────────────────────────────────────────────────

    def render(self, final: bool = False) -> list[str]:
        """Lines of the current board."""
        summary = self.get_summary()
        with self._lock:
            states = sorted(self._states.values(), key=lambda s: _ORDER[s.status])
            states = [replace(s) for s in states]
            frame = self._frame
        now = self._clock()

        active = sum(1 for s in states if s.status is ScanStatus.SCANNING)
        if final:
            header = self._style(
                f"✓ Scan complete: {summary.complete}/{summary.total} caches "
                f"({bytes_to_human(summary.total_size)}) in {summary.duration:.1f}s",
                fg="green",
            )
        else:
            header = self._style(
                f"Scanning {summary.total} cache types ({active} active, {summary.complete} complete, "
                f"{summary.errors} errors) [{summary.duration:.1f}s]",
                dim=True,
            )

        lines = [header]
        for state in states:
            if final and state.status is ScanStatus.PENDING:
                continue
            lines.append(self._format_line(state, frame, now))
        return lines

    def _format_line(self, state: ScanState, frame: int, now: float) -> str:
        name = state.name.ljust(self._name_width)
        extra = ""
        match state.status:
            case ScanStatus.PENDING:
                symbol = self._style("○", fg="bright_black")
                text = self._style("pending", fg="bright_black")
            case ScanStatus.SCANNING:
                symbol = self._style(_SPINNER[frame % len(_SPINNER)], fg="cyan")
                text = self._style("scanning", fg="cyan")
                if state.started is not None:
                    extra = self._style(f" ({now - state.started:.1f}s)", dim=True)
            case ScanStatus.COMPLETE:
                symbol = self._style("✓", fg="green")
                text = self._style("complete", fg="green")
                if state.size is not None:
                    extra = self._style(f" - {bytes_to_human(state.size)}", dim=True)
                if state.duration_ms is not None:
                    extra += self._style(f" [{state.duration_ms / 1000:.1f}s]", dim=True)
            case _:
                symbol = self._style("✗", fg="red")
                text = self._style("error", fg="red")
                if state.error:
                    extra = self._style(f" - {state.error}", dim=True)
        return f"  {symbol} {name}  {text}{extra}"

    def _style(self, text: str, **styles) -> str:
        return click.style(text, **styles) if self._colors else text

    def _draw(self, final: bool = False) -> None:
        if not (self._live or final):
            return
        lines = self.render(final=final)
        with self._lock:
            out = ""
            if self._live and self._drawn_lines:
                out += f"\x1b[{self._drawn_lines}A\x1b[0J"
            out += "\n".join(lines) + "\n"
            self._stream.write(out)
            self._stream.flush()
            self._drawn_lines = len(lines)
