"""Progress reporting for long copies."""

import sys
from typing import Any, TextIO

import structlog
from tqdm import tqdm

log = structlog.stdlib.get_logger()


class ProgressReporter:
    """Shows a transient tqdm bar while a copy is running.

    Structured log events are the durable record of a run; the bar is
    removed once the copy finishes. When the output stream is not a terminal,
    updates are emitted as debug log events instead.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        silent: bool = False,
        mininterval: float = 0.1,
    ):
        """
        Initialize progress reporter.

        Args:
            stream: Where the bar is drawn (stdout if None)
            silent: Never draw or log progress
            mininterval: Minimum seconds between bar redraws
        """
        self._stream: TextIO = stream if stream is not None else sys.stdout
        self._silent: bool = silent
        self._mininterval: float = mininterval
        self._bar: tqdm | None = None
        self._label: str | None = None

    @property
    def interactive(self) -> bool:
        isatty = getattr(self._stream, "isatty", None)
        return bool(isatty and isatty())

    def report(self, label: str, current: int, total: int, **postfix: Any) -> None:
        """Move the bar for ``label`` to ``current`` of ``total``.

        Keyword arguments are shown after the counts, e.g. ``inserted=3``.
        """
        if self._silent:
            return
        if not self.interactive:
            log.debug("progress", label=label, current=current, total=total, **postfix)
            return

        if self._bar is None or self._label != label or self._bar.total != total:
            self.clear()
            self._bar = tqdm(
                total=total,
                desc=label,
                unit="docs",
                file=self._stream,
                leave=False,
                disable=self._silent,
                mininterval=self._mininterval,
            )
            self._label = label

        if postfix:
            self._bar.set_postfix(postfix, refresh=False)
        self._bar.update(current - self._bar.n)

    def clear(self) -> None:
        if self._bar is None:
            return
        self._bar.close()
        self._bar = None
        self._label = None


class NullProgressReporter(ProgressReporter):
    """Reporter that never writes anything."""

    def __init__(self) -> None:
        super().__init__(silent=True)
