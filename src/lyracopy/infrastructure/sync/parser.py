"""
Heuristic classification of rsync output lines.

Live transfers run with ``--info=progress2``, which prints one overall
progress line that is rewritten in place, e.g.::

    1,234,567  89%  10.25MB/s    0:00:05 (xfr#3, to-chk=12/20)

Dry runs print one file name per line (``--out-format=%n``). Everything
else is either a file name worth showing or noise from the progress bar.
The rules depend on rsync's exact output format, so they are kept here,
behind ``parse(line) -> ProgressEvent | None``.
"""

import re
from typing import Optional

from lyracopy.domain.models import ProgressEvent

# rsync --human-readable (one -h) uses powers of 1000
_UNIT_FACTORS = {
    "": 1,
    "K": 1000,
    "M": 1000 ** 2,
    "G": 1000 ** 3,
    "T": 1000 ** 4,
    "P": 1000 ** 5,
}

_SIZE = re.compile(r"^(\d[\d,]*(?:\.\d+)?)([kKMGTP]?)B?$")
_SPEED = re.compile(r"^(\d[\d,]*(?:\.\d+)?)([kKMGTP]?)B/s$")
_PERCENT = re.compile(r"^\d+(?:\.\d+)?%$")

ITEMS_REMAINING_MARKERS = ("to-chk=", "ir-chk=")
_COUNTER_LINE = re.compile(r"^[\d,]+(?:\s+\d+(?:\.\d+)?%)?$")
_DURATION_TAIL = re.compile(r"(?:^|\s)[\d:]+s$")
_BANNERS = (
    re.compile(r"^(?:sending|receiving) incremental file list$"),
    re.compile(r"^building file list\b"),
    re.compile(r"^sent [\d,.]+\w* bytes\s+received [\d,.]+\w* bytes"),
    re.compile(r"^total size is [\d,.]+"),
    re.compile(r"^created directory "),
)


def parse_size(token: str, pattern=_SIZE) -> Optional[int]:
    """
    Convert an rsync size token (``1,234,567``, ``1.23G``, ``10.25MB/s``)
    into bytes. Returns None when the token is not a size.
    """
    match = pattern.match(token)
    if not match:
        return None
    number, unit = match.groups()
    try:
        value = float(number.replace(",", ""))
    except ValueError:
        return None
    return int(round(value * _UNIT_FACTORS[unit.upper()]))


def is_noise(line: str) -> bool:
    """True for progress-bar fragments and rsync chatter that are not file names."""
    text = line.strip()
    if len(text) <= 1:
        return True
    if "%" in text and "/" in text:
        return True
    if any(marker in text for marker in ITEMS_REMAINING_MARKERS):
        return True
    if _COUNTER_LINE.match(text):
        return True
    if _DURATION_TAIL.search(text):
        return True
    return any(banner.match(text) for banner in _BANNERS)


class RsyncProgressParser:
    """Stateless parser implementing the IProgressParser protocol."""

    def parse(self, line: str) -> Optional[ProgressEvent]:
        """
        Classify one line of output.

        Returns:
            A ProgressEvent carrying ``bytes_done`` (and ``speed_bps`` when
            reported) for progress lines, a ProgressEvent carrying
            ``current_file`` for file lines, or None for noise
        """
        text = line.strip()
        if not text:
            return None

        event = self._parse_progress(text)
        if event is not None:
            return event

        if is_noise(text):
            return None
        return ProgressEvent(current_file=text)

    @staticmethod
    def _parse_progress(text: str) -> Optional[ProgressEvent]:
        tokens = text.split()
        # A progress line is "<bytes> <percent> ..."; requiring the percent
        # keeps file names such as "2023 report.pdf" out.
        if len(tokens) < 2 or not _PERCENT.match(tokens[1]):
            return None
        bytes_done = parse_size(tokens[0])
        if bytes_done is None:
            return None
        speed = None
        for token in tokens[2:]:
            speed = parse_size(token, _SPEED)
            if speed is not None:
                break
        return ProgressEvent(bytes_done=bytes_done, speed_bps=speed)
