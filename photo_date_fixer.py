"""Fix EXIF capture dates of photos whose file names encode the date.

The script walks through a chosen directory (including sub-directories) looking
for JPEG images named after the moment they were taken, using the
``MM-DD-YY_HHMM`` convention (for example ``12-25-99_1430.jpg``).  For every
such image the EXIF ``DateTimeOriginal`` tag is compared with the date in the
file name.  When the tag is missing or points at a different day it is
rewritten to the date and time from the file name.

Two-digit years are expanded to the 2000s unless that would put the photo in
the future, in which case the 1900s are used.

Example usage::

    python photo_date_fixer.py /path/to/photos

Use ``--norecurse`` to restrict the search to the top-level directory,
``--dry-run`` to inspect the changes without modifying the files and
``--interactive`` to confirm every write.
"""

from __future__ import annotations

import argparse
import datetime as _dt
import enum
import json
import logging
import os
import re
import shutil
import subprocess
import sys
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, NamedTuple, Protocol

LOGGER = logging.getLogger(__name__)

DATED_IMAGE_RE = re.compile(
    r"^(?P<month>\d\d)-(?P<day>\d\d)-(?P<year>\d\d)"
    r"_(?P<hour>\d\d)(?P<minute>\d\d)\.(?:jpg|jpeg)$",
    re.IGNORECASE,
)
EXIF_DATE_RE = re.compile(r"^(\d{4}):(\d{1,2}):(\d{1,2})$")

CAPTURE_DATE_TAG = "DateTimeOriginal"
PROMPT = "\tContinue? (y/n) [y] "


class MalformedFilenameError(ValueError):
    """The file name does not follow the ``MM-DD-YY_HHMM`` convention."""


class MetadataWriteError(RuntimeError):
    """The capture date could not be written to the image."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Failed to update metadata for '{path}': {reason}")
        self.path = path
        self.reason = reason


class Outcome(enum.Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class RunOptions(NamedTuple):
    directory: Path
    recurse: bool = True
    dry_run: bool = False
    interactive: bool = False
    debug: bool = False
    verbose: bool = True
    keep_going: bool = False
    current_year: int = _dt.date.today().year


class FilenameDate(NamedTuple):
    """Capture moment encoded in a file name.  Seconds are always zero."""

    year: int
    month: int
    day: int
    hour: int
    minute: int

    def exif_date(self) -> str:
        return f"{self.year:04d}:{self.month:02d}:{self.day:02d}"

    def exif_datetime(self) -> str:
        return f"{self.exif_date()} {self.hour:02d}:{self.minute:02d}:00"

    def iso_date(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


@dataclass
class RunSummary:
    updated: int = 0
    unchanged: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.UPDATED:
            self.updated += 1
        else:
            self.unchanged += 1

    def report(self) -> None:
        print()
        print(f"Files with EXIF data updated: {self.updated:5d}")
        print(f"Files unchanged             : {self.unchanged:5d}")


class MetadataCodec(Protocol):
    def read_capture_date(self, path: Path) -> str | None: ...

    def write_capture_date(self, path: Path, value: str) -> None: ...


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def resolve_year(two_digit_year: int, current_year: int) -> int:
    """Expand ``two_digit_year``, rolling back to the 1900s for future years."""

    candidate = two_digit_year + 2000
    if candidate > current_year:
        return two_digit_year + 1900
    return candidate


def is_dated_image_name(name: str) -> bool:
    return DATED_IMAGE_RE.match(name) is not None


def parse_filename_date(name: str, current_year: int) -> FilenameDate:
    """Extract the capture moment from a ``MM-DD-YY_HHMM.jpg`` base name."""

    match = DATED_IMAGE_RE.match(name)
    if match is None:
        raise MalformedFilenameError(f"'{name}' does not look like MM-DD-YY_HHMM.jpg")
    return FilenameDate(
        year=resolve_year(int(match.group("year")), current_year),
        month=int(match.group("month")),
        day=int(match.group("day")),
        hour=int(match.group("hour")),
        minute=int(match.group("minute")),
    )


def exif_date_part(value: str) -> str:
    """Return the date portion of an EXIF ``YYYY:MM:DD HH:MM:SS`` value."""

    parts = value.strip().split(None, 1)
    return parts[0] if parts else ""


def same_calendar_date(filename_date: FilenameDate, embedded: str) -> bool:
    # Unparsable tags never match.
    match = EXIF_DATE_RE.match(exif_date_part(embedded))
    if match is None:
        return False
    year, month, day = (int(group) for group in match.groups())
    return (year, month, day) == (filename_date.year, filename_date.month, filename_date.day)


# ---------------------------------------------------------------------------
# Directory walk
# ---------------------------------------------------------------------------


def iter_dated_images(root: Path, recurse: bool = True) -> Iterator[Path]:
    """Yield images named ``MM-DD-YY_HHMM.jpg`` below ``root``.

    Directories are visited breadth-first from an explicit queue.  A directory
    that cannot be read is reported and skipped.
    """

    pending: deque[Path] = deque([root])
    while pending:
        directory = pending.popleft()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as exc:
            LOGGER.warning("Unable to open [%s] for reading. %s", directory, exc.strerror or exc)
            continue

        for entry in entries:
            path = Path(entry.path)
            if entry.is_dir():
                if recurse:
                    LOGGER.debug("Adding %s to dirs.", path)
                    pending.append(path)
                else:
                    LOGGER.debug("Ignoring %s", path)
            elif entry.is_file() and is_dated_image_name(entry.name):
                LOGGER.debug("Adding %s to files.", path)
                yield path
            else:
                LOGGER.debug("Ignoring %s", path)


# ---------------------------------------------------------------------------
# Metadata codec
# ---------------------------------------------------------------------------


def find_exiftool() -> str:
    exiftool = shutil.which("exiftool")
    if exiftool is None:
        raise SystemExit(
            "The 'exiftool' executable is required to run this script. "
            "Install it with 'brew install exiftool' or from "
            "https://exiftool.org/."
        )
    return exiftool


class ExifToolCodec:
    """Read and write ``DateTimeOriginal`` through the exiftool executable."""

    def __init__(self, exiftool: str | None = None) -> None:
        self.exiftool = exiftool or find_exiftool()

    def read_capture_date(self, path: Path) -> str | None:
        cmd = [self.exiftool, "-j", f"-{CAPTURE_DATE_TAG}", str(path)]
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0 or not result.stdout.strip():
            LOGGER.debug("exiftool could not read %s: %s", path, result.stderr.strip())
            return None
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            LOGGER.debug("exiftool returned invalid JSON for %s", path)
            return None
        if not data or not isinstance(data[0], dict):
            return None
        value = data[0].get(CAPTURE_DATE_TAG)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def write_capture_date(self, path: Path, value: str) -> None:
        cmd = [
            self.exiftool,
            "-overwrite_original",
            "-P",
            "-q",
            f"-{CAPTURE_DATE_TAG}={value}",
            str(path),
        ]
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise MetadataWriteError(path, result.stderr.strip() or "unknown error")


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def prompt_confirmation(prompt: str) -> bool:
    """Ask on the console.  An empty answer or ``y`` means yes."""

    try:
        answer = input(prompt)
    except EOFError:
        print()
        return False
    answer = answer.strip().lower()
    return answer in ("", "y")


def _confirm_update(options: RunOptions, confirm: Callable[[str], bool]) -> bool:
    if options.dry_run or not options.interactive:
        print(f"{PROMPT}y")
        return True
    return confirm(PROMPT)


def _update_capture_date(
    path: Path,
    proposed: str,
    options: RunOptions,
    codec: MetadataCodec,
    confirm: Callable[[str], bool],
) -> Outcome:
    print(f"\t{CAPTURE_DATE_TAG} tag will be updated to [{proposed}].")
    if not _confirm_update(options, confirm):
        print("\tFile will not be modified.")
        return Outcome.UNCHANGED

    if options.dry_run:
        return Outcome.UPDATED

    try:
        codec.write_capture_date(path, proposed)
    except MetadataWriteError as exc:
        if not options.keep_going:
            raise
        LOGGER.error("%s", exc)
        return Outcome.UNCHANGED

    print("\tData has been written.")
    return Outcome.UPDATED


def reconcile_file(
    path: Path,
    options: RunOptions,
    codec: MetadataCodec,
    confirm: Callable[[str], bool] = prompt_confirmation,
) -> Outcome:
    """Bring the EXIF capture date of ``path`` in line with its file name."""

    try:
        filename_date = parse_filename_date(path.name, options.current_year)
    except MalformedFilenameError as exc:
        LOGGER.warning("Skipping %s: %s", path, exc)
        return Outcome.UNCHANGED

    print(path)
    LOGGER.debug("File name date is %s.", filename_date.iso_date())
    embedded = codec.read_capture_date(path)

    if embedded is None:
        if options.verbose:
            print(f"\t{CAPTURE_DATE_TAG} tag was not found.")
    elif same_calendar_date(filename_date, embedded):
        if options.verbose:
            print(f"\t{CAPTURE_DATE_TAG} : {embedded}")
            print("\tThe date in the file name is equal to the date in the exif data.")
        return Outcome.UNCHANGED
    elif options.verbose:
        print(f"\t{CAPTURE_DATE_TAG} : {embedded}")
        print("\tThe date in the file name does not match the date in the exif data.")

    return _update_capture_date(path, filename_date.exif_datetime(), options, codec, confirm)


def fix_photo_dates(
    options: RunOptions,
    codec: MetadataCodec,
    confirm: Callable[[str], bool] = prompt_confirmation,
) -> RunSummary:
    summary = RunSummary()
    for path in iter_dated_images(options.directory, recurse=options.recurse):
        summary.record(reconcile_file(path, options, codec, confirm))
    return summary


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

MANUAL = """\
options:
  --recurse      Recursively search for images.  This is the default.  Turn
                 off with --norecurse.
  --dry-run      Only show what would have happened.  Don't actually do
                 anything destructive.
  --interactive  Prompt before any destructive actions.  Defaults to
                 non-interactive.
  --keep-going   Report files whose metadata cannot be written and carry on
                 instead of stopping at the first failure.
  --debug        Turn on debugging messages.
  --verbose      Turn on verbose messages.  This is the default.  Turn off
                 with --noverbose.
  --directory    The directory where the search should begin.  Defaults to
                 the current directory.

Images that are missing the EXIF DateTimeOriginal tag, or whose tag names a
different day than the file name, have the tag set to the date and time from
the file name.  Names must look like MM-DD-YY_HHMM.jpg (or .jpeg, any case).
"""


class _ManualAction(argparse.Action):
    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_usage()
        print()
        print((__doc__ or "").strip())
        print()
        print(MANUAL, end="")
        parser.exit()


class _UsageAction(argparse.Action):
    def __init__(self, option_strings, dest=argparse.SUPPRESS, default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_usage()
        parser.exit()


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s :: %(message)s"))
    LOGGER.handlers[:] = [handler]
    LOGGER.setLevel(level)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Set the EXIF capture date of MM-DD-YY_HHMM.jpg photos from their file names.",
    )
    parser.add_argument(
        "directory",
        nargs="?",
        type=Path,
        help="Directory in which to begin the search",
    )
    parser.add_argument(
        "--directory",
        dest="directory_option",
        type=Path,
        metavar="DIRECTORY",
        help="Same as the positional directory",
    )
    parser.add_argument(
        "--recurse",
        dest="recurse",
        action="store_true",
        help="Search for photos recursively (default)",
    )
    parser.add_argument(
        "--norecurse",
        dest="recurse",
        action="store_false",
        help="Only look at the top-level directory",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show which files would be updated without modifying them",
    )
    parser.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Prompt before every metadata write",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Skip files whose metadata cannot be written instead of stopping",
    )
    parser.add_argument("--debug", dest="debug", action="store_true", help="Print debugging messages")
    parser.add_argument("--nodebug", dest="debug", action="store_false", help=argparse.SUPPRESS)
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="Print verbose messages (default)")
    parser.add_argument("--noverbose", dest="verbose", action="store_false", help="Only print the essentials")
    parser.add_argument("--usage", action=_UsageAction, help="Show a brief usage message and exit")
    parser.add_argument("--man", action=_ManualAction, help="Print the full manual and exit")
    parser.set_defaults(recurse=True, debug=False, verbose=True)
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace, current_year: int | None = None) -> RunOptions:
    directory: Path = args.directory_option or args.directory or Path.cwd()

    if not directory.exists():
        raise SystemExit(f"The specified start directory [{directory}] does not exist!")
    if not directory.is_dir():
        raise SystemExit(f"The specified start directory [{directory}] is not a directory!")

    return RunOptions(
        directory=directory,
        recurse=args.recurse,
        dry_run=args.dry_run,
        interactive=args.interactive,
        debug=args.debug,
        verbose=args.verbose,
        keep_going=args.keep_going,
        current_year=current_year or _dt.date.today().year,
    )


def main(
    argv: Iterable[str] | None = None,
    codec: MetadataCodec | None = None,
    confirm: Callable[[str], bool] = prompt_confirmation,
) -> int:
    args = parse_args(argv)
    configure_logging(args.debug)
    options = build_options(args)
    LOGGER.debug("Start dir is [%s].", options.directory)

    if codec is None:
        codec = ExifToolCodec()

    try:
        summary = fix_photo_dates(options, codec, confirm)
    except MetadataWriteError as exc:
        print(f"Error writing file! {exc}", file=sys.stderr)
        return 1

    summary.report()
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry point
    raise SystemExit(main())
