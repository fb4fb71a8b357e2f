"""
Episode numbering for disc-organized rips.

Disc folders follow the convention ``<Series_Token>_S<season>_D<disc>`` and hold
that disc's episodes as video files. Episode numbers are positional: a disc's
files, sorted by filename, continue the numbering where the previous discs of
the same season left off.

    Show_Name_S1_D1/  a.mkv b.mkv c.mkv   ->  S01E01 S01E02 S01E03
    Show_Name_S1_D2/  a.mkv b.mkv         ->  S01E04 S01E05
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from console_log import debug, warn

DEFAULT_VIDEO_EXTS = frozenset({".mkv", ".mp4", ".avi", ".mov"})
DEFAULT_MIN_VIDEO_SIZE_MB = 50

# Characters that are illegal in filenames on at least one common filesystem
ILLEGAL_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')

DISC_DIR_REGEX = re.compile(r"^(?P<series>.+?)_S(?P<season>\d+)_D(?P<disc>\d+)$")


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShowIdentity:
    series_name: str
    season: int
    disc: int
    directory_name: str


@dataclass(frozen=True)
class VideoFileRef:
    path: Path
    size: int
    extension: str


@dataclass(frozen=True)
class EpisodeAssignment:
    file: VideoFileRef
    season: int
    episode: int
    title: str | None = None


# ---------------------------------------------------------------------------
# Disc folder naming convention (both directions)
# ---------------------------------------------------------------------------


def parse_disc_dir_name(name: str) -> ShowIdentity | None:
    """
    Parse a disc folder name into a ShowIdentity.

    Examples:
        "Show_Name_S1_D2"  -> series="Show Name", season=1, disc=2
        "Show_S01_D10"     -> series="Show", season=1, disc=10
        "Show Name Disc 1" -> None

    Returns None when the name does not follow the convention; callers skip
    such folders.
    """
    m = DISC_DIR_REGEX.match(name)
    if not m:
        return None

    season = int(m.group("season"))
    disc = int(m.group("disc"))
    if season < 1 or disc < 1:
        return None

    return ShowIdentity(
        series_name=m.group("series").replace("_", " "),
        season=season,
        disc=disc,
        directory_name=name,
    )


def format_disc_dir_name(series_name: str, season: int, disc: int) -> str:
    """Inverse of parse_disc_dir_name: ("Show Name", 1, 2) -> "Show_Name_S1_D2"."""
    return f"{series_name.replace(' ', '_')}_S{season}_D{disc}"


# ---------------------------------------------------------------------------
# Video file enumeration
# ---------------------------------------------------------------------------


def _dir_entry_size(entry: os.DirEntry) -> int | None:
    try:
        return entry.stat().st_size
    except OSError:
        return None


def list_video_files(
    directory: Path,
    min_size_bytes: int = DEFAULT_MIN_VIDEO_SIZE_MB * 1024 * 1024,
    video_exts: frozenset[str] = DEFAULT_VIDEO_EXTS,
) -> list[VideoFileRef]:
    """
    Return the qualifying video files directly inside ``directory``.

    A file qualifies when its extension (case-insensitive) is in ``video_exts``
    and its size is strictly greater than ``min_size_bytes``; smaller files are
    samples or trailers. The result is sorted by filename with plain string
    comparison, and that order IS the episode order.

    An unreadable or missing directory yields an empty list.
    """
    refs: list[VideoFileRef] = []
    try:
        with os.scandir(directory) as it:
            for entry in it:
                try:
                    if not entry.is_file():
                        continue
                except OSError:
                    continue
                ext = os.path.splitext(entry.name)[1]
                if ext.lower() not in video_exts:
                    continue
                size = _dir_entry_size(entry)
                if size is None or size <= min_size_bytes:
                    if size is not None:
                        debug(f"Ignoring small file ({size} bytes): {entry.name}")
                    continue
                refs.append(VideoFileRef(path=Path(entry.path), size=size, extension=ext))
    except OSError as e:
        debug(f"Cannot list {directory}: {e}")
        return []

    refs.sort(key=lambda r: r.path.name)
    return refs


# ---------------------------------------------------------------------------
# Episode number reconciliation
# ---------------------------------------------------------------------------


def find_disc_dir(parent: Path, series_name: str, season: int, disc: int) -> Path | None:
    """
    Locate the folder for a given disc of a series/season under ``parent``.

    The canonical name from format_disc_dir_name is tried first. Otherwise any
    sibling that parses to the same series, season and disc is accepted, which
    covers zero-padded variants such as ``Show_S01_D02``.
    """
    candidate = parent / format_disc_dir_name(series_name, season, disc)
    if candidate.is_dir():
        return candidate

    try:
        siblings = sorted(parent.iterdir())
    except OSError:
        return None

    for sibling in siblings:
        ident = parse_disc_dir_name(sibling.name)
        if (
            ident is not None
            and ident.series_name == series_name
            and ident.season == season
            and ident.disc == disc
            and sibling.is_dir()
        ):
            return sibling
    return None


def disc_starting_episode(
    disc: int,
    season: int,
    series_name: str,
    parent: Path,
    min_size_bytes: int = DEFAULT_MIN_VIDEO_SIZE_MB * 1024 * 1024,
    video_exts: frozenset[str] = DEFAULT_VIDEO_EXTS,
) -> int:
    """
    Compute the first episode number on ``disc``.

    Disc 1 starts at episode 1. Disc d starts after every qualifying file on
    discs 1..d-1 of the same series and season. A previous disc that is
    missing, unreadable or empty counts as 0 episodes and a warning is logged,
    so numbering after such a gap is only as good as the discs that are there.
    """
    if disc <= 1:
        return 1

    preceding = 0
    for prev in range(1, disc):
        prev_dir = find_disc_dir(parent, series_name, season, prev)
        if prev_dir is None:
            warn(
                f"{format_disc_dir_name(series_name, season, prev)} not found; "
                f"counting disc {prev} as 0 episodes"
            )
            continue

        count = len(list_video_files(prev_dir, min_size_bytes, video_exts))
        if count == 0:
            warn(f"{prev_dir.name} has no qualifying video files; counting it as 0 episodes")
        debug(f"  Disc {prev}: {count} episode(s) in {prev_dir.name}")
        preceding += count

    return 1 + preceding


def assign_episodes(
    files: list[VideoFileRef],
    season: int,
    start_episode: int,
    titles: dict[int, str] | None = None,
) -> list[EpisodeAssignment]:
    """Number ``files`` consecutively from ``start_episode`` in their given order."""
    titles = titles or {}
    return [
        EpisodeAssignment(
            file=ref,
            season=season,
            episode=start_episode + idx,
            title=titles.get(start_episode + idx),
        )
        for idx, ref in enumerate(files)
    ]


# ---------------------------------------------------------------------------
# Output naming
# ---------------------------------------------------------------------------


def clean_series_name(name: str) -> str:
    """Drop characters that are illegal in filenames, then trim."""
    return ILLEGAL_FILENAME_CHARS.sub("", name).strip()


def build_episode_filename(
    series_name: str,
    season: int,
    episode: int,
    extension: str,
    episode_title: str | None = None,
    last_episode: int | None = None,
) -> str:
    """
    Build a Jellyfin-style episode filename.

    Format: Series Name S01E01.mkv (or S01E01-E02.mkv with ``last_episode``)

    Numbers are padded to at least two digits and grow past 99 (S100E120).
    ``episode_title`` is accepted for callers that carry one around but is not
    part of the name.
    """
    clean = clean_series_name(series_name)
    if not clean:
        raise ValueError(f"Series name {series_name!r} is empty after cleaning")

    if extension and not extension.startswith("."):
        extension = f".{extension}"

    tag = f"S{season:02d}E{episode:02d}"
    if last_episode is not None and last_episode > episode:
        tag += f"-E{last_episode:02d}"

    return f"{clean} {tag}{extension}"
