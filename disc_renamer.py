#!/usr/bin/env python3
"""
disc_renamer.py - Rename disc-organized TV rips to Jellyfin episode names.

Expects one folder per disc named <Series_Name>_S<season>_D<disc> under a base
path. Episode numbers continue across discs of the same season (disc 2 starts
after disc 1's last episode). Optionally uses TMDB for the canonical series
name and episode titles, and can move all videos into one flat folder.

Usage:
    python disc_renamer.py /mnt/rips --dry-run          # Preview only
    python disc_renamer.py /mnt/rips --tmdb             # Rename with TMDB lookup
    python disc_renamer.py /mnt/rips -d /mnt/tv/Show    # Rename, then relocate
    python disc_renamer.py --help
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml
from rich import box
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from console_log import console, debug, error, log, ok, set_verbose, setup_logging, warn
from episode_numbering import (
    DEFAULT_MIN_VIDEO_SIZE_MB,
    DEFAULT_VIDEO_EXTS,
    ShowIdentity,
    assign_episodes,
    build_episode_filename,
    disc_starting_episode,
    list_video_files,
    parse_disc_dir_name,
)
from rename_executor import (
    COLLISION_SKIPPED,
    FAILED,
    UNCHANGED,
    WOULD_RENAME,
    ActionResult,
    execute_plan,
    plan_renames,
    relocate_videos,
)
from tmdb_client import TMDB_API_BASE, RemoteEpisode, RemoteSeries, TmdbCfg, TmdbClient

# ─────────────────────────── Config ───────────────────────────

CONFIG_DIR = Path(__file__).parent / "config"
CONFIG_ENV_PATH = CONFIG_DIR / ".env"
CONFIG_YAML_PATH = CONFIG_DIR / "config.yaml"
DEFAULT_LOG_DIR = Path.home() / ".local" / "share" / "disc-renamer"

# TMDB asks clients to stay well under ~50 req/s; never go below this floor
MIN_REQUEST_INTERVAL_FLOOR = 0.1


@dataclass(frozen=True)
class AppCfg:
    min_video_size_mb: float = DEFAULT_MIN_VIDEO_SIZE_MB
    video_exts: frozenset[str] = DEFAULT_VIDEO_EXTS
    log_dir: Path = DEFAULT_LOG_DIR
    use_tmdb: bool = False
    tmdb: TmdbCfg = field(default_factory=TmdbCfg)

    @property
    def min_size_bytes(self) -> int:
        return int(self.min_video_size_mb * 1024 * 1024)


def _coerce_bool(v: Any, default: bool) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, int | float):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in ("true", "ture", "yes", "y", "1", "on", "enabled"):
            return True
        if s in ("false", "no", "n", "0", "off", "disabled"):
            return False
    return default


def _expand_path(p: str) -> str:
    """Expand ~ and $VARS and return a normalized path string (doesn't require existence)."""
    p = (p or "").strip()
    if not p:
        return p
    p = os.path.expandvars(p)
    return str(Path(p).expanduser())


def load_env_file(path: Path) -> dict[str, str]:
    """Load key=value pairs from a .env file."""
    env_vars = {}
    if path.exists():
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    env_vars[key.strip()] = value.strip().strip("\"'")
    return env_vars


def _normalize_exts(raw: Any) -> frozenset[str]:
    if not isinstance(raw, list | tuple) or not raw:
        raise ValueError("video_extensions must be a non-empty list")
    exts = set()
    for item in raw:
        ext = str(item).strip().lower()
        if not ext:
            continue
        exts.add(ext if ext.startswith(".") else f".{ext}")
    if not exts:
        raise ValueError("video_extensions must be a non-empty list")
    return frozenset(exts)


def _secret(env_name: str, yaml_value: Any, env_file: dict[str, str]) -> str | None:
    value = os.environ.get(env_name) or env_file.get(env_name) or yaml_value
    value = str(value).strip() if value else ""
    return value or None


def load_config(path: Path | None = None, env_path: Path | None = None) -> AppCfg:
    """
    Build the run configuration.

    ``path`` is a YAML file; when omitted, config/config.yaml next to this
    script is used if present. TMDB credentials come from TMDB_API_KEY /
    TMDB_ACCESS_TOKEN in the environment, then ``env_path`` (default
    config/.env), then the YAML.
    """
    raw: dict[str, Any] = {}
    if path is not None and not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    yaml_path = path if path is not None else CONFIG_YAML_PATH
    if yaml_path.exists():
        loaded = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
        if loaded is None:
            raw = {}
        elif not isinstance(loaded, dict):
            raise ValueError("config.yaml root must be a mapping")
        else:
            raw = cast(dict[str, Any], loaded)

    try:
        min_size = float(raw.get("min_video_size_mb", DEFAULT_MIN_VIDEO_SIZE_MB))
    except (TypeError, ValueError) as e:
        raise ValueError("min_video_size_mb must be a number") from e
    if min_size < 0:
        raise ValueError("min_video_size_mb must be >= 0")

    video_exts = (
        _normalize_exts(raw["video_extensions"]) if "video_extensions" in raw else DEFAULT_VIDEO_EXTS
    )

    log_dir_raw = str(raw.get("log_dir") or "").strip()
    log_dir = Path(_expand_path(log_dir_raw)) if log_dir_raw else DEFAULT_LOG_DIR

    tmdb_node: dict[str, Any] = cast(dict[str, Any], raw.get("tmdb") or {})
    env_file = load_env_file(env_path if env_path is not None else CONFIG_ENV_PATH)

    try:
        interval = float(tmdb_node.get("min_request_interval", 0.25))
        timeout = float(tmdb_node.get("timeout", 10))
        max_retries = int(tmdb_node.get("max_retries", 3))
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid tmdb setting: {e}") from e

    if interval < MIN_REQUEST_INTERVAL_FLOOR:
        raise ValueError(f"tmdb.min_request_interval must be >= {MIN_REQUEST_INTERVAL_FLOOR}")
    if timeout <= 0:
        raise ValueError("tmdb.timeout must be > 0")
    if max_retries < 1:
        raise ValueError("tmdb.max_retries must be >= 1")

    tmdb = TmdbCfg(
        api_key=_secret("TMDB_API_KEY", tmdb_node.get("api_key"), env_file),
        access_token=_secret("TMDB_ACCESS_TOKEN", tmdb_node.get("access_token"), env_file),
        base_url=str(tmdb_node.get("base_url") or TMDB_API_BASE).rstrip("/"),
        language=str(tmdb_node.get("language") or "en-US").strip(),
        min_request_interval=interval,
        timeout=timeout,
        max_retries=max_retries,
    )

    return AppCfg(
        min_video_size_mb=min_size,
        video_exts=video_exts,
        log_dir=log_dir,
        use_tmdb=_coerce_bool(tmdb_node.get("enabled", False), False),
        tmdb=tmdb,
    )


# ─────────────────────────── Metadata ───────────────────────────


@dataclass
class SeasonMetadata:
    series_name: str
    titles: dict[int, str]
    remote_episode_count: int


class MetadataLookup:
    """Per-run TMDB lookups, each (series, season) fetched at most once."""

    def __init__(self, client: TmdbClient) -> None:
        self.client = client
        self._series: dict[str, RemoteSeries | None] = {}
        self._seasons: dict[tuple[int, int], list[RemoteEpisode] | None] = {}

    def for_season(self, series_name: str, season: int) -> SeasonMetadata | None:
        if series_name not in self._series:
            self._series[series_name] = self.client.search_series(series_name)
        series = self._series[series_name]
        if series is None:
            warn(f"No TMDB match for '{series_name}'; keeping folder name, no titles")
            return None

        key = (series.id, season)
        if key not in self._seasons:
            self._seasons[key] = self.client.get_season_episodes(series.id, season)
        episodes = self._seasons[key]
        if episodes is None:
            warn(f"No TMDB episode list for {series.name} season {season}; episodes untitled")
            return SeasonMetadata(series.name, {}, 0)

        return SeasonMetadata(
            series_name=series.name,
            titles={ep.episode_number: ep.title for ep in episodes},
            remote_episode_count=len(episodes),
        )


# ─────────────────────────── Processing ───────────────────────────


@dataclass
class DirectorySummary:
    directory: Path
    identity: ShowIdentity | None = None
    start_episode: int = 0
    results: list[ActionResult] = field(default_factory=list)
    skipped_reason: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def titled(self) -> int:
        return sum(1 for r in self.results if r.action.title)


@dataclass
class RunSummary:
    directories: list[DirectorySummary] = field(default_factory=list)
    relocation: list[ActionResult] = field(default_factory=list)

    @property
    def processed(self) -> list[DirectorySummary]:
        return [d for d in self.directories if d.skipped_reason is None and d.error is None]

    @property
    def failed_directories(self) -> list[DirectorySummary]:
        return [d for d in self.directories if d.error is not None]

    @property
    def files_succeeded(self) -> int:
        return sum(d.succeeded for d in self.directories)

    @property
    def files_failed(self) -> int:
        return sum(d.failed for d in self.directories)

    def previewed_renames(self) -> dict[Path, Path]:
        """Source to target for every rename a dry run reported as going ahead."""
        return {
            r.action.source: r.action.target
            for d in self.directories
            for r in d.results
            if r.outcome == WOULD_RENAME
        }


def discover_disc_dirs(base_path: Path) -> list[tuple[Path, ShowIdentity]]:
    """Direct subfolders of ``base_path`` that follow the disc naming convention."""
    discovered: list[tuple[Path, ShowIdentity]] = []
    for item in sorted(base_path.iterdir()):
        if not item.is_dir():
            continue
        ident = parse_disc_dir_name(item.name)
        if ident is None:
            debug(f"Skipping {item.name} (not <Series>_S<n>_D<n>)")
            continue
        discovered.append((item, ident))
    return discovered


def _report_result(result: ActionResult) -> None:
    action = result.action
    title = f"  [{action.title}]" if action.title else ""
    pair = f"{action.source.name} → {action.target.name}"

    if result.outcome == UNCHANGED:
        log(f"  [OK]       {action.source.name} (already named){title}", style="dim")
    elif result.outcome == COLLISION_SKIPPED:
        warn(f"  [CLASH]    {pair} ({result.error}); skipped")
    elif result.outcome == FAILED:
        error(f"  [ERROR]    {pair}: {result.error}")
    elif result.outcome.startswith("would-"):
        log(f"  [DRY-RUN]  {pair}{title}", style="info")
    else:
        log(f"  [DONE]     {pair}{title}", style="ok")


def process_directory(
    disc_dir: Path,
    identity: ShowIdentity,
    cfg: AppCfg,
    dry_run: bool,
    metadata: MetadataLookup | None = None,
) -> DirectorySummary:
    """Number, name and rename (or preview) the episodes of one disc folder."""
    summary = DirectorySummary(directory=disc_dir, identity=identity)
    console.rule(f"[title]{escape(disc_dir.name)}[/]", style="dim")

    files = list_video_files(disc_dir, cfg.min_size_bytes, cfg.video_exts)
    if not files:
        warn(f"No qualifying video files in {disc_dir.name}; skipping")
        summary.skipped_reason = "no video files"
        return summary

    start = disc_starting_episode(
        identity.disc,
        identity.season,
        identity.series_name,
        disc_dir.parent,
        cfg.min_size_bytes,
        cfg.video_exts,
    )
    summary.start_episode = start
    last = start + len(files) - 1
    log(
        f"{identity.series_name} season {identity.season} disc {identity.disc}: "
        f"{len(files)} file(s) → E{start:02d}-E{last:02d}"
    )

    series_name = identity.series_name
    titles: dict[int, str] = {}
    if metadata is not None:
        season_meta = metadata.for_season(identity.series_name, identity.season)
        if season_meta is not None:
            series_name = season_meta.series_name
            titles = season_meta.titles
            if titles and season_meta.remote_episode_count < last:
                warn(
                    f"TMDB lists {season_meta.remote_episode_count} episode(s) for season "
                    f"{identity.season} but this disc reaches E{last:02d}"
                )

    assignments = assign_episodes(files, identity.season, start, titles)
    for a in assignments:
        if titles and a.title is None:
            warn(f"No TMDB title for S{a.season:02d}E{a.episode:02d}; leaving it untitled")

    renames = [
        (
            a.file.path,
            build_episode_filename(series_name, a.season, a.episode, a.file.extension, a.title),
        )
        for a in assignments
    ]
    actions = plan_renames(renames, titles={a.file.path: a.title for a in assignments})
    summary.results = execute_plan(actions, dry_run)
    for result in summary.results:
        _report_result(result)

    return summary


def run(
    base_path: Path,
    cfg: AppCfg,
    dry_run: bool = True,
    metadata: MetadataLookup | None = None,
    destination: Path | None = None,
) -> RunSummary:
    """Process every disc folder under ``base_path``, then optionally relocate."""
    summary = RunSummary()

    disc_dirs = discover_disc_dirs(base_path)
    if not disc_dirs:
        warn(f"No <Series>_S<n>_D<n> folders found under {base_path}")

    for disc_dir, identity in disc_dirs:
        try:
            summary.directories.append(
                process_directory(disc_dir, identity, cfg, dry_run, metadata)
            )
        except Exception as e:
            error(f"Failed to process {disc_dir.name}: {e}")
            summary.directories.append(
                DirectorySummary(directory=disc_dir, identity=identity, error=str(e))
            )

    if destination is not None:
        console.rule("[title]Relocation[/]", style="dim")
        summary.relocation = relocate_videos(
            base_path,
            destination,
            cfg.min_size_bytes,
            cfg.video_exts,
            dry_run,
            renamed=summary.previewed_renames() if dry_run else None,
        )
        for result in summary.relocation:
            _report_result(result)
        if not summary.relocation:
            log(f"Nothing to move into {destination}", style="dim")

    return summary


def render_summary(summary: RunSummary, dry_run: bool) -> None:
    table = Table(title="Summary", box=box.SIMPLE_HEAVY)
    table.add_column("Folder", style="path")
    table.add_column("Episodes")
    table.add_column("OK", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Titled", justify="right")
    table.add_column("Note", style="dim")

    for d in summary.directories:
        if d.error is not None:
            table.add_row(
                escape(d.directory.name), "-", "0", "-", "-", escape(f"error: {d.error}")
            )
        elif d.skipped_reason is not None:
            table.add_row(escape(d.directory.name), "-", "0", "0", "-", escape(d.skipped_reason))
        else:
            last = d.start_episode + len(d.results) - 1
            table.add_row(
                escape(d.directory.name),
                f"E{d.start_episode:02d}-E{last:02d}",
                str(d.succeeded),
                str(d.failed),
                f"{d.titled}/{len(d.results)}",
                "",
            )
    console.print(table)

    if summary.relocation:
        moved = sum(1 for r in summary.relocation if r.ok)
        log(f"Relocation: {moved} moved, {len(summary.relocation) - moved} skipped/failed")

    log(f"Files OK:     {summary.files_succeeded}")
    log(f"Files failed: {summary.files_failed}")
    if summary.failed_directories:
        error(f"{len(summary.failed_directories)} folder(s) failed; see messages above")
    log(f"Mode:         {'DRY-RUN (nothing changed)' if dry_run else 'LIVE'}")


# ─────────────────────────── Main ───────────────────────────


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rename disc-organized TV rips to Jellyfin episode names",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python disc_renamer.py /mnt/rips --dry-run
    python disc_renamer.py /mnt/rips --tmdb --yes
    python disc_renamer.py /mnt/rips --destination /mnt/tv/Show
        """,
    )
    parser.add_argument("base_path", type=Path, help="Folder containing <Series>_S<n>_D<n> folders")
    parser.add_argument(
        "--tmdb",
        "-t",
        action="store_true",
        help="Look up series name and episode titles on TMDB",
    )
    parser.add_argument(
        "--dry-run",
        "-n",
        action="store_true",
        help="Show what would be renamed without changing anything",
    )
    parser.add_argument(
        "--destination",
        "-d",
        type=Path,
        help="After renaming, move all videos under base_path into this folder",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help=f"YAML config file (default: {CONFIG_YAML_PATH} if present)",
    )
    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip confirmation prompt before a live run (use with caution)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show detailed debug output",
    )
    return parser.parse_args(argv)


def render_header(args: argparse.Namespace, cfg: AppCfg, base_path: Path) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("key", style="cyan")
    table.add_column("val")
    table.add_row("Base path", escape(str(base_path)))
    table.add_row("TMDB", "on" if args.tmdb or cfg.use_tmdb else "off")
    table.add_row("Min size", f"{cfg.min_video_size_mb:g} MB")
    table.add_row("Extensions", " ".join(sorted(cfg.video_exts)))
    table.add_row("Destination", escape(str(args.destination)) if args.destination else "-")
    table.add_row("Mode", "[info]DRY-RUN[/]" if args.dry_run else "[warn]LIVE[/]")

    console.rule("[title]Disc Renamer[/]")
    console.print(Panel(table, title="Config", border_style="magenta", box=box.ROUNDED))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    set_verbose(args.verbose)

    try:
        cfg = load_config(args.config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        error(f"Config error: {e}")
        return 2

    base_path = Path(_expand_path(str(args.base_path)))
    if not base_path.is_dir():
        error(f"Base path does not exist or is not a directory: {base_path}")
        return 1

    log_file = setup_logging(cfg.log_dir)
    render_header(args, cfg, base_path)
    if log_file:
        debug(f"Logging to: {log_file}")

    if not args.dry_run and not args.yes:
        if not Confirm.ask("[warn]Rename files in place now?[/]", default=False):
            log("Aborted. No files were changed.", style="info")
            return 0

    client: TmdbClient | None = None
    metadata: MetadataLookup | None = None
    if args.tmdb or cfg.use_tmdb:
        client = TmdbClient(cfg.tmdb)
        if client.is_configured:
            metadata = MetadataLookup(client)
        else:
            warn("--tmdb given but no TMDB_API_KEY / TMDB_ACCESS_TOKEN found; continuing without")

    try:
        summary = run(
            base_path,
            cfg,
            dry_run=args.dry_run,
            metadata=metadata,
            destination=args.destination,
        )
    except KeyboardInterrupt:
        console.print("\n[dim]⏹ Interrupted.[/]")
        return 130
    finally:
        if client is not None:
            client.close()

    render_summary(summary, args.dry_run)
    if summary.processed and not summary.files_failed:
        ok("Done" + (" (dry run)" if args.dry_run else ""))
    return 0


if __name__ == "__main__":
    sys.exit(main())
