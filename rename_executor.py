"""
Planned renames/moves and their execution.

Every filesystem change is first described as a PlannedAction. A dry run only
reports the plan; a live run applies the same plan, so the preview and the
real run cannot drift apart. Existing files are never overwritten.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from console_log import debug, warn
from episode_numbering import DEFAULT_VIDEO_EXTS

# Plan statuses
PENDING = "pending"
UNCHANGED = "unchanged"
COLLISION = "collision"

# Outcomes
RENAMED = "renamed"
MOVED = "moved"
WOULD_RENAME = "would-rename"
WOULD_MOVE = "would-move"
COLLISION_SKIPPED = "collision-skipped"
FAILED = "failed"

SUCCESS_OUTCOMES = frozenset({RENAMED, MOVED, WOULD_RENAME, WOULD_MOVE, UNCHANGED})


@dataclass(frozen=True)
class PlannedAction:
    kind: str  # rename|move
    source: Path
    target: Path
    status: str = PENDING
    title: str | None = None


@dataclass(frozen=True)
class ActionResult:
    action: PlannedAction
    outcome: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def _target_taken(source: Path, target: Path) -> bool:
    """True if ``target`` exists and is not ``source`` itself (case-only renames)."""
    if not target.exists():
        return False
    try:
        return not source.samefile(target)
    except OSError:
        return True


def plan_actions(
    pairs: Iterable[tuple[Path, Path]],
    kind: str = "rename",
    titles: dict[Path, str | None] | None = None,
) -> list[PlannedAction]:
    """
    Plan a batch of (source, target) operations in order.

    Earlier actions in the batch are taken into account: a target vacated by an
    earlier action is free, a target claimed by an earlier action is taken.
    """
    titles = titles or {}
    claimed: set[Path] = set()
    vacated: set[Path] = set()
    planned: list[PlannedAction] = []

    for source, target in pairs:
        title = titles.get(source)
        if target == source:
            planned.append(PlannedAction(kind, source, target, UNCHANGED, title))
            continue

        on_disk = target not in vacated and _target_taken(source, target)
        if on_disk or target in claimed:
            planned.append(PlannedAction(kind, source, target, COLLISION, title))
            continue

        claimed.add(target)
        vacated.add(source)
        claimed.discard(source)
        planned.append(PlannedAction(kind, source, target, PENDING, title))

    return planned


def plan_renames(
    renames: Iterable[tuple[Path, str]],
    titles: dict[Path, str | None] | None = None,
) -> list[PlannedAction]:
    """Plan in-place renames given (source, new_file_name) pairs."""
    return plan_actions(((src, src.with_name(name)) for src, name in renames), "rename", titles)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def apply_action(action: PlannedAction, dry_run: bool) -> ActionResult:
    """Report (dry run) or perform (live) one planned action."""
    if action.status == UNCHANGED:
        return ActionResult(action, UNCHANGED)
    if action.status == COLLISION:
        return ActionResult(action, COLLISION_SKIPPED, f"{action.target.name} already exists")

    if dry_run:
        return ActionResult(action, WOULD_RENAME if action.kind == "rename" else WOULD_MOVE)

    # Re-check right before touching anything: never overwrite
    if _target_taken(action.source, action.target):
        return ActionResult(action, COLLISION_SKIPPED, f"{action.target.name} already exists")

    try:
        if action.kind == "rename":
            action.source.rename(action.target)
            return ActionResult(action, RENAMED)
        shutil.move(str(action.source), str(action.target))
        return ActionResult(action, MOVED)
    except OSError as e:
        return ActionResult(action, FAILED, str(e))


def execute_plan(actions: list[PlannedAction], dry_run: bool) -> list[ActionResult]:
    return [apply_action(action, dry_run) for action in actions]


def rename_file(source: Path, new_name: str, dry_run: bool) -> ActionResult:
    """Rename a single file in place (or report what would happen)."""
    (action,) = plan_renames([(source, new_name)])
    return apply_action(action, dry_run)


# ---------------------------------------------------------------------------
# Relocation
# ---------------------------------------------------------------------------


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def find_videos_recursive(
    base_path: Path,
    min_size_bytes: int,
    video_exts: frozenset[str] = DEFAULT_VIDEO_EXTS,
    exclude: Path | None = None,
) -> list[Path]:
    """All qualifying video files anywhere under ``base_path``, in sorted order."""
    found: list[Path] = []
    for path in sorted(base_path.rglob("*")):
        if path.suffix.lower() not in video_exts:
            continue
        if exclude is not None and _is_within(path, exclude):
            continue
        try:
            if not path.is_file() or path.stat().st_size <= min_size_bytes:
                continue
        except OSError as e:
            warn(f"Cannot stat {path}: {e}")
            continue
        found.append(path)
    return found


def relocate_videos(
    base_path: Path,
    destination: Path,
    min_size_bytes: int,
    video_exts: frozenset[str] = DEFAULT_VIDEO_EXTS,
    dry_run: bool = True,
    renamed: Mapping[Path, Path] | None = None,
) -> list[ActionResult]:
    """
    Move every qualifying video under ``base_path`` into the flat ``destination``.

    Files already inside ``destination`` are left alone. The destination is only
    created in a live run.

    ``renamed`` maps current paths to the paths an earlier dry-run rename would
    have produced, so the preview plans moves from the same names a live run sees.
    """
    files = find_videos_recursive(base_path, min_size_bytes, video_exts, exclude=destination)
    if renamed:
        files = sorted(renamed.get(f, f) for f in files)
    debug(f"Relocation: {len(files)} file(s) under {base_path}")
    if not files:
        return []

    actions = plan_actions(((f, destination / f.name) for f in files), kind="move")

    if not dry_run:
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return [ActionResult(a, FAILED, f"cannot create {destination}: {e}") for a in actions]

    return execute_plan(actions, dry_run)
