"""Tests for rename_executor.py: planning, execution and relocation."""

from pathlib import Path

from conftest import MIN_SIZE
import rename_executor
from rename_executor import (
    COLLISION,
    COLLISION_SKIPPED,
    FAILED,
    MOVED,
    PENDING,
    RENAMED,
    UNCHANGED,
    WOULD_MOVE,
    WOULD_RENAME,
    apply_action,
    execute_plan,
    plan_renames,
    relocate_videos,
    rename_file,
)


def _snapshot(root: Path) -> dict[str, bytes]:
    return {str(p.relative_to(root)): p.read_bytes() for p in root.rglob("*") if p.is_file()}


class TestRenameFile:
    """Tests for the single-file rename contract."""

    def test_live_rename(self, tmp_path):
        src = tmp_path / "a.mkv"
        src.write_text("a")

        result = rename_file(src, "Show S01E01.mkv", dry_run=False)

        assert result.outcome == RENAMED
        assert result.ok
        assert not src.exists()
        assert (tmp_path / "Show S01E01.mkv").read_text() == "a"

    def test_dry_run_does_not_touch(self, tmp_path):
        src = tmp_path / "a.mkv"
        src.write_text("a")

        result = rename_file(src, "Show S01E01.mkv", dry_run=True)

        assert result.outcome == WOULD_RENAME
        assert result.ok
        assert src.exists()
        assert not (tmp_path / "Show S01E01.mkv").exists()

    def test_collision_leaves_both_files(self, tmp_path):
        src = tmp_path / "a.mkv"
        src.write_text("source")
        existing = tmp_path / "Show S01E01.mkv"
        existing.write_text("existing")

        for dry_run in (True, False):
            result = rename_file(src, existing.name, dry_run=dry_run)
            assert result.outcome == COLLISION_SKIPPED
            assert not result.ok
            assert src.read_text() == "source"
            assert existing.read_text() == "existing"

    def test_already_named(self, tmp_path):
        src = tmp_path / "Show S01E01.mkv"
        src.write_text("a")

        result = rename_file(src, src.name, dry_run=False)

        assert result.outcome == UNCHANGED
        assert result.ok
        assert src.exists()

    def test_rename_failure_is_reported(self, tmp_path, monkeypatch):
        src = tmp_path / "a.mkv"
        src.write_text("a")

        def boom(self, target):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(Path, "rename", boom)
        result = rename_file(src, "Show S01E01.mkv", dry_run=False)

        assert result.outcome == FAILED
        assert "read-only" in (result.error or "")
        assert src.exists()

    def test_target_appearing_after_planning(self, tmp_path):
        """Live execution re-checks the target and never overwrites."""
        src = tmp_path / "a.mkv"
        src.write_text("a")
        (action,) = plan_renames([(src, "Show S01E01.mkv")])
        assert action.status == PENDING

        (tmp_path / "Show S01E01.mkv").write_text("late")
        result = apply_action(action, dry_run=False)

        assert result.outcome == COLLISION_SKIPPED
        assert (tmp_path / "Show S01E01.mkv").read_text() == "late"


class TestPlanRenames:
    """Tests for batch planning."""

    def test_duplicate_target_in_batch(self, tmp_path):
        a = tmp_path / "a.mkv"
        b = tmp_path / "b.mkv"
        a.write_text("a")
        b.write_text("b")

        actions = plan_renames([(a, "X.mkv"), (b, "X.mkv")])
        assert [x.status for x in actions] == [PENDING, COLLISION]

    def test_target_freed_earlier_in_batch(self, tmp_path):
        """Renaming b away first frees its name for a."""
        a = tmp_path / "a.mkv"
        b = tmp_path / "b.mkv"
        a.write_text("a")
        b.write_text("b")

        actions = plan_renames([(b, "c.mkv"), (a, "b.mkv")])
        assert [x.status for x in actions] == [PENDING, PENDING]

        results = execute_plan(actions, dry_run=False)
        assert [r.outcome for r in results] == [RENAMED, RENAMED]
        assert (tmp_path / "c.mkv").read_text() == "b"
        assert (tmp_path / "b.mkv").read_text() == "a"

    def test_dry_run_matches_live(self, tmp_path):
        """The previewed outcomes are exactly what the live run does."""
        for name in ["a.mkv", "b.mkv", "c.mkv", "Show S01E03.mkv"]:
            (tmp_path / name).write_text(name)
        renames = [
            (tmp_path / "a.mkv", "Show S01E01.mkv"),
            (tmp_path / "b.mkv", "Show S01E02.mkv"),
            (tmp_path / "c.mkv", "Show S01E03.mkv"),
        ]
        before = _snapshot(tmp_path)

        preview = execute_plan(plan_renames(renames), dry_run=True)
        assert _snapshot(tmp_path) == before

        live = execute_plan(plan_renames(renames), dry_run=False)

        assert [(r.action.source, r.action.target) for r in preview] == [
            (r.action.source, r.action.target) for r in live
        ]
        assert [r.outcome for r in preview] == [WOULD_RENAME, WOULD_RENAME, COLLISION_SKIPPED]
        assert [r.outcome for r in live] == [RENAMED, RENAMED, COLLISION_SKIPPED]

    def test_titles_carried(self, tmp_path):
        a = tmp_path / "a.mkv"
        a.write_text("a")
        (action,) = plan_renames([(a, "X.mkv")], titles={a: "Pilot"})
        assert action.title == "Pilot"
        assert action.kind == "rename"


class TestRelocateVideos:
    """Tests for relocate_videos."""

    def _tree(self, base: Path, make_video) -> None:
        make_video(base / "Show_S1_D1" / "Show S01E01.mkv")
        make_video(base / "Show_S1_D2" / "Show S01E02.mp4")
        make_video(base / "Show_S1_D2" / "nested" / "Show S01E03.avi")
        make_video(base / "Show_S1_D2" / "sample.mkv", size=10)
        (base / "notes.txt").write_text("x")

    def test_live_move(self, tmp_path, make_video):
        base = tmp_path / "rips"
        dest = tmp_path / "library"
        self._tree(base, make_video)

        results = relocate_videos(base, dest, MIN_SIZE, dry_run=False)

        assert [r.outcome for r in results] == [MOVED, MOVED, MOVED]
        assert sorted(p.name for p in dest.iterdir()) == [
            "Show S01E01.mkv",
            "Show S01E02.mp4",
            "Show S01E03.avi",
        ]
        assert (base / "Show_S1_D2" / "sample.mkv").exists()
        assert not (base / "Show_S1_D1" / "Show S01E01.mkv").exists()

    def test_dry_run_creates_nothing(self, tmp_path, make_video):
        base = tmp_path / "rips"
        dest = tmp_path / "library"
        self._tree(base, make_video)
        before = _snapshot(base)

        results = relocate_videos(base, dest, MIN_SIZE, dry_run=True)

        assert [r.outcome for r in results] == [WOULD_MOVE] * 3
        assert not dest.exists()
        assert _snapshot(base) == before

    def test_existing_destination_file_not_overwritten(self, tmp_path, make_video):
        base = tmp_path / "rips"
        dest = tmp_path / "library"
        make_video(base / "D1" / "Show S01E01.mkv")
        dest.mkdir()
        (dest / "Show S01E01.mkv").write_text("keep")

        results = relocate_videos(base, dest, MIN_SIZE, dry_run=False)

        assert [r.outcome for r in results] == [COLLISION_SKIPPED]
        assert (dest / "Show S01E01.mkv").read_text() == "keep"
        assert (base / "D1" / "Show S01E01.mkv").exists()

    def test_same_name_in_two_folders(self, tmp_path, make_video):
        base = tmp_path / "rips"
        dest = tmp_path / "library"
        make_video(base / "A" / "title_t00.mkv")
        make_video(base / "B" / "title_t00.mkv")

        results = relocate_videos(base, dest, MIN_SIZE, dry_run=False)

        assert [r.outcome for r in results] == [MOVED, COLLISION_SKIPPED]
        assert (base / "B" / "title_t00.mkv").exists()

    def test_dry_run_uses_pending_rename_targets(self, tmp_path, make_video):
        base = tmp_path / "rips"
        dest = tmp_path / "library"
        make_video(base / "A" / "title_t00.mkv")
        make_video(base / "B" / "title_t00.mkv")
        renamed = {
            base / "A" / "title_t00.mkv": base / "A" / "Show S01E01.mkv",
            base / "B" / "title_t00.mkv": base / "B" / "Show S01E02.mkv",
        }

        results = relocate_videos(base, dest, MIN_SIZE, dry_run=True, renamed=renamed)

        assert [(r.action.source, r.action.target) for r in results] == [
            (base / "A" / "Show S01E01.mkv", dest / "Show S01E01.mkv"),
            (base / "B" / "Show S01E02.mkv", dest / "Show S01E02.mkv"),
        ]
        assert [r.outcome for r in results] == [WOULD_MOVE, WOULD_MOVE]
        assert (base / "A" / "title_t00.mkv").exists()

    def test_destination_inside_base_is_excluded(self, tmp_path, make_video):
        base = tmp_path / "rips"
        dest = base / "out"
        make_video(dest / "Old S01E01.mkv")
        make_video(base / "D1" / "New S01E02.mkv")

        results = relocate_videos(base, dest, MIN_SIZE, dry_run=False)

        assert [r.action.source.name for r in results] == ["New S01E02.mkv"]
        assert (dest / "Old S01E01.mkv").exists()

    def test_move_failure(self, tmp_path, make_video, monkeypatch):
        base = tmp_path / "rips"
        make_video(base / "D1" / "a.mkv")

        def boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(rename_executor.shutil, "move", boom)
        results = relocate_videos(base, tmp_path / "dest", MIN_SIZE, dry_run=False)

        assert [r.outcome for r in results] == [FAILED]
        assert results[0].error == "disk full"

    def test_nothing_to_move(self, tmp_path):
        (tmp_path / "rips").mkdir()
        assert relocate_videos(tmp_path / "rips", tmp_path / "dest", MIN_SIZE, dry_run=False) == []
        assert not (tmp_path / "dest").exists()
