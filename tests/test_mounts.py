"""Tests for warren/mounts.py — allowlist mount validation."""

from warren.mounts import AdditionalMount, AllowlistValidator


class TestAllowlistValidator:
    def test_accepts_path_under_root(self, tmp_path):
        root = tmp_path / "shared"
        (root / "docs").mkdir(parents=True)
        v = AllowlistValidator([root])
        [m] = v([AdditionalMount(str(root / "docs"), readonly=False)], "g1", is_main=True)
        assert m.host_path == str((root / "docs").resolve())
        assert m.container_path == "/workspace/extra/docs"
        assert m.readonly is False
        assert m.name == "docs"

    def test_non_main_forced_readonly(self, tmp_path):
        (tmp_path / "docs").mkdir()
        v = AllowlistValidator([tmp_path])
        [m] = v([AdditionalMount(str(tmp_path / "docs"), readonly=False)], "g1", is_main=False)
        assert m.readonly is True

    def test_rejects_outside_allowlist(self, tmp_path):
        (tmp_path / "allowed").mkdir()
        (tmp_path / "secret").mkdir()
        v = AllowlistValidator([tmp_path / "allowed"])
        assert v([AdditionalMount(str(tmp_path / "secret"))], "g1", is_main=True) == []

    def test_rejects_symlink_escape(self, tmp_path):
        (tmp_path / "allowed").mkdir()
        (tmp_path / "secret").mkdir()
        (tmp_path / "allowed" / "link").symlink_to(tmp_path / "secret")
        v = AllowlistValidator([tmp_path / "allowed"])
        assert v([AdditionalMount(str(tmp_path / "allowed" / "link"))], "g1", is_main=True) == []

    def test_rejects_missing(self, tmp_path):
        v = AllowlistValidator([tmp_path])
        assert v([AdditionalMount(str(tmp_path / "nope"))], "g1", is_main=True) == []

    def test_container_name_and_duplicates(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        v = AllowlistValidator([tmp_path])
        mounts = v([
            AdditionalMount(str(tmp_path / "a"), container_path="notes"),
            AdditionalMount(str(tmp_path / "b"), container_path="notes"),
        ], "g1", is_main=True)
        assert [m.container_path for m in mounts] == ["/workspace/extra/notes"]

    def test_empty_allowlist_rejects_everything(self, tmp_path):
        (tmp_path / "a").mkdir()
        assert AllowlistValidator([])([AdditionalMount(str(tmp_path / "a"))], "g1", True) == []
