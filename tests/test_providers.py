"""Tests for the project and history providers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from procmux.exceptions import ProjectNotFoundError
from procmux.providers import JsonlSessionHistory, NullSessionHistory, PackageJsonProjectProvider


def write_manifest(directory: Path, data: object) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.json").write_text(
        data if isinstance(data, str) else json.dumps(data), encoding="utf-8"
    )


class TestResolveWorkingDirectory:
    """Tests for PackageJsonProjectProvider.resolve_working_directory."""

    def test_absolute_directory(self, tmp_path: Path):
        assert PackageJsonProjectProvider().resolve_working_directory(str(tmp_path)) == tmp_path.resolve()

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(ProjectNotFoundError) as exc_info:
            PackageJsonProjectProvider().resolve_working_directory(str(tmp_path / "gone"))

        assert exc_info.value.identifier == str(tmp_path / "gone")
        assert str(exc_info.value) == f"Project not found: {tmp_path / 'gone'}"

    def test_file_is_not_a_project(self, tmp_path: Path):
        target = tmp_path / "file.txt"
        target.write_text("x", encoding="utf-8")

        with pytest.raises(ProjectNotFoundError):
            PackageJsonProjectProvider().resolve_working_directory(str(target))

    def test_relative_without_root(self):
        with pytest.raises(ProjectNotFoundError):
            PackageJsonProjectProvider().resolve_working_directory("app")

    def test_relative_under_root(self, tmp_path: Path):
        (tmp_path / "app").mkdir()
        provider = PackageJsonProjectProvider(str(tmp_path))

        assert provider.resolve_working_directory("app") == (tmp_path / "app").resolve()

    def test_escape_from_root_rejected(self, tmp_path: Path):
        root = tmp_path / "projects"
        root.mkdir()
        (tmp_path / "outside").mkdir()
        provider = PackageJsonProjectProvider(str(root))

        with pytest.raises(ProjectNotFoundError):
            provider.resolve_working_directory("../outside")
        with pytest.raises(ProjectNotFoundError):
            provider.resolve_working_directory(str(tmp_path / "outside"))


class TestListAvailableScripts:
    """Tests for PackageJsonProjectProvider.list_available_scripts."""

    def test_lists_scripts_in_manifest_order(self, tmp_path: Path):
        write_manifest(tmp_path, {"scripts": {"dev": "vite", "build": "vite build", "lint": "eslint ."}})

        assert PackageJsonProjectProvider().list_available_scripts(tmp_path) == ["dev", "build", "lint"]

    def test_non_string_commands_are_skipped(self, tmp_path: Path):
        write_manifest(tmp_path, {"scripts": {"dev": "vite", "weird": ["a"], "bad": None}})

        assert PackageJsonProjectProvider().list_available_scripts(tmp_path) == ["dev"]

    @pytest.mark.parametrize(
        "manifest",
        ['{"scripts": ', '["dev"]', {"name": "no-scripts"}, {"scripts": ["dev"]}],
    )
    def test_unusable_manifest(self, tmp_path: Path, manifest: object):
        write_manifest(tmp_path, manifest)

        assert PackageJsonProjectProvider().list_available_scripts(tmp_path) == []

    def test_missing_manifest(self, tmp_path: Path):
        assert PackageJsonProjectProvider().list_available_scripts(tmp_path) == []


class TestSessionHistory:
    """Tests for the history providers."""

    async def test_appends_jsonl(self, tmp_path: Path):
        history = JsonlSessionHistory(tmp_path / "history")

        await history.append_record("sess-1", {"type": "system", "text": "héllo"})
        await history.append_record("sess-1", {"type": "result"})

        lines = (tmp_path / "history" / "sess-1.jsonl").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["type"] for line in lines] == ["system", "result"]
        assert "héllo" in lines[0]

    @pytest.mark.parametrize("session_id", ["../escape", "a/b", "", "x" * 129])
    def test_unsafe_session_ids(self, tmp_path: Path, session_id: str):
        with pytest.raises(ValueError):
            JsonlSessionHistory(tmp_path).path_for(session_id)

    async def test_null_history_discards(self):
        assert await NullSessionHistory().append_record("s", {"type": "x"}) is None
