"""Tests for wsp.core.workspace (metadata, names, detection)."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from wsp.core.config import METADATA_FILE
from wsp.core.errors import InvalidName, NotFound, StorageError
from wsp.core.identity import RepositoryIdentity
from wsp.core.result import Err, Ok
from wsp.core.workspace import (
    Active,
    Context,
    Workspace,
    WorkspaceMetadata,
    compute_dir_names,
    detect,
    list_names,
    load_metadata,
    member_from_ref,
    save_metadata,
    validate_name,
)

API = RepositoryIdentity("github.com", "acme", "api")
OTHER_API = RepositoryIdentity("github.com", "other", "api")
LIB = RepositoryIdentity("github.com", "acme", "lib")


def _meta() -> WorkspaceMetadata:
    return WorkspaceMetadata(
        name="fix-login",
        branch="alice/fix-login",
        created=datetime(2026, 1, 2, 10, 0, tzinfo=UTC),
        members={API: Active(), OTHER_API: Active(), LIB: Context("v1.0")},
        dirs=compute_dir_names([API, OTHER_API, LIB]),
    )


class TestValidateName:
    @pytest.mark.parametrize("name", ["fix-login", "feature_1", "a.b", "x"])
    def test_accepts(self, name: str) -> None:
        assert validate_name(name) == Ok(name)

    @pytest.mark.parametrize("name", ["", "a/b", "a\\b", ".hidden", "-rf", "nul\0byte"])
    def test_rejects(self, name: str) -> None:
        result = validate_name(name)
        assert isinstance(result, Err)
        assert isinstance(result.error, InvalidName)


class TestDirNames:
    def test_unique_names_have_no_override(self) -> None:
        assert compute_dir_names([API, LIB]) == {}

    def test_colliding_names_all_get_owner_prefix(self) -> None:
        assert compute_dir_names([API, OTHER_API, LIB]) == {API: "acme-api", OTHER_API: "other-api"}

    def test_same_owner_on_two_hosts_gets_host_prefix(self) -> None:
        gitlab_api = RepositoryIdentity("gitlab.com", "acme", "api")
        assert compute_dir_names([API, gitlab_api, OTHER_API]) == {
            API: "github.com-acme-api",
            gitlab_api: "gitlab.com-acme-api",
            OTHER_API: "other-api",
        }

    def test_dir_name_falls_back_to_repo_name(self) -> None:
        meta = _meta()
        assert meta.dir_name(LIB) == "lib"
        assert meta.dir_name(API) == "acme-api"


class TestMembers:
    def test_member_from_ref(self) -> None:
        assert member_from_ref(None) == Active()
        assert member_from_ref("") == Active()
        assert member_from_ref("v1.0") == Context("v1.0")

    def test_active_lists_only_active_members(self) -> None:
        assert _meta().active() == [API, OTHER_API]


class TestMetadataFile:
    def test_roundtrip(self, tmp_path: Path) -> None:
        assert save_metadata(tmp_path, _meta()) == Ok(None)
        loaded = load_metadata(tmp_path)
        assert isinstance(loaded, Ok)
        meta = loaded.value
        assert meta.name == "fix-login"
        assert meta.branch == "alice/fix-login"
        assert meta.members == {API: Active(), OTHER_API: Active(), LIB: Context("v1.0")}
        assert meta.dirs == {API: "acme-api", OTHER_API: "other-api"}
        assert meta.created == datetime(2026, 1, 2, 10, 0, tzinfo=UTC)

    def test_file_format(self, tmp_path: Path) -> None:
        save_metadata(tmp_path, _meta())
        data = json.loads((tmp_path / METADATA_FILE).read_text(encoding="utf-8"))
        assert data["repos"]["github.com/acme/lib"] == {"ref": "v1.0"}
        assert data["repos"]["github.com/acme/api"] == {}

    def test_missing_is_not_found(self, tmp_path: Path) -> None:
        result = load_metadata(tmp_path)
        assert isinstance(result, Err)
        assert isinstance(result.error, NotFound)

    def test_corrupt_is_storage_error(self, tmp_path: Path) -> None:
        (tmp_path / METADATA_FILE).write_text("[]", encoding="utf-8")
        result = load_metadata(tmp_path)
        assert isinstance(result, Err)
        assert isinstance(result.error, StorageError)

    def test_unsafe_dir_override_rejected(self, tmp_path: Path) -> None:
        data = {
            "name": "w",
            "branch": "w",
            "repos": {"github.com/acme/api": {}},
            "dirs": {"github.com/acme/api": "../escape"},
        }
        (tmp_path / METADATA_FILE).write_text(json.dumps(data), encoding="utf-8")
        result = load_metadata(tmp_path)
        assert isinstance(result, Err)
        assert isinstance(result.error, StorageError)


class TestDiscovery:
    def test_detect_walks_up(self, tmp_path: Path) -> None:
        save_metadata(tmp_path, _meta())
        nested = tmp_path / "acme-api" / "src"
        nested.mkdir(parents=True)
        assert detect(nested) == Ok(tmp_path)

    def test_detect_outside_workspace(self, tmp_path: Path) -> None:
        assert isinstance(detect(tmp_path), Err)

    def test_list_names_only_counts_workspaces(self, tmp_path: Path) -> None:
        for name in ("b", "a"):
            (tmp_path / name).mkdir()
            save_metadata(tmp_path / name, _meta())
        (tmp_path / "stray").mkdir()
        assert list_names(tmp_path) == ["a", "b"]
        assert list_names(tmp_path / "missing") == []

    def test_workspace_clone_dir(self, tmp_path: Path) -> None:
        ws = Workspace(root=tmp_path, meta=_meta())
        assert ws.clone_dir(LIB) == tmp_path / "lib"
        assert ws.clone_dir(OTHER_API) == tmp_path / "other-api"
        assert ws.branch == "alice/fix-login"
