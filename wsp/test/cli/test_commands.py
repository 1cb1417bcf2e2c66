"""CLI command tests.

Commands are called directly with every argument spelled out, in JSON mode,
against throwaway data and workspace directories.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import typer
from typer.testing import CliRunner

from wsp import __version__
from wsp.cli.app import app
from wsp.cli.commands import config_cmd, group, repo, workspace
from wsp.core.config import Paths
from wsp.core.errors import ErrorCode

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not available")


@pytest.fixture
def cli_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Paths:
    monkeypatch.setenv("WSP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("WSP_WORKSPACES_DIR", str(tmp_path / "workspaces"))
    monkeypatch.setenv("WSP_JSON", "1")
    return Paths.from_env()


def _out(capsys: pytest.CaptureFixture[str]) -> dict[str, Any]:
    return json.loads(capsys.readouterr().out)


def _exit_code(exc: pytest.ExceptionInfo[typer.Exit]) -> int:
    return exc.value.exit_code


def _register(capsys: pytest.CaptureFixture[str], *urls: str) -> list[str]:
    repo.add(urls=list(urls))
    return _out(capsys)["added"]


class TestRepoCommands:
    def test_add_and_list(
        self, cli_paths: Paths, make_upstream: Callable[..., Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        up = make_upstream("acme", "api")

        (identity,) = _register(capsys, up.url)
        assert identity.endswith("acme/api")
        assert cli_paths.registry_path.is_file()

        repo.list_repos()
        listed = _out(capsys)
        assert listed["ok"] is True
        assert [r["shortname"] for r in listed["repos"]] == ["api"]
        assert listed["repos"][0]["url"] == up.url

    def test_add_twice_is_a_user_error(
        self, cli_paths: Paths, make_upstream: Callable[..., Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        up = make_upstream("acme", "api")
        _register(capsys, up.url)

        with pytest.raises(typer.Exit) as exc:
            repo.add(urls=[up.url])

        assert _exit_code(exc) == int(ErrorCode.USER_ERROR)
        out = _out(capsys)
        assert out["ok"] is False
        assert out["error"]["kind"] == "already_registered"

    def test_fetch_failure_exits_with_network_error(
        self,
        cli_paths: Paths,
        make_upstream: Callable[..., Any],
        capsys: pytest.CaptureFixture[str],
        tmp_path: Path,
    ) -> None:
        api = make_upstream("acme", "api")
        lib = make_upstream("acme", "lib")
        _register(capsys, api.url, lib.url)
        shutil.move(lib.remote, tmp_path / "moved.git")

        with pytest.raises(typer.Exit) as exc:
            repo.fetch(repos=None, prune=False)

        assert _exit_code(exc) == int(ErrorCode.NETWORK_ERROR)
        out = _out(capsys)
        assert out["ok"] is False
        assert len(out["fetched"]) == 1
        assert out["fetched"][0].endswith("acme/api")
        assert len(out["failed"]) == 1
        assert out["failed"][0]["repo"].endswith("acme/lib")

    def test_remove(
        self, cli_paths: Paths, make_upstream: Callable[..., Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        (identity,) = _register(capsys, make_upstream("acme", "api").url)

        repo.remove(repo="api")

        assert _out(capsys) == {"ok": True, "removed": identity, "groups": []}
        assert not list(cli_paths.mirrors_dir.rglob("HEAD"))

    def test_unknown_repo(self, cli_paths: Paths, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(typer.Exit) as exc:
            repo.remove(repo="ghost")
        assert _exit_code(exc) == int(ErrorCode.USER_ERROR)
        assert _out(capsys)["error"]["kind"] == "not_found"


class TestGroupAndConfig:
    def test_group_lifecycle(
        self, cli_paths: Paths, make_upstream: Callable[..., Any], capsys: pytest.CaptureFixture[str]
    ) -> None:
        api, lib = _register(capsys, make_upstream("acme", "api").url, make_upstream("acme", "lib").url)

        group.new(name="backend", repos=["lib", "api"])
        assert _out(capsys)["repos"] == [lib, api]

        group.update(name="backend", add=[], remove=["lib"])
        assert _out(capsys)["repos"] == [api]

        group.list_groups()
        assert _out(capsys)["groups"] == {"backend": [api]}

        group.delete(name="backend")
        assert _out(capsys) == {"ok": True, "deleted": "backend"}

        with pytest.raises(typer.Exit) as exc:
            group.show(name="backend")
        assert _exit_code(exc) == int(ErrorCode.USER_ERROR)

    def test_branch_prefix(self, cli_paths: Paths, capsys: pytest.CaptureFixture[str]) -> None:
        config_cmd.set_(key="branch-prefix", value="alice/")
        assert _out(capsys)["value"] == "alice"

        config_cmd.get(key="branch-prefix")
        assert _out(capsys) == {"ok": True, "key": "branch-prefix", "value": "alice"}

        config_cmd.unset(key="branch-prefix")
        config_cmd.get(key="branch-prefix")
        assert _out(capsys)["value"] is None

    def test_unknown_config_key(self, cli_paths: Paths, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(typer.Exit) as exc:
            config_cmd.get(key="editor")
        assert _exit_code(exc) == int(ErrorCode.USER_ERROR)
        assert _out(capsys)["error"]["kind"] == "invalid_name"


class TestWorkspaceCommands:
    @pytest.fixture
    def repos(
        self, cli_paths: Paths, make_upstream: Callable[..., Any], capsys: pytest.CaptureFixture[str]
    ) -> list[str]:
        return _register(capsys, make_upstream("acme", "api").url, make_upstream("acme", "lib").url)

    def test_new_status_and_delete(
        self,
        repos: list[str],
        cli_paths: Paths,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        api, lib = repos

        workspace.new(name="feat", repos=["api", "lib@main"], group=[])
        created = _out(capsys)["workspace"]
        assert created["branch"] == "feat"
        assert created["repos"] == {api: {"dir": "api", "ref": None}, lib: {"dir": "lib", "ref": "main"}}

        monkeypatch.chdir(cli_paths.workspace_dir("feat") / "api")
        workspace.status(workspace=None)
        status = _out(capsys)
        assert status["workspace"] == "feat"
        by_repo = {r["repo"]: r for r in status["repos"]}
        assert by_repo[api]["branch"] == "feat"
        assert by_repo[lib]["branch"] == "main"
        assert by_repo[lib]["ref"] == "main"

        workspace.list_workspaces()
        assert [w["name"] for w in _out(capsys)["workspaces"]] == ["feat"]

        monkeypatch.chdir(cli_paths.workspaces_dir)
        workspace.delete(name="feat", force=False, keep_mirror_branches=False)
        deleted = _out(capsys)
        assert deleted["deleted"] == "feat"
        assert sorted(deleted["repos"]) == sorted(repos)
        assert not cli_paths.workspace_dir("feat").exists()

    def test_new_from_group(
        self, repos: list[str], cli_paths: Paths, capsys: pytest.CaptureFixture[str]
    ) -> None:
        group.new(name="all", repos=["api", "lib"])
        capsys.readouterr()

        workspace.new(name="feat", repos=["lib@main"], group=["all"])

        members = _out(capsys)["workspace"]["repos"]
        assert members[repos[0]]["ref"] is None
        assert members[repos[1]]["ref"] == "main"

    def test_new_without_members(self, cli_paths: Paths) -> None:
        with pytest.raises(typer.Exit) as exc:
            workspace.new(name="feat", repos=None, group=[])
        assert _exit_code(exc) == int(ErrorCode.USER_ERROR)

    def test_rm_blocked_by_dirty_clone(
        self, repos: list[str], cli_paths: Paths, capsys: pytest.CaptureFixture[str]
    ) -> None:
        workspace.new(name="feat", repos=["api", "lib"], group=[])
        capsys.readouterr()
        clone = cli_paths.workspace_dir("feat") / "api"
        (clone / "wip.txt").write_text("wip\n", encoding="utf-8")

        with pytest.raises(typer.Exit) as exc:
            workspace.rm(repos=["api"], workspace="feat", force=False)

        assert _exit_code(exc) == int(ErrorCode.SAFETY_BLOCK)
        error = _out(capsys)["error"]
        assert error["kind"] == "removal_blocked"
        assert error["problems"][0]["kind"] == "dirty_working_tree"
        assert clone.is_dir()

        workspace.rm(repos=["api"], workspace="feat", force=True)
        assert _out(capsys)["removed"] == [repos[0]]
        assert not clone.exists()

    def test_add_member(self, repos: list[str], cli_paths: Paths, capsys: pytest.CaptureFixture[str]) -> None:
        workspace.new(name="feat", repos=["api"], group=[])
        capsys.readouterr()

        workspace.add(repos=["lib@main"], workspace="feat")

        assert _out(capsys) == {"ok": True, "workspace": "feat", "added": [repos[1]]}
        assert (cli_paths.workspace_dir("feat") / "lib" / ".git").exists()

    def test_fetch_workspace(self, repos: list[str], cli_paths: Paths, capsys: pytest.CaptureFixture[str]) -> None:
        workspace.new(name="feat", repos=["api", "lib"], group=[])
        capsys.readouterr()

        workspace.fetch(workspace="feat", prune=True)

        out = _out(capsys)
        assert out["ok"] is True
        assert sorted(out["mirrors"]) == sorted(repos)
        assert out["failed"] == []

    def test_path(
        self,
        repos: list[str],
        cli_paths: Paths,
        capsys: pytest.CaptureFixture[str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        workspace.new(name="feat", repos=["api"], group=[])
        capsys.readouterr()
        root = cli_paths.workspace_dir("feat")

        workspace.path_cmd(workspace="feat", repo=None)
        assert _out(capsys) == {"ok": True, "workspace": "feat", "path": str(root)}

        monkeypatch.chdir(root / "api")
        workspace.path_cmd(workspace=None, repo="api")
        assert _out(capsys)["path"] == str(root / "api")

        with pytest.raises(typer.Exit) as exc:
            workspace.path_cmd(workspace="feat", repo="lib")
        assert _exit_code(exc) == int(ErrorCode.USER_ERROR)
        assert _out(capsys)["error"]["kind"] == "not_found"

        monkeypatch.setenv("WSP_JSON", "0")
        result = CliRunner().invoke(app, ["path", "feat", "-r", "api"])
        assert result.exit_code == 0
        assert result.stdout == f"{root / 'api'}\n"

    def test_outside_a_workspace(self, cli_paths: Paths, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        with pytest.raises(typer.Exit) as exc:
            workspace.status(workspace=None)
        assert _exit_code(exc) == int(ErrorCode.USER_ERROR)


class TestApp:
    def test_version(self) -> None:
        result = CliRunner().invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.strip() == __version__

    def test_json_flag(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WSP_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.setenv("WSP_WORKSPACES_DIR", str(tmp_path / "workspaces"))
        monkeypatch.setenv("WSP_JSON", "0")

        result = CliRunner().invoke(app, ["--json", "config", "get", "branch-prefix"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"ok": True, "key": "branch-prefix", "value": None}

    def test_broken_registry_is_an_environment_error(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        data = tmp_path / "data"
        data.mkdir()
        monkeypatch.setenv("WSP_DATA_DIR", str(data))
        monkeypatch.setenv("WSP_JSON", "0")
        monkeypatch.setenv("WSP_WORKSPACES_DIR", str(tmp_path / "workspaces"))
        paths = Paths.from_env()
        paths.registry_path.write_text("{not json", encoding="utf-8")

        result = CliRunner().invoke(app, ["--json", "repo", "list"])

        assert result.exit_code == int(ErrorCode.ENV_ERROR)
        assert json.loads(result.stdout)["error"]["kind"] == "storage_error"
