"""Tests for services/mirrors.py against real git."""

from __future__ import annotations

import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from wsp.core.config import Paths
from wsp.core.errors import AlreadyRegistered, FetchFailed, InvalidIdentity, NotFound, PathTraversal
from wsp.core.identity import RepositoryIdentity
from wsp.core.registry import Registry
from wsp.core.result import Err, Ok
from wsp.output.console import MockConsole
from wsp.services.groups import GroupService
from wsp.services.mirrors import MIRROR_REFSPEC, MirrorService

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not available")

pytestmark = requires_git


def _service(registry: Registry, paths: Paths, console: MockConsole) -> MirrorService:
    return MirrorService(registry=registry, paths=paths, console=console)


class TestRegister:
    def test_creates_bare_mirror(
        self,
        make_upstream: Callable[..., Any],
        registry: Registry,
        paths: Paths,
        console: MockConsole,
        git: Callable[..., str],
    ) -> None:
        up = make_upstream("acme", "api")
        service = _service(registry, paths, console)

        result = service.register(up.url)

        assert isinstance(result, Ok)
        identity = result.value
        assert identity.owner.endswith("acme")
        assert identity.name == "api"
        mirror = service.mirror_dir(identity)
        assert (mirror / "HEAD").is_file()
        assert git(mirror, "config", "--get", "remote.origin.fetch") == MIRROR_REFSPEC
        assert git(mirror, "symbolic-ref", "refs/remotes/origin/HEAD") == "refs/remotes/origin/main"
        assert git(mirror, "rev-parse", "refs/remotes/origin/main") == up.git("rev-parse", "main")
        assert registry.repos[identity].url == up.url

    def test_duplicate_leaves_mirror_and_record_untouched(
        self, make_upstream: Callable[..., Any], registry: Registry, paths: Paths, console: MockConsole
    ) -> None:
        up = make_upstream("acme", "api")
        service = _service(registry, paths, console)
        identity = service.register(up.url).unwrap()
        record = registry.repos[identity]
        marker = service.mirror_dir(identity) / "marker"
        marker.write_text("keep", encoding="utf-8")

        again = service.register(up.url)

        assert isinstance(again, Err)
        assert isinstance(again.error, AlreadyRegistered)
        assert registry.repos[identity] is record
        assert marker.read_text(encoding="utf-8") == "keep"

    def test_unreachable_url_leaves_nothing(
        self, tmp_path: Path, registry: Registry, paths: Paths, console: MockConsole
    ) -> None:
        url = (tmp_path / "missing" / "acme" / "ghost.git").as_uri()
        service = _service(registry, paths, console)

        result = service.register(url)

        assert isinstance(result, Err)
        assert isinstance(result.error, FetchFailed)
        assert registry.repos == {}
        assert not any(paths.mirrors_dir.rglob("ghost.git"))

    @pytest.mark.parametrize(
        ("url", "error_type"),
        [("not a url", InvalidIdentity), ("https://github.com/acme/../etc", PathTraversal)],
    )
    def test_invalid_url_touches_nothing(
        self, url: str, error_type: type, registry: Registry, paths: Paths, console: MockConsole
    ) -> None:
        result = _service(registry, paths, console).register(url)
        assert isinstance(result, Err)
        assert isinstance(result.error, error_type)
        assert not paths.mirrors_dir.exists()


class TestFetch:
    def test_fetch_updates_and_prunes(
        self,
        make_upstream: Callable[..., Any],
        registry: Registry,
        paths: Paths,
        console: MockConsole,
        git: Callable[..., str],
    ) -> None:
        up = make_upstream("acme", "api")
        up.git("push", "origin", "main:old-branch")
        service = _service(registry, paths, console)
        identity = service.register(up.url).unwrap()
        mirror = service.mirror_dir(identity)
        assert git(mirror, "rev-parse", "--verify", "refs/remotes/origin/old-branch")

        new_head = up.commit("b.txt", "b\n", "second")
        up.push("main", ":old-branch")

        assert service.fetch(identity, prune=True) == Ok(None)
        assert git(mirror, "rev-parse", "refs/remotes/origin/main") == new_head
        with pytest.raises(RuntimeError):
            git(mirror, "rev-parse", "--verify", "refs/remotes/origin/old-branch")

    def test_fetch_unknown_repo(
        self, make_upstream: Callable[..., Any], registry: Registry, paths: Paths, console: MockConsole
    ) -> None:
        up = make_upstream("acme", "api")
        service = _service(registry, paths, console)
        identity = service.register(up.url).unwrap()
        del registry.repos[identity]
        result = service.fetch(identity)
        assert isinstance(result, Err)
        assert isinstance(result.error, NotFound)

    def test_fetch_all_reports_each_repo_in_order(
        self, make_upstream: Callable[..., Any], registry: Registry, paths: Paths, console: MockConsole
    ) -> None:
        service = _service(registry, paths, console)
        ids = [service.register(make_upstream("acme", n).url).unwrap() for n in ("api", "lib", "web")]
        shutil.rmtree(service.mirror_dir(ids[1]))

        outcomes = service.fetch_all(ids)

        assert [o.repo for o in outcomes] == [str(i) for i in ids]
        assert [o.ok for o in outcomes] == [True, False, True]


class TestRemoveAndList:
    def test_remove_drops_group_references_with_warning(
        self, make_upstream: Callable[..., Any], registry: Registry, paths: Paths, console: MockConsole
    ) -> None:
        service = _service(registry, paths, console)
        api = service.register(make_upstream("acme", "api").url).unwrap()
        web = service.register(make_upstream("acme", "web").url).unwrap()
        GroupService(registry=registry).create("backend", [api, web])

        result = service.remove(api)

        assert result == Ok(["backend"])
        assert api not in registry.repos
        assert registry.groups["backend"] == [web]
        assert not service.mirror_dir(api).exists()
        assert any("backend" in w for w in console.warnings())

    def test_remove_unknown(self, registry: Registry, paths: Paths, console: MockConsole) -> None:
        result = _service(registry, paths, console).remove(RepositoryIdentity("h", "o", "n"))
        assert isinstance(result, Err)
        assert isinstance(result.error, NotFound)

    def test_list_uses_shortnames(
        self, make_upstream: Callable[..., Any], registry: Registry, paths: Paths, console: MockConsole
    ) -> None:
        service = _service(registry, paths, console)
        service.register(make_upstream("acme", "api").url)
        service.register(make_upstream("other", "api").url)
        service.register(make_upstream("acme", "web").url)

        names = sorted(info.shortname for info in service.list())
        assert names == ["acme/api", "other/api", "web"]
