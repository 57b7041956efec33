from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from node_builder import core
from node_builder.cache import manager
from node_builder.cache.manager import CacheStatus
from node_builder.core import compile_app
from node_builder.errors import PipelineFailure, PreconditionError
from node_builder.installer.selector import Strategy


def _installs_left_pad(cwd: Path) -> None:
    pkg = cwd / "node_modules" / "left-pad"
    pkg.mkdir(parents=True, exist_ok=True)
    (pkg / "index.js").write_text("module.exports = () => {}\n", encoding="utf-8")


def _fresh_checkout(app_dirs, package: dict) -> None:
    shutil.rmtree(app_dirs.build)
    app_dirs.build.mkdir()
    app_dirs.write_package_json(package)


def _compile(app_dirs, runner, installer, output):
    return compile_app(
        app_dirs.build,
        app_dirs.cache,
        app_dirs.env,
        runner=runner,
        installer=installer,
        output=output,
    )


@pytest.mark.timeout(20)
def test_fresh_install_then_cached_rebuild(app_dirs, fake_runner, fake_installer, quiet_output, tmp_path):
    app_dirs.write_package_json({"name": "web", "engines": {"node": "20.x"}})
    runner = fake_runner(effects={"npm install": _installs_left_pad})

    first = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert first.ok and first.exit_code == 0
    assert first.strategy is Strategy.INSTALL
    assert first.cache_status is CacheStatus.ABSENT
    assert first.saved.saved == ["node_modules"]
    assert first.saved.missing == ["bower_components"]
    assert (app_dirs.cache / "node" / "signature").read_text(encoding="utf-8") == (
        "10.2.4; v20.11.1; heroku-22"
    )
    assert fake_installer.calls[0][:2] == ("node", "20.x")
    assert fake_installer.calls[0][2] == app_dirs.build / ".heroku" / "node"

    # Second deploy: fresh checkout, same toolchain -> cache restored before install
    _fresh_checkout(app_dirs, {"name": "web", "engines": {"node": "20.x"}})
    second_runner = fake_runner()

    second = _compile(app_dirs, second_runner, fake_installer, quiet_output)

    assert second.ok
    assert second.cache_status is CacheStatus.VALID
    assert second.strategy is Strategy.INSTALL  # decided before restore
    assert (app_dirs.build / "node_modules" / "left-pad" / "index.js").exists()


@pytest.mark.timeout(20)
def test_toolchain_change_invalidates_cache(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    _compile(app_dirs, fake_runner(effects={"npm install": _installs_left_pad}), fake_installer, quiet_output)
    _fresh_checkout(app_dirs, {"name": "app"})

    upgraded = fake_runner(responses={"node --version": (0, ["v22.1.0"])})
    result = _compile(app_dirs, upgraded, fake_installer, quiet_output)

    assert result.cache_status is CacheStatus.INVALID
    assert not (app_dirs.build / "node_modules").exists()
    assert result.signature == "10.2.4; v22.1.0; heroku-22"


def test_two_lockfiles_abort_before_any_subprocess(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    (app_dirs.build / "yarn.lock").write_text("", encoding="utf-8")
    (app_dirs.build / "package-lock.json").write_text("{}", encoding="utf-8")
    runner = fake_runner()

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.exit_code == 1
    assert isinstance(result.error, PreconditionError)
    assert "lockfiles" in result.error.message
    assert runner.calls == []
    assert fake_installer.calls == []
    assert result.diagnostics == []


def test_checked_in_heroku_node_is_fatal(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    (app_dirs.build / ".heroku" / "node").mkdir(parents=True)
    runner = fake_runner()

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert isinstance(result.error, PreconditionError)
    assert runner.calls == []


@pytest.mark.timeout(20)
def test_install_failure_is_classified_and_not_cached(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json({"scripts": {"heroku-postbuild": "webpack"}})
    (app_dirs.build / "yarn.lock").write_text("", encoding="utf-8")
    runner = fake_runner(
        responses={
            "yarn install": (
                1,
                ["error Your lockfile needs to be updated, but yarn was run with `--frozen-lockfile`."],
            ),
        }
    )

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.exit_code == 1
    assert isinstance(result.error, PipelineFailure)
    assert result.diagnostics[0].key == "lockfile-outdated"
    assert not runner.ran("yarn run heroku-postbuild")
    assert not (app_dirs.cache / "node" / "signature").exists()
    assert [c[0] for c in fake_installer.calls] == ["node", "yarn"]


@pytest.mark.timeout(20)
def test_yarn_lock_with_prebuilt_modules_discards_them(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    (app_dirs.build / "yarn.lock").write_text("", encoding="utf-8")
    (app_dirs.build / "node_modules" / "stale").mkdir(parents=True)
    runner = fake_runner()

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.ok
    assert result.strategy is Strategy.YARN
    assert not (app_dirs.build / "node_modules" / "stale").exists()
    assert runner.ran("yarn install --pure-lockfile")
    assert any("yarn.lock" in w for w in quiet_output.warnings)
    assert not any(".gitignore" in w for w in quiet_output.warnings)


@pytest.mark.timeout(20)
def test_prebuilt_modules_are_rebuilt(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    (app_dirs.build / "node_modules").mkdir()
    runner = fake_runner()

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.strategy is Strategy.REBUILD
    install_calls = [c for c in runner.calls if c[0] == "npm" and c[1] in {"rebuild", "install"}]
    assert [c[1] for c in install_calls] == ["rebuild", "install"]


@pytest.mark.timeout(20)
def test_cache_disabled_skips_restore_and_save(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    app_dirs.set_env("NODE_MODULES_CACHE", "false")

    result = _compile(app_dirs, fake_runner(), fake_installer, quiet_output)

    assert result.ok
    assert result.saved is None
    assert not (app_dirs.cache / "node").exists()


@pytest.mark.timeout(20)
def test_verbose_lists_dependencies(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    app_dirs.set_env("NODE_VERBOSE", "true")
    runner = fake_runner(responses={"npm ls": (1, ["extraneous: foo"])})

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.ok  # listing exit code is informational
    assert runner.ran("npm ls --depth=0")


@pytest.mark.timeout(20)
def test_npm_engine_pin_failure_is_reported(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json({"engines": {"node": "20.x", "npm": "6.14.18"}})
    runner = fake_runner(responses={"npm install --unsafe-perm --quiet -g": (1, ["npm ERR! code E404"])})

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.exit_code == 1
    assert [d.key for d in result.diagnostics] == ["package-not-found"]
    assert result.pipeline is None


def test_declared_cache_directories_are_used(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json({"cacheDirectories": ["client/node_modules"]})

    def install_client(cwd: Path) -> None:
        (cwd / "client" / "node_modules" / "react").mkdir(parents=True, exist_ok=True)

    result = _compile(app_dirs, fake_runner(effects={"npm install": install_client}), fake_installer, quiet_output)

    assert result.saved.saved == ["client/node_modules"]
    assert (app_dirs.cache / "node" / "client" / "node_modules" / "react").is_dir()
    assert not (app_dirs.cache / "node" / "node_modules").exists()


def test_invalid_config_var_aborts_before_any_subprocess(app_dirs, fake_runner, fake_installer, quiet_output):
    app_dirs.write_package_json()
    app_dirs.set_env("NODE_MODULES_CACHE", "sometimes")
    runner = fake_runner()

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.exit_code == 1
    assert isinstance(result.error, PreconditionError)
    assert "NODE_MODULES_CACHE" in result.error.message
    assert runner.calls == []
    assert fake_installer.calls == []


@pytest.mark.timeout(20)
def test_restore_failure_warns_and_still_installs(
    app_dirs, fake_runner, fake_installer, quiet_output, monkeypatch
):
    app_dirs.write_package_json()
    _compile(app_dirs, fake_runner(effects={"npm install": _installs_left_pad}), fake_installer, quiet_output)
    _fresh_checkout(app_dirs, {"name": "app"})

    def broken_copytree(src, dst, *args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(manager.shutil, "copytree", broken_copytree)
    runner = fake_runner()

    result = _compile(app_dirs, runner, fake_installer, quiet_output)

    assert result.ok
    assert result.cache_status is CacheStatus.VALID
    assert any("Unable to restore node_modules" in w for w in quiet_output.warnings)
    assert runner.ran("npm install")


@pytest.mark.timeout(20)
def test_default_installer_is_closed(app_dirs, fake_runner, fake_installer, quiet_output, monkeypatch):
    app_dirs.write_package_json()
    created = []

    class RecordingInstaller:
        def __init__(self, base_url: str) -> None:
            self.base_url = base_url
            self.closed = False
            created.append(self)

        def install(self, tool, constraint, target_dir):
            return fake_installer.install(tool, constraint, target_dir)

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            self.closed = True

    monkeypatch.setattr(core, "NodebinInstaller", RecordingInstaller)
    app_dirs.set_env("NODEBIN_URL", "https://nodebin.test/v1")

    result = compile_app(
        app_dirs.build, app_dirs.cache, app_dirs.env, runner=fake_runner(), output=quiet_output
    )

    assert result.ok
    assert [i.base_url for i in created] == ["https://nodebin.test/v1"]
    assert created[0].closed
