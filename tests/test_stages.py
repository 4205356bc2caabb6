from collections.abc import Callable
from pathlib import Path

import pytest

from slimage.arena import BuilderEnvironment
from slimage.bases import BaseImageStore
from slimage.builders import get_builder
from slimage.cache import BuildCacheStore
from slimage.errors import AssemblyError, BuildError, EnvironmentSetupError
from slimage.models import BaseImageRef, SourceTree
from slimage.observability import StructuredLogger
from slimage.oci import layer_from_archive
from slimage.packages import RepositoryInstaller
from slimage.recipe import Recipe
from slimage.stages import BuilderStage, RuntimeAssemblyStage

MISNAMED_SCRIPT = 'printf "#!/bin/sh\\n" > "$SLIMAGE_BIN_DIR/knowbase"; chmod 755 "$SLIMAGE_BIN_DIR/knowbase"'


def _builder_stage(
    recipe: Recipe,
    store: BaseImageStore,
    installer: RepositoryInstaller,
    **kwargs: object,
) -> BuilderStage:
    config = recipe.config()
    return BuilderStage(
        config=config,
        store=store,
        installer=installer,
        builder=get_builder(config.builder),
        **kwargs,  # type: ignore[arg-type]
    )


def test_builder_stage_compiles_and_freezes(
    make_recipe: Callable[..., Recipe],
    store: BaseImageStore,
    installer: RepositoryInstaller,
    source_tree: SourceTree,
    tmp_path: Path,
) -> None:
    logger = StructuredLogger()
    stage = _builder_stage(make_recipe(), store, installer, logger=logger)

    with BuilderEnvironment("builder", work_root=tmp_path / "work") as environment:
        result = stage.run(source_tree, environment)

        assert environment.frozen
        assert result.produced == ("overmind",)
        assert [package.name for package in result.installed] == ["musl-dev"]
        assert environment.extract("/usr/local/bin/overmind").startswith(b"#!/bin/sh")
        assert (environment.rootfs / "usr" / "src" / "overmind" / "Cargo.toml").is_file()

    operations = [record["operation"] for record in logger.records_for_pipeline("overmind")]
    assert operations == ["seed_environment", "install_packages", "copy_source", "compile"]


def test_runtime_stage_ships_only_the_executable(
    make_recipe: Callable[..., Recipe],
    store: BaseImageStore,
    installer: RepositoryInstaller,
    source_tree: SourceTree,
    tmp_path: Path,
) -> None:
    recipe = make_recipe()
    config = recipe.config()

    with BuilderEnvironment("builder", work_root=tmp_path / "work") as environment:
        built = _builder_stage(recipe, store, installer).run(source_tree, environment)
        image, executable = RuntimeAssemblyStage(config=config, store=store).run(
            {"builder": environment},
            source_digest=built.source_digest,
        )

    runtime_base = layer_from_archive(store.resolve(BaseImageRef.parse("alpine:3.17")))
    assert image.base_layer.digest == runtime_base.digest
    assert image.added_paths == ("/usr/local/bin/overmind",)
    assert set(image.paths) == {
        "/bin/busybox",
        "/etc/alpine-release",
        "/lib/ld-musl-x86_64.so.1",
        "/usr/local/bin/overmind",
    }
    assert "/usr/lib/libc.a" not in image.paths
    assert "/usr/local/cargo/bin/rustc" not in image.paths
    assert not any(path.startswith("/usr/src") for path in image.paths)
    assert image.command == ("overmind",)
    assert executable.path == "/usr/local/bin/overmind"
    assert image.labels["io.slimage.executable.digest"] == f"sha256:{executable.digest}"
    assert image.labels["io.slimage.source.digest"] == f"sha256:{built.source_digest}"


def test_name_mismatch_fails_assembly(
    make_recipe: Callable[..., Recipe],
    store: BaseImageStore,
    installer: RepositoryInstaller,
    source_tree: SourceTree,
    tmp_path: Path,
) -> None:
    recipe = make_recipe(script=MISNAMED_SCRIPT)

    with BuilderEnvironment("builder", work_root=tmp_path / "work") as environment:
        built = _builder_stage(recipe, store, installer).run(source_tree, environment)
        with pytest.raises(AssemblyError) as excinfo:
            RuntimeAssemblyStage(config=recipe.config(), store=store).run(
                {"builder": environment},
                produced=built.produced,
            )

    assert excinfo.value.code == "E_ASSEMBLY"
    assert "knowbase" in (excinfo.value.hint or "")
    assert excinfo.value.context["path"] == "/usr/local/bin/overmind"


def test_unknown_copy_stage_fails_assembly(
    make_recipe: Callable[..., Recipe],
    store: BaseImageStore,
    tmp_path: Path,
) -> None:
    with BuilderEnvironment("compile", work_root=tmp_path) as environment:
        with pytest.raises(AssemblyError) as excinfo:
            RuntimeAssemblyStage(config=make_recipe().config(), store=store).run(
                {"compile": environment}
            )
    assert excinfo.value.context["copy_from"] == "builder"


def test_missing_runtime_base_is_an_environment_error(
    make_recipe: Callable[..., Recipe],
    tmp_path: Path,
) -> None:
    empty_store = BaseImageStore(tmp_path / "empty")
    with BuilderEnvironment("builder", work_root=tmp_path) as environment:
        with pytest.raises(EnvironmentSetupError):
            RuntimeAssemblyStage(config=make_recipe().config(), store=empty_store).run(
                {"builder": environment}
            )


def test_build_failure_stops_before_assembly(
    make_recipe: Callable[..., Recipe],
    store: BaseImageStore,
    installer: RepositoryInstaller,
    source_tree: SourceTree,
    tmp_path: Path,
) -> None:
    recipe = make_recipe(script="echo 'error: linker `cc` not found' >&2; exit 1")
    with BuilderEnvironment("builder", work_root=tmp_path / "work") as environment:
        with pytest.raises(BuildError) as excinfo:
            _builder_stage(recipe, store, installer).run(source_tree, environment)
        assert not environment.frozen
    assert excinfo.value.diagnostics == "error: linker `cc` not found\n"


def test_cached_executable_skips_compilation(
    make_recipe: Callable[..., Recipe],
    store: BaseImageStore,
    installer: RepositoryInstaller,
    source_tree: SourceTree,
    tmp_path: Path,
) -> None:
    cache = BuildCacheStore(tmp_path / "cache")
    recipe = make_recipe()

    with BuilderEnvironment("builder", work_root=tmp_path / "work") as environment:
        first = _builder_stage(recipe, store, installer, cache=cache).run(source_tree, environment)
        original = environment.extract("/usr/local/bin/overmind")
    with BuilderEnvironment("builder", work_root=tmp_path / "work") as environment:
        second = _builder_stage(recipe, store, installer, cache=cache).run(source_tree, environment)
        restored = environment.extract("/usr/local/bin/overmind")

    assert not first.cache_hit
    assert second.cache_hit
    assert second.artifact is None
    assert restored == original
