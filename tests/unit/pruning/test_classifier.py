"""Unit tests for the module cache unit classifier."""

import os

import pytest

from go_cache_prune.pruning.classifier import (
    NOT_A_UNIT,
    classify,
    download_cache_dir,
    is_pseudo_version,
    is_semver,
    is_unit_version,
    iter_units,
    owning_unit,
    split_versioned_name,
)
from tests.infrastructure.helpers import make_unit


ROOT = "/cache/mod"


def _no_manifest(path):
    return False


class TestVersionShapes:
    """Version token recognition."""

    @pytest.mark.parametrize("version", [
        "v1",
        "v1.2",
        "v1.2.3",
        "v0.0.0",
        "v1.2.3-pre",
        "v1.2.3-rc.1",
        "v1.2.3+build.5",
        "v10.20.30-alpha.beta+meta",
    ])
    def test_valid_semver(self, version):
        assert is_semver(version)

    @pytest.mark.parametrize("version", [
        "1.2.3",
        "v01.2.3",
        "v1.02.3",
        "v1.2.3-01",
        "v1.2.3-",
        "v1.2-pre",
        "latest",
        "",
    ])
    def test_invalid_semver(self, version):
        assert not is_semver(version)

    @pytest.mark.parametrize("version", [
        "v0.0.0-20210101000000-abcdef123456",
        "v1.2.4-0.20210101000000-abcdef123456",
        "v1.2.3-pre.0.20210101000000-abcdef123456",
        "v2.0.0-20191109021931-daa7c04131f5+incompatible",
    ])
    def test_pseudo_versions(self, version):
        assert is_pseudo_version(version)

    @pytest.mark.parametrize("version", [
        "v1.2.3",
        "v0.0.0-2021-abcdef",
        "v0.0.0-20210101-abcdef123456",
    ])
    def test_not_pseudo_versions(self, version):
        assert not is_pseudo_version(version)

    def test_incompatible_suffix_is_enough(self):
        assert is_unit_version("1.0+incompatible")
        assert not is_semver("1.0+incompatible")


class TestSplitVersionedName:
    """Splitting module@version directory names."""

    def test_split(self):
        assert split_versioned_name("text@v0.3.0") == ("text", "v0.3.0")

    @pytest.mark.parametrize("name", ["text", "@v1.0.0", "text@", "a@b@v1.0.0", "@v"])
    def test_rejects(self, name):
        assert split_versioned_name(name) is None


class TestClassify:
    """Classification precedence."""

    def test_semver_directory(self):
        path = os.path.join(ROOT, "pkg@v1.2.3")
        assert classify(path, True, "pkg@v1.2.3") == (path, True)

    def test_pseudo_version_directory(self):
        name = "pkg@v0.0.0-20210101000000-abcdef123456"
        path = os.path.join(ROOT, name)
        assert classify(path, True, name) == (path, True)

    def test_incompatible_directory(self):
        path = os.path.join(ROOT, "pkg@1.0+incompatible")
        assert classify(path, True, "pkg@1.0+incompatible") == (path, True)

    def test_unrecognized_version_is_not_a_unit(self):
        path = os.path.join(ROOT, "pkg@notaversion")
        assert classify(path, True, "pkg@notaversion") == NOT_A_UNIT

    def test_manifest_file_maps_to_parent(self):
        parent = os.path.join(ROOT, "example.com", "plain")
        path = os.path.join(parent, "go.mod")
        assert classify(path, False, "go.mod") == (parent, True)

    def test_directory_named_like_manifest_is_not_a_unit(self):
        path = os.path.join(ROOT, "go.mod")
        assert classify(path, True, "go.mod") == NOT_A_UNIT

    def test_manifest_sibling_maps_to_parent(self):
        parent = os.path.join(ROOT, "example.com", "plain")
        path = os.path.join(parent, "main.go")
        assert classify(path, False, "main.go", has_go_mod_sibling=True) == (parent, True)

    def test_versioned_file_is_not_a_unit(self):
        path = os.path.join(ROOT, "pkg@v1.2.3")
        assert classify(path, False, "pkg@v1.2.3") == NOT_A_UNIT

    @pytest.mark.parametrize("args", [
        (os.path.join(ROOT, "pkg@v1.2.3"), True, "pkg@v1.2.3"),
        (os.path.join(ROOT, "pkg@nope"), True, "pkg@nope"),
        (os.path.join(ROOT, "x", "go.mod"), False, "go.mod"),
    ])
    def test_idempotent(self, args):
        assert classify(*args) == classify(*args)


class TestOwningUnit:
    """Mapping event paths onto their unit."""

    def test_file_inside_versioned_unit(self):
        path = os.path.join(ROOT, "github.com", "acme", "lib@v1.0.0", "sub", "a.go")
        expected = os.path.join(ROOT, "github.com", "acme", "lib@v1.0.0")
        assert owning_unit(ROOT, path, has_manifest=_no_manifest) == expected

    def test_unit_directory_itself(self):
        unit = os.path.join(ROOT, "github.com", "acme", "lib@v1.0.0")
        assert owning_unit(ROOT, unit, is_dir=True, has_manifest=_no_manifest) == unit

    def test_manifest_file_of_plain_unit(self):
        unit = os.path.join(ROOT, "example.com", "plain")
        path = os.path.join(unit, "go.mod")
        assert owning_unit(ROOT, path, has_manifest=_no_manifest) == unit

    def test_known_units_are_used(self):
        unit = os.path.join(ROOT, "example.com", "plain")
        path = os.path.join(unit, "main.go")
        assert owning_unit(ROOT, path, known_units={unit}, has_manifest=_no_manifest) == unit

    def test_manifest_lookup(self):
        unit = os.path.join(ROOT, "example.com", "plain")
        path = os.path.join(unit, "main.go")
        assert owning_unit(ROOT, path, has_manifest=lambda p: p == unit) == unit

    def test_outermost_unit_wins(self):
        path = os.path.join(ROOT, "a@v1.0.0", "vendor", "b@v2.0.0", "b.go")
        assert owning_unit(ROOT, path, has_manifest=_no_manifest) == os.path.join(ROOT, "a@v1.0.0")

    def test_download_metadata_is_not_a_unit(self):
        path = os.path.join(ROOT, "cache", "download", "github.com", "acme", "@v", "v1.0.0.zip")
        assert owning_unit(ROOT, path, has_manifest=_no_manifest) is None

    def test_container_directory_is_not_a_unit(self):
        path = os.path.join(ROOT, "github.com", "acme")
        assert owning_unit(ROOT, path, is_dir=True, has_manifest=_no_manifest) is None

    @pytest.mark.parametrize("path", [ROOT, "/elsewhere/pkg@v1.0.0/a.go", "/cache"])
    def test_root_and_outside_paths(self, path):
        assert owning_unit(ROOT, path, is_dir=True, has_manifest=_no_manifest) is None

    def test_many_paths_map_to_few_units(self):
        unit_a = os.path.join(ROOT, "a@v1.0.0")
        unit_b = os.path.join(ROOT, "b@v1.0.0")
        paths = [
            os.path.join(unit_a, "go.mod"),
            os.path.join(unit_a, "a.go"),
            os.path.join(unit_a, "internal"),
            os.path.join(unit_b, "b.go"),
        ]
        units = {owning_unit(ROOT, p, has_manifest=_no_manifest) for p in paths}
        assert units == {unit_a, unit_b}


class TestIterUnits:
    """Top-down unit discovery on disk."""

    def test_finds_every_layout(self, tmp_path):
        versioned = make_unit(tmp_path, "github.com/acme/lib", "v1.0.0")
        pseudo = make_unit(tmp_path, "golang.org/x/tool", "v0.0.0-20210101000000-abcdef123456")
        plain = make_unit(tmp_path, "example.com/plain")
        (tmp_path / "cache" / "download" / "example.com" / "@v").mkdir(parents=True)

        assert sorted(iter_units(str(tmp_path))) == sorted(
            [str(versioned), str(pseudo), str(plain)]
        )

    def test_does_not_descend_into_units(self, tmp_path):
        outer = make_unit(tmp_path, "a", "v1.0.0", files=("go.mod", "vendor/b@v2.0.0/go.mod"))
        plain = make_unit(tmp_path, "plain", files=("go.mod", "sub/c@v1.0.0/go.mod"))

        assert sorted(iter_units(str(tmp_path))) == sorted([str(outer), str(plain)])

    def test_root_manifest_is_ignored(self, tmp_path):
        (tmp_path / "go.mod").write_text("module root\n")
        unit = make_unit(tmp_path, "a", "v1.0.0")

        assert list(iter_units(str(tmp_path))) == [str(unit)]

    def test_unrecognized_versions_are_walked(self, tmp_path):
        inner = make_unit(tmp_path / "odd@notaversion", "inner", "v1.0.0")

        assert list(iter_units(str(tmp_path))) == [str(inner)]

    def test_on_enter_sees_containers_only(self, tmp_path):
        make_unit(tmp_path, "github.com/acme/lib", "v1.0.0")
        make_unit(tmp_path, "example.com/plain")
        entered = []

        list(iter_units(str(tmp_path), on_enter=entered.append))

        assert sorted(entered) == sorted([
            str(tmp_path),
            str(tmp_path / "example.com"),
            str(tmp_path / "github.com"),
            str(tmp_path / "github.com" / "acme"),
        ])

    def test_skips_symlinks(self, tmp_path):
        target = make_unit(tmp_path / "elsewhere", "lib", "v1.0.0")
        cache = tmp_path / "cache"
        cache.mkdir()
        os.symlink(target, cache / "lib@v1.0.0")

        assert list(iter_units(str(cache))) == []

    def test_caller_may_delete_yielded_units(self, tmp_path):
        import shutil

        make_unit(tmp_path, "a", "v1.0.0")
        make_unit(tmp_path, "b", "v1.0.0")
        seen = []
        for unit in iter_units(str(tmp_path)):
            seen.append(unit)
            shutil.rmtree(unit)

        assert len(seen) == 2
        assert os.listdir(tmp_path) == []

    def test_on_enter_runs_before_listing(self, tmp_path):
        container = tmp_path / "golang.org" / "x"
        container.mkdir(parents=True)
        late = []

        def enter(directory):
            if directory == str(container):
                late.append(make_unit(container, "late", "v0.1.0"))

        units = list(iter_units(str(tmp_path), on_enter=enter))

        assert units == [str(late[0])]

    def test_excluded_directories_are_skipped(self, tmp_path):
        unit = make_unit(tmp_path, "github.com/acme/lib", "v1.0.0")
        make_unit(tmp_path / "cache" / "vcs" / "0123abcd", "mirror", "v1.0.0")
        entered = []

        units = list(iter_units(
            str(tmp_path),
            on_enter=entered.append,
            exclude={download_cache_dir(str(tmp_path))},
        ))

        assert units == [str(unit)]
        assert not any(path.startswith(str(tmp_path / "cache")) for path in entered)
