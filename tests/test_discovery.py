import os
import sys

import pytest

from abdicate.annotations import ProvidesAnnotation
from abdicate.domain import CallingConvention, Scope
from abdicate.errors import AnnotationError, DiscoveryError
from abdicate.discovery import (
    ModuleLoader,
    default_name,
    find_files,
    normalise_root,
    package_module_name,
    scan,
    scan_file,
)

FILES = os.path.join(os.path.dirname(os.path.abspath(__file__)), "files")
BROKEN = os.path.join(os.path.dirname(os.path.abspath(__file__)), "broken")


def test_roots_are_normalised_with_one_trailing_separator():
    assert normalise_root(FILES) == FILES + os.sep
    assert normalise_root(FILES + os.sep) == FILES + os.sep


def test_finds_source_files_recursively():
    files = find_files([FILES])

    assert os.path.join(FILES, "mymodel.py") in files
    assert os.path.join(FILES, "nested", "helpers.py") in files
    assert all(f.endswith(".py") for f in files)


def test_default_name_replaces_separators_with_dots():
    source = os.path.join(FILES, "nested", "helpers.py")

    assert default_name(source, [FILES], "Helper") == "nested.helpers.Helper"


def test_default_name_falls_back_to_the_path():
    assert default_name("/elsewhere/thing.py", [FILES], "thing") == "/elsewhere/thing.py"


def test_scan_file_reads_annotated_definitions_only():
    discovered = scan_file(os.path.join(FILES, "multiples.py"))

    assert [(d.function_name, d.requires) for d in discovered] == [
        ("Multiples1", ("multiple1.string",)),
        ("Multiples2", ("multiple2.string",)),
    ]
    assert discovered[0].provides == ProvidesAnnotation("multiple1")


def test_scan_file_reads_calling_convention_and_scope():
    (connect,) = scan_file(os.path.join(FILES, "mydatabase.py"))
    (model,) = scan_file(os.path.join(FILES, "mymodel.py"))

    assert connect.provides.calling_convention is CallingConvention.CALLBACK
    assert model.provides.scope is Scope.PROTOTYPE
    assert model.requires == ("my.connection", "model.string")


def test_scan_finds_providers_without_provides_annotations():
    helpers = [d for d in scan([FILES]) if d.function_name == "Helper"]

    assert len(helpers) == 1
    assert helpers[0].provides is None


def test_malformed_annotations_are_errors(tmp_path):
    source = tmp_path / "bad.py"
    source.write_text('def bad():\n    """@Requires [unquoted]"""\n')

    with pytest.raises(AnnotationError):
        scan_file(source)


def test_loader_resolves_functions_and_classes():
    loader = ModuleLoader()

    model_class = loader.resolve(os.path.join(FILES, "mymodel.py"), "MyModel")
    connect = loader.resolve(os.path.join(FILES, "mydatabase.py"), "connect")

    assert model_class("connection", "string").string == "string"
    assert callable(connect)


def test_loader_loads_each_file_once():
    loader = ModuleLoader()
    source = os.path.join(FILES, "multiples.py")

    first = loader.resolve(source, "Multiples1")
    second = loader.resolve(source, "Multiples2")

    assert first.__module__ == second.__module__


def test_loader_reports_missing_targets():
    with pytest.raises(DiscoveryError, match="Could not resolve the target vanishing"):
        ModuleLoader().resolve(os.path.join(BROKEN, "vanishing.py"), "vanishing")


def test_loader_reports_modules_that_fail_to_load(tmp_path):
    source = tmp_path / "failing.py"
    source.write_text("raise ImportError('missing dependency')\n")

    with pytest.raises(DiscoveryError, match="loading failed"):
        ModuleLoader().resolve(str(source), "anything")


def test_files_that_are_not_utf8_or_not_python_3_cannot_be_scanned(tmp_path):
    latin1 = tmp_path / "latin1.py"
    latin1.write_bytes(b"# caf\xe9\n")
    legacy = tmp_path / "legacy.py"
    legacy.write_text("print 'x'\n")

    for source in (latin1, legacy):
        with pytest.raises(DiscoveryError, match="Could not scan"):
            scan_file(source)


def test_scan_reports_unreadable_files_and_carries_on(tmp_path):
    (tmp_path / "legacy.py").write_text("print 'x'\n")
    (tmp_path / "valid.py").write_text('def greeting():\n    """@Provides \'greeting\'"""\n')
    errors = []

    discovered = list(scan([tmp_path], on_error=errors.append))

    assert [d.function_name for d in discovered] == ["greeting"]
    assert [os.path.basename(e.source) for e in errors] == ["legacy.py"]


def test_scan_raises_without_an_error_handler(tmp_path):
    (tmp_path / "legacy.py").write_text("print 'x'\n")

    with pytest.raises(DiscoveryError):
        list(scan([tmp_path]))


@pytest.fixture
def package_root(tmp_path):
    package = tmp_path / "abdicate_sample_app"
    (package / "services").mkdir(parents=True)
    (package / "__init__.py").write_text("")
    (package / "services" / "__init__.py").write_text("")
    (package / "services" / "db.py").write_text("class Connection:\n    pass\n")
    (package / "services" / "users.py").write_text(
        "from .db import Connection\n\n\n"
        "def users(connection):\n"
        '    """@Requires [\'db\']"""\n'
        "    return (Connection, connection)\n"
    )
    yield package
    for name in [name for name in sys.modules if name.startswith("abdicate_sample_app")]:
        del sys.modules[name]


def test_package_module_names_follow_init_files(package_root):
    assert package_module_name(package_root / "services" / "users.py") == "abdicate_sample_app.services.users"
    assert package_module_name(package_root / "services" / "__init__.py") == "abdicate_sample_app.services"
    assert package_module_name(os.path.join(FILES, "mymodel.py")) is None


def test_loader_supports_relative_imports_inside_packages(package_root):
    loader = ModuleLoader()

    users = loader.resolve(str(package_root / "services" / "users.py"), "users")
    connection_class = loader.resolve(str(package_root / "services" / "db.py"), "Connection")

    assert users.__module__ == "abdicate_sample_app.services.users"
    assert users("db")[0] is connection_class
