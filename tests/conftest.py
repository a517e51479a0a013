"""Shared fixtures: synthetic standalone Python distributions."""

import copy
import json
from importlib.util import MAGIC_NUMBER
from pathlib import Path
from typing import Any, Callable

import pytest

LINUX_TRIPLE = "x86_64-unknown-linux-gnu"
WINDOWS_TRIPLE = "x86_64-pc-windows-msvc"

SO_SUFFIX = ".cpython-312-x86_64-linux-gnu.so"

STDLIB = "install/lib/python3.12"

DEFAULT_STDLIB_FILES: dict[str, bytes] = {
    "os.py": b"import sys\n",
    "site.py": b"import os\nHERE = os.path.dirname(__file__)\n",
    "json/__init__.py": b"from .decoder import JSONDecoder\n",
    "json/decoder.py": b"class JSONDecoder:\n    pass\n",
    "email/__init__.py": b"",
    "email/architecture.rst": b"Email package architecture\n",
    "test/__init__.py": b"",
    "test/test_os.py": b"import os\n",
    "__pycache__/os.cpython-312.pyc": b"\x00" * 16,
    f"lib-dynload/_sqlite3{SO_SUFFIX}": b"\x7fELF sqlite3",
}

SQLITE3_EXTENSION: dict[str, Any] = {
    "in_core": False,
    "init_fn": "PyInit__sqlite3",
    "licenses": ["blessing"],
    "license_paths": None,
    "license_public_domain": None,
    "links": [{"name": "sqlite3", "path_static": "build/lib/libsqlite3.a"}],
    "objs": ["build/extensions/_sqlite3.o"],
    "required": False,
    "static_lib": None,
    "shared_lib": f"{STDLIB}/lib-dynload/_sqlite3{SO_SUFFIX}",
    "variant": "default",
}

JSON_EXTENSION: dict[str, Any] = {
    "in_core": True,
    "init_fn": "PyInit__json",
    "links": [],
    "objs": [],
    "required": False,
    "variant": "default",
}

CRYPT_EXTENSION: dict[str, Any] = {
    "in_core": False,
    "init_fn": "PyInit__crypt",
    "links": [{"name": "crypt", "system": True}],
    "objs": ["build/extensions/_crypt.o"],
    "required": True,
    "variant": "default",
}

DEFAULT_EXTENSIONS: dict[str, list[dict[str, Any]]] = {
    "_json": [JSON_EXTENSION],
    "_sqlite3": [SQLITE3_EXTENSION],
}


def base_manifest(target_triple: str = LINUX_TRIPLE) -> dict[str, Any]:
    """A minimal valid version 7 descriptor."""
    return {
        "version": "7",
        "target_triple": target_triple,
        "optimizations": "pgo+lto",
        "python_tag": "cp312",
        "python_abi_tag": "cp312",
        "python_config_vars": {"Py_DEBUG": "0", "SOABI": "cpython-312-x86_64-linux-gnu"},
        "python_platform_tag": "linux-x86_64",
        "python_implementation_cache_tag": "cpython-312",
        "python_implementation_hex_version": 51119344,
        "python_implementation_name": "cpython",
        "python_implementation_version": ["3", "12", "4", "final", "0"],
        "python_version": "3.12.4",
        "python_major_minor_version": "3.12",
        "python_paths": {
            "include": "install/include/python3.12",
            "stdlib": STDLIB,
        },
        "python_paths_abstract": {
            "include": "include/python3.12",
            "stdlib": "lib/python3.12",
        },
        "python_exe": "install/bin/python3.12",
        "python_stdlib_test_packages": ["test"],
        "python_suffixes": {
            "bytecode": [".pyc"],
            "debug_bytecode": [],
            "extension": [SO_SUFFIX, ".abi3.so", ".so"],
            "optimized_bytecode": [".opt-1.pyc", ".opt-2.pyc"],
            "source": [".py"],
        },
        "python_bytecode_magic_number": MAGIC_NUMBER.hex(),
        "python_symbol_visibility": "global-default",
        "python_extension_module_loading": ["builtin", "shared-library"],
        "libpython_link_mode": "static",
        "crt_features": ["glibc-dynamic"],
        "run_tests": "build/run_tests.py",
        "build_info": {
            "core": {
                "objs": ["build/core/main.o", "build/core/config.o"],
                "links": [
                    {"name": "dl", "system": True},
                    {"name": "m", "system": True},
                ],
            },
            "extensions": copy.deepcopy(DEFAULT_EXTENSIONS),
            "inittab_object": "build/core/config.o",
            "inittab_source": "build/core/config.c",
            "inittab_cflags": ["-std=c99", "-DNDEBUG"],
            "object_file_format": "elf",
        },
        "licenses": ["Python-2.0", "CNRI-Python"],
        "license_path": "licenses/LICENSE.cpython.txt",
    }


def _write(path: Path, content: bytes, executable: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if executable:
        path.chmod(0o755)


def _referenced_paths(manifest: dict[str, Any]) -> set[str]:
    """Every file a descriptor points at, relative to ``python/``."""
    build_info = manifest["build_info"]
    paths = set(build_info["core"]["objs"])
    paths.add(build_info["inittab_object"])
    if build_info["core"].get("shared_lib"):
        paths.add(build_info["core"]["shared_lib"])

    links = list(build_info["core"]["links"])
    for variants in build_info["extensions"].values():
        for variant in variants:
            paths.update(variant["objs"])
            paths.update(variant.get("license_paths") or [])
            if variant.get("shared_lib"):
                paths.add(variant["shared_lib"])
            links.extend(variant["links"])

    for link in links:
        for key in ("path_static", "path_dynamic"):
            if link.get(key):
                paths.add(link[key])

    if manifest.get("license_path"):
        paths.add(manifest["license_path"])
    return paths


def write_distribution(
    root: Path,
    manifest: dict[str, Any] | None = None,
    stdlib_files: dict[str, bytes] | None = None,
) -> Path:
    """Lay out a distribution under ``root`` and return ``root``.

    Every file the descriptor references is created, along with the
    interpreter executable, headers and the given standard library.
    """
    manifest = manifest if manifest is not None else base_manifest()
    stdlib_files = DEFAULT_STDLIB_FILES if stdlib_files is None else stdlib_files

    python = root / "python"
    python.mkdir(parents=True, exist_ok=True)

    _write(python / manifest["python_exe"], b"#!/bin/sh\n", executable=True)

    include = python / manifest["python_paths"]["include"]
    _write(include / "Python.h", b"/* Python.h */\n")
    _write(include / "cpython" / "object.h", b"/* object.h */\n")

    stdlib = python / manifest["python_paths"]["stdlib"]
    stdlib.mkdir(parents=True, exist_ok=True)
    for rel, content in stdlib_files.items():
        _write(stdlib / rel, content)

    for rel in sorted(_referenced_paths(manifest)):
        target = python / rel
        if target.exists():
            continue
        if rel.startswith("licenses/"):
            _write(target, f"License text of {target.name}\n".encode())
        else:
            _write(target, f"contents of {rel}".encode())

    (python / "PYTHON.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    return root


@pytest.fixture
def make_distribution(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing distributions into fresh directories under tmp_path."""
    counter = {"n": 0}

    def factory(
        manifest: dict[str, Any] | None = None,
        stdlib_files: dict[str, bytes] | None = None,
    ) -> Path:
        counter["n"] += 1
        return write_distribution(tmp_path / f"dist{counter['n']}", manifest, stdlib_files)

    return factory


@pytest.fixture
def dist_dir(make_distribution: Callable[..., Path]) -> Path:
    """A default Linux distribution."""
    return make_distribution()


@pytest.fixture
def distribution(dist_dir: Path):
    """The default Linux distribution, resolved."""
    from pyembed_packaging.distribution import resolve_distribution

    return resolve_distribution(dist_dir)


@pytest.fixture
def windows_manifest() -> dict[str, Any]:
    """A descriptor for a Windows distribution that loads DLLs from memory."""
    manifest = base_manifest(WINDOWS_TRIPLE)
    manifest["python_platform_tag"] = "win-amd64"
    manifest["python_symbol_visibility"] = "dllexport"
    manifest["python_suffixes"]["extension"] = [".cp312-win_amd64.pyd", ".pyd"]
    sqlite3 = manifest["build_info"]["extensions"]["_sqlite3"][0]
    sqlite3["shared_lib"] = f"{STDLIB}/lib-dynload/_sqlite3.cp312-win_amd64.pyd"
    sqlite3["links"] = [
        {
            "name": "sqlite3",
            "path_static": "build/lib/sqlite3.lib",
            "path_dynamic": "install/DLLs/sqlite3.dll",
        }
    ]
    return manifest


class RecordingCompiler:
    """Bytecode compiler stub returning a marker and recording its calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int, Any]] = []

    def compile(self, source: bytes, filename: str, optimize, header_mode) -> bytes:
        self.calls.append((filename, optimize, header_mode))
        return b"PYC" + bytes([int(optimize)]) + source
