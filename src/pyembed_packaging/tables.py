"""Static target and packaging tables.

These tables are immutable data curated by hand: target triples per
operating system family, extension modules known to fail to link on a
family, and standard library modules that have no valid bytecode. They are
exposed only through the accessor functions below; policies copy from them
rather than mutating them.
"""

from types import MappingProxyType

_LINUX_TARGET_TRIPLES: tuple[str, ...] = (
    "aarch64-unknown-linux-gnu",
    "x86_64-unknown-linux-gnu",
    "x86_64-unknown-linux-musl",
)

_MACOS_TARGET_TRIPLES: tuple[str, ...] = (
    "aarch64-apple-darwin",
    "x86_64-apple-darwin",
)

_WINDOWS_TARGET_TRIPLES: tuple[str, ...] = (
    "i686-pc-windows-gnu",
    "i686-pc-windows-msvc",
    "x86_64-pc-windows-gnu",
    "x86_64-pc-windows-msvc",
)

# Distribution extensions with known problems. These are never packaged.
_BROKEN_EXTENSIONS_LINUX: tuple[str, ...] = (
    # Linking issues.
    "_crypt",
    # Linking issues.
    "nis",
)

_BROKEN_EXTENSIONS_MACOS: tuple[str, ...] = (
    # curses and readline have linking issues.
    "curses",
    "_curses_panel",
    "readline",
)

# Standard library modules without valid bytecode.
_NO_BYTECODE_MODULES: tuple[str, ...] = (
    "lib2to3.tests.data.bom",
    "lib2to3.tests.data.crlf",
    "lib2to3.tests.data.different_encoding",
    "lib2to3.tests.data.false_encoding",
    "lib2to3.tests.data.py2_test_grammar",
    "lib2to3.tests.data.py3_test_grammar",
    "test.bad_coding",
    "test.badsyntax_3131",
    "test.badsyntax_future3",
    "test.badsyntax_future4",
    "test.badsyntax_future5",
    "test.badsyntax_future6",
    "test.badsyntax_future7",
    "test.badsyntax_future8",
    "test.badsyntax_future9",
    "test.badsyntax_future10",
    "test.badsyntax_pep3120",
)

# Other triples whose binaries can run a given target's build tools.
_COMPATIBLE_HOST_TRIPLES = MappingProxyType(
    {
        "aarch64-unknown-linux-musl": ("aarch64-unknown-linux-gnu",),
        "x86_64-unknown-linux-musl": ("x86_64-unknown-linux-gnu",),
        "i686-pc-windows-gnu": (
            "i686-pc-windows-msvc",
            "x86_64-pc-windows-gnu",
            "x86_64-pc-windows-msvc",
        ),
        "i686-pc-windows-msvc": (
            "i686-pc-windows-gnu",
            "x86_64-pc-windows-gnu",
            "x86_64-pc-windows-msvc",
        ),
        "x86_64-pc-windows-gnu": ("x86_64-pc-windows-msvc",),
        "x86_64-pc-windows-msvc": ("x86_64-pc-windows-gnu",),
    }
)

# sysconfig-style platform -> PEP 425 compatibility tag
_PLATFORM_COMPATIBILITY_TAGS = MappingProxyType(
    {
        "linux-aarch64": "manylinux2014_aarch64",
        "linux-x86_64": "manylinux2014_x86_64",
        "linux-i686": "manylinux2014_i686",
        "macosx-10.9-x86_64": "macosx_10_9_x86_64",
        "macosx-11.0-arm64": "macosx_11_0_arm64",
        "win-amd64": "win_amd64",
        "win32": "win32",
    }
)

_IMPLEMENTATION_SHORT_NAMES = MappingProxyType(
    {
        "cpython": "cp",
        "python": "py",
        "pypy": "pp",
        "ironpython": "ip",
        "jython": "jy",
    }
)


def linux_target_triples() -> tuple[str, ...]:
    return _LINUX_TARGET_TRIPLES


def macos_target_triples() -> tuple[str, ...]:
    return _MACOS_TARGET_TRIPLES


def windows_target_triples() -> tuple[str, ...]:
    return _WINDOWS_TARGET_TRIPLES


def broken_extensions_linux() -> tuple[str, ...]:
    return _BROKEN_EXTENSIONS_LINUX


def broken_extensions_macos() -> tuple[str, ...]:
    return _BROKEN_EXTENSIONS_MACOS


def broken_extensions_by_triple() -> dict[str, tuple[str, ...]]:
    """Known-broken extensions keyed by every target triple they affect.

    Returns:
        A fresh dictionary; mutating it does not affect the tables.
    """
    result: dict[str, tuple[str, ...]] = {}
    for triple in _LINUX_TARGET_TRIPLES:
        result[triple] = _BROKEN_EXTENSIONS_LINUX
    for triple in _MACOS_TARGET_TRIPLES:
        result[triple] = _BROKEN_EXTENSIONS_MACOS
    return result


def no_bytecode_modules() -> tuple[str, ...]:
    return _NO_BYTECODE_MODULES


def compatible_host_triples(target_triple: str) -> list[str]:
    """Triples able to run tools built for ``target_triple`` (itself first)."""
    return [target_triple, *_COMPATIBLE_HOST_TRIPLES.get(target_triple, ())]


def platform_compatibility_tag(platform_tag: str) -> str | None:
    return _PLATFORM_COMPATIBILITY_TAGS.get(platform_tag)


def implementation_short_name(implementation: str) -> str | None:
    return _IMPLEMENTATION_SHORT_NAMES.get(implementation)


def is_windows_triple(target_triple: str) -> bool:
    return "pc-windows" in target_triple
