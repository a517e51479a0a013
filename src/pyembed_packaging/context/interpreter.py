"""Configuration of the embedded interpreter.

These dataclasses are the run-time configuration handed to the embedding
binary: how the interpreter is initialized, which memory allocator it uses
and where it finds packed resources.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..distribution import Distribution


class InterpreterProfile(Enum):
    """Profile used to initialize the interpreter's configuration."""

    ISOLATED = "isolated"
    PYTHON = "python"

    @classmethod
    def parse(cls, value: str) -> "InterpreterProfile":
        """Parse a profile name.

        Raises:
            ValueError: If the name is not a known profile
        """
        for profile in cls:
            if profile.value == value:
                return profile
        raise ValueError(f"{value} is not a valid profile; use 'isolated' or 'python'")


class MemoryAllocatorBackend(Enum):
    """Memory allocator the interpreter is configured with."""

    DEFAULT = "default"
    JEMALLOC = "jemalloc"
    MIMALLOC = "mimalloc"
    SNMALLOC = "snmalloc"
    RUST = "rust"

    @classmethod
    def parse(cls, value: str) -> "MemoryAllocatorBackend":
        """Parse an allocator backend name.

        Raises:
            ValueError: If the name is not a known backend
        """
        for backend in cls:
            if backend.value == value:
                return backend
        raise ValueError(f"{value} is not a valid memory allocator backend")


class PackedResourcesSourceKind(Enum):
    MEMORY_INCLUDE_BYTES = "memory-include-bytes"
    MEMORY_MAPPED_PATH = "memory-mapped-path"


@dataclass(frozen=True)
class PackedResourcesSource:
    """Where the interpreter reads packed resources from at run time.

    Attributes:
        kind: Whether the data is compiled into the binary or memory mapped
        path: Filename included in the binary, or path of the mapped file
            (``$ORIGIN`` expands to the binary's directory)
    """

    kind: PackedResourcesSourceKind
    path: str


@dataclass
class InterpreterConfig:
    """Settings mirroring the interpreter's own initialization config."""

    profile: InterpreterProfile = InterpreterProfile.ISOLATED
    configure_locale: bool | None = None


def _default_interpreter_config() -> InterpreterConfig:
    # Isolated mode turns configure_locale off, which mangles UTF-8 arguments.
    return InterpreterConfig(profile=InterpreterProfile.ISOLATED, configure_locale=True)


@dataclass
class EmbeddedInterpreterConfig:
    """Complete configuration of the embedded interpreter.

    Attributes:
        config: Interpreter initialization settings
        allocator_backend: Memory allocator backend
        allocator_raw: Use the backend for the raw allocator domain
        allocator_mem: Use the backend for the mem allocator domain
        allocator_obj: Use the backend for the object allocator domain
        allocator_pymalloc_arena: Use the backend for pymalloc arenas
        allocator_debug: Install debug hooks on the allocators
        set_missing_path_configuration: Derive unset path settings
        oxidized_importer: Install the in-memory resources importer
        filesystem_importer: Keep the standard filesystem importer
        packed_resources: Sources of packed resources
        argvb: Expose raw ``sys.argvb``
        multiprocessing_auto_dispatch: Handle multiprocessing worker startup
        sys_frozen: Set ``sys.frozen``
        sys_meipass: Set ``sys._MEIPASS``
        tcl_library: Value of ``TCL_LIBRARY``
        write_modules_directory_env: Env var naming a directory to write
            loaded module names into
    """

    config: InterpreterConfig = field(default_factory=_default_interpreter_config)
    allocator_backend: MemoryAllocatorBackend = MemoryAllocatorBackend.DEFAULT
    allocator_raw: bool = True
    allocator_mem: bool = False
    allocator_obj: bool = False
    allocator_pymalloc_arena: bool = False
    allocator_debug: bool = False
    set_missing_path_configuration: bool = True
    oxidized_importer: bool = True
    filesystem_importer: bool = False
    packed_resources: list[PackedResourcesSource] = field(default_factory=list)
    argvb: bool = False
    multiprocessing_auto_dispatch: bool = True
    sys_frozen: bool = True
    sys_meipass: bool = False
    tcl_library: str | None = None
    write_modules_directory_env: str | None = None

    @classmethod
    def for_distribution(cls, distribution: "Distribution") -> "EmbeddedInterpreterConfig":
        """Default configuration for binaries built from ``distribution``."""
        config = cls()
        config.config.profile = InterpreterProfile.ISOLATED
        config.allocator_raw = True
        config.oxidized_importer = True
        config.filesystem_importer = False
        return config

    def to_document(self) -> dict[str, Any]:
        """Render as JSON-compatible data (enums become their values)."""
        return asdict(self, dict_factory=_enum_values_dict)


def _enum_values_dict(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in items}
