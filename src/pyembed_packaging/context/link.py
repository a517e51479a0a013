"""Linking state for libpython and builtin extension modules."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..core.errors import UnsupportedDistributionError
from ..core.file_data import FileData
from ..core.licensing import LicensedComponents
from ..resources import LibraryDependency, PythonExtensionModule


@dataclass
class LibPythonBuildContext:
    """Everything needed to link a custom libpython.

    Attributes:
        inittab_cflags: Compiler flags for building the init table
        includes: Header files, relative path -> content
        object_files: Object files to link
        library_search_paths: Directories searched for static libraries
        system_libraries: System libraries to link
        dynamic_libraries: Shared libraries to link
        static_libraries: Static libraries to link
        frameworks: macOS frameworks to link
        init_functions: Builtin extension module -> init function
        licensed_components: Licensing of everything linked
    """

    inittab_cflags: list[str] | None = None
    includes: dict[str, FileData] = field(default_factory=dict)
    object_files: list[FileData] = field(default_factory=list)
    library_search_paths: set[Path] = field(default_factory=set)
    system_libraries: set[str] = field(default_factory=set)
    dynamic_libraries: set[str] = field(default_factory=set)
    static_libraries: set[str] = field(default_factory=set)
    frameworks: set[str] = field(default_factory=set)
    init_functions: dict[str, str] = field(default_factory=dict)
    licensed_components: LicensedComponents = field(default_factory=LicensedComponents)

    def add_library_dependency(self, dependency: LibraryDependency) -> None:
        """Register a library an object file links against."""
        if dependency.framework:
            self.frameworks.add(dependency.name)
        elif dependency.system:
            self.system_libraries.add(dependency.name)
        elif dependency.static_library is not None:
            self.static_libraries.add(dependency.name)
            path = dependency.static_library.backing_path
            if path is not None:
                self.library_search_paths.add(path.parent)
        elif dependency.dynamic_library is not None:
            self.dynamic_libraries.add(dependency.name)

    def add_builtin_extension_module(self, module: PythonExtensionModule) -> None:
        """Register an extension module compiled into the binary.

        Modules libpython already contains only contribute their init
        function; others also contribute objects and link libraries.
        """
        if module.init_fn:
            self.init_functions[module.name] = module.init_fn

        if not module.in_libpython():
            self.object_files.extend(module.object_file_data)
            for dependency in module.link_libraries:
                self.add_library_dependency(dependency)

        if module.license is not None:
            self.licensed_components.add_component(module.license)

    def merge(self, other: "LibPythonBuildContext") -> "LibPythonBuildContext":
        """Combine two contexts into a new one; ``other`` wins on conflicts."""
        merged = LibPythonBuildContext(
            inittab_cflags=other.inittab_cflags or self.inittab_cflags,
            includes={**self.includes, **other.includes},
            object_files=[*self.object_files, *other.object_files],
            library_search_paths=self.library_search_paths | other.library_search_paths,
            system_libraries=self.system_libraries | other.system_libraries,
            dynamic_libraries=self.dynamic_libraries | other.dynamic_libraries,
            static_libraries=self.static_libraries | other.static_libraries,
            frameworks=self.frameworks | other.frameworks,
            init_functions={**self.init_functions, **other.init_functions},
        )
        for component in self.licensed_components:
            merged.licensed_components.add_component(component)
        for component in other.licensed_components:
            merged.licensed_components.add_component(component)
        return merged


def _object_path(data: FileData) -> Path:
    path = data.backing_path
    if path is None:
        raise UnsupportedDistributionError("object files must be backed by a filesystem path")
    return path


@dataclass
class LinkSettings:
    """Resolved instructions for the linker stage.

    Attributes:
        object_files: Object files to link, in link order
        library_search_paths: Sorted library search directories
        system_libraries: Sorted system library names
        frameworks: Sorted framework names
        static_libraries: Sorted static library names
        dynamic_libraries: Sorted shared library names
        inittab_cflags: Compiler flags for the init table
        builtin_extension_modules: Builtin module -> init function
        opt_level: Optimization level for compiling generated sources
    """

    object_files: list[Path]
    library_search_paths: list[Path]
    system_libraries: list[str]
    frameworks: list[str]
    static_libraries: list[str]
    dynamic_libraries: list[str]
    inittab_cflags: list[str]
    builtin_extension_modules: dict[str, str]
    opt_level: str = "0"

    @classmethod
    def from_build_context(cls, context: LibPythonBuildContext, opt_level: str) -> "LinkSettings":
        return cls(
            object_files=[_object_path(data) for data in context.object_files],
            library_search_paths=sorted(context.library_search_paths),
            system_libraries=sorted(context.system_libraries),
            frameworks=sorted(context.frameworks),
            static_libraries=sorted(context.static_libraries),
            dynamic_libraries=sorted(context.dynamic_libraries),
            inittab_cflags=list(context.inittab_cflags or []),
            builtin_extension_modules=dict(sorted(context.init_functions.items())),
            opt_level=opt_level,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "object_files": [str(p) for p in self.object_files],
            "library_search_paths": [str(p) for p in self.library_search_paths],
            "system_libraries": list(self.system_libraries),
            "frameworks": list(self.frameworks),
            "static_libraries": list(self.static_libraries),
            "dynamic_libraries": list(self.dynamic_libraries),
            "inittab_cflags": list(self.inittab_cflags),
            "builtin_extension_modules": dict(self.builtin_extension_modules),
            "opt_level": self.opt_level,
        }
