"""Registry of resources to embed.

The :class:`ResourceCollector` maps resource names to
:class:`PrePackagedResource` entries. Every ``add_*`` operation checks the
requested location against what the collector allows *before* touching the
registry, so a rejected add leaves the collector unchanged.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from ..core.errors import ResourceLocationError
from ..core.licensing import ComponentFlavor, ComponentKind, LicensedComponent, LicensedComponents
from ..core.locations import AbstractResourceLocation, ConcreteResourceLocation
from ..policy import ResourceAddContext
from ..resources import (
    BytecodeOptimizationLevel,
    FileResource,
    PythonExtensionModule,
    PythonModuleBytecode,
    PythonModuleSource,
    PythonPackageDistributionResource,
    PythonPackageResource,
    PythonResource,
    SharedLibrary,
)
from .encoding import has_dunder_file
from .prepackaged import (
    BytecodeFromSource,
    PrePackagedResource,
    ProvidedBytecode,
    RelativePathBytecode,
    RelativePathData,
)

if TYPE_CHECKING:
    from .compiled import BytecodeCompiler, CompiledResourcesCollection

logger = logging.getLogger(__name__)


class ResourceCollector:
    """Collects resources and enforces where they may be placed.

    Example:
        >>> collector = ResourceCollector(
        ...     allowed_locations=[AbstractResourceLocation.RELATIVE_PATH],
        ...     allowed_extension_module_locations=[],
        ...     allow_new_builtin_extension_modules=False,
        ...     allow_files=False,
        ... )
        >>> collector.add_python_module_source(
        ...     module, ConcreteResourceLocation.relative_path("lib")
        ... )
    """

    def __init__(
        self,
        allowed_locations: Iterable[AbstractResourceLocation],
        allowed_extension_module_locations: Iterable[AbstractResourceLocation],
        allow_new_builtin_extension_modules: bool,
        allow_files: bool,
    ):
        """Initialize an empty collector.

        Args:
            allowed_locations: Locations general resources may use
            allowed_extension_module_locations: Locations file-based
                extension modules may use
            allow_new_builtin_extension_modules: Whether extension modules
                not already in libpython may be compiled in
            allow_files: Whether arbitrary file resources are accepted
        """
        self.allowed_locations = list(allowed_locations)
        self.allowed_extension_module_locations = list(allowed_extension_module_locations)
        self.allow_new_builtin_extension_modules = allow_new_builtin_extension_modules
        self.allow_files = allow_files

        self._resources: dict[str, PrePackagedResource] = {}
        self._builtin_extension_modules: dict[str, PythonExtensionModule] = {}
        self._licensed_components = LicensedComponents()

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, name: object) -> bool:
        return name in self._resources

    def get(self, name: str) -> PrePackagedResource | None:
        return self._resources.get(name)

    def iter_resources(self) -> Iterator[tuple[str, PrePackagedResource]]:
        """Collected entries ordered by name."""
        for name in sorted(self._resources):
            yield name, self._resources[name]

    def builtin_extension_modules(self) -> list[PythonExtensionModule]:
        """Extension modules compiled into the binary, ordered by name."""
        return [
            self._builtin_extension_modules[name]
            for name in sorted(self._builtin_extension_modules)
        ]

    @property
    def licensed_components(self) -> LicensedComponents:
        return self._licensed_components

    def _entry(self, name: str) -> PrePackagedResource:
        if name not in self._resources:
            self._resources[name] = PrePackagedResource(name=name)
        return self._resources[name]

    def check_policy(self, name: str, location: AbstractResourceLocation) -> None:
        """Reject a general resource location the collector does not allow.

        Raises:
            ResourceLocationError: If ``location`` is not allowed
        """
        if location not in self.allowed_locations:
            raise ResourceLocationError(
                name,
                f"resource location {location.value} is not allowed "
                f"(allowed: {_describe(self.allowed_locations)})",
            )

    def check_extension_module_policy(
        self, name: str, location: AbstractResourceLocation
    ) -> None:
        """Reject an extension module location the collector does not allow.

        Raises:
            ResourceLocationError: If ``location`` is not allowed
        """
        if location not in self.allowed_extension_module_locations:
            raise ResourceLocationError(
                name,
                f"extension module location {location.value} is not allowed "
                f"(allowed: {_describe(self.allowed_extension_module_locations)})",
            )

    def add_python_module_source(
        self, module: PythonModuleSource, location: ConcreteResourceLocation
    ) -> None:
        self.check_policy(module.name, location.to_abstract())

        entry = self._entry(module.name)
        entry.is_module = True
        entry.is_package = module.is_package

        if location.prefix is None:
            entry.in_memory_source = module.source
        else:
            entry.relative_path_module_source = RelativePathData(
                path=module.resolve_path(location.prefix), data=module.source
            )

        self._note_module_license(module)

    def add_python_module_bytecode_from_source(
        self,
        module: PythonModuleSource,
        level: BytecodeOptimizationLevel,
        location: ConcreteResourceLocation,
    ) -> None:
        """Request bytecode compiled from a module's source."""
        self.check_policy(module.name, location.to_abstract())

        entry = self._entry(module.name)
        entry.is_module = True
        entry.is_package = module.is_package

        provider = BytecodeFromSource(module.source)
        if location.prefix is None:
            entry.set_in_memory_bytecode(level, provider)
        else:
            entry.set_relative_path_bytecode(
                level,
                RelativePathBytecode(
                    path=module.resolve_bytecode_path(location.prefix, level),
                    provider=provider,
                ),
            )

        self._note_module_license(module)

    def add_python_module_bytecode(
        self, module: PythonModuleBytecode, location: ConcreteResourceLocation
    ) -> None:
        """Add already compiled bytecode."""
        self.check_policy(module.name, location.to_abstract())

        entry = self._entry(module.name)
        entry.is_module = True
        entry.is_package = module.is_package

        provider = ProvidedBytecode(module.bytecode)
        if location.prefix is None:
            entry.set_in_memory_bytecode(module.optimize_level, provider)
        else:
            entry.set_relative_path_bytecode(
                module.optimize_level,
                RelativePathBytecode(path=module.resolve_path(location.prefix), provider=provider),
            )

    def add_python_package_resource(
        self, resource: PythonPackageResource, location: ConcreteResourceLocation
    ) -> None:
        self.check_policy(resource.symbolic_name, location.to_abstract())

        entry = self._entry(resource.leaf_package)
        entry.is_package = True

        if location.prefix is None:
            if entry.in_memory_package_resources is None:
                entry.in_memory_package_resources = {}
            entry.in_memory_package_resources[resource.relative_name] = resource.data
        else:
            if entry.relative_path_package_resources is None:
                entry.relative_path_package_resources = {}
            entry.relative_path_package_resources[resource.relative_name] = RelativePathData(
                path=resource.resolve_path(location.prefix), data=resource.data
            )

    def add_python_package_distribution_resource(
        self,
        resource: PythonPackageDistributionResource,
        location: ConcreteResourceLocation,
    ) -> None:
        self.check_policy(resource.symbolic_name, location.to_abstract())

        entry = self._entry(resource.package)
        entry.is_package = True

        if location.prefix is None:
            if entry.in_memory_distribution_resources is None:
                entry.in_memory_distribution_resources = {}
            entry.in_memory_distribution_resources[resource.name] = resource.data
        else:
            if entry.relative_path_distribution_resources is None:
                entry.relative_path_distribution_resources = {}
            entry.relative_path_distribution_resources[resource.name] = RelativePathData(
                path=resource.resolve_path(location.prefix), data=resource.data
            )

    def add_python_extension_module(
        self, module: PythonExtensionModule, location: ConcreteResourceLocation
    ) -> None:
        """Add a file-based extension module and the shared libraries it needs.

        Raises:
            ResourceLocationError: If the location is not allowed for
                extension modules (or, for its shared library dependencies,
                for general resources), or the module has no shared library
        """
        abstract = location.to_abstract()
        self.check_extension_module_policy(module.name, abstract)

        if module.shared_library is None:
            raise ResourceLocationError(
                module.name, "extension module has no shared library to load"
            )

        dependencies = _shared_library_dependencies(module)
        for library in dependencies:
            self.check_policy(library.name, abstract)

        entry = self._entry(module.name)
        entry.is_extension_module = True
        entry.is_package = module.is_package

        if location.prefix is None:
            entry.in_memory_extension_module_shared_library = module.shared_library
        else:
            entry.relative_path_extension_module_shared_library = RelativePathData(
                path=module.resolve_path(location.prefix), data=module.shared_library
            )

        for library in dependencies:
            self.add_shared_library(library, location)

        if dependencies:
            entry.shared_library_dependency_names = [lib.name for lib in dependencies]

        self._note_extension_license(module)

    def add_builtin_python_extension_module(self, module: PythonExtensionModule) -> None:
        """Add an extension module compiled into the binary.

        Modules libpython already contains are always accepted; others
        require ``allow_new_builtin_extension_modules``.

        Raises:
            ResourceLocationError: If new builtin modules are not allowed
        """
        if not module.in_libpython() and not self.allow_new_builtin_extension_modules:
            raise ResourceLocationError(
                module.name, "new builtin extension modules are not allowed"
            )

        entry = self._entry(module.name)
        entry.is_builtin_extension_module = True
        entry.is_package = module.is_package

        self._builtin_extension_modules[module.name] = module
        self._note_extension_license(module)

    def add_shared_library(
        self, library: SharedLibrary, location: ConcreteResourceLocation
    ) -> None:
        self.check_policy(library.name, location.to_abstract())

        entry = self._entry(library.name)
        entry.is_shared_library = True

        if location.prefix is None:
            entry.in_memory_shared_library = library.data
        else:
            entry.relative_path_shared_library = RelativePathData(
                path=library.resolve_path(location.prefix), data=library.data
            )

    def add_file_data(self, resource: FileResource, location: ConcreteResourceLocation) -> None:
        """Add an arbitrary file.

        Raises:
            ResourceLocationError: If files are not allowed or the location is
        """
        if not self.allow_files:
            raise ResourceLocationError(resource.name, "file resources are not allowed")
        self.check_policy(resource.name, location.to_abstract())

        entry = self._entry(resource.name)
        entry.is_utf8_filename_data = True
        entry.file_executable = resource.entry.executable

        if location.prefix is None:
            entry.file_data_embedded = resource.entry.data
        else:
            entry.file_data_relative_path = RelativePathData(
                path=PurePosixPath(location.prefix) / resource.path, data=resource.entry.data
            )

    def add_python_resource_with_context(
        self, resource: PythonResource, context: ResourceAddContext
    ) -> bool:
        """Add a resource the way a packaging policy classified it.

        Each contribution tries the primary location first and the fallback
        location when the primary is refused.

        Args:
            resource: Resource to add
            context: Decisions derived by the packaging policy

        Returns:
            Whether the resource was included

        Raises:
            ResourceLocationError: If neither location is accepted
        """
        if not context.include:
            return False

        if isinstance(resource, PythonModuleSource):
            if context.store_source:
                self._add_with_fallback(
                    lambda loc: self.add_python_module_source(resource, loc), context
                )
            for level, enabled in (
                (BytecodeOptimizationLevel.ZERO, context.optimize_level_zero),
                (BytecodeOptimizationLevel.ONE, context.optimize_level_one),
                (BytecodeOptimizationLevel.TWO, context.optimize_level_two),
            ):
                if enabled:
                    self._add_with_fallback(
                        lambda loc, level=level: self.add_python_module_bytecode_from_source(
                            resource, level, loc
                        ),
                        context,
                    )
        elif isinstance(resource, PythonModuleBytecode):
            self._add_with_fallback(
                lambda loc: self.add_python_module_bytecode(resource, loc), context
            )
        elif isinstance(resource, PythonPackageResource):
            self._add_with_fallback(
                lambda loc: self.add_python_package_resource(resource, loc), context
            )
        elif isinstance(resource, PythonPackageDistributionResource):
            self._add_with_fallback(
                lambda loc: self.add_python_package_distribution_resource(resource, loc), context
            )
        elif isinstance(resource, PythonExtensionModule):
            self._add_extension_module_with_context(resource, context)
        elif isinstance(resource, SharedLibrary):
            self._add_with_fallback(lambda loc: self.add_shared_library(resource, loc), context)
        elif isinstance(resource, FileResource):
            self._add_with_fallback(lambda loc: self.add_file_data(resource, loc), context)
        else:
            raise AssertionError(f"Unhandled resource type: {type(resource).__name__}")

        return True

    def _add_extension_module_with_context(
        self, module: PythonExtensionModule, context: ResourceAddContext
    ) -> None:
        if module.in_libpython():
            self.add_builtin_python_extension_module(module)
        elif self.allow_new_builtin_extension_modules and module.object_file_data:
            self.add_builtin_python_extension_module(module)
        else:
            self._add_with_fallback(
                lambda loc: self.add_python_extension_module(module, loc), context
            )

    @staticmethod
    def _add_with_fallback(
        add: Callable[[ConcreteResourceLocation], None], context: ResourceAddContext
    ) -> None:
        try:
            add(context.location)
        except ResourceLocationError:
            if context.location_fallback is None:
                raise
            add(context.location_fallback)

    def find_dunder_file(self) -> list[str]:
        """Find in-memory modules whose source references ``__file__``.

        In-memory modules have no filesystem path at run time, so code
        relying on ``__file__`` will misbehave there. Both stored sources
        and bytecode still to be compiled from source are inspected.

        Returns:
            Sorted names of offending resources
        """
        found: set[str] = set()

        for name, entry in self.iter_resources():
            if entry.in_memory_source is not None:
                if has_dunder_file(entry.in_memory_source.resolve_content()):
                    found.add(name)

            for _level, provider in entry.in_memory_bytecode_slots():
                if isinstance(provider, BytecodeFromSource):
                    if has_dunder_file(provider.source.resolve_content()):
                        found.add(name)

        return sorted(found)

    def compile_resources(self, compiler: "BytecodeCompiler") -> "CompiledResourcesCollection":
        """Compile collected resources into their packed form."""
        from .compiled import compile_collected_resources

        return compile_collected_resources(self, compiler)

    def _note_module_license(self, module: PythonModuleSource) -> None:
        if module.is_stdlib:
            return
        top_level = module.name.partition(".")[0]
        flavor = ComponentFlavor(ComponentKind.PYTHON_MODULE, top_level)
        if flavor not in self._licensed_components:
            self._licensed_components.add_component(LicensedComponent(flavor=flavor))

    def _note_extension_license(self, module: PythonExtensionModule) -> None:
        if module.license is not None:
            self._licensed_components.add_component(module.license)


def _describe(locations: list[AbstractResourceLocation]) -> str:
    return ", ".join(loc.value for loc in locations) or "none"


def _shared_library_dependencies(module: PythonExtensionModule) -> list[SharedLibrary]:
    libraries: list[SharedLibrary] = []
    for link in module.link_libraries:
        if link.dynamic_library is None or link.system or link.framework:
            continue
        filename = str(link.dynamic_filename) if link.dynamic_filename else link.name
        libraries.append(SharedLibrary(name=link.name, data=link.dynamic_library, filename=filename))
    return libraries
