"""Assembly of an embedding context from a distribution.

:class:`EmbeddedExecutableBuilder` ties a resolved distribution, a
packaging policy, a resource collector and an interpreter configuration
together and produces an :class:`EmbeddedPythonContext`.
"""

import copy
import logging
from importlib.util import MAGIC_NUMBER
from pathlib import PurePosixPath

from ..collector.collector import ResourceCollector
from ..collector.compiled import BytecodeCompiler, HostBytecodeCompiler, SubprocessBytecodeCompiler
from ..core.errors import ExtensionModuleError, ResourceLocationError, UnsupportedDistributionError
from ..core.file_data import FileEntry, MemoryData
from ..core.licensing import LicensedComponents
from ..core.locations import AbstractResourceLocation
from ..distribution import Distribution, LinkMode, parse_python_major_minor_version
from ..file_manifest import FileManifest
from ..policy import PackagingPolicy
from ..resources import PythonExtensionModule, PythonResource
from ..tables import is_windows_triple
from .embedded import (
    ORIGIN,
    BuildFlag,
    EmbeddedPythonContext,
    PackedResourcesLoadMode,
    PackedResourcesLoadModeKind,
    PythonImplementation,
)
from .interpreter import EmbeddedInterpreterConfig, PackedResourcesSource, PackedResourcesSourceKind
from .link import LibPythonBuildContext, LinkSettings

logger = logging.getLogger(__name__)

DEFAULT_LICENSES_FILENAME = "COPYING.txt"
DEFAULT_PACKED_RESOURCES_FILENAME = "packed-resources"


def allowed_resource_locations(policy: PackagingPolicy) -> list[AbstractResourceLocation]:
    """Locations general resources may use under ``policy``.

    Raises:
        ResourceLocationError: If the policy has no resources location
    """
    if policy.resources_location is None:
        raise ResourceLocationError("<policy>", "packaging policy has no resources location")

    locations = [policy.resources_location.to_abstract()]
    if policy.resources_location_fallback is not None:
        fallback = policy.resources_location_fallback.to_abstract()
        if fallback not in locations:
            locations.append(fallback)
    return locations


def allowed_extension_module_locations(
    distribution: Distribution, policy: PackagingPolicy
) -> list[AbstractResourceLocation]:
    """Locations file-based extension modules may use."""
    locations = []
    if (
        distribution.supports_in_memory_shared_library_loading()
        and policy.allow_in_memory_shared_library_loading
    ):
        locations.append(AbstractResourceLocation.IN_MEMORY)
    if distribution.is_extension_module_file_loadable():
        locations.append(AbstractResourceLocation.RELATIVE_PATH)
    return locations


def default_bytecode_compiler(
    distribution: Distribution,
) -> HostBytecodeCompiler | SubprocessBytecodeCompiler:
    """Compiler producing bytecode ``distribution`` can load.

    The running interpreter is used when its bytecode format matches the
    distribution's; otherwise the distribution's own interpreter compiles.
    """
    magic = distribution.bytecode_magic_number
    if not magic or magic == MAGIC_NUMBER:
        return HostBytecodeCompiler()
    return SubprocessBytecodeCompiler(distribution.python_exe, magic)


class EmbeddedExecutableBuilder:
    """Builds the embedding context for a binary.

    Example:
        >>> builder = EmbeddedExecutableBuilder.from_distribution(distribution)
        >>> builder.add_distribution_core_state()
        >>> builder.add_distribution_resources()
        >>> context = builder.to_embedded_python_context()
    """

    def __init__(
        self,
        host_triple: str,
        target_distribution: Distribution,
        link_mode: LinkMode,
        packaging_policy: PackagingPolicy,
        resources_collector: ResourceCollector,
        config: EmbeddedInterpreterConfig,
        licenses_filename: str | None = DEFAULT_LICENSES_FILENAME,
        tcl_files_path: str | None = None,
        packed_resources_load_mode: PackedResourcesLoadMode | None = None,
    ):
        self.host_triple = host_triple
        self.target_triple = target_distribution.target_triple
        self.target_distribution = target_distribution
        self.link_mode = link_mode
        self.packaging_policy = packaging_policy
        self.resources_collector = resources_collector
        self.config = config
        self.licenses_filename = licenses_filename
        self.tcl_files_path = tcl_files_path
        self.packed_resources_load_mode = (
            packed_resources_load_mode
            or PackedResourcesLoadMode.embedded_in_binary(DEFAULT_PACKED_RESOURCES_FILENAME)
        )
        self.core_build_context = LibPythonBuildContext()

    @classmethod
    def from_distribution(
        cls,
        distribution: Distribution,
        link_mode: LinkMode = LinkMode.STATIC,
        packaging_policy: PackagingPolicy | None = None,
        config: EmbeddedInterpreterConfig | None = None,
        host_triple: str | None = None,
        **kwargs,
    ) -> "EmbeddedExecutableBuilder":
        """Create a builder whose collector enforces the policy's locations.

        Args:
            distribution: Resolved target distribution
            link_mode: How libpython is linked into the binary
            packaging_policy: Policy to apply (default: the distribution's)
            config: Interpreter configuration (default: the distribution's)
            host_triple: Triple of the building machine (default: target's)
            **kwargs: Passed to the constructor

        Returns:
            A builder with an empty collector

        Raises:
            UnsupportedDistributionError: If dynamic linking is requested
                from a distribution without a libpython shared library
        """
        if link_mode is LinkMode.DYNAMIC and distribution.libpython_shared_library is None:
            raise UnsupportedDistributionError(
                "dynamic link mode requires a distribution with a libpython shared library"
            )

        policy = packaging_policy or distribution.create_packaging_policy()
        interpreter_config = config or distribution.create_interpreter_config()

        collector = ResourceCollector(
            allowed_locations=allowed_resource_locations(policy),
            allowed_extension_module_locations=allowed_extension_module_locations(
                distribution, policy
            ),
            allow_new_builtin_extension_modules=link_mode is LinkMode.STATIC,
            allow_files=policy.allow_files,
        )

        return cls(
            host_triple=host_triple or distribution.target_triple,
            target_distribution=distribution,
            link_mode=link_mode,
            packaging_policy=policy,
            resources_collector=collector,
            config=interpreter_config,
            **kwargs,
        )

    def add_distribution_core_state(self) -> None:
        """Populate the libpython link context from the distribution."""
        dist = self.target_distribution
        ctx = self.core_build_context

        ctx.inittab_cflags = list(dist.inittab_cflags)

        for name, path in dist.includes.items():
            ctx.includes[name] = FileEntry.from_path(path).data

        # The init table is regenerated for the binary's builtin modules.
        for path in dist.objs_core.values():
            if path == dist.inittab_object:
                continue
            ctx.object_files.append(FileEntry.from_path(path).data)

        for dependency in dist.links_core:
            if dependency.framework:
                ctx.frameworks.add(dependency.name)
            elif dependency.system:
                ctx.system_libraries.add(dependency.name)

        for path in dist.libraries.values():
            ctx.library_search_paths.add(path.parent)

        if is_windows_triple(self.target_triple):
            ctx.system_libraries.add("msvcrt")

        if dist.core_license is not None:
            ctx.licensed_components.add_component(dist.core_license)

    def add_python_resource(self, resource: PythonResource) -> bool:
        """Add a resource as the packaging policy dictates.

        Returns:
            Whether the policy included the resource
        """
        context = self.packaging_policy.derive_add_collection_context(resource)
        return self.resources_collector.add_python_resource_with_context(resource, context)

    def add_python_resources(self, resources) -> int:
        """Add several resources; returns how many were included."""
        return sum(1 for resource in resources if self.add_python_resource(resource))

    def add_extension_module(self, module: PythonExtensionModule) -> bool:
        """Add an extension module, skipping it when it cannot be placed.

        Raises:
            ExtensionModuleError: If a required module cannot be placed
        """
        try:
            return self.add_python_resource(module)
        except ResourceLocationError as e:
            if module.required:
                raise ExtensionModuleError(
                    f"required extension module {module.name} cannot be packaged"
                ) from e
            logger.warning("skipping extension module %s: %s", module.name, e)
            return False

    def add_distribution_resources(self) -> int:
        """Add the distribution's extension modules, modules and resources.

        Returns:
            Number of resources the policy included
        """
        dist = self.target_distribution

        count = 0
        for module in self.packaging_policy.resolve_python_extension_modules(
            dist.extension_modules, self.target_triple
        ):
            if self.add_extension_module(module):
                count += 1

        count += self.add_python_resources(
            resource
            for resource in dist.iter_python_resources()
            if not isinstance(resource, PythonExtensionModule)
        )
        logger.info("added %d distribution resources", count)
        return count

    def licensed_components(self) -> LicensedComponents:
        """Licensing of libpython plus everything collected."""
        components = LicensedComponents()
        for component in self.core_build_context.licensed_components:
            components.add_component(component)
        for component in self.resources_collector.licensed_components:
            components.add_component(component)
        return components

    def resolve_python_link_settings(self, opt_level: str) -> LinkSettings:
        """Combine core state with builtin extension modules into link settings."""
        extensions = LibPythonBuildContext()
        for module in self.resources_collector.builtin_extension_modules():
            extensions.add_builtin_extension_module(module)

        context = self.core_build_context.merge(extensions)
        return LinkSettings.from_build_context(context, opt_level)

    def to_embedded_python_context(
        self, compiler: BytecodeCompiler | None = None, opt_level: str = "1"
    ) -> EmbeddedPythonContext:
        """Produce the embedding context.

        Args:
            compiler: Bytecode compiler (default: see
                :func:`default_bytecode_compiler`)
            opt_level: Optimization level for compiling generated sources

        Returns:
            The assembled context
        """
        dunder_file = self.resources_collector.find_dunder_file()
        for name in dunder_file:
            logger.warning("%s contains __file__", name)
        if dunder_file:
            logger.warning("__file__ was encountered in some embedded modules")
            logger.warning("__file__ is not set for in-memory modules; this may fail at run time")

        if compiler is None:
            default_compiler = default_bytecode_compiler(self.target_distribution)
            try:
                compiled = self.resources_collector.compile_resources(default_compiler)
            finally:
                if isinstance(default_compiler, SubprocessBytecodeCompiler):
                    default_compiler.close()
        else:
            compiled = self.resources_collector.compile_resources(compiler)

        extra_files = FileManifest()
        extra_files.add_manifest(compiled.extra_files)

        config = copy.deepcopy(self.config)
        pending_resources = []

        load_mode = self.packed_resources_load_mode
        if load_mode.kind is PackedResourcesLoadModeKind.EMBEDDED_IN_BINARY:
            if load_mode.path is None:
                raise AssertionError("embedded packed resources need a filename")
            pending_resources.append((compiled, load_mode.path))
            config.packed_resources.append(
                PackedResourcesSource(PackedResourcesSourceKind.MEMORY_INCLUDE_BYTES, load_mode.path)
            )
        elif load_mode.kind is PackedResourcesLoadModeKind.BINARY_RELATIVE_PATH_MEMORY_MAPPED:
            if load_mode.path is None:
                raise AssertionError("memory-mapped packed resources need a path")
            extra_files.add_file_entry(
                load_mode.path,
                FileEntry(data=MemoryData(compiled.packed_resources_bytes()), executable=False),
            )
            config.packed_resources.append(
                PackedResourcesSource(
                    PackedResourcesSourceKind.MEMORY_MAPPED_PATH, f"{ORIGIN}/{load_mode.path}"
                )
            )

        link_settings = self.resolve_python_link_settings(opt_level)

        libpython = self.target_distribution.libpython_shared_library
        if self.link_mode is LinkMode.DYNAMIC and libpython is not None:
            extra_files.add_file_entry(libpython.name, FileEntry.from_path(libpython))

            # Stable ABI DLL some extensions need
            python3_dll = libpython.with_name("python3.dll")
            if python3_dll.exists():
                extra_files.add_file_entry(python3_dll.name, FileEntry.from_path(python3_dll))

        if self.tcl_files_path is not None:
            for path, entry in self.target_distribution.tcl_files():
                extra_files.add_file_entry(PurePosixPath(self.tcl_files_path) / path, entry)
            config.tcl_library = f"{ORIGIN}/{self.tcl_files_path}"

        context = EmbeddedPythonContext(
            config=config,
            link_settings=link_settings,
            compiled_resources=compiled,
            pending_resources=pending_resources,
            packed_resources_load_mode=load_mode,
            extra_files=extra_files,
            host_triple=self.host_triple,
            target_triple=self.target_triple,
            python_implementation=PythonImplementation.from_name(
                self.target_distribution.python_implementation
            ),
            python_version=parse_python_major_minor_version(self.target_distribution.version),
            python_build_flags=BuildFlag.from_config_vars(self.target_distribution.config_vars),
            link_mode=self.link_mode,
            licensing_filename=self.licenses_filename,
            licensing=self.licensed_components(),
        )

        context.synchronize_licensing()
        return context
