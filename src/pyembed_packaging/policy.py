"""Packaging policy.

A :class:`PackagingPolicy` decides which resources are packaged and where
they go. It is plain configuration: the only behavior is classifying a
resource into a :class:`ResourceAddContext` the collector acts upon.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from . import tables
from .core.errors import ExtensionModuleError, ResourceLocationError
from .core.locations import ConcreteResourceLocation
from .resources import (
    FileResource,
    PythonExtensionModule,
    PythonModuleBytecode,
    PythonModuleSource,
    PythonPackageDistributionResource,
    PythonPackageResource,
    PythonResource,
    SharedLibrary,
)

if TYPE_CHECKING:
    from .distribution import Distribution

logger = logging.getLogger(__name__)

# Relative-path prefix used when a distribution does not load from memory
DEFAULT_RELATIVE_PATH_PREFIX = "lib"


class ExtensionModuleFilter(Enum):
    """Which distribution extension modules are packaged."""

    # Only modules the interpreter needs to start, or that live in libpython
    MINIMAL = "minimal"
    ALL = "all"
    # Modules that link no library besides system libraries and frameworks
    NO_LIBRARIES = "no-libraries"


@dataclass
class ResourceAddContext:
    """How a single resource is added to a collector.

    Attributes:
        include: Whether the resource is packaged at all
        location: Primary placement
        location_fallback: Placement used when the primary one is refused
        store_source: Whether module source is kept alongside bytecode
        optimize_level_zero: Whether to produce bytecode at level 0
        optimize_level_one: Whether to produce bytecode at level 1
        optimize_level_two: Whether to produce bytecode at level 2
    """

    include: bool
    location: ConcreteResourceLocation
    location_fallback: ConcreteResourceLocation | None = None
    store_source: bool = False
    optimize_level_zero: bool = False
    optimize_level_one: bool = False
    optimize_level_two: bool = False


@dataclass
class PackagingPolicy:
    """Defines how Python resources are packaged.

    Attributes:
        extension_module_filter: Which extension modules are considered
        preferred_extension_module_variants: Extension name -> variant name
        resources_location: Primary placement of added resources
        resources_location_fallback: Placement used when the primary is refused
        allow_in_memory_shared_library_loading: Whether shared libraries may
            be loaded from memory
        allow_files: Whether arbitrary files may be packaged
        include_distribution_sources: Keep source of standard library modules
        include_non_distribution_sources: Keep source of other modules
        include_distribution_resources: Package standard library resources
        include_test: Package test modules and their resources
        include_file_resources: Package :class:`FileResource` entries
        broken_extensions: Target triple -> extensions that cannot be packaged
        bytecode_optimize_level_zero: Produce bytecode at level 0
        bytecode_optimize_level_one: Produce bytecode at level 1
        bytecode_optimize_level_two: Produce bytecode at level 2
        no_bytecode_modules: Modules excluded from bytecode generation
    """

    extension_module_filter: ExtensionModuleFilter = ExtensionModuleFilter.ALL
    preferred_extension_module_variants: dict[str, str] = field(default_factory=dict)
    resources_location: ConcreteResourceLocation | None = None
    resources_location_fallback: ConcreteResourceLocation | None = None
    allow_in_memory_shared_library_loading: bool = False
    allow_files: bool = False
    include_distribution_sources: bool = True
    include_non_distribution_sources: bool = True
    include_distribution_resources: bool = False
    include_test: bool = False
    include_file_resources: bool = False
    broken_extensions: dict[str, list[str]] = field(default_factory=dict)
    bytecode_optimize_level_zero: bool = True
    bytecode_optimize_level_one: bool = False
    bytecode_optimize_level_two: bool = False
    no_bytecode_modules: set[str] = field(default_factory=set)

    def register_broken_extension(self, target_triple: str, extension: str) -> None:
        """Mark an extension as unpackageable for a target triple.

        Registering the same pair twice has no further effect.
        """
        extensions = self.broken_extensions.setdefault(target_triple, [])
        if extension not in extensions:
            extensions.append(extension)

    def register_no_bytecode_module(self, name: str) -> None:
        self.no_bytecode_modules.add(name)

    def broken_extensions_for(self, target_triple: str) -> list[str]:
        return list(self.broken_extensions.get(target_triple, []))

    def is_broken_extension(self, target_triple: str, name: str) -> bool:
        return name in self.broken_extensions.get(target_triple, [])

    def set_preferred_extension_module_variant(self, extension: str, variant: str) -> None:
        self.preferred_extension_module_variants[extension] = variant

    def set_resources_location(self, location: ConcreteResourceLocation) -> None:
        self.resources_location = location

    def set_resources_location_fallback(
        self, location: ConcreteResourceLocation | None
    ) -> None:
        self.resources_location_fallback = location

    def resolve_extension_module_variant(
        self,
        name: str,
        variants: Sequence[PythonExtensionModule],
        target_triple: str,
    ) -> PythonExtensionModule | None:
        """Pick the variant of an extension module to package.

        Args:
            name: Extension module name
            variants: Available build variants, in descriptor order
            target_triple: Target the binary is built for

        Returns:
            The chosen variant, or ``None`` if the module is broken for the
            target or has no variants

        Raises:
            ExtensionModuleError: If a preferred variant is configured but
                not offered
        """
        if self.is_broken_extension(target_triple, name):
            logger.debug("skipping extension %s: known broken on %s", name, target_triple)
            return None

        if not variants:
            return None

        preferred = self.preferred_extension_module_variants.get(name)
        if preferred is None:
            return variants[0]

        for variant in variants:
            if variant.variant == preferred:
                return variant

        raise ExtensionModuleError(
            f"unable to find preferred variant {preferred} of extension module {name}"
        )

    def resolve_python_extension_modules(
        self,
        extension_modules: Mapping[str, Sequence[PythonExtensionModule]],
        target_triple: str,
    ) -> list[PythonExtensionModule]:
        """Resolve the extension modules to package, honoring the filter.

        Returns:
            Chosen variants ordered by module name
        """
        resolved: list[PythonExtensionModule] = []

        for name in sorted(extension_modules):
            module = self.resolve_extension_module_variant(
                name, extension_modules[name], target_triple
            )
            if module is None:
                continue

            if self._passes_extension_filter(module):
                resolved.append(module)

        return resolved

    def _passes_extension_filter(self, module: PythonExtensionModule) -> bool:
        if module.required:
            return True

        flt = self.extension_module_filter
        if flt is ExtensionModuleFilter.ALL:
            return True
        if flt is ExtensionModuleFilter.MINIMAL:
            return module.builtin_default
        if flt is ExtensionModuleFilter.NO_LIBRARIES:
            return all(link.system or link.framework for link in module.link_libraries)
        raise AssertionError(f"Unhandled extension module filter: {flt}")

    def filter_python_resource(self, resource: PythonResource) -> bool:
        """Whether a resource is packaged at all under this policy."""
        if isinstance(resource, (PythonModuleSource, PythonModuleBytecode)):
            return self.include_test or not resource.is_test
        if isinstance(resource, PythonPackageResource):
            if resource.is_test and not self.include_test:
                return False
            if resource.is_stdlib:
                return self.include_distribution_resources
            return True
        if isinstance(resource, FileResource):
            return self.include_file_resources
        if isinstance(
            resource,
            (PythonPackageDistributionResource, PythonExtensionModule, SharedLibrary),
        ):
            return True
        raise AssertionError(f"Unhandled resource type: {type(resource).__name__}")

    def derive_add_collection_context(self, resource: PythonResource) -> ResourceAddContext:
        """Derive how a resource is added to a collector.

        Args:
            resource: Resource to classify

        Returns:
            Placement and processing decisions for the resource

        Raises:
            ResourceLocationError: If no resources location is configured
        """
        if self.resources_location is None:
            raise ResourceLocationError(
                _resource_name(resource), "packaging policy has no resources location"
            )

        context = ResourceAddContext(
            include=self.filter_python_resource(resource),
            location=self.resources_location,
            location_fallback=self.resources_location_fallback,
        )

        if isinstance(resource, PythonModuleSource):
            context.store_source = (
                self.include_distribution_sources
                if resource.is_stdlib
                else self.include_non_distribution_sources
            )
            generate = resource.name not in self.no_bytecode_modules
            context.optimize_level_zero = generate and self.bytecode_optimize_level_zero
            context.optimize_level_one = generate and self.bytecode_optimize_level_one
            context.optimize_level_two = generate and self.bytecode_optimize_level_two

        return context


def _resource_name(resource: PythonResource) -> str:
    if isinstance(resource, (PythonPackageResource, PythonPackageDistributionResource)):
        return resource.symbolic_name
    return resource.name


def _copy_tables(policy: PackagingPolicy) -> None:
    for triple, extensions in tables.broken_extensions_by_triple().items():
        for extension in extensions:
            policy.register_broken_extension(triple, extension)

    for name in tables.no_bytecode_modules():
        policy.register_no_bytecode_module(name)


def create_packaging_policy(distribution: "Distribution") -> PackagingPolicy:
    """Create the default packaging policy for a distribution.

    Distributions that can load shared libraries from memory place
    resources in memory and fall back to ``lib/`` next to the binary;
    every other distribution places resources in ``lib/`` only.

    Args:
        distribution: Resolved distribution

    Returns:
        A new policy populated from the static tables
    """
    policy = PackagingPolicy()

    if distribution.supports_in_memory_shared_library_loading():
        policy.set_resources_location(ConcreteResourceLocation.in_memory())
        policy.set_resources_location_fallback(
            ConcreteResourceLocation.relative_path(DEFAULT_RELATIVE_PATH_PREFIX)
        )
        policy.allow_in_memory_shared_library_loading = True
    else:
        policy.set_resources_location(
            ConcreteResourceLocation.relative_path(DEFAULT_RELATIVE_PATH_PREFIX)
        )

    _copy_tables(policy)

    logger.debug(
        "packaging policy for %s: location=%s fallback=%s",
        distribution.target_triple,
        policy.resources_location,
        policy.resources_location_fallback,
    )
    return policy

