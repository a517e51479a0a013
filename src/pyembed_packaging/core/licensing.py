"""Licensing metadata for packaged components.

Every component that ends up in the produced binary (the distribution
itself, standard library extension modules and the libraries they link)
is described by a :class:`LicensedComponent`. A :class:`LicensedComponents`
collection renders the licensing summary written next to the binary.
"""

from dataclasses import dataclass, field
from enum import Enum


class ComponentKind(Enum):
    """Closed set of component kinds."""

    PYTHON_DISTRIBUTION = "python-distribution"
    PYTHON_STDLIB_MODULE = "python-stdlib-module"
    PYTHON_STDLIB_EXTENSION_MODULE = "python-stdlib-extension-module"
    PYTHON_EXTENSION_MODULE = "python-extension-module"
    PYTHON_MODULE = "python-module"
    LIBRARY = "library"


@dataclass(frozen=True)
class ComponentFlavor:
    """A component kind tagged with the component's name."""

    kind: ComponentKind
    name: str

    def python_module_name(self) -> str | None:
        """Module name for Python module flavors, ``None`` otherwise."""
        if self.kind in (
            ComponentKind.PYTHON_STDLIB_MODULE,
            ComponentKind.PYTHON_STDLIB_EXTENSION_MODULE,
            ComponentKind.PYTHON_EXTENSION_MODULE,
            ComponentKind.PYTHON_MODULE,
        ):
            return self.name
        return None

    def __str__(self) -> str:
        kind = self.kind
        if kind is ComponentKind.PYTHON_DISTRIBUTION:
            return self.name
        if kind is ComponentKind.PYTHON_STDLIB_MODULE:
            return f"Python stdlib module {self.name}"
        if kind is ComponentKind.PYTHON_STDLIB_EXTENSION_MODULE:
            return f"Python stdlib extension {self.name}"
        if kind is ComponentKind.PYTHON_EXTENSION_MODULE:
            return f"Python extension module {self.name}"
        if kind is ComponentKind.PYTHON_MODULE:
            return f"Python module {self.name}"
        if kind is ComponentKind.LIBRARY:
            return f"library {self.name}"
        raise AssertionError(f"Unhandled component kind: {kind}")


@dataclass
class LicensedComponent:
    """A software component with licensing information.

    Attributes:
        flavor: What the component is
        licenses: SPDX license identifiers (any of which applies)
        public_domain: Whether the component is in the public domain
        license_texts: Explicit license texts shipped with the component
    """

    flavor: ComponentFlavor
    licenses: list[str] = field(default_factory=list)
    public_domain: bool = False
    license_texts: list[str] = field(default_factory=list)

    def spdx_expression(self) -> str | None:
        """SPDX expression covering the component, if it declares licenses."""
        if not self.licenses:
            return None
        return " OR ".join(self.licenses)

    def add_license_text(self, text: str) -> None:
        self.license_texts.append(text)

    def is_unlicensed(self) -> bool:
        return not self.licenses and not self.public_domain


def _flavor_sort_key(flavor: ComponentFlavor) -> tuple[str, str]:
    return flavor.kind.value, flavor.name


class LicensedComponents:
    """Collection of licensed components keyed by flavor."""

    def __init__(self) -> None:
        self._components: dict[ComponentFlavor, LicensedComponent] = {}

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self):
        # Sorted so the rendered summary is reproducible.
        for flavor in sorted(self._components, key=_flavor_sort_key):
            yield self._components[flavor]

    def __contains__(self, flavor: object) -> bool:
        return flavor in self._components

    def add_component(self, component: LicensedComponent) -> None:
        """Add a component, replacing any previous entry for the same flavor."""
        self._components[component.flavor] = component

    def spdx_licenses(self) -> list[str]:
        """Sorted set of all SPDX identifiers across components."""
        licenses: set[str] = set()
        for component in self._components.values():
            licenses.update(component.licenses)
        return sorted(licenses)

    def unlicensed_components(self) -> list[LicensedComponent]:
        return [c for c in self if c.is_unlicensed()]

    def to_summary(self) -> list[dict[str, object]]:
        """Machine-readable licensing summary."""
        return [
            {
                "component": str(c.flavor),
                "kind": c.flavor.kind.value,
                "licenses": list(c.licenses),
                "public_domain": c.public_domain,
            }
            for c in self
        ]

    def aggregate_license_document(self) -> str:
        """Render a human-readable licensing document.

        Returns:
            Text listing every component, its license and any license texts
        """
        lines: list[str] = [
            "This binary contains the following software components.",
            "",
        ]

        for component in self:
            lines.append(str(component.flavor))
            lines.append("-" * len(str(component.flavor)))

            if component.public_domain:
                lines.append("License: public domain")
            elif component.licenses:
                lines.append(f"License: {component.spdx_expression()}")
            else:
                lines.append("License: unknown")

            for text in component.license_texts:
                lines.append("")
                lines.append(text.rstrip("\n"))

            lines.append("")

        return "\n".join(lines)
