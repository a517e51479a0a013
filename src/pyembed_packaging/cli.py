"""Command-line interface for the embedding packager.

This module provides the CLI entry point for inspecting Python
distributions and preparing embedding artifacts from them.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .context.embedded import CONTEXT_FILENAME, PackedResourcesLoadMode
from .context.interpreter import InterpreterProfile
from .core.errors import PackagingError
from .distribution import LinkMode, resolve_distribution
from .registry import SourceRegistry
from .sources.distribution import DistributionSource

PACKED_RESOURCES_FILENAME = "packed-resources"

RESOURCES_MODES = ("embedded", "relative", "none")


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the package logger.

    Args:
        verbose: Verbosity count (0+)
        quiet: Quietness count (0+)

    Returns:
        Configured logger
    """
    level = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger = logging.getLogger("pyembed_packaging")
    logger.setLevel(level)
    logger.propagate = False

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def packed_resources_load_mode(mode: str) -> PackedResourcesLoadMode:
    """Map a ``--resources-mode`` value to a load mode.

    Raises:
        ValueError: If the mode is unknown
    """
    if mode == "embedded":
        return PackedResourcesLoadMode.embedded_in_binary(PACKED_RESOURCES_FILENAME)
    if mode == "relative":
        return PackedResourcesLoadMode.binary_relative_path_memory_mapped(
            PACKED_RESOURCES_FILENAME
        )
    if mode == "none":
        return PackedResourcesLoadMode.none()
    raise ValueError(f"Unknown resources mode: {mode}")


def describe_distribution(dist_dir: Path) -> dict[str, Any]:
    """Resolve a distribution and summarize it.

    Args:
        dist_dir: Root directory of the extracted distribution

    Returns:
        JSON-compatible summary of the resolved distribution
    """
    distribution = resolve_distribution(dist_dir.resolve())
    return DistributionSource(distribution).describe()


def prepare_embedding(
    dist_dir: Path,
    dest_dir: Path,
    link_mode: LinkMode = LinkMode.STATIC,
    profile: InterpreterProfile = InterpreterProfile.ISOLATED,
    resources_mode: str = "embedded",
    package_roots: list[Path] | None = None,
    opt_level: str = "1",
) -> dict[str, Any]:
    """Prepare embedding artifacts for a distribution.

    Args:
        dist_dir: Root directory of the extracted distribution
        dest_dir: Directory artifacts are written to
        link_mode: How libpython is linked into the binary
        profile: Interpreter configuration profile
        resources_mode: Where the binary loads packed resources from
        package_roots: Additional application package directories
        opt_level: Optimization level for compiling generated sources

    Returns:
        JSON-compatible summary of what was written
    """
    logger = logging.getLogger(__name__)

    logger.info("Resolving distribution: %s", dist_dir.resolve())
    pipeline = SourceRegistry.create_pipeline(
        dist_dir.resolve(),
        link_mode=link_mode,
        packed_resources_load_mode=packed_resources_load_mode(resources_mode),
        opt_level=opt_level,
    )
    pipeline.builder.config.config.profile = profile

    for root in package_roots or []:
        pipeline.add_source_by_name("package-root", path=root)

    context = pipeline.prepare(dest_dir)

    return {
        "context": str(dest_dir / CONTEXT_FILENAME),
        "target_triple": context.target_triple,
        "python_version": context.python_version,
        "link_mode": context.link_mode.value,
        "resources": len(context.compiled_resources),
        "extra_files": len(context.extra_files),
        "packed_resources": [str(dest_dir / path) for _res, path in context.pending_resources],
        "builtin_extension_modules": sorted(context.link_settings.builtin_extension_modules),
    }


def _format_error_chain(error: BaseException) -> str:
    lines = [str(error)]
    cause = error.__cause__
    while cause is not None:
        lines.append(f"  caused by: {cause}")
        cause = cause.__cause__
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the packaging tool."""
    parser = argparse.ArgumentParser(
        prog="pyembed-packaging",
        description="Prepare a standalone Python distribution for embedding in a binary",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Summarize a distribution
  pyembed-packaging inspect /path/to/python-dist

  # Prepare embedding artifacts
  pyembed-packaging prepare /path/to/python-dist --dest build/embedded

  # Dynamic libpython with memory-mapped resources and an application package
  pyembed-packaging prepare /path/to/python-dist --dest build/embedded \\
      --link-mode dynamic --resources-mode relative --package-root app/src
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass twice to only show errors",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p_inspect = sub.add_parser("inspect", help="Print a JSON summary of a distribution")
    p_inspect.add_argument("dist", help="Root directory of the extracted distribution")

    p_prepare = sub.add_parser("prepare", help="Write embedding artifacts for a distribution")
    p_prepare.add_argument("dist", help="Root directory of the extracted distribution")
    p_prepare.add_argument("--dest", required=True, help="Directory to write artifacts into")
    p_prepare.add_argument(
        "--link-mode",
        choices=[mode.value for mode in LinkMode],
        default=LinkMode.STATIC.value,
        help="How libpython is linked into the binary (default: static)",
    )
    p_prepare.add_argument(
        "--profile",
        choices=[profile.value for profile in InterpreterProfile],
        default=InterpreterProfile.ISOLATED.value,
        help="Interpreter configuration profile (default: isolated)",
    )
    p_prepare.add_argument(
        "--resources-mode",
        choices=RESOURCES_MODES,
        default="embedded",
        help="Where the binary loads packed resources from (default: embedded)",
    )
    p_prepare.add_argument(
        "--package-root",
        action="append",
        default=[],
        help="Directory of application packages to include (repeatable)",
    )
    p_prepare.add_argument(
        "--opt-level",
        default="1",
        help="Optimization level for compiling generated sources (default: 1)",
    )

    args = parser.parse_args(argv)
    _configure_logging(verbose=args.verbose, quiet=args.quiet)

    # Validate path exists
    dist_dir = Path(args.dist)
    if not dist_dir.is_dir():
        print(f"Error: Distribution directory does not exist: {dist_dir}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "inspect":
            summary = describe_distribution(dist_dir)
        elif args.command == "prepare":
            summary = prepare_embedding(
                dist_dir,
                Path(args.dest),
                link_mode=LinkMode(args.link_mode),
                profile=InterpreterProfile.parse(args.profile),
                resources_mode=args.resources_mode,
                package_roots=[Path(root) for root in args.package_root],
                opt_level=args.opt_level,
            )
        else:
            raise AssertionError(f"Unhandled command: {args.command}")
    except (PackagingError, OSError, ValueError) as e:
        print(f"Error: {_format_error_chain(e)}", file=sys.stderr)
        sys.exit(1)

    # Output JSON to stdout
    json.dump(summary, sys.stdout, indent=2)
    print()


if __name__ == "__main__":
    main()
