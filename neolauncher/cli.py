"""Command line interface for inspecting the Java runtimes the launcher sees."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

from .manager import JavaManager
from .paths import get_java_cache_file, get_launcher_directory, get_settings_file
from .runtime import JavaRuntime
from .selector import JavaRequirement
from .settings import load_settings
from .verifier import VerifyResult

LOGGER = logging.getLogger("neolauncher.cli")


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(message)s")


def _build_manager() -> JavaManager:
    return JavaManager(settings=load_settings())


def _runtime_payload(runtime: JavaRuntime) -> dict:
    payload = runtime.to_dict()
    payload["slugVersion"] = runtime.slug_version
    return payload


def _verification_payload(result: VerifyResult) -> dict:
    return {
        "isGenuine": result.is_genuine,
        "failReason": result.fail_reason,
        "vendor": result.vendor.friendly_name,
        "vendorDescription": result.vendor_description,
        "buildIdentifier": result.build_identifier,
        "isEarlyAccess": result.is_early_access,
    }


async def _detect_java(refresh: bool) -> List[JavaRuntime]:
    manager = _build_manager()
    await manager.initialize()
    if refresh:
        await manager.refresh()
    return manager.java_list


def _command_detect_java(args: argparse.Namespace) -> None:
    runtimes = asyncio.run(_detect_java(args.refresh))
    if args.json:
        print(json.dumps([_runtime_payload(runtime) for runtime in runtimes], indent=2))
        return

    if not runtimes:
        print("No Java installations were found.")
        return

    print("Discovered Java installations:")
    for runtime in runtimes:
        marker = "*" if runtime.is_user_imported else " "
        kind = "JRE" if runtime.is_jre else "JDK"
        print(
            f" {marker} Java {runtime.slug_version:<4} {kind} {runtime.architecture.value:<8} "
            f"{runtime.compatibility.value:<17} -> {runtime.directory_path}"
        )


async def _add_java(path: Path):
    manager = _build_manager()
    await manager.initialize()
    return await manager.manual_add(path)


def _command_add(args: argparse.Namespace) -> int:
    runtime, already_present = asyncio.run(_add_java(Path(args.path)))
    if runtime is None:
        print(f"No usable Java found in {args.path}")
        return 1
    if already_present:
        print(f"Java {runtime.version} in {runtime.directory_path} was already known, now marked as user imported")
    else:
        print(f"Added Java {runtime.version} from {runtime.directory_path}")
    return 0


async def _verify(path: Optional[Path]):
    manager = _build_manager()
    if path is not None:
        runtime = await manager.inspector.create(manager.resolve_java_directory(path))
        if runtime is None:
            return []
        return [(runtime, await manager.verifier.verify(runtime))]

    await manager.initialize()
    runtimes = manager.java_list
    results = await asyncio.gather(*(manager.get_verification(runtime) for runtime in runtimes))
    return list(zip(runtimes, results))


def _command_verify(args: argparse.Namespace) -> int:
    path = Path(args.path) if args.path else None
    verified = asyncio.run(_verify(path))
    success = bool(verified) and all(result.is_genuine for _, result in verified)
    if args.json:
        payload = [
            dict(_verification_payload(result), directoryPath=str(runtime.directory_path))
            for runtime, result in verified
        ]
        print(json.dumps(payload, indent=2))
        return 0 if success else 1

    if not verified:
        print("Nothing to verify.")
    for runtime, result in verified:
        if result.is_genuine:
            status = "genuine"
            if result.is_early_access:
                status += ", early access"
            print(f"{runtime.directory_path}: {status} ({result.vendor.friendly_name})")
        else:
            print(f"{runtime.directory_path}: NOT verified: {result.fail_reason}")
    return 0 if success else 1


def _requirement_from_args(args: argparse.Namespace) -> JavaRequirement:
    if args.exact is not None:
        return JavaRequirement.exactly(args.exact)
    return JavaRequirement.between(args.min, args.max)


async def _select(requirement: JavaRequirement):
    manager = _build_manager()
    await manager.initialize()
    return manager.get_compatible_javas(requirement)


def _command_select(args: argparse.Namespace) -> int:
    requirement = _requirement_from_args(args)
    scores = asyncio.run(_select(requirement))
    if args.json:
        payload = [
            {
                "directoryPath": str(item.runtime.directory_path),
                "version": item.runtime.version,
                "score": item.score,
                "level": item.recommendation_level.name.lower(),
                "reason": item.reason,
            }
            for item in scores
        ]
        print(json.dumps(payload, indent=2))
        return 0 if scores else 1

    if not scores:
        print(f"No compatible Java found for {requirement}.")
        return 1

    print(f"Java runtimes for {requirement}:")
    for item in scores:
        print(
            f" {item.score:>5} {item.recommendation_level.description:<18} "
            f"Java {item.runtime.version:<12} -> {item.runtime.directory_path}"
        )
        print(f"       {item.reason}")
    return 0


def _command_info(_: argparse.Namespace) -> None:
    settings = load_settings()
    manager = JavaManager(settings=settings)
    info = {
        "launcherDirectory": str(get_launcher_directory()),
        "javaListCache": str(get_java_cache_file()),
        "settingsFile": str(get_settings_file()),
        "platform": manager.host.platform_id,
        "architecture": manager.host.architecture.value,
        "trustLevel": settings.trust_level.value,
        "verifyLimit": settings.verify_limit,
    }

    asyncio.run(manager.initialize())
    defaults = manager.default_runtimes
    info["defaultRuntimes"] = {
        name: str(runtime.directory_path) if runtime else None for name, runtime in defaults._asdict().items()
    }
    info["javaInstalls"] = [_runtime_payload(runtime) for runtime in manager.java_list]

    print(json.dumps(info, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Locate, verify and rank installed Java runtimes")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subcommands = parser.add_subparsers(dest="command", required=True)

    detect = subcommands.add_parser("detect-java", help="Locate installed Java runtimes")
    detect.add_argument("--json", action="store_true", help="Emit machine readable output")
    detect.add_argument("--refresh", action="store_true", help="Search again instead of trusting the cache")
    detect.set_defaults(func=_command_detect_java)

    add = subcommands.add_parser("add", help="Register a Java installation manually")
    add.add_argument("path", help="Directory holding the java executable, or a Java home")
    add.set_defaults(func=_command_add)

    verify = subcommands.add_parser("verify", help="Check that Java runtimes are genuine")
    verify.add_argument("path", nargs="?", help="Only verify this Java directory or Java home")
    verify.add_argument("--json", action="store_true", help="Emit machine readable output")
    verify.set_defaults(func=_command_verify)

    select = subcommands.add_parser("select", help="Rank Java runtimes for a required Java version")
    wanted = select.add_mutually_exclusive_group(required=True)
    wanted.add_argument("--exact", type=int, help="Java major version the game requires")
    wanted.add_argument("--min", type=int, help="Lowest suitable Java major version")
    select.add_argument("--max", type=int, help="Highest suitable Java major version (with --min)")
    select.add_argument("--json", action="store_true", help="Emit machine readable output")
    select.set_defaults(func=_command_select)

    info = subcommands.add_parser("info", help="Print collected diagnostics")
    info.set_defaults(func=_command_info)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "select":
        if args.exact is not None and args.max is not None:
            parser.error("--max cannot be combined with --exact")
        if args.exact is None:
            if args.max is None:
                parser.error("--min requires --max")
            if args.min > args.max:
                parser.error("--min must not be greater than --max")
    _configure_logging(args.verbose)
    return args.func(args) or 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
