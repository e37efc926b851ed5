"""Command line front-end: ``python -m envdiscovery``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import TYPE_CHECKING

from ._collection import EnvironmentsCollection, create_store
from ._externals import AsyncProcessRunner, LocalFileSystem
from ._info import DiscoveryOptions, record_to_dict
from ._info_service import EnvironmentInfoService
from ._interpreters import InterpreterService
from ._py_spec import PythonSpec
from ._settings import DiscoverySettings
from ._storage import EnvironmentsStorage
from .jupyter import JupyterExecution
from .locators import CondaService, create_default_locators

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ._info import Record

LOGGER = logging.getLogger(__name__)

LEVELS = {
    0: logging.CRITICAL,
    1: logging.ERROR,
    2: logging.WARNING,
    3: logging.INFO,
    4: logging.DEBUG,
    5: logging.NOTSET,
}
MAX_LEVEL = max(LEVELS.keys())


def setup_report(verbosity: int) -> None:
    level = LEVELS[min(max(verbosity, 0), MAX_LEVEL)]
    if level > logging.DEBUG:
        fmt = "%(message)s"
    else:
        fmt = "%(relativeCreated)d %(levelname).1s %(name)s:%(lineno)d %(message)s"
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr)
    LOGGER.debug("setup logging to %s", logging.getLevelName(level))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="envdiscovery", description="discover Python interpreters on this machine")
    verbosity = parser.add_argument_group("verbosity", "verbosity = verbose - quiet, default 2")
    verbosity.add_argument("-v", "--verbose", action="count", dest="verbose", help="increase verbosity", default=0)
    verbosity.add_argument("-q", "--quiet", action="count", dest="quiet", help="decrease verbosity", default=0)
    parser.add_argument("--workspace", help="workspace folder to search relative to", default=None)
    parser.add_argument("--no-cache", action="store_true", help="do not read or write the environment cache")
    sub = parser.add_subparsers(dest="command", required=True)

    list_parser = sub.add_parser("list", help="list discovered environments")
    list_parser.add_argument("--json", action="store_true", help="print JSON instead of a table")
    list_parser.add_argument("--all", action="store_true", help="wait for every locator to finish")
    list_parser.add_argument("--complete", action="store_true", help="run every interpreter before reporting it")
    list_parser.add_argument(
        "--spec",
        help="only interpreters matching a spec such as 3.11, python3.8-64 or a path",
        default=None,
    )

    info_parser = sub.add_parser("info", help="run an interpreter and print what it reports about itself")
    info_parser.add_argument("path", help="path to the interpreter")
    info_parser.add_argument("--json", action="store_true", help="print JSON")

    spec_parser = sub.add_parser("kernelspec", help="print the jupyter kernel spec matching the active interpreter")
    spec_parser.add_argument("--python", help="interpreter to treat as active", default=None)
    return parser


class Services:
    """Everything the commands need, wired together once."""

    def __init__(self, settings: DiscoverySettings, workspace: str | None) -> None:
        self.runner = AsyncProcessRunner()
        self.fs = LocalFileSystem()
        self.info_service = EnvironmentInfoService(self.runner, settings.num_workers)
        self.conda = CondaService(self.runner, settings, self.fs)
        storage = EnvironmentsStorage(create_store(settings), self.info_service, self.fs)
        locators = create_default_locators(settings, self.runner, self.fs, os.environ, workspace, self.conda)
        self.collection = EnvironmentsCollection(locators, storage)
        self.interpreters = InterpreterService(self.collection, self.info_service, settings)
        self.jupyter = JupyterExecution(self.interpreters, self.runner, self.conda, self.fs, settings)

    async def aclose(self) -> None:
        await self.jupyter.aclose()
        await self.collection.aclose()
        await self.info_service.stop()


def _describe(record: Record) -> str:
    version = str(record.version) if record.version is not None else "?"
    kind = record.kind.value if record.kind is not None else "?"
    name = f" ({record.environment_name})" if record.environment_name else ""
    return f"{version:<16} {kind:<18} {record.path}{name}"


async def _list(services: Services, args: argparse.Namespace) -> int:
    options = DiscoveryOptions(get_complete_info=args.complete, get_all_environments=args.all)
    records = await services.collection.get_environments(args.workspace, options)
    if args.spec:
        spec = PythonSpec.from_string_spec(args.spec)
        LOGGER.debug("filtering by %r", spec)
        records = [record for record in records if spec.satisfied_by(record)]
    if args.json:
        print(json.dumps([record_to_dict(r) for r in records], indent=2))  # noqa: T201
    else:
        for record in records:
            print(_describe(record))  # noqa: T201
    return 0 if records else 1


async def _info(services: Services, args: argparse.Namespace) -> int:
    info = await services.info_service.get_environment_info(os.path.abspath(args.path))
    if info is None:
        LOGGER.error("could not query %s", args.path)
        return 1
    record = info.to_record()
    if args.json:
        print(json.dumps(record_to_dict(record), indent=2))  # noqa: T201
    else:
        print(_describe(record))  # noqa: T201
    return 0


async def _kernelspec(services: Services, args: argparse.Namespace) -> int:
    if args.python:
        services.interpreters.set_active_interpreter(os.path.abspath(args.python))
    spec = await services.jupyter.get_matching_kernel_spec()
    if spec is None:
        LOGGER.error("no matching kernel spec")
        return 1
    data = {"name": spec.name, "language": spec.language, "path": spec.path, "spec_file": spec.spec_file}
    print(json.dumps(data))  # noqa: T201
    return 0


_COMMANDS = {"list": _list, "info": _info, "kernelspec": _kernelspec}


async def _run(args: argparse.Namespace) -> int:
    settings = DiscoverySettings.from_env(no_cache=True) if args.no_cache else DiscoverySettings.from_env()
    services = Services(settings, args.workspace)
    try:
        return await _COMMANDS[args.command](services, args)
    finally:
        await services.aclose()


def run(args: Sequence[str] | None = None) -> int:
    parsed = build_parser().parse_args(args)
    setup_report(2 + parsed.verbose - parsed.quiet)
    try:
        return asyncio.run(_run(parsed))
    except KeyboardInterrupt:
        LOGGER.error("interrupted")  # noqa: TRY400
        return 130


def main() -> None:
    sys.exit(run())


__all__ = [
    "build_parser",
    "main",
    "run",
    "setup_report",
]

if __name__ == "__main__":
    main()
