"""Command-line interface for depfetch."""

from __future__ import annotations

import json
import logging
import sys

from .config import CliSettings
from .depfetch import version
from .errors import CoordinationError
from .logger import setup_logger
from .models import Dependency
from .session import Session
from .source import source_classes

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    settings = CliSettings(_cli_parse_args=argv if argv is not None else True)
    setup_logger(settings.log_level)

    if settings.version:
        sys.stdout.write(f"depfetch {version()}\n")
        return 0

    if settings.list_sources:
        for kind, cls in sorted(source_classes().items(), key=lambda item: item[0].value):
            sys.stdout.write(f"{kind.value:<10} {cls.description}\n")
        return 0

    try:
        dependencies = [Dependency.from_string(description) for description in settings.dependency]
    except ValueError as e:
        logger.exception(str(e))
        return 2
    if not dependencies:
        logger.error("Nothing to resolve; pass at least one --dependency SOURCE:IDENTIFIER[@CONSTRAINT]")
        return 2

    session = Session(settings)
    session.register(settings.caller, dependencies)
    try:
        result = session.resolve(
            settings.caller, blocking=settings.blocking_lock and not settings.non_blocking
        )
    except CoordinationError as e:
        logger.error("%s", e)  # noqa: TRY400
        return 1
    finally:
        session.http.close()

    sys.stdout.write(json.dumps(result.to_obj(), indent=4) + "\n")
    return 0 if result.is_success else 1
