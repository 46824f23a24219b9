from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import uuid

from fastapi import FastAPI
import uvicorn

from zoning.api.http_app import build_app
from zoning.logging_setup import configure_logging
from zoning.roles import SUPPORTED_ROLES, validate_role
from zoning.services.bootstrap import RuntimeContainer, build_runtime_container


def _default_port(role: str) -> int:
    if role == "api":
        return 8000
    return 8100


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Item zoning runtime entrypoint")
    parser.add_argument("--role", required=True, help="Runtime role")
    parser.add_argument("--host", default=os.getenv("APP_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument(
        "--dry-run-startup",
        action="store_true",
        help="Validate startup and exit",
    )
    parser.add_argument(
        "--sweep-once",
        action="store_true",
        help="Run a single retry sweep and exit (for external schedulers)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable code reload (dev mode)",
    )
    return parser.parse_args(argv)


def create_runtime_app() -> object:
    role_name = os.getenv("APP_ROLE", "api")
    role = validate_role(role_name)
    run_id = str(uuid.uuid4())
    configure_logging()
    container = build_runtime_container(role)
    return _build_container_app(container, role=role.name, run_id=run_id)


def _build_container_app(container: RuntimeContainer, *, role: str, run_id: str) -> FastAPI:
    return build_app(
        role=role,
        run_id=run_id,
        sweeper=container.sweeper if container.run_sweeper_loop else None,
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
    )


async def sweep_once(container: RuntimeContainer) -> int:
    """Run one sweep inside the container's startup/shutdown hooks; exit code 1 on sweep error."""
    if container.on_startup is not None:
        await container.on_startup()
    try:
        report = await container.sweeper.run_once()
    finally:
        if container.on_shutdown is not None:
            await container.on_shutdown()

    sys.stdout.write(
        json.dumps(
            {
                "selected": report.selected,
                "eligible": report.eligible,
                "processed": report.count("processed"),
                "analyzing": report.count("analyzing"),
                "pending_review": report.count("pending_review"),
                "failed": report.count("failed"),
                "conflicts": report.count("conflict"),
                "elapsed_ms": report.elapsed_ms,
                "error": report.error,
            }
        )
        + "\n"
    )
    return 0 if report.error is None else 1


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        role = validate_role(args.role)
    except ValueError as exc:
        supported = ", ".join(SUPPORTED_ROLES)
        sys.stderr.write(f"ERROR: {exc}\n")
        sys.stderr.write(f"Try one of: {supported}\n")
        return 2

    configure_logging()
    run_id = str(uuid.uuid4())
    logger = logging.getLogger("runtime")

    logger.info(
        "runtime initialized",
        extra={"role": role.name, "service": role.name, "run_id": run_id},
    )

    if args.dry_run_startup:
        logger.info(
            "dry-run startup complete",
            extra={"role": role.name, "service": role.name, "run_id": run_id},
        )
        return 0

    container = build_runtime_container(role)

    if args.sweep_once:
        logger.info(
            "single sweep requested",
            extra={"role": role.name, "service": role.name, "run_id": run_id},
        )
        return asyncio.run(sweep_once(container))

    port = args.port if args.port is not None else _default_port(role.name)
    if args.reload:
        os.environ["APP_ROLE"] = role.name
        uvicorn.run(
            "zoning.main:create_runtime_app",
            host=args.host,
            port=port,
            log_level="warning",
            reload=True,
            factory=True,
        )
    else:
        app = _build_container_app(container, role=role.name, run_id=run_id)
        uvicorn.run(app, host=args.host, port=port, log_level="warning")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
