"""Run the project's migration commands against the production databases."""

from __future__ import annotations

import asyncio
import os
import subprocess  # nosec B404

from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import (
    MAIN_ROLE,
    TRANSACTION_ROLE,
    DeploymentEnv,
    database_task,
    require,
)
from stackdeck.deploy.tasks.databases import database_info
from stackdeck.lib.errors import DeploymentError
from stackdeck.lib.logging_config import get_logger

logger = get_logger(__name__)


def _run(command: list[str], env: DeploymentEnv, extra_env: dict[str, str]) -> None:
    result = subprocess.run(  # noqa: S603  # nosec B603
        command,
        cwd=env.project_root,
        env={**os.environ, **extra_env},
        capture_output=True,
        text=True,
    )
    for line in result.stdout.splitlines():
        logger.debug(line)
    if result.returncode != 0:
        raise DeploymentError(
            operation="migrations",
            message=(
                f"'{' '.join(command)}' exited with status {result.returncode}: "
                f"{result.stderr.strip()}"
            ),
        )


async def run_migrations(env: DeploymentEnv, ctx: TaskContext) -> str | None:
    """Run the migration command once both databases are available."""
    command = env.project.migrations.command
    if not command:
        logger.info("No migration command configured, skipping migrations")
        return None

    main = database_info(require(ctx, database_task(MAIN_ROLE)))
    transactions = database_info(require(ctx, database_task(TRANSACTION_ROLE)))
    logger.info(f"Running migrations: {' '.join(command)}")
    await asyncio.to_thread(
        _run,
        command,
        env,
        {
            "MAIN_DATABASE_URL": main.url,
            "TRANSACTION_DATABASE_URL": transactions.url,
        },
    )
    return " ".join(command)


async def setup_transactions(env: DeploymentEnv, ctx: TaskContext) -> str | None:
    """Create the transactions table once the Transaction database is available."""
    command = env.project.migrations.transactions_command
    if not command:
        logger.info("No transactions setup command configured, skipping")
        return None

    transactions = database_info(require(ctx, database_task(TRANSACTION_ROLE)))
    logger.info(f"Setting up transactions table: {' '.join(command)}")
    await asyncio.to_thread(
        _run, command, env, {"TRANSACTION_DATABASE_URL": transactions.url}
    )
    return " ".join(command)
