"""Launcher for the multi-account scheduler."""

import asyncio
import importlib
import signal
import sys
from typing import Optional

from fleet.adapters.notify.discord_webhook import DiscordWebhookNotifier
from fleet.adapters.notify.log_notifier import LogNotifier
from fleet.adapters.session.dry_run import DryRunSession
from fleet.adapters.storage.json_store import JsonStorage
from fleet.config import AppConfig, load_accounts
from fleet.domain.scheduler import Scheduler
from fleet.infrastructure.context import RunContext
from fleet.infrastructure.gate import ConcurrencyGate
from fleet.infrastructure.quota import QuotaTracker
from fleet.infrastructure.registry import SessionRegistry


def _log(msg: str):
    print(msg, file=sys.stderr)


def _create_session(factory_path: str):
    """Create the ActionSession from a ``module:callable`` path.

    Falls back to a dry-run passthrough if unset or unavailable.
    """
    if factory_path:
        try:
            module_name, _, attr = factory_path.partition(":")
            factory = getattr(importlib.import_module(module_name), attr or "create_session")
            session = factory()
            _log(f"ActionSession loaded from {factory_path}")
            return session
        except Exception as e:
            _log(f"ActionSession factory {factory_path!r} unavailable ({e}), using dry run")
    else:
        _log("FLEET_ACTION_SESSION_FACTORY not set, using dry run")
    return DryRunSession()


def _create_notifier(config: AppConfig):
    if config.notify.discord_webhook_url:
        _log("Notifications: Discord webhook")
        return DiscordWebhookNotifier(config.notify.discord_webhook_url)
    return LogNotifier()


def build_scheduler(config: AppConfig, context: Optional[RunContext] = None) -> Scheduler:
    """Wire quota tracker, registry, gate and collaborators together."""
    accounts = load_accounts(config.accounts_file)
    enabled = [a for a in accounts if a.enabled]
    _log(f"Found {len(enabled)} enabled account(s): {', '.join(a.account_id for a in enabled) or '-'}")

    session = _create_session(config.action_session_factory)
    quota = QuotaTracker(
        storage=JsonStorage(config.storage_dir),
        window_seconds=config.scheduler.quota_window_seconds,
    )
    registry = SessionRegistry(session, lock_config=config.lock)
    return Scheduler(
        accounts=accounts,
        quota=quota,
        registry=registry,
        session=session,
        config=config.scheduler,
        gate=ConcurrencyGate(config.scheduler.max_concurrent_sessions),
        notifier=_create_notifier(config),
        context=context or RunContext(),
    )


def _install_signal_handlers(context: RunContext):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, context.request_exit, sig.name)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass


async def _serve_status(scheduler: Scheduler, port: int):
    import uvicorn
    from fleet.adapters.web.server import attach_scheduler

    app = attach_scheduler(scheduler)
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning"))
    serve_task = asyncio.create_task(server.serve())
    await scheduler.context.wait_for_exit()
    server.should_exit = True
    await serve_task


async def launch(config: Optional[AppConfig] = None):
    """Run the scheduler until SIGINT/SIGTERM."""
    config = config or AppConfig.from_env()
    context = RunContext()
    _install_signal_handlers(context)
    scheduler = build_scheduler(config, context)

    if not scheduler.accounts:
        _log("No accounts configured. Set FLEET_ACCOUNTS_FILE to a JSON list of accounts.")
        return

    jobs = [scheduler.run_forever()]
    if config.serve_status:
        _log(f"Status API on port {config.port}")
        jobs.append(_serve_status(scheduler, config.port))
    try:
        await asyncio.gather(*jobs)
    finally:
        context.request_exit("launcher stopped")
        notifier = scheduler.notifier
        if isinstance(notifier, DiscordWebhookNotifier):
            await notifier.close()


if __name__ == "__main__":
    asyncio.run(launch())
