"""
Command-line interface for the task scheduler.

Provides commands for:
- Running the scheduler in the foreground
- Listing, enabling and disabling tasks
- Viewing live triggers after boot
- Managing configuration

Admin commands write to the task store immediately. A scheduler already
running in another process skips a disabled task on its next fire and
picks up enables and cron changes on restart.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from taskscheduler.admin import AdminApi
from taskscheduler.boot import boot, load_handlers
from taskscheduler.config import SchedulerConfig
from taskscheduler.service import SchedulerService

logger = logging.getLogger(__name__)


def setup_logging(log_file: str = None, verbose: bool = False, level: str = "INFO",
                  max_bytes: int = 10 * 1024 * 1024, backup_count: int = 5):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # File handler
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)


def _load_config(args) -> SchedulerConfig:
    config = SchedulerConfig(args.config)
    setup_logging(
        log_file=getattr(args, 'log_file', None) or config.logging.file,
        verbose=args.verbose,
        level=config.logging.level,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count
    )
    return config


async def _booted_service(args, config: SchedulerConfig) -> SchedulerService:
    """Build a service with every known job and task registered (triggers not started)."""
    handlers_path = args.handlers or config.handlers
    if not handlers_path:
        raise ValueError("No handlers configured: pass --handlers or set SCHEDULER_HANDLERS")

    service = SchedulerService(config)
    await boot(service, load_handlers(handlers_path), config)
    return service


def _print_response(status: int, body: dict, as_json: bool = True) -> int:
    if status != 200:
        print(json.dumps(body, indent=2, default=str), file=sys.stderr)
        return 1
    if as_json:
        print(json.dumps(body, indent=2, default=str))
    return 0


async def _run(args):
    config = _load_config(args)

    errors = config.validate()
    if errors:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        sys.exit(1)

    service = await _booted_service(args, config)
    service.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(signum):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum)

    logger.info("Running in foreground mode. Press Ctrl+C to stop.")
    await stop_event.wait()
    await service.stop()


def cmd_run(args):
    """Boot and run the scheduler until interrupted."""
    try:
        asyncio.run(_run(args))
    except Exception as e:
        logger.error(f"Failed to run scheduler: {e}", exc_info=True)
        sys.exit(1)


async def _list(args) -> int:
    config = _load_config(args)
    service = SchedulerService(config)
    try:
        params = {}
        if args.name:
            params['name'] = args.name
        if args.enabled is not None:
            params['isEnabled'] = args.enabled

        status, body = await AdminApi(service).list_tasks(params)
        if status != 200 or args.json:
            return _print_response(status, body)

        tasks = body['data']
        print(f"\n=== Tasks ({body['meta']['total']}) ===\n")
        for task in tasks:
            mark = "✓" if task['isEnabled'] else "✗"
            print(f"{mark} {task['name']}")
            print(f"    Cron: {task['cron'] or '-'}")
            if task['config'] is not None:
                print(f"    Config: {json.dumps(task['config'])}")
            print()
        return 0
    finally:
        await service.stop()


def cmd_list(args):
    """List persisted tasks."""
    try:
        code = asyncio.run(_list(args))
    except Exception as e:
        logger.error(f"Failed to list tasks: {e}")
        sys.exit(1)
    if code:
        sys.exit(code)


def _read_task_config(args):
    if args.task_config and args.input:
        raise ValueError("Use either --task-config or --input, not both")
    if args.task_config:
        return json.loads(args.task_config)
    if args.input:
        return json.loads(sys.stdin.read())
    return None


async def _enable(args) -> int:
    config = _load_config(args)
    data = {'name': args.name}
    if args.cron:
        data['cron'] = args.cron
    task_config = _read_task_config(args)
    if task_config is not None:
        data['config'] = task_config

    service = await _booted_service(args, config)
    try:
        status, body = await AdminApi(service).enable_task(data)
    finally:
        await service.stop()

    if status == 200:
        logger.info(f"Enabled task '{args.name}'")
        logger.info("Restart a running scheduler for the new schedule to take effect")
    return _print_response(status, body, as_json=False)


def cmd_enable(args):
    """Enable a task."""
    try:
        code = asyncio.run(_enable(args))
    except Exception as e:
        logger.error(f"Failed to enable task: {e}")
        sys.exit(1)
    if code:
        sys.exit(code)


async def _disable(args) -> int:
    config = _load_config(args)
    service = await _booted_service(args, config)
    try:
        status, body = await AdminApi(service).disable_task({'name': args.name})
    finally:
        await service.stop()

    if status == 200:
        logger.info(f"Disabled task '{args.name}'")
    return _print_response(status, body, as_json=False)


def cmd_disable(args):
    """Disable a task."""
    try:
        code = asyncio.run(_disable(args))
    except Exception as e:
        logger.error(f"Failed to disable task: {e}")
        sys.exit(1)
    if code:
        sys.exit(code)


async def _jobs(args):
    config = _load_config(args)
    service = await _booted_service(args, config)
    try:
        jobs = service.get_jobs()
    finally:
        await service.stop()

    if not jobs:
        print("No triggers scheduled")
        return

    print(f"\n{len(jobs)} trigger(s) after boot:\n")
    for job in jobs:
        print(f"  Trigger: {job['id']}")
        print(f"  Schedule: {job['trigger']}")
        print()


def cmd_jobs(args):
    """Show the triggers a scheduler would run after boot."""
    try:
        asyncio.run(_jobs(args))
    except Exception as e:
        logger.error(f"Failed to list triggers: {e}")
        sys.exit(1)


def cmd_init(args):
    """Initialize scheduler configuration."""
    setup_logging(verbose=args.verbose)

    try:
        config = SchedulerConfig(args.config)
        config.save()

        logger.info(f"Initialized scheduler configuration at: {config.config_path}")
        logger.info(f"Task database: {config.database_url}")

        log_dir = Path(config.logging.file).expanduser().parent
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created log directory: {log_dir}")

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        sys.exit(1)


def cmd_show_config(args):
    """Show current configuration."""
    setup_logging(verbose=args.verbose)

    try:
        config = SchedulerConfig(args.config)

        print(f"\nConfiguration file: {config.config_path}")
        print(f"Task database: {config.database_url}")
        print(f"Timezone: {config.timezone}")
        print(f"Handlers: {config.handlers or '(not set)'}")
        print(f"\nJobs: {len(config.jobs)}")
        for name, cron in sorted(config.jobs.items()):
            print(f"  {name}: {cron}")
        print(f"\nCoalesce missed runs: {config.executor.coalesce}")
        print(f"Max concurrent runs per trigger: {config.executor.max_instances}")
        print(f"Misfire grace time: {config.executor.misfire_grace_time}s")
        print(f"Logging level: {config.logging.level}")
        print(f"Log file: {config.logging.file}")

        errors = config.validate()
        if errors:
            print("\nValidation errors:")
            for error in errors:
                print(f"  - {error}")

    except Exception as e:
        logger.error(f"Failed to show config: {e}")
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='task-scheduler',
        description="Task Scheduler - always-on jobs and operator-controlled tasks on cron schedules",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '-c', '--config',
        type=str,
        help='Path to scheduler configuration file'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--handlers',
        type=str,
        help='Handlers object as module:attribute (overrides config and SCHEDULER_HANDLERS)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Run command
    run_parser = subparsers.add_parser('run', help='Boot and run the scheduler in the foreground')
    run_parser.add_argument('--log-file', type=str, help='Log file path')
    run_parser.set_defaults(func=cmd_run)

    # List command
    list_parser = subparsers.add_parser('list', help='List tasks')
    list_parser.add_argument('--name', type=str, help='Filter by task name')
    enabled_group = list_parser.add_mutually_exclusive_group()
    enabled_group.add_argument('--enabled', dest='enabled', action='store_const', const=True,
                               help='Only enabled tasks')
    enabled_group.add_argument('--disabled', dest='enabled', action='store_const', const=False,
                               help='Only disabled tasks')
    list_parser.add_argument('--json', action='store_true', help='Output in JSON format')
    list_parser.set_defaults(func=cmd_list, enabled=None)

    # Enable command
    enable_parser = subparsers.add_parser('enable', help='Enable a task')
    enable_parser.add_argument('name', help='Task name to enable')
    enable_parser.add_argument('-r', '--cron', type=str, help='Cron expression (keeps the stored one if omitted)')
    enable_parser.add_argument('-t', '--task-config', type=str, help='Task configuration as JSON')
    enable_parser.add_argument('-I', '--input', action='store_true',
                               help='Read task configuration JSON from stdin')
    enable_parser.set_defaults(func=cmd_enable)

    # Disable command
    disable_parser = subparsers.add_parser('disable', help='Disable a task')
    disable_parser.add_argument('name', help='Task name to disable')
    disable_parser.set_defaults(func=cmd_disable)

    # Jobs command
    jobs_parser = subparsers.add_parser('jobs', help='Show triggers scheduled after boot')
    jobs_parser.set_defaults(func=cmd_jobs)

    # Init command
    init_parser = subparsers.add_parser('init', help='Initialize scheduler configuration')
    init_parser.set_defaults(func=cmd_init)

    # Show config command
    show_config_parser = subparsers.add_parser('show-config', help='Show configuration')
    show_config_parser.set_defaults(func=cmd_show_config)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == '__main__':
    main()
