"""Command-line interface for SnapCleaner."""

import sys
import click
from pathlib import Path
from typing import Optional

from .classifier import classify
from .config import Config
from .engine import CleanupEngine, utc_now
from .models import Classification, RetentionPolicy
from .platforms import PLATFORMS, create_source, resolve_scopes
from .report import render_text
from .scheduler import CleanupScheduler
from .utils import NotificationManager, ensure_directory, format_age


def initialize_config(config_file: Optional[str] = None) -> tuple:
    """Initialize configuration and notification manager."""
    try:
        config = Config(config_file)
        notifier = NotificationManager(config)
        return config, notifier
    except Exception as e:
        click.echo(f"Error: Failed to initialize configuration: {str(e)}", err=True)
        sys.exit(1)


def build_policy(config_obj: Config, days: Optional[int], max_days: Optional[int],
                 keep_marker: Optional[str]) -> RetentionPolicy:
    """Build a retention policy from configuration and command-line overrides."""
    if days is not None:
        config_obj.set('retention.days', days)
    if max_days is not None:
        config_obj.set('retention.max_days', max_days)
    if keep_marker is not None:
        config_obj.set('retention.keep_marker', keep_marker)
    return config_obj.retention_policy


def build_engine(config_obj: Config, notifier_obj: NotificationManager, platform: Optional[str],
                 policy: RetentionPolicy) -> CleanupEngine:
    """Create a cleanup engine for the configured platform."""
    source = create_source(platform or config_obj.platform, config_obj, notifier_obj)
    return CleanupEngine(
        source,
        policy,
        notifier_obj,
        clock=utc_now,
        max_workers=config_obj.max_workers,
        timeout=config_obj.delete_timeout,
        datacenter=config_obj.datacenter,
    )


def write_report(report, output: str, notifier_obj: NotificationManager) -> None:
    """Write the JSON report to ``output``."""
    path = Path(output)
    ensure_directory(path.parent)
    path.write_text(report.to_json(), encoding='utf-8')
    notifier_obj.info(f"Report written to {path}")


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Path to configuration file')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose output')
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """SnapCleaner - retention-driven VM snapshot cleanup.

    Finds snapshots past the retention window, deletes the eligible ones,
    verifies the deletions and reports what was deleted, kept and failed.
    """
    ctx.ensure_object(dict)

    config_obj, notifier_obj = initialize_config(config)

    if verbose:
        config_obj.set('notifications.level', 'DEBUG')
        notifier_obj = NotificationManager(config_obj)

    ctx.obj['config'] = config_obj
    ctx.obj['notifier'] = notifier_obj


@cli.command()
@click.option('--datacenter', '-d', default=None, help='Datacenter identifier for reports')
@click.option('--platform', '-p', type=click.Choice(sorted(PLATFORMS)), default=None,
              help='Snapshot platform')
@click.option('--output', '-o', default='snapcleaner.yaml', help='Configuration file to write')
@click.pass_context
def init(ctx, datacenter: Optional[str], platform: Optional[str], output: str):
    """Write a starter configuration file."""
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    try:
        if datacenter:
            config_obj.set('datacenter', datacenter)
        if platform:
            config_obj.set('platform', platform)
        config_obj.save(output)

        notifier_obj.success("SnapCleaner initialized successfully!")
        click.echo(f"Configuration saved to: {output}")

    except Exception as e:
        notifier_obj.error(f"Initialization failed: {str(e)}")
        sys.exit(1)


@cli.command()
@click.option('--platform', '-p', type=click.Choice(sorted(PLATFORMS)), default=None,
              help='Snapshot platform')
@click.option('--scope', '-s', 'scope_names', multiple=True, help='Configured scope to process')
@click.option('--vm', 'vm_names', multiple=True, help='Process only these VMs')
@click.option('--days', type=int, default=None, help='Minimum age in days before deletion')
@click.option('--max-days', type=int, default=None, help='Age in days after which the keep marker is ignored')
@click.option('--keep-marker', default=None, help='Name marker that exempts a snapshot')
@click.option('--dry-run/--live', default=None, help='Only report what would be deleted')
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']), default='table',
              help='Output format')
@click.option('--output', '-o', default=None, help='Write the JSON report to this file')
@click.pass_context
def run(ctx, platform: Optional[str], scope_names: tuple, vm_names: tuple, days: Optional[int],
        max_days: Optional[int], keep_marker: Optional[str], dry_run: Optional[bool],
        output_format: str, output: Optional[str]):
    """Delete snapshots past the retention window and report the outcome."""
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    try:
        policy = build_policy(config_obj, days, max_days, keep_marker)
        engine = build_engine(config_obj, notifier_obj, platform, policy)
        if dry_run is None:
            dry_run = config_obj.dry_run

        report = engine.run(
            lambda source: resolve_scopes(source, config_obj.scopes, list(vm_names), list(scope_names)),
            dry_run=dry_run,
        )

        output = output or config_obj.report_output
        if output:
            write_report(report, output, notifier_obj)

        if output_format == 'json':
            click.echo(report.to_json())
        else:
            click.echo(render_text(report))

    except Exception as e:
        notifier_obj.error(f"Cleanup failed: {str(e)}")
        sys.exit(1)

    if not report.ok:
        sys.exit(1)


@cli.command('list')
@click.option('--platform', '-p', type=click.Choice(sorted(PLATFORMS)), default=None,
              help='Snapshot platform')
@click.option('--scope', '-s', 'scope_names', multiple=True, help='Configured scope to list')
@click.option('--vm', 'vm_names', multiple=True, help='List only these VMs')
@click.pass_context
def list_snapshots(ctx, platform: Optional[str], scope_names: tuple, vm_names: tuple):
    """List snapshots with their retention classification."""
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    labels = {
        Classification.DELETE_ELIGIBLE: "DELETE",
        Classification.KEEP_FLAGGED: "KEEP",
        Classification.RETAIN_IN_WINDOW: "-",
    }

    try:
        policy = config_obj.retention_policy
        source = create_source(platform or config_obj.platform, config_obj, notifier_obj)
        now = utc_now()

        with source:
            scopes = resolve_scopes(source, config_obj.scopes, list(vm_names), list(scope_names))
            for scope in scopes:
                click.echo(f"\n{scope.name}:")
                snapshots = source.list_snapshots(scope)
                if not snapshots:
                    click.echo("  No snapshots")
                    continue

                header = f"  {'VM':<20} {'Snapshot':<28} {'Age':<8} {'Action':<8}"
                click.echo(header)
                click.echo("  " + "-" * 66)
                for snapshot in snapshots:
                    action = labels[classify(now, policy, snapshot)]
                    click.echo(
                        f"  {snapshot.vm_name[:19]:<20} {snapshot.name[:27]:<28} "
                        f"{format_age(snapshot.age(now)):<8} {action:<8}"
                    )

    except Exception as e:
        notifier_obj.error(f"Failed to list snapshots: {str(e)}")
        sys.exit(1)


def _make_scheduler(ctx) -> CleanupScheduler:
    config_obj = ctx.obj['config']
    notifier_obj = ctx.obj['notifier']

    def runner():
        engine = build_engine(config_obj, notifier_obj, None, config_obj.retention_policy)
        report = engine.run(
            lambda source: resolve_scopes(source, config_obj.scopes),
            dry_run=config_obj.dry_run,
        )
        if config_obj.report_output:
            write_report(report, config_obj.report_output, notifier_obj)
        return report

    return CleanupScheduler(config_obj, runner, notifier_obj)


@cli.group()
def schedule():
    """Scheduled cleanup commands."""


@schedule.command('enable')
@click.argument('interval')
@click.pass_context
def schedule_enable(ctx, interval: str):
    """Enable scheduled cleanup every INTERVAL (e.g. 12h, 1d)."""
    try:
        _make_scheduler(ctx).enable(interval)
    except ValueError as e:
        ctx.obj['notifier'].error(str(e))
        sys.exit(1)


@schedule.command('disable')
@click.pass_context
def schedule_disable(ctx):
    """Disable scheduled cleanup."""
    _make_scheduler(ctx).disable()


@schedule.command('status')
@click.pass_context
def schedule_status(ctx):
    """Show scheduler status."""
    status = _make_scheduler(ctx).get_status()
    click.echo(f"Enabled: {'yes' if status['enabled'] else 'no'}")
    click.echo(f"Interval: {status['interval']}")
    click.echo(f"Last run: {status['last_run'] or 'never'}")
    click.echo(f"Next run: {status['next_run'] or '-'}")
    summary = status.get('last_summary')
    if summary:
        if 'error' in summary:
            click.echo(f"Last result: error - {summary['error']}")
        else:
            click.echo(f"Last result: {summary['headline']} "
                       f"(deleted {summary['deleted']}, failed {summary['failed']})")


@schedule.command('run')
@click.pass_context
def schedule_run(ctx):
    """Run the scheduled cleanup now."""
    report = _make_scheduler(ctx).run_now()
    if report is None:
        sys.exit(1)
    click.echo(render_text(report))
    if not report.ok:
        sys.exit(1)


@schedule.command('daemon')
@click.pass_context
def schedule_daemon(ctx):
    """Run the scheduler in the foreground."""
    _make_scheduler(ctx).start_daemon()


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == '__main__':
    main()
