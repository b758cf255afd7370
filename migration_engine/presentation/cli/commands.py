"""CLI commands using Click framework."""

import json
import logging
import os

import click

from migration_engine.application.dtos.migration_dto import ExecutionOptions, GenerationOptions
from migration_engine.domain.entities.difference import ComparisonMode, ComparisonOptions
from migration_engine.domain.entities.execution import ExecutionStatus, LogLevel
from migration_engine.domain.exceptions import MigrationEngineError
from migration_engine.infrastructure.di_container import DIContainer
from migration_engine.presentation.serializers import (
    comparison_to_dict, result_from_dict, result_to_dict, script_from_dict, script_to_dict,
)

RISK_ICONS = {"low": "🟢", "medium": "🟡", "high": "🟠", "critical": "🔴"}
LOG_ICONS = {LogLevel.INFO: "ℹ️ ", LogLevel.WARNING: "⚠️ ", LogLevel.ERROR: "❌"}


def _parse_connections(values):
    connections = {}
    for value in values:
        ref, sep, dsn = value.partition("=")
        if not sep or not ref or not dsn:
            raise click.BadParameter(f"expected NAME=DSN, got {value!r}", param_hint="--connection")
        connections[ref] = dsn
    return connections


def _load_json(path):
    with open(path, "r") as f:
        return json.load(f)


def _save_json(path, data):
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def _fail(error: Exception):
    click.echo(f"\n❌ Error: {error}", err=True)
    raise click.Abort()


@click.group()
@click.version_option(version="1.0.0")
@click.option('--connection', '-c', 'connections', multiple=True,
              help='Connection reference as NAME=DSN (repeatable)')
@click.option('--log-level', default=lambda: os.getenv("MIGRATION_LOG_LEVEL", "WARNING"),
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level')
@click.pass_context
def cli(ctx, connections, log_level):
    """Schema Migration Engine - compare, plan, execute and roll back PostgreSQL schema changes."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    if not isinstance(ctx.obj, DIContainer):
        ctx.obj = DIContainer()
    ctx.obj.configure(connections=_parse_connections(connections))


@cli.command()
@click.option('--source', '-s', default='source', help='Source connection reference')
@click.option('--target', '-t', default='target', help='Target connection reference')
@click.option('--mode', type=click.Choice([m.value for m in ComparisonMode]), default=None,
              help='Comparison mode (defaults to MIGRATION_COMPARISON_MODE or strict)')
@click.option('--ignore-schema', multiple=True, help='Schema to exclude (repeatable)')
@click.option('--type', 'object_types', multiple=True, help='Only compare these object types (repeatable)')
@click.option('--include-system', is_flag=True, help='Include system schemas')
@click.option('--output', '-o', type=click.Path(), default=None, help='Write the comparison as JSON')
@click.pass_obj
def compare(container, source, target, mode, ignore_schema, object_types, include_system, output):
    """Compare two database schemas."""
    click.echo(f"🔍 Comparing {source} → {target}")
    options = ComparisonOptions(
        mode=ComparisonMode(mode) if mode else container.comparison_mode,
        ignore_schemas=tuple(ignore_schema),
        object_types=tuple(object_types),
        include_system_objects=include_system,
    )
    try:
        result = container.get_compare_use_case().execute(source, target, options)
    except MigrationEngineError as e:
        _fail(e)

    click.echo(f"\n📊 {len(result.differences)} differences "
               f"({result.source_object_count} source / {result.target_object_count} target objects)")
    for difference in result.differences:
        click.echo(f"   {difference.kind.value:<9} {difference.object_type:<9} {difference.qualified_name}")

    if output:
        _save_json(output, comparison_to_dict(result))
        click.echo(f"\n💾 Comparison saved to: {output}")


@cli.command()
@click.option('--source', '-s', default='source', help='Source connection reference')
@click.option('--target', '-t', default='target', help='Target connection reference')
@click.option('--mode', type=click.Choice([m.value for m in ComparisonMode]), default=None,
              help='Comparison mode')
@click.option('--output', '-o', type=click.Path(), default='migration_plan.json',
              help='Output file for the migration plan')
@click.option('--rollback/--no-rollback', default=True, help='Generate an automatic rollback plan')
@click.option('--validation/--no-validation', default=True, help='Generate validation steps')
@click.option('--author', default=None, help='Author recorded in the plan metadata')
@click.option('--justification', default=None, help='Business justification')
@click.pass_obj
def plan(container, source, target, mode, output, rollback, validation, author, justification):
    """Compare schemas and generate a migration plan."""
    click.echo("🚀 Schema Migration Engine")
    click.echo("=" * 50)

    options = ComparisonOptions(mode=ComparisonMode(mode) if mode else container.comparison_mode)
    try:
        comparison = container.get_compare_use_case().execute(source, target, options)
        if not comparison.differences:
            click.echo("\n✅ Schemas are identical - nothing to migrate")
            return
        script = container.get_generate_use_case().execute(
            source, target, comparison.differences,
            GenerationOptions(
                include_rollback=rollback,
                include_validation=validation,
                author=author,
                business_justification=justification,
            ),
        )
    except MigrationEngineError as e:
        _fail(e)

    click.echo(f"\n📊 Migration Plan Summary:")
    click.echo(f"   Steps: {len(script.steps)}")
    click.echo(f"   Risk Level: {RISK_ICONS.get(script.risk_level.value, '')} {script.risk_level.value}")
    click.echo(f"   Estimated Duration: {script.estimated_execution_minutes} minutes")
    click.echo(f"   Rollback: {'automatic' if script.rollback_script.is_complete else 'manual'} "
               f"({script.rollback_script.success_rate_percent}% success rate)")

    click.echo(f"\n📝 Steps:")
    for step in script.steps:
        icon = "⚠️" if step.requires_manual_completion else "✓"
        click.echo(f"   {icon} {step.order}. {step.name} [{step.risk_level.value}]")

    if script.warnings:
        click.echo(f"\n⚠️  Warnings:")
        for warning in script.warnings:
            click.echo(f"   - {warning}")

    _save_json(output, script_to_dict(script))
    click.echo(f"\n💾 Plan saved to: {output}")


@cli.command()
@click.argument('plan_file', type=click.Path(exists=True))
@click.option('--target', '-t', default='source', help='Connection reference of the database to migrate')
@click.option('--dry-run', is_flag=True, help='Walk the steps without running any SQL')
@click.option('--validate-only', is_flag=True, help='Check pre-conditions without running statements')
@click.option('--stop-on-error/--continue-on-error', default=None,
              help='Stop at the first failed step (defaults to MIGRATION_STOP_ON_ERROR)')
@click.option('--resume', 'resume_file', type=click.Path(exists=True), default=None,
              help='Execution result of an earlier attempt; its completed steps are skipped')
@click.option('--output', '-o', type=click.Path(), default='execution_result.json',
              help='Output file for the execution result')
@click.pass_obj
def execute(container, plan_file, target, dry_run, validate_only, stop_on_error, resume_file, output):
    """Execute a saved migration plan."""
    try:
        script = script_from_dict(_load_json(plan_file))
        options = ExecutionOptions(
            dry_run=dry_run,
            validate_only=validate_only,
            stop_on_error=container.stop_on_error if stop_on_error is None else stop_on_error,
        )
        click.echo(f"⚡ Executing {script.name} on {target}{' (dry run)' if dry_run else ''}")
        orchestrator = container.get_orchestrator()
        if resume_file:
            previous = result_from_dict(_load_json(resume_file))
            result = orchestrator.resume(script, previous, target, options)
        else:
            result = container.get_executor().execute(script, target, options)
    except MigrationEngineError as e:
        _fail(e)

    _report(result)
    _save_json(output, result_to_dict(result))
    click.echo(f"\n💾 Execution result saved to: {output}")
    if result.status != ExecutionStatus.COMPLETED:
        raise SystemExit(1)


@cli.command()
@click.argument('plan_file', type=click.Path(exists=True))
@click.argument('result_file', type=click.Path(exists=True))
@click.option('--target', '-t', default='source', help='Connection reference of the migrated database')
@click.option('--output', '-o', type=click.Path(), default='rollback_result.json',
              help='Output file for the rollback result')
@click.pass_obj
def rollback(container, plan_file, result_file, target, output):
    """Roll back the completed steps of an execution."""
    try:
        script = script_from_dict(_load_json(plan_file))
        execution = result_from_dict(_load_json(result_file))
        click.echo(f"⏪ Rolling back {execution.completed_steps} completed steps of {script.name}")
        result = container.get_orchestrator().rollback(
            script, execution, target, ExecutionOptions(stop_on_error=True)
        )
    except MigrationEngineError as e:
        _fail(e)

    _report(result)
    _save_json(output, result_to_dict(result))
    click.echo(f"\n💾 Rollback result saved to: {output}")
    if result.status != ExecutionStatus.COMPLETED:
        raise SystemExit(1)


@cli.command()
@click.option('--host', default='127.0.0.1', help='Bind address')
@click.option('--port', default=8000, type=int, help='Port')
def serve(host, port):
    """Start the HTTP API."""
    import uvicorn
    from migration_engine.presentation.api.app import create_app

    click.echo(f"🌐 Serving on http://{host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)


def _report(result):
    click.echo(f"\n📄 Execution Log:")
    for entry in result.execution_log:
        click.echo(f"   {LOG_ICONS.get(entry.level, '')} {entry.message}")

    icon = "✅" if result.status == ExecutionStatus.COMPLETED else "❌"
    click.echo(f"\n{icon} {result.status.value}: {result.completed_steps} completed, "
               f"{result.failed_steps} failed"
               f"{' (cancelled)' if result.cancelled else ''}")


if __name__ == '__main__':
    cli()
