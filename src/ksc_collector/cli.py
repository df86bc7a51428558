import logging
from collections.abc import Callable
from typing import Any

import click

from .aggregation import SumPolicy
from .collector import Action, CollectRequest, collect
from .config import CollectorSettings, load_settings
from .datasource import DataSource, KscOpenApiSource, StaticSource
from .errors import CollectorError
from .object_classes import ObjectClass
from .virtual_keys import AV_BASES_AGE_BUCKETS, HOST_STATUSES, STATUS_BITS, RtpState, UNASSIGNED_KEY

logger = logging.getLogger("ksc_collector")

OBJECT_TYPE = click.Choice([c.value for c in ObjectClass], case_sensitive=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _source_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every collecting command."""
    fn = click.option("--password-stdin", is_flag=True, default=False, help="Read the KSC password from stdin.")(fn)
    fn = click.option("--user", "-u", help="KSC user (overrides config and KSC_USER).")(fn)
    fn = click.option("--url", help="KSC Open API URL (overrides config and KSC_URL).")(fn)
    fn = click.option(
        "--from-file", "from_file", type=click.Path(exists=True, dir_okay=False),
        help="Collect from a YAML/JSON dump instead of the live server.",
    )(fn)
    fn = click.option("--id", "record_id", help="Only consider the record with this id.")(fn)
    return fn


def _settings(ctx: click.Context, url: str | None, user: str | None, password_stdin: bool, **overrides: Any) -> CollectorSettings:
    password = click.get_text_stream("stdin").readline().rstrip("\r\n") if password_stdin else None
    return load_settings(ctx.obj.get("config_path"), url=url, user=user, password=password, **overrides)


def _make_source(settings: CollectorSettings, from_file: str | None) -> DataSource:
    if from_file:
        return StaticSource.from_file(from_file)
    return KscOpenApiSource(settings)


def _run(
    ctx: click.Context,
    action: Action,
    object_type: str,
    key: str | None,
    record_id: str | None,
    from_file: str | None,
    url: str | None,
    user: str | None,
    password_stdin: bool,
    **request_overrides: Any,
) -> None:
    """Collect one value and echo it; CollectorError ends the run uniformly."""
    error_code = request_overrides.get("error_code")
    try:
        settings = _settings(ctx, url, user, password_stdin)
        if error_code is None:
            error_code = settings.error_code

        request = CollectRequest(
            action=action,
            object_class=ObjectClass.parse(object_type),
            key=key or "",
            id=record_id or None,
            error_code=error_code or "",
            no_escape=request_overrides.get("no_escape") or False,
            pretty=settings.pretty if request_overrides.get("pretty") is None else request_overrides["pretty"],
            sum_policy=request_overrides.get("sum_policy") or settings.sum_policy,
        )

        with _make_source(settings, from_file) as source:
            output = collect(source, request)
    except CollectorError as exc:
        logger.error("%s %s failed: %s", action.value, object_type, exc)
        if error_code:
            click.echo(error_code)
            return
        click.echo(f"ERROR: {exc}", err=True)
        raise SystemExit(1)

    click.echo(output)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug-level logging.")
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Path to the YAML config file.")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """KSC Collector: Zabbix metrics and discovery for Kaspersky Security Center."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("object_type", type=OBJECT_TYPE)
@click.option("--key", "-k", help="Virtual key narrowing the discovered set (Host only).")
@click.option("--pretty/--compact", default=None, help="Multi-line output (default from config: compact).")
@_source_options
@click.pass_context
def discovery(ctx: click.Context, object_type: str, key: str | None, pretty: bool | None, **source: Any) -> None:
    """Emit the low-level discovery JSON for OBJECT_TYPE."""
    _run(ctx, Action.DISCOVERY, object_type, key, pretty=pretty, **source)


@main.command()
@click.argument("object_type", type=OBJECT_TYPE)
@click.argument("key")
@click.option("--error-code", "-e", help="Value to print when the metric is absent or collection fails.")
@click.option("--no-escape", is_flag=True, default=False, help="Do not escape backslashes and quotes.")
@_source_options
@click.pass_context
def get(ctx: click.Context, object_type: str, key: str, error_code: str | None, no_escape: bool, **source: Any) -> None:
    """Print the metric KEY of the first matching OBJECT_TYPE record."""
    _run(ctx, Action.GET, object_type, key, error_code=error_code, no_escape=no_escape, **source)


@main.command()
@click.argument("object_type", type=OBJECT_TYPE)
@click.option("--key", "-k", help="Virtual key selecting which records to count.")
@click.option("--error-code", "-e", help="Value to print when collection fails.")
@_source_options
@click.pass_context
def count(ctx: click.Context, object_type: str, key: str | None, error_code: str | None, **source: Any) -> None:
    """Print the number of matching OBJECT_TYPE records."""
    _run(ctx, Action.COUNT, object_type, key, error_code=error_code, **source)


@main.command("sum")
@click.argument("object_type", type=OBJECT_TYPE)
@click.argument("key")
@click.option("--error-code", "-e", help="Value to print when collection fails.")
@click.option(
    "--policy", "sum_policy", type=click.Choice([p.value for p in SumPolicy]), default=None,
    help="How absent or non-numeric metrics are treated (default from config: zero).",
)
@_source_options
@click.pass_context
def sum_cmd(ctx: click.Context, object_type: str, key: str, error_code: str | None, sum_policy: str | None, **source: Any) -> None:
    """Print the sum of metric KEY across matching OBJECT_TYPE records."""
    policy = SumPolicy(sum_policy) if sum_policy else None
    _run(ctx, Action.SUM, object_type, key, error_code=error_code, sum_policy=policy, **source)


@main.command()
def keys() -> None:
    """List the Host virtual keys and their sub-values."""
    click.echo(f"{UNASSIGNED_KEY}")
    click.echo(f"Status.{{{'|'.join(HOST_STATUSES)}}}")
    click.echo(f"RTPState.{{{'|'.join(s.name for s in RtpState)}}}")
    for name in STATUS_BITS:
        click.echo(name)
    for name in AV_BASES_AGE_BUCKETS:
        click.echo(name)
