"""CLI entrypoint for contract-grader."""

from __future__ import annotations

import difflib
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import Annotated, Any

import typer

from contract_grader import __version__
from contract_grader.checkpoints import get_checkpoint, list_checkpoints
from contract_grader.config import AppConfig, default_config_template, load_app_config
from contract_grader.detection import detect_profile
from contract_grader.fixes import (
    FixItem,
    StalePatchError,
    apply_fixes,
    generate_fixes,
    has_template,
)
from contract_grader.grading import GradingOptions, GradingReport, grade_source
from contract_grader.loader import load_source
from contract_grader.output import (
    build_grade_payload,
    render_apply_human,
    render_checkpoints_human,
    render_detection_human,
    render_fixes_human,
    render_grade_human,
    render_json,
)
from contract_grader.rules import build_rules, list_rule_info
from contract_grader.rules.base import Evaluator
from contract_grader.validators import ValidatorBase, build_validators

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="contract-grader",
    no_args_is_help=True,
    help="Grade OpenAPI contracts against organization design standards.",
)

SourceOption = Annotated[Path | None, typer.Option("--source", help="Path to the contract file.")]
StdinOption = Annotated[bool, typer.Option(help="Read the contract from stdin.")]
RepoOption = Annotated[Path, typer.Option(help="Repository path used for config discovery.")]
FormatOption = Annotated[
    str | None, typer.Option(help="Output format: human|json.", show_default="human")
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to config TOML file."),
]


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable debug logging.")] = False,
) -> None:
    """Root command callback."""
    _ = version
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


@app.command("grade")
def grade_command(
    source: SourceOption = None,
    stdin: StdinOption = False,
    repo: RepoOption = Path("."),
    format: FormatOption = None,
    fail_below: Annotated[
        int | None, typer.Option(help="Exit nonzero if the score is below this value.")
    ] = None,
    profile_rules: Annotated[
        bool | None,
        typer.Option(
            "--profile-rules/--no-profile-rules",
            help="Only run evaluators that apply to the detected profile.",
        ),
    ] = None,
    workers: Annotated[int | None, typer.Option(help="Worker threads (1 = serial).")] = None,
    config_file: ConfigOption = None,
) -> None:
    """Grade a contract and print the composite score."""
    app_config = _load_config_or_raise(repo, config_file)
    output_format = _resolve_format(format, app_config)
    if fail_below is not None and not 0 <= fail_below <= 100:
        raise typer.BadParameter("fail-below must be between 0 and 100", param_hint="--fail-below")

    text, input_source = _read_source(source, stdin)
    report = _grade_or_raise(
        text,
        app_config,
        source=source,
        profile_rules=profile_rules,
        workers=workers,
    )

    if output_format == "json":
        typer.echo(render_json(build_grade_payload(report, input_source=input_source)))
    else:
        typer.echo(render_grade_human(report))

    threshold = fail_below if fail_below is not None else app_config.fail_below
    if not report.grade.passed or (threshold is not None and report.grade.score < threshold):
        raise typer.Exit(code=1)


@app.command("detect")
def detect_command(
    source: SourceOption = None,
    stdin: StdinOption = False,
    repo: RepoOption = Path("."),
    format: FormatOption = None,
    workers: Annotated[int | None, typer.Option(help="Worker threads (1 = serial).")] = None,
    config_file: ConfigOption = None,
) -> None:
    """Detect the architectural profile of a contract."""
    app_config = _load_config_or_raise(repo, config_file)
    output_format = _resolve_format(format, app_config)
    text, input_source = _read_source(source, stdin)
    options = _grading_options(app_config, profile_rules=None, workers=workers)
    loaded = load_source(text, source_name=_source_name(source))
    result = detect_profile(loaded.document, options.detection, workers=options.workers)

    if output_format == "json":
        payload = {"detection": result.to_dict(), "source_hash": loaded.source_hash}
        typer.echo(render_json(payload, input_source=input_source))
        return
    typer.echo(render_detection_human(result))


@app.command("fixes")
def fixes_command(
    source: SourceOption = None,
    stdin: StdinOption = False,
    repo: RepoOption = Path("."),
    format: FormatOption = None,
    config_file: ConfigOption = None,
) -> None:
    """List machine-applicable fixes for a contract's findings."""
    app_config = _load_config_or_raise(repo, config_file)
    output_format = _resolve_format(format, app_config)
    text, input_source = _read_source(source, stdin)
    report = _grade_or_raise(text, app_config, source=source)
    fixes = generate_fixes(
        report.findings,
        text,
        standards=app_config.standards,
        source_name=_source_name(source),
    )

    if output_format == "json":
        payload = {
            "fixes": [fix.to_dict() for fix in fixes],
            "source_hash": report.source_hash,
        }
        typer.echo(render_json(payload, input_source=input_source))
        return
    typer.echo(render_fixes_human(fixes))


@app.command("apply-fixes")
def apply_fixes_command(
    source: SourceOption = None,
    stdin: StdinOption = False,
    repo: RepoOption = Path("."),
    fixes_file: Annotated[
        Path | None,
        typer.Option("--fixes", help="Saved fixes JSON (defaults to freshly generated fixes)."),
    ] = None,
    out: Annotated[
        Path | None, typer.Option(help="Write the result here instead of the source file.")
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show the resulting diff without writing.")
    ] = False,
    backup: Annotated[
        bool, typer.Option("--backup", help="Keep a .bak copy of the file being overwritten.")
    ] = False,
    format: FormatOption = None,
    config_file: ConfigOption = None,
) -> None:
    """Apply fixes after checking they were derived from the current source."""
    app_config = _load_config_or_raise(repo, config_file)
    output_format = _resolve_format(format, app_config)
    text, input_source = _read_source(source, stdin)

    if fixes_file is not None:
        fixes = _load_fixes_or_raise(fixes_file)
    else:
        report = _grade_or_raise(text, app_config, source=source)
        fixes = generate_fixes(
            report.findings,
            text,
            standards=app_config.standards,
            source_name=_source_name(source),
        )

    try:
        result = apply_fixes(text, fixes, dry_run=dry_run)
    except StalePatchError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    destination = out if out is not None else source
    if not dry_run and result.changed:
        if destination is None:
            sys.stdout.write(result.text)
        else:
            _write_result(destination, result.text, backup=backup)

    if output_format == "json":
        payload: dict[str, Any] = result.to_dict()
        payload["destination"] = str(destination) if destination is not None else None
        typer.echo(render_json(payload, input_source=input_source), err=destination is None)
        return

    summary = render_apply_human(result)
    if dry_run:
        diff = difflib.unified_diff(
            text.splitlines(keepends=True),
            result.text.splitlines(keepends=True),
            fromfile=f"a/{_source_name(source)}",
            tofile=f"b/{_source_name(source)}",
        )
        summary = "".join(diff) + summary
    typer.echo(summary, err=destination is None and not dry_run)


@app.command("checkpoints")
def checkpoints_command(
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """List the scored checkpoints."""
    output_format = _check_format(format)
    checkpoints = list_checkpoints()
    if output_format == "json":
        payload = {"checkpoints": [item.to_dict() for item in checkpoints]}
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(render_checkpoints_human(checkpoints))


@app.command("explain")
def explain_command(
    rule_id: Annotated[str, typer.Argument(help="Checkpoint id, e.g. PAG-KEYSET.")],
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Explain one checkpoint and whether it has an automatic fix."""
    output_format = _check_format(format)
    checkpoint = get_checkpoint(rule_id.upper())
    if checkpoint is None:
        raise typer.BadParameter(f"Unknown checkpoint: {rule_id}", param_hint="RULE_ID")

    payload = checkpoint.to_dict()
    payload["fix_available"] = has_template(str(checkpoint.id))
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(
        "\n".join(
            [
                f"{checkpoint.id}: {checkpoint.description}",
                f"- category: {checkpoint.category}",
                f"- weight: {checkpoint.weight}",
                f"- auto_fail: {checkpoint.auto_fail}",
                f"- fix_available: {payload['fix_available']}",
            ]
        )
    )


@app.command("rules")
def rules_command(
    repo: RepoOption = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: ConfigOption = None,
) -> None:
    """List available evaluators."""
    output_format = _check_format(format)
    app_config = _load_config_or_raise(repo, config_file)
    active_ids = {rule.evaluator_id for rule in _build_configured_rules_or_raise(app_config)}
    rule_info = list_rule_info()

    if output_format == "json":
        payload = {
            "rules": [
                {
                    "evaluator_id": item.evaluator_id,
                    "name": item.name,
                    "description": item.description,
                    "category": item.category,
                    "default_enabled": item.default_enabled,
                    "enabled": item.evaluator_id in active_ids,
                }
                for item in rule_info
            ],
            "meta": {"config_source": app_config.source},
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Available rules:"]
    for item in rule_info:
        status = "enabled" if item.evaluator_id in active_ids else "disabled"
        lines.append(f"- {item.evaluator_id} [{status}] ({item.category}) - {item.description}")
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    repo: RepoOption = Path("."),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
    config_file: ConfigOption = None,
) -> None:
    """Show resolved configuration."""
    output_format = _check_format(format)
    app_config = _load_config_or_raise(repo, config_file)
    active_rules = _build_configured_rules_or_raise(app_config)
    payload = app_config.to_dict()
    payload["active_rule_ids"] = [rule.evaluator_id for rule in active_rules]

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source'] or 'defaults'}",
        f"- format: {payload['format']}",
        f"- fail_below: {payload['fail_below']}",
        f"- workers: {payload['workers']}",
        f"- rules.enable: {payload['rules']['enable']}",
        f"- rules.disable: {payload['rules']['disable']}",
        f"- detection: {payload['detection']}",
        f"- standards: {payload['standards']}",
        f"- validators: {payload['validators']}",
        f"- active_rule_ids: {payload['active_rule_ids']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".contract-grader.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter repository config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    repo: RepoOption = Path("."),
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config TOML file to validate."),
    ] = Path(".contract-grader.toml"),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Validate a config file and report active rules and validators."""
    output_format = _check_format(format)
    app_config = _load_config_or_raise(repo, config_file)
    active_rules = _build_configured_rules_or_raise(app_config)
    validators = _build_validators_or_raise(app_config)
    payload = {
        "ok": True,
        "source": app_config.source,
        "active_rule_ids": [rule.evaluator_id for rule in active_rules],
        "validators": [validator.validator_id for validator in validators],
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(
        "\n".join(
            [
                "Config is valid.",
                f"- source: {payload['source']}",
                f"- active_rule_ids: {payload['active_rule_ids']}",
                f"- validators: {payload['validators']}",
            ]
        )
    )


def main() -> None:
    """Console script entrypoint."""
    app()


def _read_source(source: Path | None, stdin: bool) -> tuple[str, str]:
    if source is not None and stdin:
        raise typer.BadParameter("Use either --source or --stdin, not both.")
    if stdin:
        return (sys.stdin.read(), "stdin")
    if source is None:
        raise typer.BadParameter("Provide --source PATH or --stdin.", param_hint="--source")
    if not source.is_file():
        raise typer.BadParameter(f"Source file does not exist: {source}", param_hint="--source")
    try:
        return (source.read_bytes().decode("utf-8"), f"source:{source}")
    except UnicodeDecodeError as exc:
        raise typer.BadParameter(f"{source} is not UTF-8 text", param_hint="--source") from exc


def _source_name(source: Path | None) -> str:
    return source.name if source is not None else "openapi.yaml"


def _check_format(value: str) -> str:
    output_format = value.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")
    return output_format


def _resolve_format(value: str | None, app_config: AppConfig) -> str:
    return _check_format(value or app_config.format)


def _load_config_or_raise(repo: Path, config_file: Path | None = None) -> AppConfig:
    try:
        return load_app_config(repo, config_path=config_file)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc


def _build_configured_rules_or_raise(app_config: AppConfig) -> list[Evaluator]:
    try:
        return build_rules(
            enabled_rule_ids=app_config.rule_enable,
            disabled_rule_ids=app_config.rule_disable,
            standards=app_config.standards,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.rules") from exc


def _build_validators_or_raise(app_config: AppConfig) -> list[ValidatorBase]:
    try:
        return build_validators(app_config.validators)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="config.validators") from exc


def _grading_options(
    app_config: AppConfig, *, profile_rules: bool | None, workers: int | None
) -> GradingOptions:
    options = GradingOptions.from_config(app_config)
    if profile_rules is not None:
        options.profile_rules = profile_rules
    if workers is not None:
        if workers < 1:
            raise typer.BadParameter("workers must be >= 1", param_hint="--workers")
        options.workers = workers
    return options


def _grade_or_raise(
    text: str,
    app_config: AppConfig,
    *,
    source: Path | None,
    profile_rules: bool | None = None,
    workers: int | None = None,
) -> GradingReport:
    _build_configured_rules_or_raise(app_config)
    options = _grading_options(app_config, profile_rules=profile_rules, workers=workers)
    validators = _build_validators_or_raise(app_config)
    logger.debug("Grading %s with %d validator(s)", _source_name(source), len(validators))
    return grade_source(
        text,
        options=options,
        validators=validators,
        source_name=_source_name(source),
    )


def _load_fixes_or_raise(path: Path) -> list[FixItem]:
    try:
        loaded = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise typer.BadParameter(f"Cannot read fixes: {exc}", param_hint="--fixes") from exc
    items = loaded.get("fixes") if isinstance(loaded, dict) else loaded
    if not isinstance(items, list):
        raise typer.BadParameter("fixes file must hold a list of fixes", param_hint="--fixes")
    try:
        return [FixItem.from_dict(item) for item in items if isinstance(item, dict)]
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--fixes") from exc


def _write_result(destination: Path, text: str, *, backup: bool) -> None:
    if backup and destination.exists():
        backup_path = destination.with_name(destination.name + ".bak")
        shutil.copy2(destination, backup_path)
        logger.info("Backed up %s to %s", destination, backup_path)
    destination.write_bytes(text.encode("utf-8"))
