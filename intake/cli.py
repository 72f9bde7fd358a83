"""Intake CLI: check catalogs and payloads against the pipeline offline."""

import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from intake import __version__

console = Console()


def _load_values(raw: str) -> dict:
    """Parse VALUES as inline JSON or ``@path/to/file.json``."""
    if raw.startswith("@"):
        with open(raw[1:]) as f:
            data = json.load(f)
    else:
        data = json.loads(raw)
    if not isinstance(data, dict):
        raise click.BadParameter("values must be a JSON object", param_hint="VALUES")
    return data


def _find_form(catalog, form_id: str, site: str | None):
    from intake.errors import NotFoundError

    if site:
        try:
            return catalog.get_form(catalog.get_site(site).id, form_id)
        except NotFoundError as e:
            raise click.ClickException(str(e))
    matches = [f for f in catalog.list_forms() if f.id.lower() == form_id.strip().lower()]
    if not matches:
        raise click.ClickException(f"Form {form_id} not found")
    if len(matches) > 1:
        raise click.UsageError(f"Form {form_id} exists on several sites; pass --site")
    return matches[0]


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show classifier and store logs")
def main(verbose: bool):
    """Intake: form and comment moderation pipeline.

    Validate payloads against a catalog, dry-run the spam classifier,
    and inspect the configured forms.
    """
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ── Forms ────────────────────────────────────────────────────────────


@main.command()
@click.argument("catalog_path")
def forms(catalog_path: str):
    """List the sites and forms declared in a catalog file."""
    from intake.forms.registry import load_catalog

    catalog = load_catalog(catalog_path)
    all_forms = catalog.list_forms()
    if not all_forms:
        console.print("[yellow]No forms declared.[/]")
        return

    table = Table(title=f"Forms ({len(all_forms)})")
    table.add_column("Site", style="dim")
    table.add_column("Form", style="cyan")
    table.add_column("Fields", justify="right")
    table.add_column("Moderation")
    table.add_column("Active")
    table.add_column("Webhook")

    for form in all_forms:
        table.add_row(
            form.site_id,
            form.id,
            str(len(form.fields)),
            form.moderation_mode.value,
            "[green]yes[/]" if form.is_active else "[red]no[/]",
            form.notification_webhook or "-",
        )
    console.print(table)


# ── Validate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("catalog_path")
@click.argument("form_id")
@click.argument("values")
@click.option("--site", default=None, help="Site id or slug when form ids repeat")
def validate(catalog_path: str, form_id: str, values: str, site: str | None):
    """Run field validation for one payload.

    VALUES is a JSON object, or @FILE to read it from a file.
    """
    from intake.forms.registry import load_catalog
    from intake.validation import validate_submission

    form = _find_form(load_catalog(catalog_path), form_id, site)
    violations = validate_submission(form.fields, _load_values(values))

    if not violations:
        console.print(f"[green]v[/] {form.id}: payload is valid")
        return

    table = Table(title=f"Violations ({len(violations)})")
    table.add_column("Field", style="cyan")
    table.add_column("Rule", style="dim")
    table.add_column("Message")
    for v in violations:
        table.add_row(v.field, v.rule, v.message)
    console.print(table)
    sys.exit(1)


# ── Classify ─────────────────────────────────────────────────────────


@main.command()
@click.argument("catalog_path")
@click.argument("form_id")
@click.argument("values")
@click.option("--site", default=None, help="Site id or slug when form ids repeat")
@click.option("--honeypot", default="", help="Value of the hidden honeypot field")
@click.option("--started-at", default=None, help="Client start time (epoch ms or ISO)")
@click.option("--ip-hash", default=None, help="Submitter identity")
@click.option("--bypass", is_flag=True, help="Skip rate and spam heuristics")
@click.option("--settings", "settings_path", default=None, help="Settings YAML file")
def classify(
    catalog_path: str,
    form_id: str,
    values: str,
    site: str | None,
    honeypot: str,
    started_at: str | None,
    ip_hash: str | None,
    bypass: bool,
    settings_path: str | None,
):
    """Dry-run validation and spam classification for one submission."""
    from intake.config import load_settings
    from intake.forms.registry import load_catalog
    from intake.moderation.blocklist import IdentityBlocklist
    from intake.moderation.classifier import IntakeContext, SpamClassifier

    form = _find_form(load_catalog(catalog_path), form_id, site)
    classifier = SpamClassifier(IdentityBlocklist(), load_settings(settings_path))
    result = classifier.classify_form(
        form,
        _load_values(values),
        IntakeContext(
            honeypot=honeypot,
            ip_hash=ip_hash,
            started_at=started_at,
            rate_limit_bypass=bypass,
        ),
    )

    colour = "green" if result.status.value in ("pending", "approved") else "red"
    console.print(f"\n[bold]{form.id}[/] -> [{colour}]{result.status.value}[/]")
    if result.spam_flags:
        console.print(f"  flags: {', '.join(f.value for f in result.spam_flags)}")
    if result.spam_message:
        console.print(f"  {result.spam_message}")
    for v in result.validation:
        console.print(f"  [red]x[/] {v.field}: {v.message}")
    if not result.ok:
        sys.exit(1)


# ── Reasons ──────────────────────────────────────────────────────────


@main.command()
def reasons():
    """List the reasons a reader may give when reporting a comment."""
    from intake.moderation.models import REPORT_REASONS

    for reason in REPORT_REASONS:
        console.print(f"  {reason}")


if __name__ == "__main__":
    main()
