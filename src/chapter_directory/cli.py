"""chapter_directory.cli

Unified CLI entrypoint for the chapter member directory.

Modes (--mode):
  sync: apply --assign/--unassign edits to the role template, project its
        assignments onto one chapter's roster and bulk-replace it in the
        database; the chapter comes from --chapter or the template
  directory: print the filtered, ranked directory with section headers
  export: write the filtered, ranked directory to CSV
  age_alerts: list junior members already past the senior age threshold
  import: load a roster CSV, deriving categories from birth dates
  status: change one member's membership status and append it to the
        member's status log, or drop a mistaken log entry (--drop-log-entry)

Usage (sync):
    python -m chapter_directory.cli \\
        --mode sync \\
        --db-dsn "$DIRECTORY_DB_DSN" \\
        --chapter "Chiayi" \\
        --role-template config/role_templates/2026-chiayi.yml \\
        --assign treasurer:m204 --assign secretary-general:m117:deputy \\
        --save-template config/role_templates/2026-chiayi.yml

Usage (export):
    python -m chapter_directory.cli \\
        --mode export --chapter "Chiayi" --tab all \\
        --out-path artifacts/exports/chiayi.csv
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Sequence

import click
import psycopg

from chapter_directory.age_policy import find_pending_transitions
from chapter_directory.classify import group_by_tier
from chapter_directory.directory_filter import DirectoryFilter, DirectoryTab
from chapter_directory.member_import import build_import_report, run_member_import
from chapter_directory.membership_status import change_status, remove_status_change
from chapter_directory.models import MembershipStatus, SlotPosition
from chapter_directory.normalize import parse_date
from chapter_directory.ranking import rank_members
from chapter_directory.repository import MemberRepository, PostgresMemberRepository
from chapter_directory.role_store import SlotNotFoundError
from chapter_directory.role_sync import (
    DirectoryState,
    DuplicateAssignmentError,
    apply_role_sync,
    build_sync_report,
)
from chapter_directory.role_templates import (
    RoleTemplateValidationError,
    load_role_template,
    save_role_template,
)
from chapter_directory.shared import RejectWriter, RunCounters, write_run_report

DEFAULT_ROLE_TEMPLATE = "config/role_templates/default.yml"


def _open_repository(db_dsn: str, dry_run: bool) -> tuple[Any, MemberRepository]:
    """Return (connection, repository); the caller closes the connection."""
    conn = psycopg.connect(db_dsn, autocommit=False)
    return conn, PostgresMemberRepository(conn, dry_run=dry_run)


def _format_member_line(member) -> str:
    role = member.current_role
    role_text = f"  [{role.role_name}]" if role else ""
    return f"  {member.name}{role_text}  joined {member.join_date.isoformat()}"


SlotEdit = tuple[str, str, SlotPosition]


def _parse_slot_edits(
    ctx: click.Context, param: click.Parameter, values: tuple[str, ...]
) -> list[SlotEdit]:
    """Parse repeated ``slot_id:member_id[:deputy]`` option values."""
    edits: list[SlotEdit] = []
    for value in values:
        parts = [p.strip() for p in value.split(":")]
        if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
            raise click.BadParameter(
                f"{value!r} is not slot_id:member_id[:deputy]", ctx=ctx, param=param
            )
        position = SlotPosition.MAIN
        if len(parts) == 3:
            try:
                position = SlotPosition(parts[2].lower())
            except ValueError:
                raise click.BadParameter(
                    f"{value!r}: position must be 'main' or 'deputy'", ctx=ctx, param=param
                ) from None
        edits.append((parts[0], parts[1], position))
    return edits


# ---------------------------------------------------------------------------
# Mode runners
# ---------------------------------------------------------------------------

def _run_sync(
    run_id: str,
    repo: MemberRepository,
    counters: RunCounters,
    *,
    chapter: str | None,
    role_template: Path,
    save_template: Path | None,
    reject_conflicts: bool,
    assignments: Sequence[SlotEdit] = (),
    unassignments: Sequence[SlotEdit] = (),
    dry_run: bool,
) -> bool:
    try:
        template = load_role_template(role_template)
    except (FileNotFoundError, RoleTemplateValidationError) as exc:
        click.echo(f"[{run_id}] ERROR: cannot load role template {role_template}: {exc}", err=True)
        return False
    click.echo(
        f"[{run_id}] role template term={template.term} version={template.version} "
        f"slots={len(template.slots)} sha256={template.yaml_hash[:12]}"
    )

    if chapter and template.chapter and chapter != template.chapter:
        click.echo(
            f"[{run_id}] ERROR: --chapter {chapter!r} does not match the template "
            f"chapter {template.chapter!r}",
            err=True,
        )
        return False
    chapter = chapter or template.chapter
    if not chapter:
        click.echo(
            f"[{run_id}] ERROR: sync needs a chapter; pass --chapter or set "
            "'chapter' in the role template",
            err=True,
        )
        return False

    store = template.to_store()
    try:
        for slot_id, member_id, position in unassignments:
            store.unassign(slot_id, member_id, position)
        for slot_id, member_id, position in assignments:
            store.assign(slot_id, member_id, position)
    except SlotNotFoundError as exc:
        click.echo(f"[{run_id}] ERROR: unknown slot {exc}", err=True)
        return False
    except ValueError as exc:
        click.echo(f"[{run_id}] ERROR: {exc}", err=True)
        return False
    if assignments or unassignments:
        click.echo(
            f"[{run_id}] slot edits: {len(assignments)} assigned, "
            f"{len(unassignments)} unassigned"
        )

    state = DirectoryState(roster=repo.list_all(chapter))
    counters.members_listed = len(state.roster)
    try:
        outcome = apply_role_sync(
            state, store.slots(), repo, reject_conflicts=reject_conflicts
        )
    except DuplicateAssignmentError as exc:
        counters.duplicate_assignments = len(exc.conflicts)
        click.echo(f"[{run_id}] ERROR: {exc}", err=True)
        return False

    click.echo(build_sync_report(outcome, dry_run=dry_run))
    ctrs = outcome.counters
    counters.roles_assigned = ctrs.roles_assigned
    counters.roles_cleared = ctrs.roles_cleared
    counters.duplicate_assignments = ctrs.duplicate_assignments
    counters.members_written = outcome.persisted.written
    counters.warnings.extend(ctrs.warnings)

    if not outcome.ok:
        counters.persistence_errors += 1
        click.echo(
            f"[{run_id}] Bulk replace failed: {outcome.persisted.error}. "
            "Stored roster was not changed; re-run sync or re-fetch before editing.",
            err=True,
        )
        return False

    if save_template is not None and not dry_run:
        save_role_template(
            save_template, template.term, template.version, store.slots(), chapter=chapter
        )
        click.echo(f"[{run_id}] Role template written to {save_template}")
    return True


def _run_directory(
    repo: MemberRepository,
    counters: RunCounters,
    flt: DirectoryFilter,
) -> None:
    ranked = rank_members(flt.apply(repo.list_all(flt.chapter)))
    counters.members_listed = len(ranked)
    if not ranked:
        click.echo("No members found.")
        return
    if not flt.is_default_view:
        for member in ranked:
            click.echo(_format_member_line(member))
        return
    for tier, members in group_by_tier(ranked):
        click.echo(f"== {tier.label} ({len(members)}) ==")
        for member in members:
            click.echo(_format_member_line(member))


def _run_export(
    repo: MemberRepository,
    counters: RunCounters,
    flt: DirectoryFilter,
    out_path: Path,
) -> int:
    from chapter_directory.roster_export import export_roster_csv

    ranked = rank_members(flt.apply(repo.list_all(flt.chapter)))
    counters.members_listed = len(ranked)
    return export_roster_csv(ranked, out_path)


def _run_age_alerts(
    repo: MemberRepository,
    counters: RunCounters,
    chapter: str | None,
    as_of: date,
) -> None:
    alerts = find_pending_transitions(repo.list_all(chapter), as_of)
    counters.transition_alerts = len(alerts)
    if not alerts:
        click.echo(f"No pending senior transitions as of {as_of.isoformat()}.")
        return
    click.echo(f"Pending senior transitions as of {as_of.isoformat()}:")
    for alert in alerts:
        click.echo(
            f"  {alert.member_id}  {alert.name}  ({alert.chapter})  "
            f"born {alert.birth_date.isoformat()}  +{alert.year_difference}y"
        )


def _run_status(
    run_id: str,
    repo: MemberRepository,
    counters: RunCounters,
    *,
    chapter: str | None,
    member_id: str,
    new_status: MembershipStatus | None,
    drop_log_entry: int | None,
    changed_by: str,
    reason: str | None,
) -> bool:
    member = next((m for m in repo.list_all(chapter) if m.id == member_id), None)
    if member is None:
        click.echo(f"[{run_id}] ERROR: member {member_id} not found", err=True)
        return False
    try:
        if drop_log_entry is not None:
            updated = remove_status_change(member, drop_log_entry)
            summary = f"removed status log entry #{drop_log_entry}"
        else:
            updated, change = change_status(
                member, new_status, changed_by, datetime.now(timezone.utc), reason  # type: ignore[arg-type]
            )
            summary = (
                f"{change.from_status.value} -> {change.to_status.value} by {change.changed_by}"
            )
    except (ValueError, IndexError) as exc:
        click.echo(f"[{run_id}] ERROR: {exc}", err=True)
        return False

    result = repo.bulk_replace([updated])
    if not result.ok:
        counters.persistence_errors += 1
        click.echo(f"[{run_id}] Bulk replace failed: {result.error}", err=True)
        return False
    counters.status_changes += 1
    counters.members_written = result.written
    click.echo(f"[{run_id}] {member.id} ({member.name}): {summary}")
    for idx, entry in enumerate(updated.status_log):
        click.echo(
            f"  #{idx}  {entry.changed_at.isoformat()}  "
            f"{entry.from_status.value} -> {entry.to_status.value}  "
            f"{entry.changed_by}{'  ' + entry.reason if entry.reason else ''}"
        )
    return True


def _run_import(
    run_id: str,
    repo: MemberRepository,
    counters: RunCounters,
    rejects: RejectWriter,
    *,
    csv_path: Path,
    as_of: date,
    dry_run: bool,
) -> bool:
    existing = {m.id: m for m in repo.list_all(None)}
    try:
        members, ctrs = run_member_import(csv_path, rejects, as_of, existing=existing)
    except (FileNotFoundError, ValueError) as exc:
        click.echo(f"[{run_id}] ERROR: cannot import {csv_path}: {exc}", err=True)
        return False
    click.echo(build_import_report(ctrs, dry_run=dry_run))
    counters.rows_read = ctrs.rows_read
    counters.rows_rejected = ctrs.rows_rejected
    counters.transition_alerts = ctrs.transition_alerts
    counters.warnings.extend(ctrs.warnings)

    result = repo.bulk_replace(members)
    if not result.ok:
        counters.persistence_errors += 1
        click.echo(f"[{run_id}] Bulk replace failed: {result.error}", err=True)
        return False
    counters.members_written = result.written
    return True


# ---------------------------------------------------------------------------
# Unified CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="directory",
    type=click.Choice(["sync", "directory", "export", "age_alerts", "import", "status"]),
    show_default=True,
    help="Directory operation",
)
@click.option("--db-dsn", required=True, envvar="DIRECTORY_DB_DSN", help="PostgreSQL DSN")
@click.option(
    "--chapter",
    default=None,
    help="Limit to one chapter (sync: required unless the role template names one)",
)
# sync flags
@click.option(
    "--role-template",
    default=DEFAULT_ROLE_TEMPLATE,
    type=click.Path(),
    show_default=True,
    help="[sync] YAML role template with slot assignments",
)
@click.option("--save-template", default=None, type=click.Path(), help="[sync] Write the edited slots to this YAML after a successful sync")
@click.option(
    "--assign",
    "assignments",
    multiple=True,
    callback=_parse_slot_edits,
    help="[sync] Add a holder before syncing: slot_id:member_id[:deputy] (repeatable)",
)
@click.option(
    "--unassign",
    "unassignments",
    multiple=True,
    callback=_parse_slot_edits,
    help="[sync] Remove a holder before syncing: slot_id:member_id[:deputy] (repeatable)",
)
@click.option(
    "--reject-conflicts/--first-match-wins",
    default=False,
    show_default=True,
    help="[sync] Abort when a member is assigned to more than one slot",
)
# directory / export flags
@click.option("--search", default=None, help="[directory|export] Name, English name, company or mobile")
@click.option(
    "--tab",
    default="all",
    type=click.Choice([t.value for t in DirectoryTab]),
    show_default=True,
    help="[directory|export] Directory tab",
)
@click.option("--birth-month", default=None, type=click.IntRange(1, 12), help="[directory|export] Only members born in this month")
@click.option("--include-inactive", is_flag=True, default=False, help="[directory|export] Include on-leave, resigned and similar statuses")
@click.option("--out-path", default=None, type=click.Path(), help="[export] Output CSV")
# import / age_alerts flags
@click.option("--csv-path", default=None, type=click.Path(), help="[import] Roster CSV")
@click.option("--as-of", default=None, help="[import|age_alerts] Reference date YYYY-MM-DD (default: today)")
# status flags
@click.option("--member-id", default=None, help="[status] Member whose status changes")
@click.option(
    "--status",
    "new_status",
    default=None,
    type=click.Choice([s.value for s in MembershipStatus]),
    help="[status] New membership status",
)
@click.option(
    "--drop-log-entry",
    default=None,
    type=click.IntRange(min=0),
    help="[status] Remove the status log entry at this index (oldest is 0) instead of changing status",
)
@click.option("--changed-by", default="admin", show_default=True, help="[status] Who made the change")
@click.option("--reason", default=None, help="[status] Free-text reason kept in the status log")
# shared flags
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/member_import_rejects.csv",
    show_default=True,
)
@click.option("--reports-dir", default="./artifacts/reports", type=click.Path(), show_default=True)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
def main(
    mode: str,
    db_dsn: str,
    chapter: str | None,
    # sync
    role_template: str,
    save_template: str | None,
    reject_conflicts: bool,
    assignments: list[SlotEdit],
    unassignments: list[SlotEdit],
    # directory / export
    search: str | None,
    tab: str,
    birth_month: int | None,
    include_inactive: bool,
    out_path: str | None,
    # import / age_alerts
    csv_path: str | None,
    as_of: str | None,
    # status
    member_id: str | None,
    new_status: str | None,
    drop_log_entry: int | None,
    changed_by: str,
    reason: str | None,
    # shared
    dry_run: bool,
    rejects_path: str,
    reports_dir: str,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Chapter member directory CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()
    counters = RunCounters()

    if as_of is None:
        as_of_date = date.today()
    else:
        as_of_date = parse_date(as_of)
        if as_of_date is None:
            click.echo(f"[{run_id}] ERROR: --as-of '{as_of}' is not a valid date", err=True)
            sys.exit(1)

    if mode == "export" and not out_path:
        click.echo(f"[{run_id}] ERROR: --out-path is required for --mode export", err=True)
        sys.exit(1)
    if mode == "import" and not csv_path:
        click.echo(f"[{run_id}] ERROR: --csv-path is required for --mode import", err=True)
        sys.exit(1)
    if mode == "status" and (not member_id or (new_status is None) == (drop_log_entry is None)):
        click.echo(
            f"[{run_id}] ERROR: --mode status needs --member-id and exactly one of "
            "--status or --drop-log-entry",
            err=True,
        )
        sys.exit(1)

    flt = DirectoryFilter(
        chapter=chapter,
        search=search,
        tab=DirectoryTab(tab),
        birth_month=birth_month,
        include_inactive=include_inactive,
    )

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")
    conn, repo = _open_repository(db_dsn, dry_run)
    ok = True
    source_paths: dict[str, str] = {}
    rejects = RejectWriter(Path(rejects_path))
    try:
        if mode == "sync":
            source_paths = {"role_template": role_template}
            ok = _run_sync(
                run_id, repo, counters,
                chapter=chapter,
                role_template=Path(role_template),
                save_template=Path(save_template) if save_template else None,
                reject_conflicts=reject_conflicts,
                assignments=assignments,
                unassignments=unassignments,
                dry_run=dry_run,
            )
        elif mode == "directory":
            _run_directory(repo, counters, flt)
        elif mode == "export":
            source_paths = {"out_path": out_path}  # type: ignore[dict-item]
            written = _run_export(repo, counters, flt, Path(out_path))  # type: ignore[arg-type]
            click.echo(f"[{run_id}] Exported {written} members to {out_path}")
        elif mode == "age_alerts":
            _run_age_alerts(repo, counters, chapter, as_of_date)
        elif mode == "status":
            ok = _run_status(
                run_id, repo, counters,
                chapter=chapter,
                member_id=member_id,  # type: ignore[arg-type]
                new_status=MembershipStatus(new_status) if new_status else None,
                drop_log_entry=drop_log_entry,
                changed_by=changed_by,
                reason=reason,
            )
        elif mode == "import":
            source_paths = {"csv_path": csv_path, "rejects_path": rejects_path}  # type: ignore[dict-item]
            ok = _run_import(
                run_id, repo, counters, rejects,
                csv_path=Path(csv_path),  # type: ignore[arg-type]
                as_of=as_of_date,
                dry_run=dry_run,
            )
    finally:
        rejects.close()
        if conn is not None:
            conn.close()

    if dry_run and mode in ("sync", "import", "status"):
        click.echo(f"[{run_id}] DRY RUN: rolled back.")

    report_path = write_run_report(
        run_id, started_at, mode, dry_run, source_paths, counters,
        reports_dir=Path(reports_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
