"""CLI entry point: dltracker-doctor.

Usage:
    dltracker-doctor [WHERE]              # report, then interactive repair menu
    dltracker-doctor -r [WHERE]           # report only
"""

from __future__ import annotations

import asyncio
import errno
import stat
import sys
from pathlib import Path

import click
import structlog

from dltracker_doctor import __version__
from dltracker_doctor.core.config import load_settings
from dltracker_doctor.core.logging import setup_logging
from dltracker_doctor.doctor import Doctor
from dltracker_doctor.exceptions import DoctorError
from dltracker_doctor.reporter import Reporter, split_git_nodata
from dltracker_doctor.store import MAPFILE_NAME

log = structlog.get_logger("dltracker_doctor.cli")

EXIT_LOCATION = 1
EXIT_AUDIT_PERMISSION = 2
EXIT_SAVE_FAILED = 3
EXIT_REFRESH_FAILED = 4
EXIT_NOT_A_FILE = 0xA0
EXIT_AUDIT_FAILED = 0xFF


def resolve_map_file(where: str | None) -> Path:
    """Accept either the download directory or the map file itself."""
    path = Path(where).resolve() if where else Path.cwd() / MAPFILE_NAME
    if path.name != MAPFILE_NAME:
        path = path / MAPFILE_NAME
    return path


def check_map_file(map_file: Path) -> int | None:
    """Return an exit code if *map_file* is unusable, else None.

    The tracker would quietly rebuild a missing map file from the archives it
    finds, so its absence has to be caught here.
    """
    try:
        st = map_file.stat()
    except FileNotFoundError:
        click.echo(f"Failed to find {MAPFILE_NAME} at given path.", err=True)
        return EXIT_LOCATION
    except PermissionError:
        click.echo("You do not have permission to read this directory.", err=True)
        return EXIT_LOCATION
    except OSError as e:
        code = errno.errorcode.get(e.errno or 0, "")
        click.echo(f"{code + ': ' if code else ''}{e.strerror or e}", err=True)
        return EXIT_LOCATION
    if not stat.S_ISREG(st.st_mode):
        click.echo(f"{MAPFILE_NAME} at this location is not a file.", err=True)
        return EXIT_NOT_A_FILE
    return None


class RepairSession:
    """Interactive menu over a doctor; re-audits after each save."""

    def __init__(self, where: Path, *, strict: bool = False) -> None:
        self.where = where
        self.strict = strict
        self.doctor: Doctor | None = None

    def reevaluate(self) -> bool:
        """Audit again and report. Returns False when there is nothing to fix."""
        self.doctor = asyncio.run(Doctor.create(self.where, strict=self.strict))
        if self.doctor.data():
            Reporter(self.doctor).report()
            return True
        click.echo("\nThis download set is in good health!\nNo changes needed.")
        return False

    def menu_actions(self) -> list[tuple[str, str, list[int]]]:
        """Menu entries ``(key, label, indices)`` applicable to the current state."""
        dr = self.doctor
        assert dr is not None
        file_types = ("semver", "git", "url")

        def collect(types: tuple[str, ...], code: str) -> list[int]:
            return [i for t in types for i in dr.by_type_and_code(t, code)]

        git_no_filename, git_no_commit = split_git_nodata(dr)
        candidates = [
            ("m", "remove records of Missing tarballs", collect(file_types, "ENOENT")),
            ("z", "remove records of Zero-length tarballs", collect(file_types, "EFZEROLEN")),
            (
                "f",
                "remove records missing Filename",
                collect(("semver", "url"), "ENODATA") + git_no_filename,
            ),
            (
                "o",
                "remove records of Orphaned tags/refs",
                dr.orphaned_refs("tag") + dr.orphaned_refs("git"),
            ),
            (
                "v",
                "remove tag/git ref records with no Version",
                collect(("tag",), "ENODATA") + git_no_commit,
            ),
        ]
        actions = [("l", "List current errors", [])]
        actions += [c for c in candidates if c[2]]
        if dr.is_changed():
            actions.append(("s", "Save changes", []))
        actions.append(("x", "eXit", []))
        return actions

    def run(self) -> None:
        while self.step():
            pass

    def step(self) -> bool:
        """Show the menu once and perform the chosen action. False means stop."""
        dr = self.doctor
        assert dr is not None
        actions = self.menu_actions()
        for key, label, _ in actions:
            click.echo(f"  {key}) {label}")
        choice = click.prompt(
            "Action",
            type=click.Choice([key for key, _, _ in actions]),
            show_choices=False,
        )
        indices = next(idx for key, _, idx in actions if key == choice)

        if choice == "l":
            Reporter(dr).report()
        elif choice == "m":
            self._confirm_and_mark("Confirm: remove records for all missing tarballs?", indices)
        elif choice == "z":
            if self._confirm_and_mark(
                "Confirm: remove records for all zero-length tarballs?", indices
            ):
                click.echo("The records are removed.\nYou should delete the zero-length files.")
        elif choice == "f":
            self._confirm_and_mark("Confirm: remove records that have no filename?", indices)
        elif choice == "o":
            self._confirm_and_mark("Confirm: remove records for all orphaned tags/refs?", indices)
        elif choice == "v":
            self._confirm_and_mark(
                "Confirm: remove tag/git ref records that have no version?", indices
            )
        elif choice == "s":
            return self._save()
        elif choice == "x":
            if dr.is_changed():
                return not click.confirm("There are unsaved changes. Do you really want to exit?")
            return False
        return True

    def _confirm_and_mark(self, question: str, indices: list[int]) -> bool:
        assert self.doctor is not None
        if not click.confirm(question):
            return False
        self.doctor.mark_resolved(indices)
        return True

    def _save(self) -> bool:
        assert self.doctor is not None
        try:
            report = asyncio.run(self.doctor.save_state())
        except (OSError, DoctorError) as e:
            click.echo(f"Failed to save changes: {e}", err=True)
            click.echo("Exiting.", err=True)
            sys.exit(EXIT_SAVE_FAILED)

        click.echo("\nChanges saved.\n")
        for result in report.absent:
            click.echo(f"Already gone from {MAPFILE_NAME}: {result.describe()}", err=True)

        try:
            return self.reevaluate()
        except (OSError, DoctorError) as e:
            click.echo(f"Failed to refresh the tracker: {e}", err=True)
            click.echo("Exiting.", err=True)
            sys.exit(EXIT_REFRESH_FAILED)


@click.command()
@click.version_option(__version__, prog_name="dltracker-doctor")
@click.option("-r", "--report-only", is_flag=True, help="Report problems and exit immediately")
@click.option(
    "--strict",
    is_flag=True,
    help="Abort a save if any resolved record is already gone from the store",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.argument("where", required=False)
def main(where: str | None, report_only: bool, strict: bool, verbose: bool) -> None:
    """Find and discard broken records in a package download tracker directory."""
    settings = load_settings()
    setup_logging(settings, level="DEBUG" if verbose else None)

    if not where:
        click.echo("No location given. Using current directory.", err=True)
    map_file = resolve_map_file(where)
    exit_code = check_map_file(map_file)
    if exit_code is not None:
        sys.exit(exit_code)

    session = RepairSession(map_file.parent, strict=strict or settings.strict_commit)
    try:
        has_problems = session.reevaluate()
    except PermissionError:
        click.echo(
            f"You don't have permission to access {MAPFILE_NAME} in this directory.", err=True
        )
        sys.exit(EXIT_AUDIT_PERMISSION)
    except (OSError, DoctorError) as e:
        log.debug("cli.audit_failed", exc_info=True)
        code = errno.errorcode.get(getattr(e, "errno", None) or 0, "")
        click.echo(f"{code + ': ' if code else ''}{e}", err=True)
        sys.exit(EXIT_AUDIT_FAILED)

    if has_problems and not report_only:
        session.run()


if __name__ == "__main__":
    main()
