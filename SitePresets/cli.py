"""Command line interface for working with presets.

Usage::

    sitepresets --export [--name=<name>] [--comments=<comments>] [--author=<author>] [--include-sensitive]
    sitepresets --download --id=<id> [--file=<filename>]
    sitepresets --import --file=<filename> [--name=<name>]
    sitepresets --apply --id=<id> [--simulate] [--show-applied] [--show-skipped]
    sitepresets --compare --id=<id>
    sitepresets --history --id=<id>
    sitepresets --revert --application=<application id>
    sitepresets --delete --id=<id>
    sitepresets --list [--id=<id>|--name=<name>]

The exit code is 0 on success and identifies the failure otherwise, see :data:`EXIT_CODES`.
"""
import argparse
import logging
import pathlib
import sys
from typing import Dict, List, Optional, TextIO

import pandas as pd

from .log import log
from .presets import codec
from .presets.diff import DiffEntry, to_frame
from .presets.lib import PresetsAPI
from .settings.config import ConfigPaths
from .status import status

EXIT_CODES: Dict[status.Status, int] = {
    status.Status.Okay: 0,
    status.Status.NothingToDo: 1,
    status.Status.PresetNotFound: 2,
    status.Status.ApplicationNotFound: 2,
    status.Status.MalformedDocument: 3,
    status.Status.StoreUnavailable: 4,
    status.Status.ConfigInvalid: 5,
    status.Status.RegistryInvalid: 5,
    status.Status.WriteFailure: 6,
    status.Status.UnknownStatus: 10,
}
EXIT_MISSING_ARGUMENT: int = 1
EXIT_FILE_NOT_FOUND: int = 2
EXIT_FILE_ERROR: int = 7

REPORT_HEADERS: Dict[str, str] = {
    'classification': 'Status',
    'plugin': 'Plugin',
    'visible_name': 'Setting',
    'new_visible_value': 'New value',
    'old_visible_value': 'Old value',
    'reason': 'Reason',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='sitepresets',
        description='Export, import, compare and apply presets of the site settings.',
    )
    commands = parser.add_mutually_exclusive_group()
    commands.add_argument('--export', action='store_true', help='Export current settings as a preset.')
    commands.add_argument('--download', action='store_true', help='Save the preset to the given file.')
    commands.add_argument('--import', dest='import_', action='store_true', help='Import the preset from a file.')
    commands.add_argument('--apply', action='store_true', help='Apply the preset specified by --id.')
    commands.add_argument('--compare', action='store_true', help='Compare a preset with the live settings.')
    commands.add_argument('--history', action='store_true', help='List the applications of a preset.')
    commands.add_argument('--revert', action='store_true', help='Revert the application given by --application.')
    commands.add_argument('--delete', action='store_true', help='Delete the preset specified by --id.')
    commands.add_argument('--list', action='store_true', help='List a specific or all presets.')

    parser.add_argument('--id', type=int, help='The id of the preset.')
    parser.add_argument('--application', type=int, help='The id of a recorded application.')
    parser.add_argument('--name', help='Name of the preset to import/export.')
    parser.add_argument('--comments', help='Comments to store in the preset.')
    parser.add_argument('--author', help='Author name to store in the preset.')
    parser.add_argument('--include-sensitive', action='store_true',
                        help='Include sensitive settings (eg. passwords, API keys) in the preset.')
    parser.add_argument('--file', type=pathlib.Path, help='File to import from or download to (.json or .zip).')
    parser.add_argument('--simulate', action='store_true', help='Simulate the application of the preset.')
    parser.add_argument('--show-applied', action='store_true', help='Show the applied settings.')
    parser.add_argument('--show-skipped', action='store_true', help='Show the skipped settings.')
    parser.add_argument('--root', type=pathlib.Path, help='Data directory. Defaults to the application data location.')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug messages.')
    return parser


def _write_report(entries: List[DiffEntry], out: TextIO, status_label: Optional[str] = None) -> None:
    frame: pd.DataFrame = to_frame(entries)
    if status_label is not None:
        frame['classification'] = status_label
    out.write(frame.to_csv(sep='\t', index=False, header=False, lineterminator='\n'))


def run(args: argparse.Namespace, api: PresetsAPI, out: TextIO = sys.stdout) -> int:
    """Run a parsed command against an API.

    Returns:
        int: The exit code.
    """
    if args.list:
        presets = api.list(id=args.id, name=args.name)
        if not presets:
            out.write('No presets found.\n')
            return EXIT_CODES[status.Status.NothingToDo]
        for p in presets:
            out.write(f'{p.id}\t{p.name}\n')
        return EXIT_CODES[status.Status.Okay]

    if args.export:
        preset_id = api.export(
            name=args.name,
            comments=args.comments,
            author=args.author,
            include_sensitive=args.include_sensitive,
        )
        out.write(f'{preset_id}\t{api.list(id=preset_id)[0].name}\n')
        return EXIT_CODES[status.Status.Okay]

    if args.import_:
        if not args.file:
            out.write('File not specified.\n')
            return EXIT_MISSING_ARGUMENT
        try:
            document = codec.read_file(args.file)
        except FileNotFoundError as ex:
            logging.error(str(ex))
            out.write('File not found.\n')
            return EXIT_FILE_NOT_FOUND
        except OSError as ex:
            logging.error(f'Could not read {args.file}: {ex}')
            out.write('Could not read file.\n')
            return EXIT_FILE_ERROR
        preset = api.import_(document, name=args.name)
        out.write(f'{preset.id}\t{preset.name}\n')
        return EXIT_CODES[status.Status.Okay]

    if args.revert:
        if args.application is None:
            out.write('Missing application parameter.\n')
            return EXIT_MISSING_ARGUMENT
        result = api.revert(args.application)
        _write_report(result.applied, out, 'Reverted')
        if args.show_skipped:
            _write_report(result.skipped, out)
        return EXIT_CODES[result.status]

    if not (args.download or args.apply or args.compare or args.history or args.delete):
        build_parser().print_help(out)
        return EXIT_CODES[status.Status.Okay]

    if args.id is None:
        out.write('Missing id parameter.\n')
        return EXIT_MISSING_ARGUMENT

    if args.download:
        document = api.download(args.id)
        if args.file:
            try:
                codec.write_file(args.file, document.decode('utf-8'))
            except OSError as ex:
                logging.error(f'Could not write {args.file}: {ex}')
                out.write('Could not write file.\n')
                return EXIT_FILE_ERROR
        else:
            out.write(document.decode('utf-8'))
            out.write('\n')
        return EXIT_CODES[status.Status.Okay]

    if args.delete:
        api.delete(args.id)
        return EXIT_CODES[status.Status.Okay]

    if args.compare:
        entries = api.compare(args.id)
        out.write('\t'.join(REPORT_HEADERS.values()) + '\n')
        _write_report(entries, out)
        return EXIT_CODES[status.Status.Okay]

    if args.history:
        records = api.applications(args.id)
        if not records:
            out.write('No applications found.\n')
            return EXIT_CODES[status.Status.NothingToDo]
        for r in records:
            out.write(f'{r.id}\t{r.applied_at}\t{len(r.items)}\n')
        return EXIT_CODES[status.Status.Okay]

    # --apply
    result = api.apply(args.id, simulate=args.simulate)
    preset = api.list(id=args.id)[0]
    out.write(f'{preset.id}\t{preset.name}\n')
    if args.show_applied or args.show_skipped:
        out.write('\t'.join(REPORT_HEADERS.values()) + '\n')
    if args.show_applied:
        _write_report(result.applied, out, 'Applied')
    if args.show_skipped:
        _write_report(result.skipped, out)
    return EXIT_CODES[result.status]


def _write_errors(err: TextIO) -> None:
    tank = log.get_tank()
    if tank is None:
        return
    for message in tank.get_logs(logging.ERROR):
        err.write(f'{message}\n')


def main(argv: Optional[List[str]] = None, out: TextIO = sys.stdout, err: TextIO = sys.stderr) -> int:
    """Parse arguments, run the command and return the exit code.

    Log records are only streamed to stderr with ``--verbose``. Otherwise the errors logged
    during a failed command are written to ``err`` once the command has finished.
    """
    args = build_parser().parse_args(argv)
    log.setup_logging(
        enable_stream_handler=args.verbose,
        log_level=logging.DEBUG if args.verbose else logging.WARNING,
    )

    try:
        api = PresetsAPI.from_paths(ConfigPaths(args.root))
        code = run(args, api, out=out)
    except status.BaseStatusException as ex:
        out.write(f'{ex}\n')
        code = EXIT_CODES.get(ex.status, EXIT_CODES[status.Status.UnknownStatus])

    if code != EXIT_CODES[status.Status.Okay] and not args.verbose:
        _write_errors(err)
    return code


if __name__ == '__main__':
    sys.exit(main())
