"""Main CLI entry point for ghrun."""

import argparse
import logging
import os
import sys
from typing import Optional

from .commands import add_job, add_step, run_steps


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the ghrun CLI."""
    parser = argparse.ArgumentParser(
        prog='ghrun',
        description='Run GitHub Actions job steps locally'
    )
    parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warn', 'error'],
        default='info',
        help='Set log level'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging (also enabled by RUNNER_DEBUG=1)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # With command: register steps or a job
    with_parser = subparsers.add_parser('with', help='Configure steps to execute')
    with_subparsers = with_parser.add_subparsers(dest='with_command', help='What to add')

    step_parser = with_subparsers.add_parser('step', help='Add new step to execute')
    step_parser.add_argument('--id', default='', help='Unique identifier of the step')
    step_parser.add_argument('--name', default='', help='Name of the step')
    step_parser.add_argument('--uses', default='', help='Action to run for the step')
    step_parser.add_argument('--run', default='', help='Command to run for the step')
    step_parser.add_argument('--shell', default='', help='Shell to use for the step')
    step_parser.add_argument(
        '--env',
        action='append',
        metavar='KEY=VALUE',
        help='Environment variable for the step (can be specified multiple times)'
    )
    step_parser.add_argument(
        '--with',
        dest='with_inputs',
        action='append',
        metavar='KEY=VALUE',
        help='Input for the step (can be specified multiple times)'
    )
    step_parser.add_argument(
        '--json',
        default='',
        help='JSON document of the step. Overrides all other step values'
    )
    step_parser.add_argument(
        '--override',
        action='store_true',
        help='Replace an existing step with the same id'
    )

    job_parser = with_subparsers.add_parser(
        'job',
        help='Add job to execute',
        description='Sets workflow and job environment variables and adds all steps of the job.'
    )
    job_parser.add_argument(
        '--workflow',
        required=True,
        help="Name of the workflow, or its relative path if the workflow has no name"
    )
    job_parser.add_argument('--job', required=True, help='Name of the job')
    job_parser.add_argument(
        '--workflows-dir',
        default=None,
        help='Directory containing workflow files (default: .github/workflows)'
    )

    # Run command
    subparsers.add_parser('run', help='Run all configured steps')

    return parser


def configure_logging(args: argparse.Namespace) -> None:
    log_level = getattr(logging, args.log_level.upper())
    if args.debug or os.environ.get('RUNNER_DEBUG') == '1':
        log_level = logging.DEBUG

    logging.basicConfig(level=log_level, format='%(message)s')


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    configure_logging(parsed_args)

    if parsed_args.command == 'with':
        if parsed_args.with_command == 'step':
            return add_step(parsed_args)
        elif parsed_args.with_command == 'job':
            return add_job(parsed_args)
        parser.print_help()
        return 1
    elif parsed_args.command == 'run':
        return run_steps(parsed_args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
