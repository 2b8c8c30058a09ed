"""
One-shot nREPL operations from the command line.

    clojure-nrepl --port 7888 eval "(+ 1 2)"
"""

import argparse
import logging
import sys
from pathlib import Path

import curio

from . import operations
from .connection import DEFAULT_LOCAL_HOST, ConnectionInfo, ConnectionManager, find_local_port
from .errors import NreplError

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(prog='clojure-nrepl', description="Talk to a nREPL server")
    parser.add_argument("-ll", "--log-level", help="The logging verbosity", default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("-n", "--host", help="The hostname to connect to. Default = '127.0.0.1'",
                        default=DEFAULT_LOCAL_HOST)
    parser.add_argument("-p", "--port", type=int,
                        help="The port to connect to. Defaults to the local .nrepl-port file")
    parser.add_argument("-t", "--timeout", type=float, help="Seconds to wait for each response")
    commands = parser.add_subparsers(dest='command', required=True)
    evaluate = commands.add_parser('eval', help="Evaluate code")
    evaluate.add_argument('code')
    load = commands.add_parser('load', help="Load a file")
    load.add_argument('file', type=Path)
    commands.add_parser('sessions', help="List the server's sessions")
    commands.add_parser('describe', help="Describe the server's ops and versions")
    commands.add_parser('test', help="Check that the server answers")
    return parser


def print_responses(responses, out=None, err=None) -> int:
    out = out or sys.stdout
    err = err or sys.stderr
    for response in responses:
        if 'out' in response:
            out.write(response['out'])
        if 'err' in response:
            err.write(response['err'])
        if response.get('value') is not None:
            out.write(response['value'] + "\n")
    return 1 if operations.remote_error(responses) else 0


async def run(args, manager: ConnectionManager) -> int:
    client = manager.client
    if args.command == 'test':
        session = await operations.test(client, manager.get_connection())
        print("nREPL answered, new session {}".format(session))
        return 0
    if args.command == 'eval':
        return print_responses(await operations.evaluate(client, args.code))
    if args.command == 'load':
        code = args.file.read_text(encoding='utf8')
        return print_responses(await operations.evaluate_file(client, code, str(args.file)))
    if args.command == 'sessions':
        for session in await operations.list_sessions(client) or []:
            print(session)
        return 0
    if args.command == 'describe':
        description = await operations.describe(client)
        for op in sorted(description.get('ops', {})):
            print(op)
        return 0
    raise ValueError(args.command)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))

    port = args.port or find_local_port(Path.cwd())
    if not port:
        logger.error("No port given and no .nrepl-port file found")
        return 2
    manager = ConnectionManager(timeout=args.timeout)
    manager.store.set(ConnectionInfo(args.host, port))
    try:
        return curio.run(run, args, manager)
    except NreplError as e:
        print(e, file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
