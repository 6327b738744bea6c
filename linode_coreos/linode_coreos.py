#!/usr/bin/env python3
"""Linode CoreOS provisioner: CLI entrypoint."""

import argparse
import sys

from linode_coreos.commands.provision import add_provision_arguments
from linode_coreos.logging_setup import setup_cli_logging


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits 1, not 2, on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser():
    parser = _ArgumentParser(
        prog="linode-coreos",
        description="Provision a Linode node and install CoreOS via a staging OS",
    )
    add_provision_arguments(parser)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
