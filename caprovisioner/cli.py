"""
Provisioner Command Line Interface.

Provides commands for creating provisioner records, listing the configured
provisioners and issuing one-time tokens.
"""

import argparse
import getpass
import json
import logging
import os
import sys
from datetime import timedelta
from typing import Optional

from caprovisioner import config
from caprovisioner.directory import ProvisionerDirectory, ProvisionerRecord
from caprovisioner.errors import ProvisionerError
from caprovisioner.keys import encrypt_key, generate_key


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s'
    )


def read_password(password_file: Optional[str], prompt: str = "Provisioner password: ") -> bytes:
    """Read the key password from a file, the environment, or the terminal."""
    if password_file:
        with open(password_file, "rb") as f:
            return f.read().rstrip(b"\r\n")
    value = os.environ.get(config.PASSWORD_ENV)
    if value:
        return value.encode("utf-8")
    return getpass.getpass(prompt).encode("utf-8")


def _directory(args: argparse.Namespace) -> ProvisionerDirectory:
    if args.step_path:
        return ProvisionerDirectory(args.step_path)
    return ProvisionerDirectory.from_env()


def cmd_init(args: argparse.Namespace) -> int:
    """Generate a provisioner key and print its store record."""
    try:
        password = read_password(args.password_file, prompt="Password to encrypt the key: ")
        if not password:
            print("Error: The key password cannot be empty", file=sys.stderr)
            return 1

        crv = None if args.kty == "RSA" else args.crv
        key = generate_key(kty=args.kty, crv=crv)
        record = ProvisionerRecord(
            name=args.name,
            kid=key["kid"],
            encrypted_key=encrypt_key(key, password),
            public_key=json.loads(key.export_public()),
        )

        print(json.dumps(record.to_dict(), indent=2))
        print(f"# Add this entry to authority.provisioners in {config.CONFIG_FILE}", file=sys.stderr)
        return 0

    except (OSError, ValueError) as e:
        print(f"Error generating provisioner: {e}", file=sys.stderr)
        return 1


def cmd_list(args: argparse.Namespace) -> int:
    """List configured provisioners."""
    try:
        records = _directory(args).list()
    except ProvisionerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([{"name": r.name, "kid": r.kid, "type": r.type} for r in records], indent=2))
    else:
        for r in records:
            print(f"{r.name or '-'}\t{r.kid}\t{r.type}")
    return 0


def cmd_token(args: argparse.Namespace) -> int:
    """Issue a one-time token for a subject."""
    if not args.name and not args.kid:
        print("Error: Missing provisioner. Use --name or --kid", file=sys.stderr)
        return 1
    if args.lifetime is not None and args.lifetime <= 0:
        print("Error: --lifetime must be a positive number of seconds", file=sys.stderr)
        return 1

    try:
        password = read_password(args.password_file)
        lifetime = timedelta(seconds=args.lifetime) if args.lifetime else None

        provisioner = _directory(args).resolve(
            name=args.name or "",
            kid=args.kid or "",
            ca_url=args.ca_url,
            ca_root=args.root,
            password=password,
            token_lifetime=lifetime,
        )
        with provisioner:
            token = provisioner.issue_token(args.subject, sans=args.san or None)

        print(token)
        return 0

    except ProvisionerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error reading password: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog='caprovisioner',
        description='Issue one-time tokens for certificate requests'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # init command
    p_init = subparsers.add_parser('init', help='Generate a new provisioner record')
    p_init.add_argument('--name', required=True, help='Provisioner name')
    p_init.add_argument('--password-file', help='File containing the key password')
    p_init.add_argument('--kty', default='EC', choices=['EC', 'OKP', 'RSA'], help='Key type')
    p_init.add_argument('--crv', help='Curve for EC/OKP keys (default: P-256 for EC, Ed25519 for OKP)')

    # list command
    p_list = subparsers.add_parser('list', help='List configured provisioners')
    p_list.add_argument('--step-path', help=f'Store root (default: ${config.STEP_PATH_ENV} or ~/.step)')
    p_list.add_argument('--json', action='store_true', help='Output as JSON')

    # token command
    p_token = subparsers.add_parser('token', help='Issue a one-time token')
    p_token.add_argument('subject', help='Subject of the requested certificate')
    p_token.add_argument('--ca-url', required=True, help='Base URL of the CA')
    p_token.add_argument('--root', required=True, help='Path to the CA root certificate')
    p_token.add_argument('--name', help='Provisioner name')
    p_token.add_argument('--kid', help='Provisioner key id (takes precedence over --name)')
    p_token.add_argument('--password-file', help='File containing the key password')
    p_token.add_argument('--san', action='append', help='Subject alternative name (repeatable)')
    p_token.add_argument('--lifetime', type=int, help='Token lifetime in seconds')
    p_token.add_argument('--step-path', help=f'Store root (default: ${config.STEP_PATH_ENV} or ~/.step)')

    args = parser.parse_args(argv)

    setup_logging(args.verbose if hasattr(args, 'verbose') else False)

    if args.command == 'init':
        return cmd_init(args)
    elif args.command == 'list':
        return cmd_list(args)
    elif args.command == 'token':
        return cmd_token(args)
    else:
        parser.print_help()
        return 0


if __name__ == '__main__':
    sys.exit(main())
