"""
Back-office maintenance commands.
Usage: python -m backoffice.manage_db {init,create-admin,reset-lockout,lockouts}
"""
import argparse
import sys

from .app_context import login_guard
from .auth import MIN_PASSWORD_LENGTH, create_user, get_user_by_email
from .database import SessionLocal, init_db


def cmd_init(args):
    print("Creating tables (if missing)...")
    init_db()
    print("Done.")
    return 0


def cmd_create_admin(args):
    if len(args.password) < MIN_PASSWORD_LENGTH:
        print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", file=sys.stderr)
        return 2
    init_db()
    db = SessionLocal()
    try:
        if get_user_by_email(db, args.email):
            print(f"User {args.email} already exists.", file=sys.stderr)
            return 1
        user = create_user(db, args.email, args.password, role="admin", full_name=args.name)
        print(f"Created admin {user.email} (uid={user.uid}).")
        return 0
    finally:
        db.close()


def cmd_reset_lockout(args):
    init_db()
    key = login_guard.lockout_key(args.email, args.client_ip)
    login_guard.reset(key, actor="cli")
    print(f"Lockout cleared for {key}.")
    return 0


def cmd_lockouts(args):
    init_db()
    active = login_guard.active_lockouts()
    if not active:
        print("No active lockouts.")
        return 0
    for key, status in active:
        print(f"{key}\t{status.countdown}\tnext multiplier x{status.backoff_multiplier}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="backoffice.manage_db")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create database tables").set_defaults(func=cmd_init)

    create = sub.add_parser("create-admin", help="create an admin account")
    create.add_argument("email")
    create.add_argument("password")
    create.add_argument("--name", default=None)
    create.set_defaults(func=cmd_create_admin)

    reset = sub.add_parser("reset-lockout", help="clear the lockout for an email")
    reset.add_argument("email")
    reset.add_argument("--client-ip", default=None)
    reset.set_defaults(func=cmd_reset_lockout)

    sub.add_parser("lockouts", help="list active lockouts").set_defaults(func=cmd_lockouts)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
