"""
RoboFleet operator CLI.

  python main.py init-db                    create all tables for DATABASE_URL
  python main.py explain EMAIL SERIAL       show how a user's access to a robot is decided
  python main.py serve [--host] [--port]    run the API under uvicorn

explain is read only: it prints the same decisions the API enforces without
changing anything.
"""

import argparse
import json
import sys

from auth.store import UserStore
from core.config import get_settings
from core.errors import NotFoundError
from fleet.service import FleetService
from fleet.store import FleetStore


def _cmd_init_db(args: argparse.Namespace) -> int:
    settings = get_settings()
    user_store = UserStore(settings.database_url)
    fleet_store = FleetStore(settings.database_url)
    user_store.close()
    fleet_store.close()
    print(f"Tables ready at {settings.database_url}")
    return 0


def _cmd_explain(args: argparse.Namespace) -> int:
    settings = get_settings()
    user_store = UserStore(settings.database_url)
    fleet_store = FleetStore(settings.database_url)
    try:
        user = user_store.get_by_email(args.email.lower())
        if user is None:
            print(f"  [!] No user with email {args.email}", file=sys.stderr)
            return 1
        fleet = FleetService(fleet_store, user_store, settings.group_membership_implies_usage)
        try:
            report = fleet.explain(user.id, args.serial)
        except NotFoundError as exc:
            print(f"  [!] {exc.message}: {args.serial}", file=sys.stderr)
            return 1
    finally:
        fleet_store.close()
        user_store.close()

    if args.json:
        print(json.dumps(report, indent=2))
        return 0

    print(f"\n{user.email} on {report['serial_number']}")
    print("─" * 40)
    print(f"  owner             {report['owner_type']} #{report['owner_id']}")
    print(f"  explicit grant    {report['grant'] or '-'}")
    print(f"  group role        {report['group_role'] or '-'}")
    print(f"  permission level  {report['permission_level']}")
    print(f"  manage grants     {'yes' if report['management_standing'] else 'no'}")
    print(f"  save settings     {'yes' if report['settings_standing'] else 'no'}")
    if settings.group_membership_implies_usage:
        print("\n  GROUP_MEMBERSHIP_IMPLIES_USAGE is on.")
    print()
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="robofleet",
        description="Operator commands for the RoboFleet access service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py explain alice@example.com SN-100
  python main.py explain alice@example.com SN-100 --json
  DATABASE_URL=sqlite:////var/lib/robofleet.db python main.py serve --port 8080
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_init = sub.add_parser("init-db", help="Create all tables for DATABASE_URL")
    p_init.set_defaults(func=_cmd_init_db)

    p_explain = sub.add_parser("explain", help="Explain a user's access to a robot")
    p_explain.add_argument("email", metavar="EMAIL", help="Email of the user to evaluate")
    p_explain.add_argument("serial", metavar="SERIAL", help="Robot serial number")
    p_explain.add_argument("--json", action="store_true", help="Output structured JSON")
    p_explain.set_defaults(func=_cmd_explain)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    p_serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    p_serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
