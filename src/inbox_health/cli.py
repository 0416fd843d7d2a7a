"""CLI for inbox-health - setup, serving and ad-hoc checks.

Usage:
    inbox-health init                      # Create database tables, show setup instructions
    inbox-health status                    # Show configuration status
    inbox-health serve                     # Run the dashboard API
    inbox-health users                     # List onboarded users
    inbox-health health <email>            # Check whether <email> lands in spam
    inbox-health health <email> --full     # Check every user, print per-user results
"""

from __future__ import annotations

import argparse
import logging
import sys


def cmd_init() -> int:
    """Create the database schema and print setup instructions."""
    from inbox_health.config import ENV_FILE, REPO_ROOT, get_settings
    from inbox_health.store import Database

    settings = get_settings()

    print("=" * 60)
    print("INBOX-HEALTH SETUP")
    print("=" * 60)
    print()
    print(f"Repository: {REPO_ROOT}")
    print()

    Database(settings.database_url).create_all()
    print(f"Database ready: {settings.database_url}")
    print()

    print("-" * 60)
    print()

    status = _check_status()
    google = status["google"]

    if status["env_file"]:
        print(".env exists")
    else:
        print("Create .env with your OAuth client:")
        print()
        print(f"  cat > {ENV_FILE} << 'EOF'")
        print("  GOOGLE_CLIENT_ID=...apps.googleusercontent.com")
        print("  GOOGLE_CLIENT_SECRET=...")
        print("  GOOGLE_REDIRECT_URI=http://localhost:8000/api/auth/callback")
        print("  EOF")
        print()

    if not (google["client_id"] and google["client_secret"]):
        print("For Google OAuth, create a web client at:")
        print("  https://console.cloud.google.com/apis/credentials")
        print("  and add the redirect URI above to its authorized redirect URIs.")
        print()

    return 0


def cmd_status() -> int:
    """Show configuration status."""
    from inbox_health.config import REPO_ROOT

    status = _check_status()

    print("=" * 60)
    print("INBOX-HEALTH STATUS")
    print("=" * 60)
    print()
    print(f"Repository: {REPO_ROOT}")
    print(f".env:       {'[x]' if status['env_file'] else '[ ]'}")
    print()

    print("Google OAuth:")
    print(f"  client id:     {'[x]' if status['google']['client_id'] else '[ ]'}")
    print(f"  client secret: {'[x]' if status['google']['client_secret'] else '[ ]'}")
    print(f"  redirect uri:  {'[x]' if status['google']['redirect_uri'] else '[ ]'}")
    print()

    print(f"Database: {status['database_url']}")
    print(f"Cache:    {status['cache_backend']}")
    print()

    return 0


def cmd_serve(host: str, port: int, reload: bool) -> int:
    """Run the API under uvicorn."""
    import uvicorn

    uvicorn.run(
        "inbox_health.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )
    return 0


def cmd_users() -> int:
    """List onboarded users with token presence and tags."""
    from inbox_health.config import get_settings
    from inbox_health.store import CredentialStore, Database

    db = Database(get_settings().database_url)
    db.create_all()
    users = CredentialStore(db).list_users()

    if not users:
        print("No users onboarded yet - sign in at /api/auth/google")
        return 0

    for user in users:
        access = "[x]" if user["hasAccessToken"] else "[ ]"
        refresh = "[x]" if user["hasRefreshToken"] else "[ ]"
        tag_names = ", ".join(t["name"] for t in user["tags"]) or "-"
        print(f"{access} access {refresh} refresh  {user['email']:<40} {tag_names}")
    return 0


def cmd_health(email: str, full: bool) -> int:
    """Run the spam-folder health check for a sender."""
    from inbox_health.aggregator import Aggregator
    from inbox_health.config import get_settings
    from inbox_health.exceptions import CredentialsNotFoundError
    from inbox_health.executor import MailQueryExecutor
    from inbox_health.google import GoogleOAuth, TokenRefresher
    from inbox_health.models import HealthStatus
    from inbox_health.store import CredentialStore, Database

    settings = get_settings()
    db = Database(settings.database_url)
    db.create_all()
    store = CredentialStore(db)

    try:
        oauth = GoogleOAuth(settings=settings)
    except CredentialsNotFoundError as e:
        print(f"Error: {e}")
        print("Run 'inbox-health init' for setup instructions")
        return 1

    credentials = store.list_credentials(exclude_tag=settings.admin_tag)
    if not credentials:
        print("No users found")
        return 1

    aggregator = Aggregator(
        MailQueryExecutor(TokenRefresher(oauth, store)),
        stop_on_first_match=not full,
        max_results=settings.health_max_results,
    )
    summary = aggregator.check_health(credentials, email)

    print(f"Sender     : {email}")
    print(f"Health     : {summary.status.value}")
    print(f"Users      : {summary.total_users}")
    print(f"Spam found : {summary.total_spam_count}")
    print()
    for result in summary.results:
        line = f"  {result.status.value:<8} {result.match_count:>4}  {result.user_email}"
        if result.error:
            line += f"  ({result.error})"
        print(line)
    return 0 if summary.status is HealthStatus.GOOD else 2


def _check_status() -> dict:
    """Get configuration status."""
    from inbox_health.config import get_credential_status

    return get_credential_status()


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="inbox-health",
        description="Spam-folder health dashboard for Google-onboarded mailboxes",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("init", help="Create database tables and show setup instructions")
    subparsers.add_parser("status", help="Show configuration status")
    subparsers.add_parser("users", help="List onboarded users")

    serve_parser = subparsers.add_parser("serve", help="Run the dashboard API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    health_parser = subparsers.add_parser("health", help="Check whether a sender lands in spam")
    health_parser.add_argument("email", help="Sender address to check")
    health_parser.add_argument(
        "--full",
        action="store_true",
        help="Check every user instead of stopping at the first match",
    )

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "init":
        return cmd_init()

    if args.command == "status":
        return cmd_status()

    if args.command == "users":
        return cmd_users()

    if args.command == "serve":
        return cmd_serve(args.host, args.port, args.reload)

    if args.command == "health":
        return cmd_health(args.email, args.full)

    return 0


if __name__ == "__main__":
    sys.exit(main())
