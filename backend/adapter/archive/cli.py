#!/usr/bin/env python3
"""
CLI for testing ArchiveAdapter functionality.

Usage:
    python -m adapter.archive.cli

Commands:
    tweets   - Most-liked archived posts for a handle
    profile  - Posts plus derived topics for a handle
"""

import cmd
import json

from dotenv import load_dotenv

from adapter.archive import ArchiveAdapter
from adapter.errors import AdapterError, ConfigurationMissingError, ExternalServiceError


load_dotenv()


def _print_verbose_error(e: AdapterError):
    """Print verbose error information."""
    print("\n" + "=" * 60)
    print("✗ ERROR DETAILS")
    print("=" * 60)
    print(f"  Type: {type(e).__name__}")
    print(f"  Message: {e}")

    if isinstance(e, ConfigurationMissingError):
        print("\n  💡 Troubleshooting:")
        print("     - Set COMMUNITY_ARCHIVE_API_URL to the archive's Supabase URL")
        print("     - Set SUPABASE_KEY to a key with read access")

    elif isinstance(e, ExternalServiceError):
        if e.status_code:
            print(f"  Status Code: {e.status_code}")
        if e.response_text:
            print(f"  Response: {e.response_text[:500]}")
    print("=" * 60 + "\n")


class ArchiveCLI(cmd.Cmd):
    """Interactive shell for the Community Archive adapter."""

    intro = "ArchiveAdapter CLI. Type 'help' for commands, 'quit' to exit."
    prompt = "archive> "

    def __init__(self):
        super().__init__()
        self.adapter = ArchiveAdapter()
        print(f"Configured: {self.adapter.is_configured}")

    def do_tweets(self, arg):
        """tweets <handle> [limit] - Most-liked archived posts."""
        parts = arg.split()
        if not parts:
            print("Usage: tweets <handle> [limit]")
            return
        try:
            limit = int(parts[1]) if len(parts) > 1 else ArchiveAdapter.DEFAULT_LIMIT
        except ValueError:
            print("Usage: tweets <handle> [limit]")
            return
        try:
            tweets = self.adapter.get_recent_popular_tweets(parts[0], limit=limit)
        except AdapterError as e:
            _print_verbose_error(e)
            return

        print(f"\n✓ {len(tweets)} tweets\n")
        for tweet in tweets:
            print(f"  [{tweet.favorite_count:>6} ♥] {tweet.full_text[:100]}")
        print()

    def do_profile(self, arg):
        """profile <handle> - Posts plus derived topics."""
        handle = arg.strip()
        if not handle:
            print("Usage: profile <handle>")
            return
        try:
            profile = self.adapter.get_user_profile(handle)
        except AdapterError as e:
            _print_verbose_error(e)
            return

        print(json.dumps({"tweets": len(profile.tweets), "topics": profile.topics}, indent=2))

    def do_quit(self, arg):
        """Exit the CLI."""
        print("bye")
        return True

    do_exit = do_quit
    do_EOF = do_quit


def main() -> None:
    try:
        ArchiveCLI().cmdloop()
    except KeyboardInterrupt:
        print("\nbye")


if __name__ == "__main__":
    main()
