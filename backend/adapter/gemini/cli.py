from __future__ import annotations

import json

from . import GeminiAdapter
from ..errors import AdapterError

PROMPT = """\
Commands:
  text       → raw text generation for a prompt
  insights   → summarize a tweet history into description + topics
  explain    → explain the common ground between two profiles
  translate  → translate a text into another handle's frame
  help       → show this message
  quit       → exit
"""


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, default=str))


def main() -> None:
    adapter = GeminiAdapter()
    print("GeminiAdapter CLI. Type 'help' for options. Configured:", adapter.is_configured)

    while True:
        try:
            command = input("gemini> ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            print("\nbye")
            break

        if not command:
            continue

        if command in {"quit", "exit"}:
            break

        if command == "help":
            print(PROMPT)
            continue

        try:
            if command == "text":
                prompt = input("Prompt: ").strip() or "Say hello."
                print(adapter.generate_text(prompt))
                continue

            if command == "insights":
                history = input("Tweets (separate with |): ").strip()
                analysis = adapter.generate_insights("\n".join(p.strip() for p in history.split("|")))
                _print(analysis.model_dump())
                continue

            if command == "explain":
                handle_a = input("Handle A: ").strip().lstrip("@") or "alice"
                desc_a = input("Description A: ").strip() or "Writes about distributed systems."
                handle_b = input("Handle B: ").strip().lstrip("@") or "bob"
                desc_b = input("Description B: ").strip() or "Writes about meditation retreats."
                argument = input("Theme (optional): ").strip() or "Find meaningful connection points"
                print(adapter.explain_argument(desc_a, desc_b, argument, handle_a, handle_b))
                continue

            if command == "translate":
                text = input("Source text: ").strip() or "Energy flows where attention goes."
                handle = input("Target handle: ").strip().lstrip("@") or "alice"
                _print(adapter.translate_between_frames(text, handle).model_dump(by_alias=True))
                continue
        except AdapterError as e:
            print(f"✗ {type(e).__name__}: {e}")
            continue

        print("Unknown command. Type 'help' to see options.")


if __name__ == "__main__":
    main()
