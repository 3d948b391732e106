"""Terminal prompts for decisions that need a human."""

from typing import List, Optional, Sequence, Tuple

# (value, label) pairs
Choice = Tuple[str, str]


def prompt_choice(message: str, choices: Sequence[Choice], default: Optional[str] = None) -> str:
    """Ask the user to pick one of ``choices``.

    Accepts the choice number or its value. An empty answer picks the default.
    KeyboardInterrupt and EOFError propagate to the caller.

    Returns:
        The value of the chosen entry
    """
    values: List[str] = [value for value, _ in choices]
    print(f"\n{message}")
    for index, (value, label) in enumerate(choices, start=1):
        marker = " (default)" if value == default else ""
        print(f"  {index}) {label}{marker}")

    while True:
        answer = input("Your choice: ").strip().lower()
        if not answer and default is not None:
            return default
        if answer.isdigit() and 1 <= int(answer) <= len(choices):
            return values[int(answer) - 1]
        if answer in values:
            return answer
        print(f"  Please enter a number between 1 and {len(choices)}.")


def confirm_or_default(answer: Optional[bool], message: str, default_answer: bool) -> bool:
    """Return ``answer`` when preset, otherwise ask a yes/no question."""
    if answer is not None:
        return answer

    hint = "[Y/n]" if default_answer else "[y/N]"
    while True:
        reply = input(f"{message} {hint}: ").strip().lower()
        if not reply:
            return default_answer
        if reply in ("y", "yes"):
            return True
        if reply in ("n", "no"):
            return False
        print("  Please answer y or n.")
