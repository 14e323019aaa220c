from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import answers
from .catalog import is_difficulty
from .console import Console, not_blank, prompt_until_valid
from .errors import RiddleGameError
from .models import Player, Riddle
from .scoring import HINT_PENALTY_SEC, TIME_PENALTY_SEC, Attempt, score_attempt
from .session import FailurePolicy, SessionAuthenticator, SessionStore
from .utils import format_seconds, now_ts, to_number

logger = logging.getLogger(__name__)

DIFFICULTY_ERROR = "Invalid difficulty. Please enter easy, medium, or hard."
CHOICE_COUNT = 4
EDITABLE_FIELDS = ("name", "task_description", "correct_answer", "difficulty", "time_limit", "hint", "choices")


def timed_ask(
    riddle: Riddle,
    player: Player,
    console: Console,
    clock: Callable[[], float] = now_ts,
) -> Tuple[Attempt, float]:
    """Ask ``riddle`` against ``clock`` and fold the score into ``player``.

    Returns the scored attempt and the player's best time afterwards.
    """
    start = clock()
    used_hint = answers.ask(riddle, console)
    end = clock()

    attempt = score_attempt(riddle.time_limit, start, end, used_hint)
    if attempt.over_time:
        console.say(f"Too slow! {TIME_PENALTY_SEC} seconds penalty applied.")
        console.say()
    if attempt.used_hint:
        console.say(f"Penalty! {HINT_PENALTY_SEC} seconds added to recorded time!")
        console.say()
    return attempt, player.record_time(attempt.final_score)


def _positive_number(value: str) -> bool:
    number = to_number(value)
    return number is not None and number > 0


class GameShell:
    """The interactive console game: login loop, role-gated menu and its actions."""

    def __init__(
        self,
        gateway: Any,
        store: SessionStore,
        console: Console,
        *,
        clock: Callable[[], float] = now_ts,
        filter_solved: bool = True,
        failure_policy: FailurePolicy = FailurePolicy.RETRY,
    ):
        self.gateway = gateway
        self.store = store
        self.console = console
        self.clock = clock
        self.filter_solved = filter_solved
        self.failure_policy = failure_policy
        self.authenticator = SessionAuthenticator(gateway, store, console)

    def _report(self, prefix: str, exc: RiddleGameError) -> None:
        self.console.say(f"{prefix}: {exc}")
        if exc.details:
            self.console.say(f"Details: {exc.details}")

    async def login(self) -> Optional[Player]:
        """Ask for usernames until one authenticates, or ``None`` under the abort policy."""
        while True:
            username = self.console.ask("Enter your username:").strip()
            if not username:
                self.console.say("Username cannot be empty. Please try again.")
                continue

            self.console.say("Checking authentication...")
            self.console.say()
            outcome = await self.authenticator.authenticate(username)
            if outcome.ok:
                logger.debug("Authenticated %s via %s", username, outcome.path)
                return outcome.player

            logger.info("Authentication failed for %s: %s", username, outcome.reason)
            if self.failure_policy == FailurePolicy.ABORT:
                self.console.say("Authentication failed.")
                return None
            self.console.say("Authentication failed. Please try again.")
            self.console.say()

    async def play(self, player: Player) -> None:
        level = prompt_until_valid(
            self.console, "Choose difficulty: easy / medium / hard:", is_difficulty, DIFFICULTY_ERROR
        )
        level = level.strip().lower()
        self.console.say()

        try:
            riddles = await self.gateway.riddles_for(player.id, level, unsolved=self.filter_solved)
        except RiddleGameError as exc:
            self._report("Error loading riddles", exc)
            return

        if not riddles:
            if self.filter_solved:
                self.console.say("No unsolved riddles left for this difficulty!")
            else:
                self.console.say("No riddles available for this difficulty!")
            return

        for riddle in riddles:
            attempt, best = timed_ask(riddle, player, self.console, self.clock)
            self.console.say(
                f"Your time: {format_seconds(attempt.final_score)} seconds (best: {format_seconds(best)} seconds)"
            )
            try:
                result = await self.gateway.record_time(player.id, attempt.final_score)
                if result.lowest_time is not None:
                    player.lowest_time = result.lowest_time
                await self.gateway.record_solved(player.id, riddle.id, attempt.final_score)
            except RiddleGameError as exc:
                self._report("Error updating player time", exc)

    def _ask_text(self, text: str, error: str) -> str:
        return prompt_until_valid(self.console, text, not_blank, error).strip()

    def _ask_choices(self) -> List[str]:
        return [self._ask_text(f"Enter choice {i}:", "Choice cannot be empty.") for i in range(1, CHOICE_COUNT + 1)]

    async def create_riddle(self, player: Player) -> None:
        fields: Dict[str, Any] = {
            "name": self._ask_text("Enter riddle name:", "Riddle name cannot be empty."),
            "task_description": self._ask_text("Enter riddle description:", "Description cannot be empty."),
            "correct_answer": self._ask_text("Enter correct answer:", "Answer cannot be empty."),
            "difficulty": prompt_until_valid(
                self.console, "Enter difficulty (easy/medium/hard):", is_difficulty, DIFFICULTY_ERROR
            ).strip().lower(),
            "time_limit": to_number(
                prompt_until_valid(
                    self.console,
                    "Enter time limit (seconds):",
                    _positive_number,
                    "Time limit must be a positive number.",
                )
            ),
            "hint": self._ask_text("Enter a hint:", "Hint cannot be empty."),
        }
        if self.console.confirm("Is this a multiple choice riddle?"):
            fields["choices"] = self._ask_choices()

        try:
            riddle = await self.gateway.create_riddle(player.username, fields)
        except RiddleGameError as exc:
            self._report("Failed to create riddle", exc)
            return
        self.console.say(f"Riddle created successfully! (ID: {riddle.id})")

    async def show_riddles(self, player: Player) -> None:
        try:
            riddles = await self.gateway.list_riddles(player.username)
        except RiddleGameError as exc:
            self._report("Failed to read riddles", exc)
            return

        if not riddles:
            self.console.say("No riddles yet.")
        for position, riddle in enumerate(riddles, start=1):
            self.console.say(f"Riddle #{position} (ID: {riddle.id})")
            self.console.say(f"Name: {riddle.name}, Difficulty: {riddle.difficulty.value}")
            self.console.say(f"Description: {riddle.task_description}")
            if riddle.is_multiple_choice:
                self.console.say(f"Choices: {', '.join(riddle.choices or [])}")
            self.console.say(
                f"Answer: {riddle.correct_answer}, Hint: {riddle.hint}, Time Limit: {riddle.time_limit:g}"
            )
            self.console.say("---")

    async def update_riddle(self, player: Player) -> None:
        riddle_id = self._ask_text("Enter the ID of the riddle to update:", "ID cannot be empty.")
        field = prompt_until_valid(
            self.console,
            f"Which field do you want to update? ({', '.join(EDITABLE_FIELDS)}):",
            lambda v: v.strip() in EDITABLE_FIELDS,
            "Unknown field.",
        ).strip()

        value: Any
        if field == "choices":
            value = self._ask_choices()
        elif field == "time_limit":
            value = to_number(
                prompt_until_valid(
                    self.console,
                    "Enter new time limit (seconds):",
                    _positive_number,
                    "Time limit must be a positive number.",
                )
            )
        else:
            value = self._ask_text(f"Enter new value for {field}:", "Value cannot be empty.")

        try:
            await self.gateway.update_riddle(player.username, riddle_id, {field: value})
        except RiddleGameError as exc:
            self._report("Failed to update riddle", exc)
            return
        self.console.say("Riddle updated successfully!")

    async def delete_riddle(self, player: Player) -> None:
        riddle_id = self._ask_text("Enter the ID of the riddle to delete:", "ID cannot be empty.")
        try:
            await self.gateway.delete_riddle(player.username, riddle_id)
        except RiddleGameError as exc:
            self._report("Failed to delete riddle", exc)
            return
        self.console.say("Riddle deleted successfully!")

    async def show_leaderboard(self) -> None:
        try:
            ranked = await self.gateway.leaderboard()
        except RiddleGameError as exc:
            self._report("Failed to load leaderboard", exc)
            return

        if not ranked:
            self.console.say("No leaderboard data available yet.")
            return
        self.console.say("Leaderboard (Lowest Time):")
        for position, entry in enumerate(ranked, start=1):
            self.console.say(f"{position}. {entry.username} - {format_seconds(entry.lowest_time)} seconds")

    async def logout(self, player: Player) -> bool:
        try:
            await self.gateway.logout(player.username)
        except RiddleGameError as exc:
            self._report("Logout failed", exc)
            return False
        self.console.say("You have been logged out successfully.")
        return True

    def _can_logout(self, player: Player) -> bool:
        return self.store.is_valid(player.username, self.clock())

    def _show_menu(self, player: Player) -> None:
        def gated(allowed: bool, label: str, requirement: str) -> str:
            return label if allowed else f"{label} ({requirement})"

        self.console.say(f"=== Riddle Game Menu (Role: {player.role.value}) ===")
        self.console.say("1. Play the game")
        self.console.say(gated(player.can_create_riddles(), "2. Create a new riddle", "requires user account"))
        self.console.say(gated(player.can_view_all_riddles(), "3. Read all riddles", "requires user account"))
        self.console.say(gated(player.can_edit_riddles(), "4. Update an existing riddle", "admin only"))
        self.console.say(gated(player.can_delete_riddles(), "5. Delete a riddle", "admin only"))
        self.console.say("6. View leaderboard")
        if self._can_logout(player):
            self.console.say("7. Logout")
        self.console.say("0. Exit")

    async def menu(self, player: Player) -> None:
        """Run the menu until the player exits or logs out."""
        while True:
            self.console.say()
            self._show_menu(player)
            choice = self.console.ask("Enter your choice:").strip()
            self.console.say()

            if choice == "1":
                await self.play(player)
            elif choice == "2":
                if player.can_create_riddles():
                    await self.create_riddle(player)
                else:
                    self.console.say("You need a user account to create riddles. Create an account to unlock this feature!")
            elif choice == "3":
                if player.can_view_all_riddles():
                    await self.show_riddles(player)
                else:
                    self.console.say("You need a user account to view all riddles. Create an account to unlock this feature!")
            elif choice == "4":
                if player.can_edit_riddles():
                    await self.update_riddle(player)
                else:
                    self.console.say("You need admin privileges to edit riddles.")
            elif choice == "5":
                if player.can_delete_riddles():
                    await self.delete_riddle(player)
                else:
                    self.console.say("You need admin privileges to delete riddles.")
            elif choice == "6":
                await self.show_leaderboard()
            elif choice == "7" and self._can_logout(player):
                if await self.logout(player):
                    return
            elif choice == "0":
                self.console.say("Goodbye!")
                return
            else:
                self.console.say("Invalid choice. Please try again.")

    async def run(self) -> int:
        """Play one console session and return the process exit code."""
        self.console.say("Welcome to the Riddle game!")
        player = await self.login()
        if player is None:
            return 1
        await self.menu(player)
        return 0
