from unittest import IsolatedAsyncioTestCase, TestCase

from fastapi.testclient import TestClient

from .client import RemoteGateway
from .db import InMemoryDatabase
from .main import app
from .models import Player, Riddle
from .play import GameShell, timed_ask
from .session import FailurePolicy, MemorySessionStore
from .test_answers import ScriptedConsole
from .test_main import bind_app


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def answer_after(self, seconds: float, text: str):
        """Console input that arrives ``seconds`` after it was asked for."""

        def answer() -> str:
            self.now += seconds
            return text

        return answer


def _riddle(**overrides) -> Riddle:
    fields = {
        "id": "r1",
        "name": "Quick",
        "task_description": "I speak without a mouth and hear without ears. What am I?",
        "correct_answer": "Echo",
        "difficulty": "medium",
        "time_limit": 10,
        "hint": "You can hear it in a canyon.",
    }
    fields.update(overrides)
    return Riddle(**fields)


class TimedAskTests(TestCase):
    def test_late_answer_is_penalised_and_beats_previous_best(self):
        clock = FakeClock()
        console = ScriptedConsole(clock.answer_after(12, "echo"))
        player = Player(id="p1", username="alice", lowest_time=20.0)

        attempt, best = timed_ask(_riddle(), player, console, clock)

        self.assertEqual(attempt.final_score, 17.0)
        self.assertEqual(best, 17.0)
        self.assertEqual(player.lowest_time, 17.0)
        self.assertIn("Too slow! 5 seconds penalty applied.", console.lines)

    def test_hint_penalty(self):
        clock = FakeClock()
        console = ScriptedConsole("hint", clock.answer_after(5, "Echo"))
        player = Player(id="p1", username="alice", lowest_time=12.0)

        attempt, best = timed_ask(_riddle(), player, console, clock)

        self.assertEqual(attempt.final_score, 15.0)
        self.assertEqual(best, 12.0)
        self.assertIn("Penalty! 10 seconds added to recorded time!", console.lines)
        self.assertNotIn("Too slow! 5 seconds penalty applied.", console.lines)


class GameShellTests(IsolatedAsyncioTestCase):
    """The console game against the real API, served in-process."""

    async def asyncSetUp(self) -> None:
        self.catalog, self.players, self.auth = bind_app(InMemoryDatabase())
        self.store = MemorySessionStore()
        self.clock = FakeClock()
        self.gateway = RemoteGateway(self.store, base_url="http://testserver/api", http=TestClient(app))

    async def asyncTearDown(self) -> None:
        app.dependency_overrides.clear()

    def _shell(self, *inputs, confirms=None, policy=FailurePolicy.RETRY) -> GameShell:
        self.console = ScriptedConsole(*inputs, confirms=confirms)
        return GameShell(self.gateway, self.store, self.console, clock=self.clock, failure_policy=policy)

    async def test_played_riddle_updates_best_time_and_leaderboard(self):
        await self.catalog.create(
            {
                "name": "Quick",
                "task_description": "I speak without a mouth and hear without ears. What am I?",
                "correct_answer": "Echo",
                "difficulty": "medium",
                "time_limit": 10,
                "hint": "You can hear it in a canyon.",
            }
        )
        alice = (await self.auth.signup("alice", "pw")).user
        await self.players.record_time(alice.id, 20.0)

        shell = self._shell(
            "alice", "pw",
            "1", "Medium", self.clock.answer_after(12, "echo"),
            "1", "medium",
            "6",
            "0",
        )
        code = await shell.run()

        self.assertEqual(code, 0)
        self.assertEqual((await self.players.get_by_id(alice.id)).lowest_time, 17.0)
        self.assertIn("Too slow! 5 seconds penalty applied.", self.console.lines)
        self.assertIn("No unsolved riddles left for this difficulty!", self.console.lines)
        self.assertIn("1. alice - 17 seconds", self.console.lines)
        self.assertIn("7. Logout", self.console.lines)
        self.assertEqual(self.console.lines[-1], "Goodbye!")

    async def test_user_creates_a_riddle(self):
        shell = self._shell(
            "bob", "2", "pw", "pw",
            "2", "Keys", "What has keys but can't open locks?", "Piano", "easy", "0", "10", "It makes music.",
            "Organ", "Piano", "Drum", "Flute",
            "3",
            "0",
            confirms=[True],
        )
        await shell.run()

        self.assertIn("Time limit must be a positive number.", self.console.lines)
        self.assertTrue(any(line.startswith("Riddle created successfully!") for line in self.console.lines))
        riddles = await self.catalog.get_all()
        self.assertEqual(riddles[0].choices, ["Organ", "Piano", "Drum", "Flute"])
        self.assertIn("Name: Keys, Difficulty: easy", self.console.lines)

    async def test_invalid_choices_are_reported_and_the_menu_continues(self):
        shell = self._shell(
            "bob", "2", "pw", "pw",
            "2", "Keys", "What has keys?", "Piano", "easy", "10", "It makes music.",
            "Organ", "Guitar", "Drum", "Flute",
            "0",
            confirms=[True],
        )
        await shell.run()

        self.assertIn("Failed to create riddle: Invalid riddle.", self.console.lines)
        self.assertEqual(await self.catalog.get_all(), [])

    async def test_guest_menu_is_limited(self):
        shell = self._shell("visitor", "1", "2", "4", "7", "0")

        self.assertEqual(await shell.run(), 0)

        self.assertIn(
            "You need a user account to create riddles. Create an account to unlock this feature!",
            self.console.lines,
        )
        self.assertIn("You need admin privileges to edit riddles.", self.console.lines)
        self.assertIn("Invalid choice. Please try again.", self.console.lines)
        self.assertNotIn("7. Logout", self.console.lines)

    async def test_logout_ends_the_session(self):
        await self.auth.signup("alice", "pw")

        shell = self._shell("alice", "pw", "7")
        self.assertEqual(await shell.run(), 0)

        self.assertIn("You have been logged out successfully.", self.console.lines)
        self.assertIsNone(self.store.get("alice"))

    async def test_stored_token_skips_the_password(self):
        issued = await self.auth.signup("alice", "pw")
        self.store.set("alice", issued.token, issued.expires_at)

        shell = self._shell("alice", "0")
        self.assertEqual(await shell.run(), 0)

        self.assertIn("Welcome back, alice! You're already logged in.", self.console.lines)

    async def test_retry_policy_asks_again(self):
        shell = self._shell("", "ghost", "9", "ghost", "1", "0")

        self.assertEqual(await shell.run(), 0)

        self.assertIn("Username cannot be empty. Please try again.", self.console.lines)
        self.assertIn("Authentication failed. Please try again.", self.console.lines)

    async def test_abort_policy_exits_with_an_error(self):
        shell = self._shell("ghost", "9", policy=FailurePolicy.ABORT)

        self.assertEqual(await shell.run(), 1)
