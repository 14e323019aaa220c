from unittest import TestCase

from .models import Difficulty, Player, Riddle, RiddleKind, Role


def _riddle(**overrides) -> Riddle:
    fields = {
        "id": "r1",
        "name": "Logic Puzzle",
        "task_description": "I speak without a mouth and hear without ears. What am I?",
        "correct_answer": "Echo",
        "difficulty": "medium",
        "time_limit": 25,
        "hint": "You can hear it in a canyon.",
    }
    fields.update(overrides)
    return Riddle(**fields)


class RiddleModelTests(TestCase):
    def test_kind_follows_choices(self):
        self.assertEqual(_riddle().kind, RiddleKind.PLAIN)
        self.assertFalse(_riddle().is_multiple_choice)

        riddle = _riddle(correct_answer="8", choices=["7", "8", "13", "21"])
        self.assertEqual(riddle.kind, RiddleKind.MULTIPLE_CHOICE)
        self.assertTrue(riddle.is_multiple_choice)

    def test_stored_kind_is_ignored(self):
        riddle = _riddle(kind="plain", choices=["Echo", "Wind"])

        self.assertEqual(riddle.kind, RiddleKind.MULTIPLE_CHOICE)

    def test_difficulty_is_parsed_case_insensitively(self):
        self.assertEqual(_riddle(difficulty=" HARD ").difficulty, Difficulty.HARD)

    def test_numeric_answer_stays_numeric(self):
        self.assertEqual(_riddle(correct_answer=32).correct_answer, 32)


class PlayerRecordTimeTests(TestCase):
    def test_first_time_becomes_best(self):
        player = Player(id="p1", username="alice")

        self.assertEqual(player.record_time(20.0), 20.0)
        self.assertEqual(player.lowest_time, 20.0)

    def test_best_only_ever_decreases(self):
        player = Player(id="p1", username="alice")
        results = [player.record_time(t) for t in (20.0, 25.0, 17.0, 30.0)]

        self.assertEqual(results, [20.0, 20.0, 17.0, 17.0])
        self.assertEqual(player.lowest_time, 17.0)

    def test_recording_the_same_time_twice_changes_nothing(self):
        player = Player(id="p1", username="alice", lowest_time=12.5)

        self.assertEqual(player.record_time(12.5), 12.5)
        self.assertEqual(player.record_time(12.5), 12.5)


class PlayerCapabilityTests(TestCase):
    def test_guest_can_only_play(self):
        guest = Player(id="g", username="guest", role="guest")

        self.assertFalse(guest.can_create_riddles())
        self.assertFalse(guest.can_view_all_riddles())
        self.assertFalse(guest.can_edit_riddles())
        self.assertFalse(guest.can_delete_riddles())

    def test_user_can_create_and_view(self):
        user = Player(id="u", username="user", role="USER")

        self.assertEqual(user.role, Role.USER)
        self.assertTrue(user.can_create_riddles())
        self.assertTrue(user.can_view_all_riddles())
        self.assertFalse(user.can_edit_riddles())
        self.assertFalse(user.can_delete_riddles())

    def test_admin_can_do_everything(self):
        admin = Player(id="a", username="admin", role=Role.ADMIN)

        self.assertTrue(admin.can_create_riddles())
        self.assertTrue(admin.can_view_all_riddles())
        self.assertTrue(admin.can_edit_riddles())
        self.assertTrue(admin.can_delete_riddles())
