from datetime import date

from automation.availability.matcher import match_slot
from automation.availability.time_utils import parse_slot_time
from tests.helpers import NEXT_MONDAY, make_slot
from users.profiles import SlotPreference


def _preference(at="18:30", activity="WOD"):
    return SlotPreference(time=parse_slot_time(at), activity=activity)


def test_match_slot_picks_exact_start_time():
    candidates = [make_slot("1", at="18:30"), make_slot("2", at="19:30")]

    result = match_slot(_preference(), candidates, NEXT_MONDAY)

    assert result.matched
    assert result.slot.slot_id == "1"
    assert result.reason is None


def test_match_slot_refuses_ambiguous_matches():
    candidates = [make_slot("1"), make_slot("2")]

    result = match_slot(_preference(), candidates, NEXT_MONDAY)

    assert not result.matched
    assert "ambiguous" in result.reason
    assert "1, 2" in result.reason


def test_match_slot_reports_no_match():
    result = match_slot(_preference(at="07:00"), [make_slot("1")], NEXT_MONDAY)

    assert not result.matched
    assert "no slot matches" in result.reason


def test_match_slot_filters_by_activity_name_case_insensitively():
    candidates = [
        make_slot("1", activity="Gymnastics"),
        make_slot("2", activity="wod"),
    ]

    result = match_slot(_preference(activity="WOD"), candidates, NEXT_MONDAY)

    assert result.slot.slot_id == "2"


def test_match_slot_accepts_category_id_as_activity():
    candidates = [
        make_slot("1", activity=None, category_id="42"),
        make_slot("2", activity=None, category_id="7"),
    ]

    result = match_slot(_preference(activity="7"), candidates, NEXT_MONDAY)

    assert result.slot.slot_id == "2"


def test_match_slot_any_activity_when_unconfigured():
    result = match_slot(_preference(activity=None), [make_slot("9", activity="Open Gym")], NEXT_MONDAY)

    assert result.slot.slot_id == "9"


def test_match_slot_ignores_other_days():
    other_day = make_slot("1", on=date(2025, 1, 14))

    assert not match_slot(_preference(), [other_day], NEXT_MONDAY).matched
