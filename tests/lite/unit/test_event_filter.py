"""Unit tests for calendarswitch_lite.domain.event_filter."""

from datetime import datetime, timedelta, timezone

import pytest

from calendarswitch_lite.core.config_loader import SwitchConfig
from calendarswitch_lite.domain.event_filter import EligibilityFilter, parse_keywords

pytestmark = pytest.mark.unit

UTC = timezone.utc
NOW = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


def config(**overrides) -> SwitchConfig:
    overrides.setdefault("hub_timezone", "UTC")
    return SwitchConfig(**overrides)


class TestParseKeywords:
    def test_splits_trims_and_lowercases(self):
        assert parse_keywords(" Standup, ,1:1 ,REVIEW") == ["standup", "1:1", "review"]

    @pytest.mark.parametrize("raw", ["", None, " , "])
    def test_empty(self, raw):
        assert parse_keywords(raw) == []


class TestIsEligible:
    def test_plain_busy_event(self, make_instance):
        assert EligibilityFilter(config()).is_eligible(make_instance(NOW))

    def test_cancelled_never_eligible(self, make_instance):
        instance = make_instance(NOW, status="CANCELLED")
        assert not EligibilityFilter(config(trigger_all_day=True)).is_eligible(instance)

    def test_all_day_needs_opt_in(self, make_instance):
        instance = make_instance(NOW, minutes=24 * 60, all_day=True)
        assert not EligibilityFilter(config()).is_eligible(instance)
        assert EligibilityFilter(config(trigger_all_day=True)).is_eligible(instance)

    def test_transparent_only_excluded_when_busy_only(self, make_instance):
        instance = make_instance(NOW, transparency="TRANSPARENT")
        assert not EligibilityFilter(config()).is_eligible(instance)
        assert EligibilityFilter(config(trigger_busy_only=False)).is_eligible(instance)

    def test_tentative_exclusion(self, make_instance):
        instance = make_instance(NOW, status="TENTATIVE")
        assert EligibilityFilter(config()).is_eligible(instance)
        assert not EligibilityFilter(config(exclude_tentative=True)).is_eligible(instance)

    def test_declined_exclusion_requires_markers(self, make_instance):
        declined = make_instance(NOW, attendance_markers=("ACCEPTED", "DECLINED"))
        unmarked = make_instance(NOW)
        strict = EligibilityFilter(config(exclude_declined_if_present=True))
        assert not strict.is_eligible(declined)
        assert strict.is_eligible(unmarked)
        assert EligibilityFilter(config()).is_eligible(declined)

    def test_include_keyword(self, make_instance):
        flt = EligibilityFilter(config(include_keywords="standup"))
        assert flt.is_eligible(make_instance(NOW, summary="Daily Standup"))
        assert not flt.is_eligible(make_instance(NOW, summary="1:1 sync"))

    def test_include_keyword_matches_location(self, make_instance):
        flt = EligibilityFilter(config(include_keywords="war room"))
        assert flt.is_eligible(make_instance(NOW, summary="Incident", location="War Room B"))

    def test_exclude_keyword(self, make_instance):
        flt = EligibilityFilter(config(exclude_keywords="lunch, focus"))
        assert not flt.is_eligible(make_instance(NOW, summary="Team LUNCH"))
        assert not flt.is_eligible(make_instance(NOW, summary="Focus time"))
        assert flt.is_eligible(make_instance(NOW, summary="Planning"))

    def test_rejection_reason(self, make_instance):
        flt = EligibilityFilter(config(exclude_tentative=True))
        assert flt.rejection_reason(make_instance(NOW, status="TENTATIVE")) == "tentative"
        assert flt.rejection_reason(make_instance(NOW)) is None


class TestBuildEligibleSet:
    def test_window_overlap(self, make_instance):
        flt = EligibilityFilter(config(include_past_hours=6, horizon_days=3))
        ended_long_ago = make_instance(NOW - timedelta(hours=8), minutes=60, summary="old")
        ended_in_window = make_instance(NOW - timedelta(hours=5), minutes=60, summary="recent")
        far_future = make_instance(NOW + timedelta(days=4), summary="later")
        at_horizon = make_instance(NOW + timedelta(days=3), summary="edge")
        eligible = flt.build_eligible_set([ended_long_ago, ended_in_window, far_future, at_horizon], NOW)
        assert [i.event.summary for i in eligible] == ["recent", "edge"]

    def test_offsets_shift_effective_window(self, make_instance):
        flt = EligibilityFilter(config(start_offset_minutes=-5, end_offset_minutes=10))
        (instance,) = flt.build_eligible_set([make_instance(NOW)], NOW)
        assert instance.effective_start == NOW - timedelta(minutes=5)
        assert instance.effective_end == NOW + timedelta(minutes=40)
        assert instance.event.start == NOW

    def test_sorted_and_capped(self, make_instance):
        flt = EligibilityFilter(config(max_events=2))
        instances = [
            make_instance(NOW + timedelta(hours=3), summary="c"),
            make_instance(NOW + timedelta(hours=1), summary="a"),
            make_instance(NOW + timedelta(hours=2), summary="b"),
        ]
        eligible = flt.build_eligible_set(instances, NOW)
        assert [i.event.summary for i in eligible] == ["a", "b"]

    def test_ineligible_removed(self, make_instance):
        flt = EligibilityFilter(config())
        instances = [make_instance(NOW, summary="free", transparency="TRANSPARENT"), make_instance(NOW)]
        assert [i.event.summary for i in flt.build_eligible_set(instances, NOW)] == ["Meeting"]
