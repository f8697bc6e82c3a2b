from datetime import date, datetime

import httpx
import pytest

from atelier.errors import InvalidRequestError
from atelier.services.deadline import (
    DEFAULT_JOURS_OUVRABLES,
    DelaiService,
    compute_deadline,
    compute_ship_by,
    is_late,
)
from atelier.services.holidays import HolidayCalendar

MONDAY = date(2024, 5, 13)
HOLIDAYS = {date(2024, 5, 8), date(2024, 5, 9)}


class TestComputeDeadline:

    def test_skips_weekend(self):
        assert compute_deadline(MONDAY, 1, DEFAULT_JOURS_OUVRABLES) == date(2024, 5, 10)

    def test_full_week(self):
        assert compute_deadline(MONDAY, 5, DEFAULT_JOURS_OUVRABLES) == date(2024, 5, 6)

    def test_skips_holidays(self):
        result = compute_deadline(MONDAY, 5, DEFAULT_JOURS_OUVRABLES, HOLIDAYS.__contains__)
        assert result == date(2024, 5, 2)

    def test_zero_days_is_today(self):
        assert compute_deadline(MONDAY, 0, DEFAULT_JOURS_OUVRABLES) == MONDAY

    def test_more_days_never_moves_forward(self):
        results = [compute_deadline(MONDAY, n, DEFAULT_JOURS_OUVRABLES) for n in range(0, 30)]
        assert results == sorted(results, reverse=True)

    def test_custom_working_days(self):
        saturdays_only = {"samedi": True}
        assert compute_deadline(MONDAY, 2, saturdays_only) == date(2024, 5, 4)

    def test_negative_delay_rejected(self):
        with pytest.raises(InvalidRequestError):
            compute_deadline(MONDAY, -1, DEFAULT_JOURS_OUVRABLES)

    def test_no_working_day_rejected(self):
        with pytest.raises(InvalidRequestError):
            compute_deadline(MONDAY, 3, {day: False for day in DEFAULT_JOURS_OUVRABLES})

    def test_unknown_weekday_rejected(self):
        with pytest.raises(InvalidRequestError):
            compute_deadline(MONDAY, 3, {"monday": True})


def test_ship_by_counts_forward():
    assert compute_ship_by(date(2024, 5, 10), 1, DEFAULT_JOURS_OUVRABLES) == MONDAY
    assert compute_ship_by(date(2024, 5, 7), 2, DEFAULT_JOURS_OUVRABLES, HOLIDAYS.__contains__) == date(2024, 5, 13)


def test_is_late_is_inclusive():
    deadline = date(2024, 5, 6)
    assert is_late(date(2024, 5, 6), deadline)
    assert is_late(datetime(2024, 5, 6, 23, 59), deadline)
    assert is_late(date(2024, 5, 1), deadline)
    assert not is_late(date(2024, 5, 7), deadline)


class TestHolidayCalendar:

    @pytest.mark.asyncio
    async def test_groups_by_year_and_caches(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(200, json={
                "2024-05-08": "8 mai",
                "2024-05-09": "Ascension",
                "2025-01-01": "1er janvier",
            })

        calendar = HolidayCalendar("https://holidays.test/data.json", transport=httpx.MockTransport(handler))

        assert await calendar.holidays_for_year(2024) == {"2024-05-08": "8 mai", "2024-05-09": "Ascension"}
        assert await calendar.is_holiday(date(2025, 1, 1))
        assert not await calendar.is_holiday(date(2024, 5, 10))
        assert len(calls) == 1

        calendar.clear()
        await calendar.holidays_for_year(2024)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_server_error_means_no_holidays(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(500)

        calendar = HolidayCalendar("https://holidays.test/data.json", transport=httpx.MockTransport(handler))

        assert await calendar.holidays_for_year(2024) == {}
        assert await calendar.holidays_for_year(2024) == {}
        assert len(calls) == 1

        calendar.clear()
        await calendar.holidays_for_year(2024)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_network_error_means_no_holidays(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        calendar = HolidayCalendar("https://holidays.test/data.json", transport=httpx.MockTransport(handler))

        assert not await calendar.is_holiday(date(2024, 5, 8))

    @pytest.mark.asyncio
    async def test_unreachable_calendar_is_not_refetched_on_every_lookup(self, db):
        calls = []

        def handler(request):
            calls.append(request.url)
            raise httpx.ConnectError("unreachable", request=request)

        transport = httpx.MockTransport(handler)
        calendar = HolidayCalendar("https://holidays.test/data.json", transport=transport)
        service = DelaiService(db, calendar)
        for _ in range(3):
            await service.current_deadline(date(2026, 1, 15))
        assert len(calls) == 1

        eager = HolidayCalendar("https://holidays.test/data.json", transport=transport, retry_after=0)
        await eager.holidays_for_year(2026)
        await eager.holidays_for_year(2026)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_failed_refresh_drops_stale_holidays(self):
        responses = [httpx.Response(200, json={"2024-05-08": "8 mai"}), httpx.Response(503)]

        calendar = HolidayCalendar(
            "https://holidays.test/data.json",
            transport=httpx.MockTransport(lambda request: responses.pop(0)),
        )
        assert await calendar.is_holiday(date(2024, 5, 8))

        calendar._expires_at = 0.0
        assert await calendar.holidays_for_year(2024) == {}
        assert not await calendar.is_holiday(date(2024, 5, 8))


class TestDelaiService:

    @pytest.mark.asyncio
    async def test_defaults_without_configuration(self, db, calendar):
        config = await DelaiService(db, calendar).get_configuration(MONDAY)

        assert config["id"] is None
        assert config["jours_delai"] == 21
        assert config["jours_ouvrables"] == DEFAULT_JOURS_OUVRABLES
        assert config["date_limite"] == compute_deadline(MONDAY, 21, DEFAULT_JOURS_OUVRABLES)

    @pytest.mark.asyncio
    async def test_latest_configuration_wins(self, db, calendar):
        service = DelaiService(db, calendar)
        await service.save_configuration(10, DEFAULT_JOURS_OUVRABLES, today=MONDAY)
        saved = await service.save_configuration(5, DEFAULT_JOURS_OUVRABLES, today=MONDAY)

        assert saved.date_limite == date(2024, 5, 6)
        assert await service.current_deadline(MONDAY) == date(2024, 5, 6)
        assert [c.jours_delai for c in await service.history()] == [5, 10]

    @pytest.mark.asyncio
    async def test_uses_holiday_calendar(self, db):
        transport = httpx.MockTransport(lambda request: httpx.Response(
            200, json={"2024-05-08": "8 mai", "2024-05-09": "Ascension"}
        ))
        calendar = HolidayCalendar("https://holidays.test/data.json", transport=transport)

        saved = await DelaiService(db, calendar).save_configuration(5, DEFAULT_JOURS_OUVRABLES, today=MONDAY)

        assert saved.date_limite == date(2024, 5, 2)

    @pytest.mark.asyncio
    async def test_rejects_invalid_configuration(self, db, calendar):
        service = DelaiService(db, calendar)
        with pytest.raises(InvalidRequestError):
            await service.save_configuration(0, DEFAULT_JOURS_OUVRABLES)
        with pytest.raises(InvalidRequestError):
            await service.save_configuration(5, {"lundi": False})
        assert await service.history() == []
