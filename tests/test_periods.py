from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import InvalidPeriodError
from features.periods import (
    Period,
    resolve_period,
    period_window,
    filter_by_period,
    filter_by_active,
    period_label,
)
from models.records import RecordKind, record_from_dict, records_from_dicts


def _request(record_id, created):
    return record_from_dict(
        {"id_solicitud": record_id, "monto": 10, "estado": "pendiente", "fecha_creacion": created},
        RecordKind.PAYMENT_REQUEST,
    )


class TestResolvePeriod:
    @pytest.mark.parametrize("raw, expected", [
        ("dia", Period.DAY),
        ("día", Period.DAY),
        ("semana", Period.WEEK),
        ("MES", Period.MONTH),
        ("año", Period.YEAR),
        ("ano", Period.YEAR),
        ("total", Period.ALL),
        ("week", Period.WEEK),
        (Period.MONTH, Period.MONTH),
    ])
    def test_aliases(self, raw, expected):
        assert resolve_period(raw) is expected

    @pytest.mark.parametrize("raw", ["quarter", "", None])
    def test_unknown_raises(self, raw):
        with pytest.raises(InvalidPeriodError):
            resolve_period(raw)

    def test_invalid_period_is_a_value_error(self):
        with pytest.raises(ValueError):
            resolve_period("decade")


class TestPeriodWindow:
    def test_day_is_rolling_24_hours(self, now):
        assert period_window("dia", now) == now - timedelta(hours=24)

    def test_week(self, now):
        assert period_window(Period.WEEK, now) == now - timedelta(days=7)

    def test_month_clamps_to_month_end(self):
        assert period_window("mes", datetime(2024, 3, 31, 9, 0)) == datetime(2024, 2, 29, 9, 0)

    def test_year_from_leap_day(self):
        assert period_window("año", datetime(2024, 2, 29)) == datetime(2023, 2, 28)

    def test_all_has_no_bound(self, now):
        assert period_window("total", now) is None


class TestFilterByPeriod:
    def test_eight_days_old_is_outside_week_inside_month(self, now):
        record = _request(1, now - timedelta(days=8))
        assert filter_by_period([record], "semana", now=now) == []
        assert filter_by_period([record], "mes", now=now) == [record]

    def test_result_is_an_ordered_subset(self, now, solicitud_records):
        kept = filter_by_period(solicitud_records, "dia", now=now)
        assert [r.record_id for r in kept] == [1]
        kept = filter_by_period(solicitud_records, "semana", now=now)
        assert [r.record_id for r in kept] == [1, 2, 3, 4]

    def test_unparsable_timestamps_only_survive_all(self, now):
        broken = _request(9, "not-a-date")
        ok = _request(1, now)
        assert filter_by_period([broken, ok], "año", now=now) == [ok]
        assert filter_by_period([broken, ok], "total", now=now) == [broken, ok]

    def test_future_records_are_kept(self, now):
        future = _request(2, now + timedelta(days=3))
        assert filter_by_period([future], "dia", now=now) == [future]

    def test_naive_timestamps_read_in_now_timezone(self):
        now = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
        record = _request(1, datetime(2024, 3, 14, 13, 0))
        assert filter_by_period([record], "dia", now=now) == [record]

    def test_input_is_not_modified(self, now, solicitud_records):
        before = list(solicitud_records)
        filter_by_period(solicitud_records, "dia", now=now)
        assert solicitud_records == before


class TestFilterByActive:
    def test_states(self, recurrentes):
        records = records_from_dicts(recurrentes, "recurrente")
        assert [r.record_id for r in filter_by_active(records, "activo")] == [10, 12]
        assert [r.record_id for r in filter_by_active(records, "inactivo")] == [11]
        assert len(filter_by_active(records, "todos")) == 3

    def test_invalid_state(self, recurrentes):
        with pytest.raises(ValueError):
            filter_by_active(records_from_dicts(recurrentes, "recurrente"), "pausado")


def test_period_label():
    assert period_label("semana") == "Registros de la última semana"
    assert period_label("mes", "Viáticos") == "Viáticos del último mes"
