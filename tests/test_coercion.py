from datetime import date, datetime, timezone

import pytest

from draftgrid.coercion import build_patch, coerce_value
from draftgrid.errors import InvalidFieldValue, NotEditable

from tests.utils import student_fields

FIELDS = student_fields()


@pytest.mark.parametrize(
    "raw, expected",
    [
        (True, True),
        ("true", True),
        (" FALSE ", False),
        ("1", True),
        ("0", False),
        ("oui", True),
        (1, True),
        ("", None),
        (None, None),
    ],
)
def test_boolean(raw, expected):
    assert coerce_value(FIELDS.get("actif"), raw) is expected


def test_boolean_role_labels():
    spec = FIELDS.get("admin")
    assert coerce_value(spec, "Admin") is True
    assert coerce_value(spec, "user") is False


def test_boolean_rejects_garbage():
    with pytest.raises(InvalidFieldValue) as exc:
        coerce_value(FIELDS.get("actif"), "maybe")
    assert exc.value.field == "actif"
    with pytest.raises(InvalidFieldValue):
        coerce_value(FIELDS.get("actif"), 2)


def test_integer():
    spec = FIELDS.get("age")
    assert coerce_value(spec, "12") == 12
    assert coerce_value(spec, " 12 ") == 12
    assert coerce_value(spec, "12.0") == 12
    assert coerce_value(spec, 13) == 13
    assert coerce_value(spec, "") is None
    assert coerce_value(spec, None) is None


@pytest.mark.parametrize("raw", ["abc", "12.5", True, [1]])
def test_integer_rejects(raw):
    with pytest.raises(InvalidFieldValue):
        coerce_value(FIELDS.get("age"), raw)


def test_decimal():
    spec = FIELDS.get("moyenne")
    assert coerce_value(spec, "12,5") == 12.5
    assert coerce_value(spec, "14") == 14.0
    assert coerce_value(spec, 9) == 9.0
    assert coerce_value(spec, "") is None
    with pytest.raises(InvalidFieldValue):
        coerce_value(spec, "douze")
    with pytest.raises(InvalidFieldValue):
        coerce_value(spec, "nan")


def test_date_day_only_becomes_midnight():
    spec = FIELDS.get("entreeFonction")
    assert coerce_value(spec, "2024-09-02") == "2024-09-02T00:00:00.000Z"
    assert coerce_value(spec, "02/09/2024") == "2024-09-02T00:00:00.000Z"
    assert coerce_value(spec, date(2024, 9, 2)) == "2024-09-02T00:00:00.000Z"


def test_date_timestamps_normalised_to_utc():
    spec = FIELDS.get("entreeFonction")
    assert coerce_value(spec, "2024-09-02T10:30:00+02:00") == "2024-09-02T08:30:00.000Z"
    moment = datetime(2024, 9, 2, 8, 30, tzinfo=timezone.utc)
    assert coerce_value(spec, moment) == "2024-09-02T08:30:00.000Z"


def test_date_coercion_is_idempotent():
    spec = FIELDS.get("entreeFonction")
    once = coerce_value(spec, "2024-09-02")
    assert coerce_value(spec, once) == once
    stamp = coerce_value(spec, "2024-09-02T08:30:15.250Z")
    assert stamp == "2024-09-02T08:30:15.250Z"
    assert coerce_value(spec, stamp) == stamp


def test_date_empty_and_invalid():
    spec = FIELDS.get("entreeFonction")
    assert coerce_value(spec, "") is None
    with pytest.raises(InvalidFieldValue):
        coerce_value(spec, "not a date")
    with pytest.raises(InvalidFieldValue):
        coerce_value(spec, "2024-13-40")


def test_text_and_enum_pass_through():
    assert coerce_value(FIELDS.get("nom"), " Durant ") == " Durant "
    # enum values are not checked against the options
    assert coerce_value(FIELDS.get("classe"), "4C") == "4C"


def test_build_patch_coerces_each_field():
    patch = build_patch(FIELDS, {"actif": "true", "age": "12", "nom": "Durant"})
    assert patch == {"actif": True, "age": 12, "nom": "Durant"}


def test_build_patch_refuses_read_only_fields():
    with pytest.raises(NotEditable):
        build_patch(FIELDS, {"email": "x@y.fr"})
