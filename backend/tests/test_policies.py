import re
from datetime import datetime, timedelta

import pytest

from backoffice.services import recovery_window
from backoffice.services.companies import slugify

T0 = datetime(2026, 1, 1, 12, 0, 0)
SLUG_RE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


@pytest.mark.parametrize(
    "elapsed, recoverable",
    [
        (timedelta(days=0), True),
        (timedelta(days=29), True),
        (timedelta(days=30), True),
        (timedelta(days=30, seconds=1), False),
        (timedelta(days=31), False),
    ],
)
def test_recover_and_purge_are_complementary(elapsed, recoverable):
    now = T0 + elapsed
    assert recovery_window.is_recoverable(T0, now) is recoverable
    assert recovery_window.is_purgeable(T0, now) is (not recoverable)


def test_days_left_rounds_up_and_stops_at_zero():
    assert recovery_window.days_left(T0, T0) == 30
    assert recovery_window.days_left(T0, T0 + timedelta(days=29, hours=1)) == 1
    assert recovery_window.days_left(T0, T0 + timedelta(days=31)) == 0


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Acme Corp", "acme-corp"),
        ("  Hello, World!  ", "hello-world"),
        ("--Already-slugged--", "already-slugged"),
        ("Ünïcode & Co.", "n-code-co"),
        ("!!!", ""),
        ("", ""),
    ],
)
def test_slugify(name, expected):
    assert slugify(name) == expected


@pytest.mark.parametrize("name", ["Acme Corp", "a__b  c", "X-Y-Z", "Trainee Co. 2026", "%%", "MiXeD 123 Case"])
def test_slugify_is_idempotent_and_well_formed(name):
    slug = slugify(name)
    assert slugify(slug) == slug
    assert slug == "" or SLUG_RE.match(slug)
