from __future__ import annotations

import math
from dataclasses import replace

import pytest

from conftest import fail, ok
from store_geocoder.geocoding.models import (
    BatchJob,
    ErrorKind,
    GeocodeResult,
    Precision,
    valid_coordinates,
)
from store_geocoder.geocoding.transport import build_result


@pytest.mark.parametrize(
    "lat, lon, expected",
    [
        (0, 0, True),
        (90, 180, True),
        (-90, -180, True),
        ("40.7", "-73.9", True),
        (90.0001, 0, False),
        (0, -180.5, False),
        (math.nan, 0, False),
        (0, math.inf, False),
        (None, 0, False),
        ("north", 0, False),
    ],
)
def test_valid_coordinates(lat, lon, expected):
    assert valid_coordinates(lat, lon) is expected


def test_result_rejects_out_of_range_coordinates():
    with pytest.raises(ValueError):
        GeocodeResult(latitude=91.0, longitude=0.0, precision=Precision.EXACT, provider_id="google")


def test_build_result_turns_bad_coordinates_into_failure():
    outcome = build_result("mapbox", 12.0, 200.0, Precision.EXACT)

    assert not outcome.is_success()
    assert outcome.kind is ErrorKind.PARSE_ERROR
    assert outcome.provider_id == "mapbox"


def test_result_to_dict():
    data = ok("google").to_dict()

    assert data["status"] == "success"
    assert data["precision"] == "exact"
    assert data["provider_id"] == "google"


def test_failure_to_dict_includes_attempts():
    outcome = replace(fail("C", ErrorKind.NOT_FOUND), attempts=(fail("B", ErrorKind.TIMEOUT),))

    data = outcome.to_dict()

    assert data["status"] == "failed"
    assert data["kind"] == "not_found"
    assert data["attempts"][0]["kind"] == "timeout"
    assert data["attempts"][0]["retryable"] is True


def test_batch_job_tracks_progress():
    job = BatchJob(["a", "b", "c"])

    job.record(ok("B"))
    job.record(fail("B"))

    assert not job.done
    assert job.summary() == {"total": 3, "completed": 2, "successful": 1, "failed": 1}

    job.record(ok("C"))
    assert job.done
    with pytest.raises(IndexError):
        job.record(ok("C"))
