import pytest
from pyproj import Transformer

from orgs_aggregator.common.models import Coordinates, DataSourceType, RawRecord
from orgs_aggregator.pipeline.coordinates import extract_coordinates, to_wgs84

BNG_SPEC = {"x_field": "Easting", "y_field": "Northing", "epsg": 27700}


def _record(**fields):
    return RawRecord(source=DataSourceType.GIAS, index=0, fields=fields)


def test_british_national_grid_converts_to_wgs84():
    forward = Transformer.from_crs("EPSG:4326", "EPSG:27700", always_xy=True)
    easting, northing = forward.transform(-3.1883, 55.9533)

    lat, lon = to_wgs84(easting, northing, 27700)

    assert lat == pytest.approx(55.9533, abs=1e-5)
    assert lon == pytest.approx(-3.1883, abs=1e-5)


def test_wgs84_passes_through_as_lat_lon():
    assert to_wgs84(-2.1, 49.2, 4326) == (49.2, -2.1)


def test_extract_coordinates_rounds_and_accepts_strings():
    forward = Transformer.from_crs("EPSG:4326", "EPSG:27700", always_xy=True)
    easting, northing = forward.transform(-0.1276, 51.5072)

    point = extract_coordinates(_record(Easting=str(easting), Northing=str(northing)), BNG_SPEC)

    assert isinstance(point, Coordinates)
    assert point.latitude == pytest.approx(51.5072, abs=1e-5)
    assert point.longitude == pytest.approx(-0.1276, abs=1e-5)


def test_extract_coordinates_missing_or_bad_values():
    assert extract_coordinates(_record(Easting="", Northing=180000), BNG_SPEC) is None
    assert extract_coordinates(_record(Easting="n/a", Northing=180000), BNG_SPEC) is None


def test_extract_coordinates_discards_points_outside_the_uk():
    spec = {"x_field": "lon", "y_field": "lat", "epsg": 4326}
    assert extract_coordinates(_record(lon=10.0, lat=10.0), spec) is None
