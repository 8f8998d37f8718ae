"""
Shared fixtures: a small synthetic stop table, matching boundaries and a
report context that writes into the test's temporary directory.
"""

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from police_stops.config import ReportContext


@pytest.fixture
def ctx(tmp_path):
    return ReportContext(output_dir=tmp_path / "outputs", data_dir=tmp_path / "data", dpi=50).ensure_dirs()


@pytest.fixture
def stops():
    """Ten stops: white/black x male/female, four of them arrests."""
    return pd.DataFrame({
        'date': pd.to_datetime([
            '2013-10-05', '2014-01-12', '2014-02-20', '2015-01-01', '2014-05-30',
            '2014-07-04', '2014-08-15', '2014-09-09', '2014-11-11', '2014-03-02',
        ]),
        'district': [
            'NORTH END', 'NORTH END', 'SOUTH END', 'SOUTH END', 'DOWNTOWN',
            'SOUTH END', 'DOWNTOWN', 'NORTH END', 'SOUTH END', 'SOUTH END',
        ],
        'subject_race': ['white', 'black', 'white', 'black', 'white',
                         'black', 'white', 'black', 'white', 'black'],
        'subject_sex': ['male', 'male', 'female', 'female', 'male',
                        'female', 'male', 'male', 'female', 'female'],
        'subject_age': [23, 35, 41, 19, 52, 30, 27, 63, 45, 38],
        'arrest_made': pd.array([True, False, False, True, False,
                                 False, True, False, False, True], dtype='boolean'),
        'citation_issued': pd.array([False, True, True, False, True,
                                     True, False, None, True, False], dtype='boolean'),
        'violation': ['SPEEDING', 'SPEEDING', 'NO SEATBELT', 'SPEEDING', 'EXPIRED REGISTRATION',
                      'SPEEDING', 'NO SEATBELT', 'SPEEDING', None, 'SPEEDING'],
        'lat': [41.73, 41.74, 41.75, 41.76, 41.77, 41.78, 41.79, 41.75, 41.76, None],
        'lng': [-72.71, -72.70, -72.69, -72.68, -72.66, -72.65, -72.64, -72.63, -72.69, -72.68],
    })


@pytest.fixture
def neighborhoods():
    """Two side-by-side rectangles covering every stop location in `stops`."""
    return gpd.GeoDataFrame(
        {'name': ['West', 'East']},
        geometry=[box(-72.72, 41.72, -72.67, 41.80), box(-72.67, 41.72, -72.62, 41.80)],
        crs="EPSG:4326"
    )
