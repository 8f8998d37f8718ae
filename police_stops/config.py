"""
Fixed report parameters and the run context passed through every stage.
"""

from dataclasses import dataclass, field
from pathlib import Path

# Project paths
package_dir = Path(__file__).parent
project_root = package_dir.parent


# ============================================================================
# 1. DATA SOURCES
# ============================================================================

OPP_BASE_URL = "https://stacks.stanford.edu/file/druid:yg821jf8611/yg821jf8611_"

HARTFORD_STOPS_URL = OPP_BASE_URL + "ct_hartford_2020_04_01.csv.zip"
HARTFORD_SHAPEFILES_URL = OPP_BASE_URL + "ct_hartford_shapefiles_2020_04_01.tgz"
OWENSBORO_STOPS_URL = OPP_BASE_URL + "ky_owensboro_2020_04_01.csv.zip"
OWENSBORO_SHAPEFILES_URL = OPP_BASE_URL + "ky_owensboro_shapefiles_2020_04_01.tgz"

SOURCE_CAPTION = "Source: Stanford Open Policing Project"

# Shapefiles without a .prj are tagged with this CRS
DECLARED_CRS = "EPSG:4326"
POINT_CRS = "EPSG:4326"

DOWNLOAD_TIMEOUT = 120


# ============================================================================
# 2. COLUMNS
# ============================================================================

BOOLEAN_COLUMNS = [
    'arrest_made',
    'citation_issued',
    'warning_issued',
    'frisk_performed',
    'search_conducted',
    'contraband_found',
]

DATE_COLUMN = 'date'
LAT_COLUMN = 'lat'
LNG_COLUMN = 'lng'

# Race categories in display order; anything else folds into the last one
RACE_PRIORITY = ['white', 'black', 'hispanic', 'asian/pacific islander', 'other/unknown']
OTHER_RACE = 'other/unknown'

RACE_COLORS = {
    'white': '#3498db',
    'black': '#e74c3c',
    'hispanic': '#f39c12',
    'asian/pacific islander': '#2ecc71',
    'other/unknown': '#95a5a6',
}


# ============================================================================
# 3. ANIMATION
# ============================================================================

# Relative lengths as in a transition-states animation: 2 units moving, 1 unit holding
FRAMES_PER_UNIT = 5
TRANSITION_LENGTH = 2
STATE_LENGTH = 1
ANIMATION_FPS = 10


@dataclass(frozen=True)
class ReportContext:
    """Everything a stage needs to know about where and how to write output."""
    output_dir: Path = project_root / "outputs"
    data_dir: Path = project_root / "data"
    dpi: int = 300
    figsize: tuple = (10, 6)
    map_figsize: tuple = (12, 10)
    source_caption: str = SOURCE_CAPTION
    header_color: str = '#3498db'
    stripe_color: str = '#ecf0f1'
    boundary_facecolor: str = '#f4f4f4'
    boundary_edgecolor: str = 'gray'
    point_color: str = '#2c3e50'
    category_colors: dict = field(default_factory=lambda: dict(RACE_COLORS))

    def ensure_dirs(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self
