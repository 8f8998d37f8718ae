"""
Data Loading
Downloads Open Policing Project archives and decodes them into memory.
Every archive is deleted as soon as its contents have been read.
"""

import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path

import geopandas as gpd
import pandas as pd
import requests

from police_stops.config import BOOLEAN_COLUMNS, DATE_COLUMN, DECLARED_CRS, DOWNLOAD_TIMEOUT
from police_stops.errors import FormatError, NetworkError

_BOOLEAN_LOOKUP = {
    True: True,
    False: False,
    'TRUE': True,
    'FALSE': False,
    'True': True,
    'False': False,
    'true': True,
    'false': False,
}


def _discard(path):
    """Remove a file if it is still there."""
    Path(path).unlink(missing_ok=True)


# ============================================================================
# 1. FETCH
# ============================================================================

def fetch_archive(url, destination, timeout=DOWNLOAD_TIMEOUT):
    """
    Download url to destination and return the destination path.
    A single attempt; any failure raises NetworkError and leaves no partial file.
    """
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    print(f"  Downloading {url}")
    response = None
    written = 0
    try:
        response = requests.get(url, stream=True, timeout=timeout)
        response.raise_for_status()
        with open(destination, 'wb') as f:
            for chunk in response.iter_content(chunk_size=8192):
                f.write(chunk)
                written += len(chunk)
    except requests.exceptions.HTTPError as http_error:
        _discard(destination)
        code = http_error.response.status_code if http_error.response is not None else "unknown"
        raise NetworkError(f"HTTP {code} while downloading {url}") from http_error
    except requests.exceptions.RequestException as request_error:
        _discard(destination)
        raise NetworkError(f"Connection failed while downloading {url}: {request_error}") from request_error
    except OSError as write_error:
        _discard(destination)
        raise NetworkError(f"Could not write {destination}: {write_error}") from write_error
    finally:
        if response is not None:
            response.close()

    # Content-Length counts encoded bytes, so only compare for identity-encoded bodies
    expected = response.headers.get('Content-Length')
    if expected is not None and not response.headers.get('Content-Encoding'):
        if int(expected) != written:
            _discard(destination)
            raise NetworkError(
                f"Truncated download from {url}: expected {int(expected):,} bytes, got {written:,}"
            )

    print(f"  Saved: {destination} ({written:,} bytes)")
    return destination


# ============================================================================
# 2. UNPACK: STOP TABLES
# ============================================================================

def read_csv_from_zip(zip_path, csv_file=None):
    """Read a CSV file from a ZIP archive (the first .csv member unless named)."""
    try:
        with zipfile.ZipFile(zip_path, 'r') as z:
            names = [n for n in z.namelist()
                     if n.lower().endswith('.csv') and not n.startswith('__MACOSX/')]
            if csv_file is None:
                if not names:
                    raise FormatError(f"No CSV file found in {zip_path}")
                csv_file = names[0]
            elif csv_file not in z.namelist():
                raise FormatError(f"File {csv_file} not found in {zip_path}")
            with z.open(csv_file) as f:
                return pd.read_csv(f, low_memory=False)
    except zipfile.BadZipFile as e:
        raise FormatError(f"Corrupt ZIP archive {zip_path}: {e}") from e


def _to_boolean(values):
    """Nullable boolean flags; a present value outside the lookup is a FormatError."""
    mapped = values.map(_BOOLEAN_LOOKUP)
    unrecognised = values.notna() & mapped.isna()
    if unrecognised.any():
        examples = sorted({str(v) for v in values[unrecognised]})[:5]
        raise FormatError(f"Unrecognised values in flag column {values.name}: {examples}")
    return mapped.astype('boolean')


def coerce_stop_types(stops):
    """
    Finish per-column typing after read_csv's inference:
    dates become datetimes and outcome flags become nullable booleans.
    """
    stops = stops.copy()
    if DATE_COLUMN in stops.columns:
        stops[DATE_COLUMN] = pd.to_datetime(stops[DATE_COLUMN], errors='coerce')
    for col in BOOLEAN_COLUMNS:
        if col in stops.columns:
            stops[col] = _to_boolean(stops[col])
    return stops


def read_stops_archive(archive_path):
    """
    Decode a stop table from a zipped, gzipped or plain CSV.
    The archive is deleted afterwards, whether or not it could be read.
    """
    archive_path = Path(archive_path)
    try:
        if archive_path.name.lower().endswith('.zip'):
            stops = read_csv_from_zip(archive_path)
        else:
            stops = pd.read_csv(archive_path, low_memory=False, compression='infer')
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError, EOFError, OSError) as e:
        raise FormatError(f"Could not parse stop table {archive_path.name}: {e}") from e
    finally:
        _discard(archive_path)

    stops = coerce_stop_types(stops)
    print(f"  Loaded {len(stops):,} stops with {len(stops.columns)} columns")
    return stops


# ============================================================================
# 3. UNPACK: SHAPEFILE BUNDLES
# ============================================================================

def _safe_join(root, member_name):
    normalized = member_name.replace("\\", "/")
    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    if any(p == ".." for p in parts) or normalized.startswith("/"):
        raise FormatError(f"Unsafe member path in archive: {member_name}")
    return root.joinpath(*parts)


def _extract_tar(archive_path, out_root):
    with tarfile.open(archive_path, 'r:*') as tf:
        for member in tf:
            if not member.isfile():
                continue
            out_path = _safe_join(out_root, member.name)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            src = tf.extractfile(member)
            if src is None:
                continue
            with src, out_path.open('wb') as dst:
                shutil.copyfileobj(src, dst, length=1024 * 1024)


def _extract_zip(archive_path, out_root):
    with zipfile.ZipFile(archive_path) as z:
        for info in z.infolist():
            if info.is_dir() or info.filename.startswith("__MACOSX/"):
                continue
            out_path = _safe_join(out_root, info.filename)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            with z.open(info) as src, out_path.open('wb') as dst:
                shutil.copyfileobj(src, dst, length=1024 * 1024)


def extract_archive(archive_path, out_root):
    """Extract a tar (optionally compressed) or zip archive into out_root."""
    archive_path = Path(archive_path)
    out_root = Path(out_root)
    out_root.mkdir(parents=True, exist_ok=True)
    try:
        if tarfile.is_tarfile(archive_path):
            _extract_tar(archive_path, out_root)
        elif zipfile.is_zipfile(archive_path):
            _extract_zip(archive_path, out_root)
        else:
            raise FormatError(f"{archive_path.name} is not a tar or zip archive")
    except (tarfile.TarError, zipfile.BadZipFile, EOFError) as e:
        raise FormatError(f"Corrupt archive {archive_path.name}: {e}") from e
    except FileNotFoundError as e:
        raise FormatError(f"Archive {archive_path} does not exist") from e


def find_shapefile(root, name_hint=None):
    """Pick the primary .shp under root, preferring names containing name_hint."""
    candidates = sorted(p for p in Path(root).rglob('*.shp') if '__MACOSX' not in p.parts)
    if name_hint:
        candidates = [p for p in candidates if name_hint.lower() in p.name.lower()]
    if not candidates:
        hint = f" matching '{name_hint}'" if name_hint else ""
        raise FormatError(f"No shapefile{hint} found in bundle")
    return candidates[0]


def read_shapefile_bundle(archive_path, declared_crs=DECLARED_CRS, name_hint=None):
    """
    Decode a compressed shapefile bundle into a GeoDataFrame.

    The bundle is extracted into a temporary directory, the primary .shp is
    read together with its attribute table, and a CRS is declared when the
    file carries none. Archive and extracted files are removed unconditionally.
    """
    archive_path = Path(archive_path)
    try:
        with tempfile.TemporaryDirectory(prefix="shapefiles_") as extract_dir:
            extract_archive(archive_path, extract_dir)
            shp_path = find_shapefile(extract_dir, name_hint)
            try:
                boundaries = gpd.read_file(shp_path)
            except (OSError, ValueError, RuntimeError) as e:
                raise FormatError(f"Could not read {shp_path.name}: {e}") from e
    finally:
        _discard(archive_path)

    if boundaries.crs is None:
        boundaries = boundaries.set_crs(declared_crs)
    print(f"  Loaded {len(boundaries)} polygons from {shp_path.name} ({boundaries.crs})")
    return boundaries


# ============================================================================
# 4. FETCH + UNPACK
# ============================================================================

def _archive_destination(url, ctx):
    return Path(ctx.data_dir) / url.rsplit('/', 1)[-1]


def load_stops(url, ctx):
    """Download a stop table and return it as a DataFrame."""
    archive = fetch_archive(url, _archive_destination(url, ctx))
    return read_stops_archive(archive)


def load_boundaries(url, ctx, name_hint=None, declared_crs=DECLARED_CRS):
    """Download a shapefile bundle and return it as a GeoDataFrame."""
    archive = fetch_archive(url, _archive_destination(url, ctx))
    return read_shapefile_bundle(archive, declared_crs=declared_crs, name_hint=name_hint)
