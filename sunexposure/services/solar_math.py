"""
Closed-form solar position math (NOAA / Meeus low-precision series).

All angles are in degrees unless a name ends in ``_rad``. Accuracy is
around 0.01 degrees for years 1000-3000, which is well inside the error
budget of building heights.
"""
import math
from datetime import datetime

# Julian day of the J2000.0 epoch and days per Julian century
JULIAN_DAY_2000 = 2451545.0
DAYS_PER_JULIAN_CENTURY = 36525.0

# Standard atmosphere for refraction
STANDARD_PRESSURE_MBAR = 1013.25
STANDARD_TEMPERATURE_C = 15.0

# Apparent elevation of the sun's upper limb at rise/set, including refraction
SUNRISE_SUNSET_ELEVATION = -0.833

DEG = math.degrees
RAD = math.radians


def normalize_degrees(degrees: float) -> float:
    """Wrap to [0, 360)."""
    normalized = degrees % 360.0
    return normalized + 360.0 if normalized < 0 else normalized


def normalize_degrees_symmetric(degrees: float) -> float:
    """Wrap to (-180, 180]."""
    normalized = normalize_degrees(degrees)
    return normalized - 360.0 if normalized > 180.0 else normalized


def julian_day(utc: datetime) -> float:
    """Julian day for a UTC datetime, with Gregorian correction after 1582-10-15."""
    year, month, day = utc.year, utc.month, utc.day
    hour = utc.hour + utc.minute / 60.0 + utc.second / 3600.0 + utc.microsecond / 3.6e9

    if month <= 2:
        year -= 1
        month += 12

    a = year // 100
    b = 0
    if year > 1582 or (year == 1582 and month > 10) or (year == 1582 and month == 10 and day >= 15):
        b = 2 - a + a // 4

    jd = math.floor(365.25 * (year + 4716)) + math.floor(30.6001 * (month + 1)) + day + b - 1524.5
    return jd + hour / 24.0


def julian_centuries(jd: float) -> float:
    return (jd - JULIAN_DAY_2000) / DAYS_PER_JULIAN_CENTURY


def mean_longitude(t: float) -> float:
    return normalize_degrees(280.46646 + t * (36000.76983 + t * 0.0003032))


def mean_anomaly(t: float) -> float:
    return 357.52911 + t * (35999.05029 - 0.0001537 * t)


def eccentricity(t: float) -> float:
    return 0.016708634 - t * (0.000042037 + 0.0000001267 * t)


def equation_of_center(m: float, t: float) -> float:
    m_rad = RAD(m)
    return (
        math.sin(m_rad) * (1.914602 - t * (0.004817 + 0.000014 * t))
        + math.sin(2 * m_rad) * (0.019993 - 0.000101 * t)
        + math.sin(3 * m_rad) * 0.000289
    )


def _omega(t: float) -> float:
    return 125.04 - 1934.136 * t


def apparent_longitude(true_longitude: float, t: float) -> float:
    return true_longitude - 0.00569 - 0.00478 * math.sin(RAD(_omega(t)))


def mean_obliquity(t: float) -> float:
    seconds = 21.448 - t * (46.8150 + t * (0.00059 - t * 0.001813))
    return 23.0 + (26.0 + seconds / 60.0) / 60.0


def corrected_obliquity(mean_obliq: float, t: float) -> float:
    return mean_obliq + 0.00256 * math.cos(RAD(_omega(t)))


def declination(apparent_long: float, obliquity: float) -> float:
    return DEG(math.asin(math.sin(RAD(obliquity)) * math.sin(RAD(apparent_long))))


def equation_of_time(obliquity: float, l0: float, e: float, m: float) -> float:
    """Equation of time in minutes."""
    l0_rad, m_rad = RAD(l0), RAD(m)
    y = math.tan(RAD(obliquity) / 2.0) ** 2

    e_time = (
        y * math.sin(2.0 * l0_rad)
        - 2.0 * e * math.sin(m_rad)
        + 4.0 * e * y * math.sin(m_rad) * math.cos(2.0 * l0_rad)
        - 0.5 * y * y * math.sin(4.0 * l0_rad)
        - 1.25 * e * e * math.sin(2.0 * m_rad)
    )
    return 4.0 * DEG(e_time)


def hour_angle(longitude: float, utc: datetime, eot_minutes: float) -> float:
    """Hour angle, 0 at solar noon, negative in the morning."""
    utc_minutes = utc.hour * 60.0 + utc.minute + (utc.second + utc.microsecond / 1e6) / 60.0
    true_solar_time = utc_minutes + 4.0 * longitude + eot_minutes
    return normalize_degrees_symmetric(true_solar_time / 4.0 - 180.0)


def elevation(latitude: float, decl: float, ha: float) -> float:
    lat_rad, decl_rad, ha_rad = RAD(latitude), RAD(decl), RAD(ha)
    sin_elev = (
        math.sin(lat_rad) * math.sin(decl_rad)
        + math.cos(lat_rad) * math.cos(decl_rad) * math.cos(ha_rad)
    )
    return DEG(math.asin(max(-1.0, min(1.0, sin_elev))))


def azimuth(latitude: float, decl: float, ha: float) -> float:
    """Azimuth clockwise from north."""
    lat_rad, decl_rad, ha_rad = RAD(latitude), RAD(decl), RAD(ha)
    gamma = math.atan2(
        math.sin(ha_rad),
        math.cos(ha_rad) * math.sin(lat_rad) - math.tan(decl_rad) * math.cos(lat_rad),
    )
    return normalize_degrees(DEG(gamma) + 180.0)


def earth_sun_distance(true_anomaly: float, e: float) -> float:
    """Earth-Sun distance in AU."""
    return (1.000001018 * (1 - e * e)) / (1 + e * math.cos(RAD(true_anomaly)))


def apply_refraction(
    true_elevation: float,
    pressure: float = STANDARD_PRESSURE_MBAR,
    temperature: float = STANDARD_TEMPERATURE_C,
) -> float:
    """
    Apparent elevation after atmospheric refraction.

    Below -0.5 degrees the true elevation is returned unchanged. Near the
    horizon a fixed 34 arcminutes is used, above it Bennett's formula.
    """
    if true_elevation <= -0.5:
        return true_elevation

    scale = (pressure / 1010.0) * (283.0 / (273.0 + temperature))
    if true_elevation <= 0.5:
        return true_elevation + scale * 34.0 / 60.0

    refraction_arcmin = scale * (
        1.02 / math.tan(RAD(true_elevation + 10.3 / (true_elevation + 5.11)))
    )
    return true_elevation + refraction_arcmin / 60.0


def solar_coordinates(utc: datetime, latitude: float, longitude: float) -> dict:
    """
    Run the full series for one instant.

    Returns azimuth, refracted elevation, declination, hour angle and
    Earth-Sun distance. Inputs are assumed validated.
    """
    t = julian_centuries(julian_day(utc))

    l0 = mean_longitude(t)
    m = mean_anomaly(t)
    e = eccentricity(t)
    c = equation_of_center(m, t)

    true_long = normalize_degrees(l0 + c)
    app_long = apparent_longitude(true_long, t)
    obliquity = corrected_obliquity(mean_obliquity(t), t)
    decl = declination(app_long, obliquity)

    eot = equation_of_time(obliquity, l0, e, m)
    ha = hour_angle(longitude, utc, eot)

    true_elev = elevation(latitude, decl, ha)
    return {
        "azimuth": azimuth(latitude, decl, ha),
        "elevation": apply_refraction(true_elev),
        "declination": decl,
        "hour_angle": ha,
        "earth_distance_au": earth_sun_distance(m + c, e),
        "equation_of_time": eot,
    }
