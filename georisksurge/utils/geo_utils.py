"""Country-code utilities for GeoRiskSurge.

GDELT records ActionGeo_CountryCode as FIPS 10-4 while every artifact is keyed
by ISO-3166-1 alpha-2. All code translation goes through fips_to_iso2() so the
baseline builder and the history assembler agree on country identity.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# FIPS 10-4 → ISO 3166-1 alpha-2
FIPS_TO_ISO2: Dict[str, str] = {
    "AF": "AF",  # Afghanistan
    "AL": "AL",  # Albania
    "AG": "DZ",  # Algeria
    "AQ": "AS",  # American Samoa
    "AN": "AD",  # Andorra
    "AO": "AO",  # Angola
    "AV": "AI",  # Anguilla
    "AY": "AQ",  # Antarctica
    "AC": "AG",  # Antigua and Barbuda
    "AR": "AR",  # Argentina
    "AM": "AM",  # Armenia
    "AA": "AW",  # Aruba
    "AS": "AU",  # Australia
    "AU": "AT",  # Austria
    "AJ": "AZ",  # Azerbaijan
    "BF": "BS",  # Bahamas
    "BA": "BH",  # Bahrain
    "BG": "BD",  # Bangladesh
    "BB": "BB",  # Barbados
    "BO": "BY",  # Belarus
    "BE": "BE",  # Belgium
    "BH": "BZ",  # Belize
    "BN": "BJ",  # Benin
    "BD": "BM",  # Bermuda
    "BT": "BT",  # Bhutan
    "BL": "BO",  # Bolivia
    "BK": "BA",  # Bosnia
    "BC": "BW",  # Botswana
    "BR": "BR",  # Brazil
    "BX": "BN",  # Brunei
    "BU": "BG",  # Bulgaria
    "UV": "BF",  # Burkina Faso
    "BM": "MM",  # Myanmar/Burma
    "BY": "BI",  # Burundi
    "CB": "KH",  # Cambodia
    "CM": "CM",  # Cameroon
    "CA": "CA",  # Canada
    "CV": "CV",  # Cape Verde
    "CJ": "KY",  # Cayman Islands
    "CT": "CF",  # Central African Rep
    "CD": "TD",  # Chad
    "CI": "CL",  # Chile
    "CH": "CN",  # China
    "CO": "CO",  # Colombia
    "CN": "KM",  # Comoros
    "CF": "CG",  # Congo
    "CG": "CD",  # DRC
    "CW": "CK",  # Cook Islands
    "CS": "CR",  # Costa Rica
    "IV": "CI",  # Côte d'Ivoire
    "HR": "HR",  # Croatia
    "CU": "CU",  # Cuba
    "CY": "CY",  # Cyprus
    "EZ": "CZ",  # Czech Republic
    "DA": "DK",  # Denmark
    "DJ": "DJ",  # Djibouti
    "DO": "DM",  # Dominica
    "DR": "DO",  # Dominican Republic
    "EC": "EC",  # Ecuador
    "EG": "EG",  # Egypt
    "ES": "SV",  # El Salvador
    "EK": "GQ",  # Equatorial Guinea
    "ER": "ER",  # Eritrea
    "EN": "EE",  # Estonia
    "ET": "ET",  # Ethiopia
    "FK": "FK",  # Falkland Islands
    "FO": "FO",  # Faroe Islands
    "FJ": "FJ",  # Fiji
    "FI": "FI",  # Finland
    "FR": "FR",  # France
    "FP": "PF",  # French Polynesia
    "GB": "GA",  # Gabon
    "GA": "GM",  # Gambia
    "GZ": "PS",  # Gaza Strip
    "GG": "GE",  # Georgia
    "GM": "DE",  # Germany
    "GH": "GH",  # Ghana
    "GI": "GI",  # Gibraltar
    "GR": "GR",  # Greece
    "GL": "GL",  # Greenland
    "GJ": "GD",  # Grenada
    "GQ": "GU",  # Guam
    "GT": "GT",  # Guatemala
    "GV": "GN",  # Guinea
    "PU": "GW",  # Guinea-Bissau
    "GY": "GY",  # Guyana
    "HA": "HT",  # Haiti
    "HO": "HN",  # Honduras
    "HK": "HK",  # Hong Kong
    "HU": "HU",  # Hungary
    "IC": "IS",  # Iceland
    "IN": "IN",  # India
    "ID": "ID",  # Indonesia
    "IR": "IR",  # Iran
    "IZ": "IQ",  # Iraq
    "EI": "IE",  # Ireland
    "IS": "IL",  # Israel
    "IT": "IT",  # Italy
    "JM": "JM",  # Jamaica
    "JA": "JP",  # Japan
    "JO": "JO",  # Jordan
    "KZ": "KZ",  # Kazakhstan
    "KE": "KE",  # Kenya
    "KR": "KI",  # Kiribati
    "KN": "KP",  # North Korea
    "KS": "KR",  # South Korea
    "KV": "XK",  # Kosovo
    "KU": "KW",  # Kuwait
    "KG": "KG",  # Kyrgyzstan
    "LA": "LA",  # Laos
    "LG": "LV",  # Latvia
    "LE": "LB",  # Lebanon
    "LT": "LS",  # Lesotho
    "LI": "LR",  # Liberia
    "LY": "LY",  # Libya
    "LS": "LI",  # Liechtenstein
    "LH": "LT",  # Lithuania
    "LU": "LU",  # Luxembourg
    "MC": "MO",  # Macau
    "MK": "MK",  # North Macedonia
    "MA": "MG",  # Madagascar
    "MI": "MW",  # Malawi
    "MY": "MY",  # Malaysia
    "MV": "MV",  # Maldives
    "ML": "ML",  # Mali
    "MT": "MT",  # Malta
    "RM": "MH",  # Marshall Islands
    "MR": "MR",  # Mauritania
    "MP": "MU",  # Mauritius
    "MX": "MX",  # Mexico
    "FM": "FM",  # Micronesia
    "MD": "MD",  # Moldova
    "MN": "MC",  # Monaco
    "MG": "MN",  # Mongolia
    "MJ": "ME",  # Montenegro
    "MO": "MA",  # Morocco
    "MZ": "MZ",  # Mozambique
    "WA": "NA",  # Namibia
    "NR": "NR",  # Nauru
    "NP": "NP",  # Nepal
    "NL": "NL",  # Netherlands
    "NC": "NC",  # New Caledonia
    "NZ": "NZ",  # New Zealand
    "NU": "NI",  # Nicaragua
    "NG": "NE",  # Niger
    "NI": "NG",  # Nigeria
    "NO": "NO",  # Norway
    "MU": "OM",  # Oman
    "PK": "PK",  # Pakistan
    "PS": "PW",  # Palau
    "PM": "PA",  # Panama
    "PP": "PG",  # Papua New Guinea
    "PA": "PY",  # Paraguay
    "PE": "PE",  # Peru
    "RP": "PH",  # Philippines
    "PL": "PL",  # Poland
    "PO": "PT",  # Portugal
    "RQ": "PR",  # Puerto Rico
    "QA": "QA",  # Qatar
    "RO": "RO",  # Romania
    "RS": "RU",  # Russia
    "RW": "RW",  # Rwanda
    "SC": "KN",  # Saint Kitts
    "ST": "LC",  # Saint Lucia
    "VC": "VC",  # Saint Vincent
    "WS": "WS",  # Samoa
    "SM": "SM",  # San Marino
    "TP": "ST",  # São Tomé
    "SA": "SA",  # Saudi Arabia
    "SG": "SN",  # Senegal
    "RI": "RS",  # Serbia
    "SE": "SC",  # Seychelles
    "SL": "SL",  # Sierra Leone
    "SN": "SG",  # Singapore
    "LO": "SK",  # Slovakia
    "SI": "SI",  # Slovenia
    "BP": "SB",  # Solomon Islands
    "SO": "SO",  # Somalia
    "SF": "ZA",  # South Africa
    "OD": "SS",  # South Sudan
    "SP": "ES",  # Spain
    "CE": "LK",  # Sri Lanka
    "SU": "SD",  # Sudan
    "NS": "SR",  # Suriname
    "WZ": "SZ",  # Eswatini/Swaziland
    "SW": "SE",  # Sweden
    "SZ": "CH",  # Switzerland
    "SY": "SY",  # Syria
    "TW": "TW",  # Taiwan
    "TI": "TJ",  # Tajikistan
    "TZ": "TZ",  # Tanzania
    "TH": "TH",  # Thailand
    "TT": "TL",  # Timor-Leste
    "TO": "TG",  # Togo
    "TN": "TO",  # Tonga
    "TD": "TT",  # Trinidad
    "TS": "TN",  # Tunisia
    "TU": "TR",  # Turkey
    "TX": "TM",  # Turkmenistan
    "TV": "TV",  # Tuvalu
    "UG": "UG",  # Uganda
    "UP": "UA",  # Ukraine
    "AE": "AE",  # UAE
    "UK": "GB",  # United Kingdom
    "US": "US",  # United States
    "UY": "UY",  # Uruguay
    "UZ": "UZ",  # Uzbekistan
    "NH": "VU",  # Vanuatu
    "VT": "VA",  # Vatican
    "VE": "VE",  # Venezuela
    "VM": "VN",  # Vietnam
    "VI": "VG",  # British Virgin Islands
    "VQ": "VI",  # US Virgin Islands
    "WE": "PS",  # West Bank
    "YM": "YE",  # Yemen
    "ZA": "ZM",  # Zambia
    "ZI": "ZW",  # Zimbabwe
}

# Territories and placeholder codes kept out of every country map
EXCLUDED_CODES = frozenset({"AY", "BV", "IO", "HM", "TF", "GS", "UM", "XX", "--"})

# Record suffixes averaged by _days weight when source codes merge
_WEIGHTED_SUFFIXES = ("_avg", "_median", "_p90")

# Names forced over the GeoJSON where patched territories collide
_NAME_OVERRIDES = {"FR": "France", "NO": "Norway", "GB": "United Kingdom"}


class MappingStatus:
    """Outcome of a single code translation."""

    MAPPED = "mapped"
    IDENTITY = "identity"
    EXCLUDED = "excluded"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CodeMapping:
    """Result of translating one source code."""

    iso2: Optional[str]
    status: str
    ambiguous_from: Tuple[str, ...] = ()


@dataclass
class AggregationStats:
    """Counters for an aggregate_to_iso2() pass."""

    mapped: int = 0
    identity: int = 0
    excluded: int = 0
    dropped: int = 0
    duplicates: int = 0
    unknown_codes: List[str] = field(default_factory=list)
    merged: List[Tuple[str, str]] = field(default_factory=list)   # (source code, iso2)

    def as_dict(self) -> Dict[str, int]:
        return {
            "mapped": self.mapped,
            "identity": self.identity,
            "excluded": self.excluded,
            "dropped": self.dropped,
            "duplicates": self.duplicates,
        }


def _build_reverse() -> Dict[str, List[str]]:
    reverse: Dict[str, List[str]] = {}
    for fips, iso2 in FIPS_TO_ISO2.items():
        if fips in EXCLUDED_CODES:
            continue
        reverse.setdefault(iso2, []).append(fips)
    return reverse


_ISO2_TO_FIPS: Dict[str, List[str]] = _build_reverse()


def fips_to_iso2(code: Optional[str]) -> CodeMapping:
    """Translate a FIPS 10-4 country code to ISO-2.

    Args:
        code: Raw two-letter source code (case-insensitive).

    Returns:
        CodeMapping with status "mapped", "identity", "excluded", or "unknown".
        iso2 is None unless the status is mapped or identity. ambiguous_from
        lists the other source codes that collapse onto the same ISO-2.
    """
    if not code or len(code.strip()) != 2:
        return CodeMapping(iso2=None, status=MappingStatus.UNKNOWN)

    upper = code.strip().upper()
    if upper in EXCLUDED_CODES:
        return CodeMapping(iso2=None, status=MappingStatus.EXCLUDED)

    iso2 = FIPS_TO_ISO2.get(upper)
    if iso2 is None:
        return CodeMapping(iso2=None, status=MappingStatus.UNKNOWN)

    status = MappingStatus.IDENTITY if iso2 == upper else MappingStatus.MAPPED
    others = tuple(f for f in _ISO2_TO_FIPS.get(iso2, []) if f != upper)
    return CodeMapping(iso2=iso2, status=status, ambiguous_from=others)


def _merge_records(
    existing: Dict[str, Any], incoming: Mapping[str, Any], w_old: float
) -> Dict[str, Any]:
    """Merge two numeric records that collapsed onto the same ISO-2.

    w_old is the summed _days of every record already folded into existing.
    """
    merged = dict(existing)
    w_new = float(incoming.get("_days") or 0)

    for key, value in incoming.items():
        if key.startswith("_merged") or key == "_fips":
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            merged.setdefault(key, value)
            continue
        old = existing.get(key)
        if not isinstance(old, (int, float)) or isinstance(old, bool):
            merged[key] = value
        elif key == "_days":
            merged[key] = max(old, value)
        elif key.endswith(_WEIGHTED_SUFFIXES):
            total = w_old + w_new
            merged[key] = (old * w_old + value * w_new) / total if total > 0 else (old + value) / 2
        else:
            merged[key] = old + value
    return merged


def aggregate_to_iso2(
    records: Mapping[str, Mapping[str, Any]],
    mapper: Callable[[str], CodeMapping] = fips_to_iso2,
) -> Tuple[Dict[str, Dict[str, Any]], AggregationStats]:
    """Collapse records keyed by source code into records keyed by ISO-2.

    Plain numeric fields are summed. Fields ending in _avg/_median/_p90 are
    averaged weighted by _days, and _days keeps the larger value. Merged
    records carry ``_merged_from`` listing every contributing source code.

    Args:
        records: Mapping of source code → numeric record.
        mapper: Code translator (defaults to fips_to_iso2).

    Returns:
        Tuple of (ISO-2 keyed records, AggregationStats).
    """
    data: Dict[str, Dict[str, Any]] = {}
    weights: Dict[str, float] = {}
    stats = AggregationStats()

    for code in sorted(records):
        record = records[code]
        mapping = mapper(code)
        if mapping.status == MappingStatus.EXCLUDED:
            stats.excluded += 1
            continue
        if mapping.iso2 is None:
            stats.dropped += 1
            stats.unknown_codes.append(code)
            continue
        if mapping.status == MappingStatus.MAPPED:
            stats.mapped += 1
        else:
            stats.identity += 1

        iso2 = mapping.iso2
        if iso2 in data:
            stats.duplicates += 1
            stats.merged.append((code, iso2))
            existing = data[iso2]
            merged = _merge_records(existing, record, weights[iso2])
            merged["_merged_from"] = list(existing.get("_merged_from") or [existing["_fips"]]) + [code]
            merged["_fips"] = existing["_fips"]
            data[iso2] = merged
            weights[iso2] += float(record.get("_days") or 0)
        else:
            data[iso2] = {**record, "_fips": code}
            weights[iso2] = float(record.get("_days") or 0)

    return data, stats


def log_aggregation_stats(stats: AggregationStats, label: str = "code conversion") -> None:
    """Log an aggregate_to_iso2() summary, warning on merges and unknown codes."""
    logger.info(
        "%s: mapped=%d identity=%d excluded=%d dropped=%d duplicates=%d",
        label,
        stats.mapped,
        stats.identity,
        stats.excluded,
        stats.dropped,
        stats.duplicates,
    )
    if stats.merged:
        logger.warning(
            "%s merged source codes: %s",
            label,
            ", ".join(f"{code}->{iso2}" for code, iso2 in stats.merged),
        )
    if stats.unknown_codes:
        logger.warning("%s unknown codes dropped: %s", label, ", ".join(stats.unknown_codes))


def load_country_name_map(geojson_path: str | Path) -> Dict[str, str]:
    """Build an ISO-2 → English name map from a countries GeoJSON file.

    Reads ``ISO3166-1-Alpha-2`` and ``name`` (or ``ADMIN``) from each
    feature's properties; the first name seen for a code wins, then fixed
    overrides are applied. Returns an empty map when the file is missing.
    """
    path = Path(geojson_path)
    if not path.exists():
        logger.warning("GeoJSON not found at %s; country names fall back to ISO-2", path)
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            geo = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read GeoJSON %s: %s", path, exc)
        return {}

    names: Dict[str, str] = {}
    for feature in geo.get("features") or []:
        props = feature.get("properties") or {}
        code = props.get("ISO3166-1-Alpha-2")
        name = props.get("name") or props.get("ADMIN")
        if code and name and code not in names:
            names[code] = name

    names.update(_NAME_OVERRIDES)
    return names
