from __future__ import annotations

import re

# ISO 3166-1 alpha-2
ISO_ALPHA2_CODES = frozenset(
    """
    AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI BJ BL BM BN BO BQ BR BS
    BT BV BW BY BZ CA CC CD CF CG CH CI CK CL CM CN CO CR CU CV CW CX CY CZ DE DJ DK DM DO DZ EC EE
    EG EH ER ES ET FI FJ FK FM FO FR GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS GT GU GW GY HK HM
    HN HR HT HU ID IE IL IM IN IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN KP KR KW KY KZ LA LB LC
    LI LK LR LS LT LU LV LY MA MC MD ME MF MG MH MK ML MM MN MO MP MQ MR MS MT MU MV MW MX MY MZ NA
    NC NE NF NG NI NL NO NP NR NU NZ OM PA PE PF PG PH PK PL PM PN PR PS PT PW PY QA RE RO RS RU RW
    SA SB SC SD SE SG SH SI SJ SK SL SM SN SO SR SS ST SV SX SY SZ TC TD TF TG TH TJ TK TL TM TN TO
    TR TT TV TW TZ UA UG UM US UY UZ VA VC VE VG VI VN VU WF WS YE YT ZA ZM ZW
    """.split()
)

COUNTRY_ALIASES = {
    "usa": "US",
    "us of a": "US",
    "united states": "US",
    "united states of america": "US",
    "uk": "GB",
    "united kingdom": "GB",
    "great britain": "GB",
    "britain": "GB",
    "england": "GB",
    "scotland": "GB",
    "wales": "GB",
    "turkey": "TR",
    "türkiye": "TR",
    "turkiye": "TR",
    "korea": "KR",
    "south korea": "KR",
    "republic of korea": "KR",
    "russia": "RU",
    "russian federation": "RU",
    "czechia": "CZ",
    "czech republic": "CZ",
    "uae": "AE",
    "united arab emirates": "AE",
    "hong kong": "HK",
    "saudi arabia": "SA",
    "south africa": "ZA",
    "laos": "LA",
    "lao pdr": "LA",
    "vietnam": "VN",
    "viet nam": "VN",
    "phillipines": "PH",
    "tanzania": "TZ",
    "united republic of tanzania": "TZ",
    "moldova": "MD",
    "moldova, republic of": "MD",
    "ivory coast": "CI",
    "cote d'ivoire": "CI",
    "netherlands": "NL",
    "holland": "NL",
    "the netherlands": "NL",
}

COUNTRY_NAMES = {
    "afghanistan": "AF", "albania": "AL", "algeria": "DZ", "angola": "AO", "argentina": "AR",
    "armenia": "AM", "australia": "AU", "austria": "AT", "azerbaijan": "AZ", "bahrain": "BH",
    "bangladesh": "BD", "barbados": "BB", "belarus": "BY", "belgium": "BE", "belize": "BZ",
    "benin": "BJ", "bhutan": "BT", "bolivia": "BO", "bosnia and herzegovina": "BA", "botswana": "BW",
    "brazil": "BR", "brunei": "BN", "bulgaria": "BG", "burkina faso": "BF", "burundi": "BI",
    "cambodia": "KH", "cameroon": "CM", "canada": "CA", "cape verde": "CV", "chile": "CL",
    "china": "CN", "colombia": "CO", "comoros": "KM", "costa rica": "CR", "croatia": "HR",
    "cuba": "CU", "cyprus": "CY", "denmark": "DK", "djibouti": "DJ", "dominican republic": "DO",
    "ecuador": "EC", "egypt": "EG", "el salvador": "SV", "eritrea": "ER", "estonia": "EE",
    "eswatini": "SZ", "ethiopia": "ET", "fiji": "FJ", "finland": "FI", "france": "FR",
    "gabon": "GA", "gambia": "GM", "georgia": "GE", "germany": "DE", "ghana": "GH",
    "greece": "GR", "guatemala": "GT", "guinea": "GN", "guyana": "GY", "haiti": "HT",
    "honduras": "HN", "hungary": "HU", "iceland": "IS", "india": "IN", "indonesia": "ID",
    "iran": "IR", "iraq": "IQ", "ireland": "IE", "israel": "IL", "italy": "IT",
    "jamaica": "JM", "japan": "JP", "jersey": "JE", "jordan": "JO", "kazakhstan": "KZ",
    "kenya": "KE", "kuwait": "KW", "kyrgyzstan": "KG", "latvia": "LV", "lebanon": "LB",
    "lesotho": "LS", "liberia": "LR", "libya": "LY", "lithuania": "LT", "luxembourg": "LU",
    "macao": "MO", "madagascar": "MG", "malawi": "MW", "malaysia": "MY", "maldives": "MV",
    "mali": "ML", "malta": "MT", "mauritania": "MR", "mauritius": "MU", "mexico": "MX",
    "mongolia": "MN", "montenegro": "ME", "morocco": "MA", "mozambique": "MZ", "myanmar": "MM",
    "namibia": "NA", "nepal": "NP", "new zealand": "NZ", "nicaragua": "NI", "niger": "NE",
    "nigeria": "NG", "north macedonia": "MK", "norway": "NO", "oman": "OM", "pakistan": "PK",
    "palestine": "PS", "panama": "PA", "papua new guinea": "PG", "paraguay": "PY", "peru": "PE",
    "philippines": "PH", "poland": "PL", "portugal": "PT", "qatar": "QA", "romania": "RO",
    "rwanda": "RW", "senegal": "SN", "serbia": "RS", "seychelles": "SC", "sierra leone": "SL",
    "singapore": "SG", "slovakia": "SK", "slovenia": "SI", "somalia": "SO", "south sudan": "SS",
    "spain": "ES", "sri lanka": "LK", "sudan": "SD", "suriname": "SR", "sweden": "SE",
    "switzerland": "CH", "syria": "SY", "taiwan": "TW", "tajikistan": "TJ", "thailand": "TH",
    "togo": "TG", "trinidad and tobago": "TT", "tunisia": "TN", "uganda": "UG", "ukraine": "UA",
    "uruguay": "UY", "uzbekistan": "UZ", "venezuela": "VE", "yemen": "YE", "zambia": "ZM",
    "zimbabwe": "ZW",
    "south georgia and the south sandwich islands": "GS",
}

REGION_COUNTRIES = {
    "north-america": "US CA MX",
    "latin-america": "BR AR CL CO PE VE EC BO PY UY GY SR CR PA NI HN SV GT BZ CU DO HT JM TT BB",
    "europe": (
        "GB FR DE IT ES NL BE SE NO DK FI IE CH AT PT GR PL CZ HU RO BG HR RS UA SK SI EE LV LT LU MT"
        " CY IS AL MK BA ME MD BY"
    ),
    "asia": "CN JP KR TW HK MO MN ID PH VN TH MY SG MM KH LA BN TL",
    "south-asia": "IN PK BD LK NP BT MV AF",
    "middle-east": "SA AE QA KW OM BH YE JO LB SY IQ IR IL PS EG TR",
    "africa": (
        "NG ZA KE GH ET TZ UG DZ SD MA AO MZ MG CM CI NE BF ML MW ZM SN SO GN RW BJ TN BI SS TG SL LY"
        " LR MR CF ER GM BW NA GA SZ LS GW GQ MU DJ KM CV SC ST"
    ),
    "oceania": "AU NZ PG FJ SB NC PF VU WS KI TO FM PW MH NR TV",
}
COUNTRY_REGION = {
    code: region
    for region, codes in REGION_COUNTRIES.items()
    for code in codes.split()
}
_ALPHA2_RE = re.compile(r"^[A-Za-z]{2}$")


def to_country_code(name_or_code: str | None) -> str | None:
    """Upper-case ISO alpha-2 code for a country code, name or common alias."""
    if not name_or_code:
        return None
    candidate = name_or_code.strip()
    if not candidate:
        return None

    if _ALPHA2_RE.match(candidate) and candidate.upper() in ISO_ALPHA2_CODES:
        return candidate.upper()

    lowered = " ".join(candidate.lower().split())
    return COUNTRY_ALIASES.get(lowered) or COUNTRY_NAMES.get(lowered)


def region_for_country(country_code: str | None) -> str:
    if not country_code:
        return "other"
    return COUNTRY_REGION.get(country_code.upper(), "other")
