"""Static economic data used as the fallback inflation series and calculator constants.

Update this file to keep the fallback in sync with the macro_data collection.

Sources:
- Inflation: KSH (Hungarian Central Statistical Office)
- M2: MNB (Magyar Nemzeti Bank), when available
"""

DEFAULT_COUNTRY = "HU"
DEFAULT_SOURCE = "KSH/MNB"

# Annual inflation in percent (17.6 means 17.6%)
HISTORICAL_INFLATION = {
    "HU": [
        (2014, -0.2),
        (2015, 0.1),
        (2016, 0.4),
        (2017, 2.4),
        (2018, 2.8),
        (2019, 3.4),
        (2020, 3.3),
        (2021, 5.1),
        (2022, 14.5),
        (2023, 17.6),
        (2024, 3.7),
        (2025, 3.7),  # estimate, same as 2024
    ],
}

# Contextual only, never used in calculations. Empty until MNB data is loaded.
HISTORICAL_M2_GROWTH = {
    "HU": {},
}

DEFAULT_PROJECTED_INFLATION = 4.0

# Annual yield in percent per holding type
HOLDING_TYPE_INTEREST_RATES = {
    "cash": 0.0,
    "low-interest-savings": 2.0,
    "no-yield": 0.0,
}

RETIREMENT_AGE = 65
MIN_AGE = 18
MAX_AGE = 100

# Calculators accept end years up to this many years past the current year
MAX_PROJECTION_YEARS_AHEAD = 10
