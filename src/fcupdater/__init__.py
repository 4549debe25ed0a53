"""fcupdater: Keep a fuel-station price master in sync with portal exports."""

__version__ = "0.3.0"

MASTER_SHEET = "유류비"
CHANGE_LOG_SHEET = "변경내역"

DEFAULT_MASTER = "fuel_cost_chungcheong.xlsx"
DEFAULT_SOURCES_PREFIX = "지역_위치별(주유소)"
