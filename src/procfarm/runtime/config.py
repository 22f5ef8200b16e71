"""Runtime configuration constants."""

GENERAL_TAG: str = "GENERAL"
SIMD_TAG: str = "SIMD"
RADIATION_TAG: str = "RADIATION"
ANGEL_TAG: str = "ANGEL"
SURVEILLANCE_TAG: str = "SURVEILLANCE"

DEFAULT_RELIABILITY: float = 0.995
DEFAULT_COOLING_CAP: int = 3
DEFAULT_HARDENING_CAP: int = 3
DEFAULT_REPLACE_RATIO: float = 0.35
DEFAULT_POWER_DRAW: float = 4.2
DEFAULT_HEAT_OUTPUT: float = 1.0
DEFAULT_PURCHASE_COST: int = 180
DEFAULT_UPKEEP: float = 8.0

DAEMON_QUALITY_PENALTY: int = -5
DAEMON_TIME_MULTIPLIER: float = 1.10
FIRMWARE_QUALITY_FLOOR: int = -3
FIRMWARE_TIME_STEP: float = 0.02
FIRMWARE_TIME_FLOOR: float = 1.02

MIN_SPEED: float = 0.1  # floor applied before dividing base time
REWARD_FLOOR: float = 0.7
REWARD_CEILING: float = 1.2

MAX_QUEUED_JOBS: int = 5
JOB_SPAWN_INTERVAL_TICKS: int = 60
TICKS_PER_DAY: int = 180
DAEMON_UNLOCK_CREDITS: float = 500.0
STARTING_CREDITS: float = 120.0
STARTING_STORAGE: int = 120
ACTIVITY_LOG_CAPACITY: int = 8
STORAGE_EXPANSION_UNITS: int = 80
