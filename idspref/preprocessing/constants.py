"""Shared constants for simulation, cleaning and analysis."""

from pathlib import Path

# Directory paths
BASE_DIR = Path(__file__).resolve().parents[1]
REPO_DIR = Path(__file__).resolve().parents[2]
DATA_DIR = REPO_DIR / "data"

OUTPUTS_DIR = REPO_DIR / "outputs"
OUTPUT_STATS_DIR = OUTPUTS_DIR / "stats"
OUTPUT_FIGURES_DIR = OUTPUTS_DIR / "figures"

# Design of the simulated multi-lab collection
N_LABS = 20
N_SUBJECTS_PER_LAB = 30
N_TRIALS_PER_SUBJECT = 16
TRIALS_PER_BLOCK = 4

LAB_LABELS = (
    "babylab-amsterdam",
    "babylab-brookes",
    "babylab-chicago",
    "babylab-cornell",
    "babylab-geneva",
    "babylab-goettingen",
    "babylab-kyoto",
    "babylab-lancaster",
    "babylab-lyon",
    "babylab-madison",
    "babylab-manchester",
    "babylab-nijmegen",
    "babylab-oslo",
    "babylab-paris",
    "babylab-potsdam",
    "babylab-princeton",
    "babylab-stanford",
    "babylab-toronto",
    "babylab-utrecht",
    "babylab-wellington",
)
METHODS = ("singlescreen", "eyetracking", "hpp")
SESSIONS = ("first", "second")
LANGUAGES = ("English", "French", "German", "Spanish", "Dutch")
BILINGUAL_STATUS = ("monolingual", "bilingual")

CONDITIONS = ("IDS", "ADS")
CONDITION_CODES = {"IDS": 0.5, "ADS": -0.5}

# Simulated looking-time generator
LT_LOG_MEAN = 1.5
LT_LOG_SD = 0.7
LT_CEILING = 20.0
LAB_EFFECT_MAX = 0.5
SUBJECT_OFFSET_MAX = 0.5
LAB_AGE_RANGE = (3, 12)
SUBJECT_AGE_SPREAD = 0.5

# Cleaning defaults
DEFAULT_MIN_LT = 2.0
DEFAULT_Z_THRESHOLD = 2.0
DEFAULT_MIN_TRIALS_PER_TYPE = 4

# Column groups
TRIAL_COLUMNS = [
    "Lab",
    "Method",
    "Session",
    "Subject",
    "Language",
    "Bilingual",
    "Age",
    "Trial",
    "Block",
    "Condition",
    "LT",
]
SUBJECT_KEYS = ["Lab", "Method", "Session", "Subject", "Language", "Bilingual", "Age"]
AGGREGATE_KEYS = ["Lab", "Method", "Session", "Subject", "Language", "Bilingual", "Condition", "Age"]
MODERATORS = ("Method", "Session", "Language", "Bilingual")


def get_output_dir(bucket: str = "stats", root: Path | None = None) -> Path:
    """Return (and create) an output directory for stats tables or figures."""
    if bucket not in {"stats", "figures"}:
        raise ValueError(f"Unknown output bucket: {bucket}. Valid buckets: ['figures', 'stats']")
    base = OUTPUTS_DIR if root is None else Path(root)
    out_dir = base / bucket
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir
