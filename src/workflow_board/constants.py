STATE_DIR_NAME = ".workflow_board"
CONFIG_FILE = "config.yaml"
TASKS_FILE = "tasks.yaml"
STAGES_FILE = "stages.yaml"
LOCK_FILE = "store.lock"
WINDOWS_LOCK_BYTES = 4096

STORE_VERSION = 1

# Bootstrap pipeline used when a project has no persisted stages.
DEFAULT_STAGES = (
    {"id": "planning", "label": "📋 Planning", "color": "#e5e7eb"},
    {"id": "rough-in", "label": "🔧 Rough-in", "color": "#fef3c7"},
    {"id": "fit-off", "label": "🔨 Fit-off", "color": "#dbeafe"},
    {"id": "configure", "label": "⚙️ Configure", "color": "#e0e7ff"},
    {"id": "test", "label": "🧪 Test", "color": "#fce7f3"},
    {"id": "commission", "label": "✅ Commission", "color": "#dcfce7"},
)

# Colours handed out to new stages, cycling by registry size.
STAGE_PALETTE = (
    "#e5e7eb",
    "#fef3c7",
    "#dbeafe",
    "#e0e7ff",
    "#fce7f3",
    "#dcfce7",
    "#fee2e2",
    "#f3e8ff",
)

PLACEHOLDER_COLOR = "#9ca3af"
PLACEHOLDER_LABEL_PREFIX = "❓ Unknown stage"

CALENDAR_GRID_CELLS = 42
DUE_THIS_WEEK_DAYS = 7

ENV_API_URL = "WORKFLOW_BOARD_API_URL"
ENV_API_TOKEN = "WORKFLOW_BOARD_API_TOKEN"
ENV_LOG_LEVEL = "WORKFLOW_BOARD_LOG_LEVEL"
