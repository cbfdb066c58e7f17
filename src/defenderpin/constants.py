"""Static names and modes shared by defenderpin services."""

IMAGE_NAMESPACE = "twistlock/private"
IMAGE_TAG_PREFIX = "defender"

ENV_API_URL = "PRISMA_API_URL"
ENV_TOKEN = "PRISMA_TOKEN"
ENV_CONSOLE = "PRISMA_CONSOLE"
REQUIRED_ENV_VARS = (ENV_API_URL, ENV_TOKEN, ENV_CONSOLE)

API_SUFFIXES = ("/api/v1", "/api")
SCRIPT_RESOURCE_PATH = "/api/v1/scripts/defender.sh"
SCRIPT_FILE_NAME = "defender.sh"

DEFAULT_RUNTIME = "docker"
DEFAULT_FETCH_TIMEOUT = 60.0
DEFAULT_CONFIG_FILE = ".defenderpin.yml"

SCRATCH_DIR_PREFIX = "defenderpin-"
DIR_MODE = 0o700
SCRIPT_MODE = 0o700
