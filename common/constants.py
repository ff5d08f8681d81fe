"""Project-wide constants (table name, sync timings, default ports)."""

BAN_TABLE_NAME: str = "userbans"

PUSH_DELAY_SECONDS: int = 20  # delay between an apply phase and the next push
CONNECT_TIMEOUT_SECONDS: int = 10

DEFAULT_CONFIG_PATH: str = "./data/bansync.json"
DEFAULT_SQLITE_DATABASE: str = "BanSync.db"
DEFAULT_BAN_LIST_PATH: str = "banned_users.json"

MYSQL_DEFAULT_PORT: int = 3306

API_HOST: str = "0.0.0.0"
API_PORT: int = 8100

KICK_MESSAGE_TEMPLATE: str = "Banned: {reason}"
