# trustchain_core/constants.py

TOKEN_ALGORITHM = "EdDSA"
TOKEN_TYPE = "JWT"
CLAIM_VERSION = 2

WILDCARD_TARGET = "*"

# store layout
TOKEN_EXT = ".jwt"
SEED_EXT = ".nk"
PUB_EXT = ".pub"
CREDS_EXT = ".creds"
ACCOUNTS_DIR = "accounts"
USERS_DIR = "users"
CONTEXT_FILE = "context.json"

# environment
ENV_HOME = "TRUSTCHAIN_HOME"
ENV_KEYS_DIR = "TRUSTCHAIN_KEYS_DIR"
ENV_STORAGE_PROVIDER = "TRUSTCHAIN_STORAGE_PROVIDER"
ENV_ACCOUNT_SERVER = "TRUSTCHAIN_ACCOUNT_SERVER"

DEFAULT_HOME = "~/.trustchain/store"
DEFAULT_KEYS_DIR = "~/.trustchain/keys"

ACCOUNT_SERVER_TIMEOUT = 5
ACCOUNT_SERVER_RETRIES = 3
