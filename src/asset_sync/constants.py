"""Constants for asset-sync."""

# Default asset tree to index
DEFAULT_ROOT = "./files"

# Index table
DEFAULT_DATABASE = "asset-index.db"
DEFAULT_TABLE = "Hashes"

# Connection pool size
DEFAULT_POOL_SIZE = 5

# Digest
DEFAULT_HASH_ALGORITHM = "md5"
READ_CHUNK_SIZE = 8192

# Project-level ignore file (inside the scanned root)
IGNORE_FILE = ".assetignore"

# Environment variable overrides
ENV_PREFIX = "ASSET_SYNC_"

# Version
VERSION = "0.1.0"
