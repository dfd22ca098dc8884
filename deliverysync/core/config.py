import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/delivery_db")

# Application Metadata
PROJECT_NAME = "Delivery Sync Service"
VERSION = "1.0.0"

# Change-feed relay configuration (drains the change_log outbox into the feed)
POLLING_INTERVAL = float(os.getenv("POLLING_INTERVAL", 0.5)) # Relay checks for new changes every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max publish attempts for a change
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 100)) # How many changes to relay per poll

# Statuses a driver's own delivery list is seeded with
ACTIVE_DELIVERY_STATUSES = ["assigned", "picked_up", "on_the_way"]
