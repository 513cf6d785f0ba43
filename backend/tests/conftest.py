import os

# app.database builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("AUTH_SECRET", "testsecret")
os.environ.setdefault("APP_TIMEZONE", "Europe/Berlin")
