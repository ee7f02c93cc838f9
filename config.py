import os

APP_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "change_me")
    DATABASE_URL = (os.environ.get("DATABASE_URL") or "").strip()
    SQLITE_PATH = os.environ.get("SQLITE_PATH", os.path.join(APP_DIR, "sheltersync.db"))
    SHELTER_TIMEZONE = os.environ.get("SHELTER_TIMEZONE", "America/Chicago")
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
    BIO_MODEL = os.environ.get("BIO_MODEL", "gpt-4o-mini")
    MAX_CONTENT_LENGTH = 4 * 1024 * 1024
