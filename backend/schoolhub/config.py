import os
from dotenv import load_dotenv


load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv("SQLALCHEMY_DATABASE_URI", "sqlite:///schoolhub.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CREATE_TABLES_ON_STARTUP = os.getenv("CREATE_TABLES_ON_STARTUP", "true").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    AUDIT_LOG_FILE = os.getenv("AUDIT_LOG_FILE", os.path.join("logs", "audit.log"))
    DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    LATE_FEE_PER_DAY = int(os.getenv("LATE_FEE_PER_DAY", "10"))
    LATE_FEE_CAP_RATIO = os.getenv("LATE_FEE_CAP_RATIO", "0.10")  # fraction of the fee amount
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "INR")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CREATE_TABLES_ON_STARTUP = True
    AUDIT_LOG_FILE = os.path.join("logs", "audit-test.log")
