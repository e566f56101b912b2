import os
from dotenv import load_dotenv


class Settings:
    def __init__(self) -> None:
        # Load variables from .env into environment
        load_dotenv()
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "changeme")
        # Session tokens issued at login
        self.JWT_EXPIRE_HOURS: int = int(os.getenv("JWT_EXPIRE_HOURS", "12"))
        # Approve/reject links embedded in notification emails
        self.QUICK_ACTION_TTL_DAYS: int = int(os.getenv("QUICK_ACTION_TTL_DAYS", "7"))
        self.MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
        self.MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "leaveflow")
        # Frontend base URL (used in CORS and the welcome email)
        self.FRONTEND_BASE_URL: str = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")
        # Public URL of this API, used to build quick-action links
        self.BACKEND_BASE_URL: str = os.getenv("BACKEND_BASE_URL", "http://localhost:8000").rstrip("/")
        # Optional comma-separated list of additional allowed origins for CORS
        self.ALLOWED_ORIGINS: list[str] = [
            o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()
        ]
        # When set, new leave requests are announced to this address only
        self.ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "")
        # Bootstrap system administrator
        self.SYSADMIN_USERNAME: str = os.getenv("SYSADMIN_USERNAME", "sysadmin")
        self.SYSADMIN_EMAIL: str = os.getenv("SYSADMIN_EMAIL", "")
        self.SYSADMIN_PASSWORD: str = os.getenv("SYSADMIN_PASSWORD", "")
        self.SYSADMIN_FULLNAME: str = os.getenv("SYSADMIN_FULLNAME", "System Administrator")
        # Attendance clock and dashboard thresholds
        self.ATTENDANCE_TIMEZONE: str = os.getenv("ATTENDANCE_TIMEZONE", "Asia/Kolkata")
        self.ON_TIME_CUTOFF: str = os.getenv("ON_TIME_CUTOFF", "10:30")
        self.EARLY_DEPARTURE_CUTOFF: str = os.getenv("EARLY_DEPARTURE_CUTOFF", "18:30")
        self.YEARLY_LEAVE_LIMIT: int = int(os.getenv("YEARLY_LEAVE_LIMIT", "12"))


settings = Settings()
