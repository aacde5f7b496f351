import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./koru_forms.db")

        self.JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

        # Identity Broker (Koru Suite)
        self.KORU_API_URL = os.getenv("KORU_API_URL", "https://www.korusuite.com/api").rstrip("/")
        self.KORU_APP_ID = os.getenv("KORU_APP_ID")
        self.KORU_APP_SECRET = os.getenv("KORU_APP_SECRET")
        self.KORU_HTTP_TIMEOUT = float(os.getenv("KORU_HTTP_TIMEOUT", 10))
        self.KORU_MOCK_AUTH = _flag("KORU_MOCK_AUTH")
        self.KORU_MOCK_WEBSITE_ID = os.getenv("KORU_MOCK_WEBSITE_ID", "mock-website-1")

        # Mail
        self.SMTP_SERVER = os.getenv("SMTP_SERVER", "smtp.gmail.com")
        self.SMTP_PORT = int(os.getenv("SMTP_PORT", 465))
        self.SMTP_USERNAME = os.getenv("SMTP_USERNAME")
        self.SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
        self.SENDER_EMAIL = os.getenv("SENDER_EMAIL", self.SMTP_USERNAME)
        self.SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
        self.MAIL_TIMEOUT_SECONDS = float(os.getenv("MAIL_TIMEOUT_SECONDS", 10))

        self.HONEYPOT_FIELD = os.getenv("HONEYPOT_FIELD", "_trap")
        self.WIDGET_SCRIPT_URL = os.getenv(
            "WIDGET_SCRIPT_URL", "https://cdn.korusuite.com/widgets/contact-form.js"
        )

        origins = os.getenv("ALLOWED_ORIGINS")
        self.ALLOWED_ORIGINS = (
            [o.strip() for o in origins.split(",") if o.strip()]
            if origins
            else ["https://www.korusuite.com", "http://localhost:5173", "http://localhost:5174"]
        )
        self.INTERNAL_SECRET = os.getenv("INTERNAL_SECRET")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @property
    def has_koru_credentials(self) -> bool:
        return bool(self.KORU_APP_ID and self.KORU_APP_SECRET)


settings = Settings()
