from datetime import datetime, timezone
from html import escape

from jose import jwt

from koru_forms.core.config import settings
from koru_forms.core.security import ALGORITHM


class EmbedCodeService:
    @staticmethod
    def widget_token(form_id: str, website_id: str) -> str:
        """Signed pair binding the widget to one form and one website."""
        payload = {
            "form_id": form_id,
            "website_id": website_id,
            "iat": int(datetime.now(timezone.utc).timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def generate_embed_code(form_id: str, website_id: str) -> str:
        token = EmbedCodeService.widget_token(form_id, website_id)
        return f"""<!-- Koru Contact Form Widget -->
<div id="koru-contact-form"
     data-form-id="{escape(form_id)}"
     data-website-id="{escape(website_id)}"
     data-token="{token}">
</div>
<script src="{escape(settings.WIDGET_SCRIPT_URL)}" defer></script>
<!-- End Koru Contact Form Widget -->"""
