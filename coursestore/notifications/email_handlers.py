from coursestore.services.email_service import send_email
from coursestore.utils.template import render_template
from coursestore.config import settings


def send_user_email(template, subject, user, **ctx):
    html = render_template(template, user=user, **ctx)
    return send_email(to=user.email, subject=subject, html=html)


def send_admin_email(template, subject, **ctx):
    if not settings.ADMIN_EMAILS:
        return False
    html = render_template(template, **ctx)
    return send_email(to=settings.ADMIN_EMAILS, subject=subject, html=html)
