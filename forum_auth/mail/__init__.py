from .messages import EmailMessage
from .sender import EmailResult, EmailSender, SmtpEmailSender

__all__ = ["EmailMessage", "EmailResult", "EmailSender", "SmtpEmailSender"]
