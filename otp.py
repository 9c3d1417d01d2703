"""Email one-time codes for the second login step.

Flow:
  1. POST /api/auth/login checks the password, then ``issue_otp`` stores a
     fresh ticket for the user (replacing any earlier one) and
     ``deliver_otp`` mails the code.
  2. POST /api/auth/verify-otp calls ``verify_otp``; on success the ticket
     is gone before a session token is issued.

Only the most recently issued code is ever valid.
"""
import hmac
import secrets

from flask import current_app
from flask_mail import Mail, Message
from sqlalchemy.exc import IntegrityError

from models import db, OtpTicket, utcnow

mail = Mail()


def generate_otp():
    # Uniform over 100000..999999
    return str(100000 + secrets.randbelow(900000))


def issue_otp(user):
    """Store a new code for ``user`` and return it for delivery.

    A concurrent login for the same user may insert its ticket first; the
    later writer then overwrites that ticket.
    """
    user_id = user.id
    code = generate_otp()
    expires_at = utcnow() + current_app.config['OTP_EXPIRES']

    ticket = db.session.get(OtpTicket, user_id)
    if ticket is None:
        ticket = OtpTicket(user_id=user_id)
        db.session.add(ticket)
    _reset_ticket(ticket, code, expires_at)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        ticket = db.session.get(OtpTicket, user_id)
        _reset_ticket(ticket, code, expires_at)
        db.session.commit()

    current_app.logger.info('Issued login code for user %s', user_id)
    return code


def _reset_ticket(ticket, code, expires_at):
    ticket.code = code
    ticket.expires_at = expires_at
    ticket.attempts = 0
    ticket.created_at = utcnow()


def verify_otp(user, submitted):
    """Return True and consume the ticket when ``submitted`` matches.

    Fails on a missing, expired or exhausted ticket, or a wrong code.
    """
    ticket = db.session.get(OtpTicket, user.id)
    if ticket is None:
        return False

    if ticket.is_expired() or ticket.attempts >= current_app.config['OTP_MAX_ATTEMPTS']:
        db.session.delete(ticket)
        db.session.commit()
        return False

    if not hmac.compare_digest(ticket.code.encode(), str(submitted).strip().encode()):
        ticket.attempts += 1
        db.session.commit()
        return False

    # Single use: gone before the caller issues a session token
    db.session.delete(ticket)
    db.session.commit()
    return True


def deliver_otp(user, code):
    """Mail the code. Failures are logged and reported as False, never raised."""
    msg = Message(
        subject='FORS Login OTP',
        recipients=[user.email],
        body=(
            f'Your One-Time Password (OTP) for FORS login is: {code}. '
            f'It expires in {int(current_app.config["OTP_EXPIRES"].total_seconds() // 60)} minutes.'
        )
    )
    try:
        mail.send(msg)
    except Exception:
        current_app.logger.exception('Failed to send login code to user %s', user.id)
        return False
    return True
