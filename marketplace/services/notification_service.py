"""
Notification service for order events.
Stores an in-app Notification row and mails it through Flask-Mail when SMTP is configured.

Every public function here is fire-and-forget: failures are logged and never
propagate to the operation that triggered them.
"""
import logging
from typing import List, Optional
from flask import current_app
from flask_mail import Mail, Message
from marketplace.models import Notification, NotificationType, User, UserRole, Order

logger = logging.getLogger(__name__)

mail = Mail()


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Check if mail is properly configured and enabled.
    Prevents errors in dev or misconfigured environments.
    """
    cfg = current_app.config
    return (
        not cfg.get("MAIL_SUPPRESS_SEND", False)
        and cfg.get("MAIL_SERVER")
        and cfg.get("MAIL_USERNAME")
    )


def _send_email(to_email: Optional[str], subject: str, body: str) -> bool:
    if not to_email:
        return False
    if not _mail_enabled():
        logger.info(f"[MAIL DISABLED] '{subject}' skipped for {to_email}")
        return False

    msg = Message(subject=subject, recipients=[to_email], body=body, charset='utf-8')
    mail.send(msg)
    logger.info(f"[NOTIFY] Email '{subject}' sent to {to_email}")
    return True


def _notify_users(session, users: List[User], order: Order, kind: NotificationType, title: str, message: str) -> int:
    """Persist one notification per user and email them. Returns the number stored."""
    if not users:
        return 0

    for user in users:
        session.add(Notification(
            user_id=user.id,
            order_id=order.id,
            type=kind.value,
            title=title,
            message=message,
        ))
    session.commit()

    for user in users:
        try:
            _send_email(user.email, title, message)
        except Exception as e:
            logger.warning(f"[NOTIFY] Email to {user.email} failed: {e}")

    return len(users)


def notify_order_created(session, order: Order) -> int:
    """Tell the vendor's staff that a new order arrived."""
    try:
        users = session.query(User).filter(
            User.company_id == order.company_id,
            User.role == UserRole.COMPANY_ADMIN.value,
            User.is_active.is_(True)
        ).all()
        return _notify_users(
            session, users, order, NotificationType.ORDER_CREATED,
            f'New order {order.order_number}',
            f'Order {order.order_number} was placed for a total of {order.total}.'
        )
    except Exception as e:
        session.rollback()
        logger.error(f"[NOTIFY] Order created notification failed for order {order.id}: {e}")
        return 0


def notify_status_change(session, order: Order, old_status: str, new_status: str) -> int:
    """Tell the customer that their order moved to a new status."""
    try:
        user = session.get(User, order.user_id)
        return _notify_users(
            session, [user] if user else [], order, NotificationType.ORDER_STATUS,
            f'Order {order.order_number} is now {new_status}',
            f'Your order {order.order_number} changed from {old_status} to {new_status}.'
        )
    except Exception as e:
        session.rollback()
        logger.error(f"[NOTIFY] Status notification failed for order {order.id}: {e}")
        return 0


def notify_driver_assigned(session, order: Order) -> int:
    """Tell the driver about the delivery assigned to them."""
    try:
        driver = session.get(User, order.assigned_driver_id) if order.assigned_driver_id else None
        return _notify_users(
            session, [driver] if driver else [], order, NotificationType.DRIVER_ASSIGNED,
            f'Delivery assigned: {order.order_number}',
            f'You were assigned to deliver order {order.order_number} (zone {order.zone or "n/a"}).'
        )
    except Exception as e:
        session.rollback()
        logger.error(f"[NOTIFY] Driver notification failed for order {order.id}: {e}")
        return 0
